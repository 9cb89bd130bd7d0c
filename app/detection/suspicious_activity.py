"""
Suspicious Activity Detector
Scores a new achievement submission against the student's history and
recent submissions by other students

Checks:
- Bulk submissions in the last 7 days
- Duplicate / near-duplicate titles or institutes
- Basic-to-advanced level jumps within 30 days
- Night-time submission habit
- Machine-regular submission intervals
- Same title tokens + institute across several students
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.database import to_object_id

logger = logging.getLogger(__name__)

BASIC_LEVELS = {"Department", "College"}
ADVANCED_LEVELS = {"National", "International"}

PATTERN_POINTS = {
    "BULK_SUBMISSION": 25,
    "DUPLICATE_SUBMISSION": 30,
    "UNREALISTIC_PROGRESSION": 20,
    "SUSPICIOUS_TIMING": 15,
    "REGULAR_INTERVALS": 10,
    "CROSS_STUDENT_PATTERN": 35,
}

PATTERN_RECOMMENDATIONS = {
    "BULK_SUBMISSION": "Review all recent submissions together for consistency",
    "DUPLICATE_SUBMISSION": "Check if this is a resubmission or genuine duplicate achievement",
    "CROSS_STUDENT_PATTERN": "Investigate possible certificate template sharing or fraud ring",
}

SUSPICIOUS_THRESHOLD = 50
REVIEW_THRESHOLD = 30
MAX_RISK_SCORE = 100


# ==================== STRING SIMILARITY ====================

def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost
            ))
        previous = current

    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    """1 - edit distance / longer length; two empty strings are identical"""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1 - levenshtein_distance(a, b) / max_len


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def _as_datetime(value) -> Optional[datetime]:
    """Stored timestamps as naive UTC"""
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, str):
        try:
            return _naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def local_hour(moment: datetime) -> int:
    """Hour of day on the server's local clock for a naive UTC timestamp"""
    return _naive_utc(moment).replace(tzinfo=timezone.utc).astimezone().hour


def _age_days(achievement: dict, now: datetime) -> Optional[float]:
    created = _as_datetime(achievement.get("createdAt"))
    if created is None:
        return None
    return (now - created).total_seconds() / 86400


def _finding(pattern_type: str, description: str, severity: str, details: dict) -> dict:
    return {
        "suspicious": True,
        "type": pattern_type,
        "description": description,
        "severity": severity,
        "details": details,
    }


NO_FINDING = {"suspicious": False}


def title_token_pattern(tokens: List[str]) -> str:
    """Regex matching a title that shares a whole whitespace-delimited token"""
    return r"(?<!\S)(?:" + "|".join(tokens) + r")(?!\S)"


class SuspiciousActivityDetector:
    """
    Advisory detector: never raises, degrades to "review recommended"
    """

    # ==================== HISTORY CHECKS ====================

    def check_bulk_submissions(self, history: List[dict], now: datetime) -> dict:
        recent = [a for a in history if (_age_days(a, now) is not None and _age_days(a, now) <= 7)]

        if len(recent) >= 5:
            return _finding(
                "BULK_SUBMISSION",
                f"{len(recent)} achievements submitted in the last 7 days",
                "HIGH",
                {"count": len(recent), "timeframe": "7 days"}
            )
        return NO_FINDING

    def check_duplicate_submissions(self, history: List[dict], candidate: dict) -> dict:
        title = (candidate.get("title") or "").lower()
        institute = (candidate.get("organizedInstitute") or "").lower()

        similar = []
        for achievement in history:
            title_similarity = string_similarity((achievement.get("title") or "").lower(), title)
            institute_similarity = string_similarity(
                (achievement.get("organizedInstitute") or "").lower(), institute
            )
            if title_similarity > 0.8 or institute_similarity > 0.9:
                similar.append(achievement)

        if similar:
            return _finding(
                "DUPLICATE_SUBMISSION",
                "Similar or duplicate achievement already exists",
                "HIGH",
                {
                    "similarCount": len(similar),
                    "existingTitles": [a.get("title") for a in similar]
                }
            )
        return NO_FINDING

    def check_unrealistic_progression(self, history: List[dict], candidate: dict, now: datetime) -> dict:
        recent = [a for a in history if (_age_days(a, now) is not None and _age_days(a, now) <= 30)]

        levels = [a.get("level") for a in recent]
        levels.append(candidate.get("level"))

        has_basic = any(level in BASIC_LEVELS for level in levels)
        has_advanced = any(level in ADVANCED_LEVELS for level in levels)

        if has_basic and has_advanced and len(recent) <= 2:
            return _finding(
                "UNREALISTIC_PROGRESSION",
                "Rapid progression from basic to advanced levels",
                "MEDIUM",
                {"levels": levels, "timeframe": "30 days"}
            )
        return NO_FINDING

    def check_suspicious_timing(self, history: List[dict], now: datetime) -> dict:
        hours = []
        for achievement in history:
            created = _as_datetime(achievement.get("createdAt"))
            if created is not None:
                hours.append(local_hour(created))
        hours.append(local_hour(now))

        night = len([h for h in hours if h >= 23 or h <= 5])
        ratio = night / len(hours)

        if ratio > 0.8 and len(hours) >= 3:
            return _finding(
                "SUSPICIOUS_TIMING",
                "Most submissions made during unusual hours (11PM - 5AM)",
                "LOW",
                {
                    "nightSubmissionPercentage": int(round(ratio * 100)),
                    "totalSubmissions": len(hours)
                }
            )
        return NO_FINDING

    def check_submission_frequency(self, history: List[dict]) -> dict:
        """history must be ordered newest first"""
        if len(history) < 3:
            return NO_FINDING

        created = [_as_datetime(a.get("createdAt")) for a in history]
        created = [c for c in created if c is not None]

        intervals = [
            (created[i - 1] - created[i]).total_seconds() / 86400
            for i in range(1, len(created))
        ]
        if len(intervals) < 3:
            return NO_FINDING

        average = sum(intervals) / len(intervals)
        variance = sum((value - average) ** 2 for value in intervals) / len(intervals)

        if variance < 1 and average < 7:
            return _finding(
                "REGULAR_INTERVALS",
                "Submissions follow suspiciously regular pattern",
                "MEDIUM",
                {
                    "averageInterval": round(average, 1),
                    "variance": round(variance, 2)
                }
            )
        return NO_FINDING

    # ==================== CROSS-STUDENT CHECK ====================

    async def check_cross_student_patterns(
        self,
        db: AsyncIOMotorDatabase,
        student_id,
        candidate: dict,
        now: datetime
    ) -> dict:
        try:
            tokens = [re.escape(token) for token in (candidate.get("title") or "").split() if token]
            if not tokens or not candidate.get("organizedInstitute"):
                return NO_FINDING

            query = {
                "student": {"$ne": to_object_id(student_id)},
                "title": {"$regex": title_token_pattern(tokens), "$options": "i"},
                "organizedInstitute": candidate["organizedInstitute"],
                "createdAt": {"$gte": now - timedelta(days=30)}
            }
            matches = await db.achievements.find(
                query, {"student": 1, "createdAt": 1}
            ).to_list(length=None)

            students = {}
            for match in matches:
                students.setdefault(match["student"], match.get("createdAt"))

            if len(students) >= 3:
                profiles = await db.users.find(
                    {"_id": {"$in": list(students.keys())}},
                    {"name": 1, "rollNumber": 1}
                ).to_list(length=None)

                return _finding(
                    "CROSS_STUDENT_PATTERN",
                    f"{len(students)} students submitted similar achievements recently",
                    "HIGH",
                    {
                        "count": len(students),
                        "similarSubmissions": len(matches),
                        "institute": candidate["organizedInstitute"],
                        "students": [
                            {
                                "name": p.get("name"),
                                "rollNumber": p.get("rollNumber"),
                                "submissionDate": students.get(p["_id"])
                            }
                            for p in profiles
                        ]
                    }
                )
            return NO_FINDING

        except Exception as e:
            logger.warning("Cross-student pattern check failed: %s", e)
            return NO_FINDING

    # ==================== AGGREGATION ====================

    def generate_recommendations(self, risk_score: int, patterns: List[dict]) -> List[str]:
        recommendations = []

        if risk_score >= 70:
            recommendations.append("HIGH RISK: Immediate manual review required before approval")
            recommendations.append("Contact student for additional verification documents")
            recommendations.append("Verify achievement claims through external sources if possible")
        elif risk_score >= 50:
            recommendations.append("MEDIUM RISK: Thorough review recommended")
            recommendations.append("Cross-verify with similar submissions from other students")
        elif risk_score >= 30:
            recommendations.append("LOW RISK: Basic verification sufficient")
            recommendations.append("Standard approval process can proceed with caution")

        for pattern in patterns:
            line = PATTERN_RECOMMENDATIONS.get(pattern["type"])
            if line:
                recommendations.append(line)

        return recommendations

    def score_patterns(self, findings: List[dict]) -> Dict:
        patterns = [f for f in findings if f.get("suspicious")]
        raw_score = sum(PATTERN_POINTS[p["type"]] for p in patterns)
        risk_score = min(raw_score, MAX_RISK_SCORE)

        return {
            "riskScore": risk_score,
            "isSuspicious": risk_score >= SUSPICIOUS_THRESHOLD,
            "requiresReview": risk_score >= REVIEW_THRESHOLD,
            "suspiciousPatterns": patterns,
            "recommendations": self.generate_recommendations(risk_score, patterns),
        }

    async def analyze_submission_pattern(
        self,
        db: AsyncIOMotorDatabase,
        student_id,
        candidate: dict,
        now: datetime = None
    ) -> Dict:
        """
        Analyze a not-yet-stored submission against the student's history

        Returns:
            dict: riskScore (0-100), isSuspicious, requiresReview,
                  suspiciousPatterns, recommendations, analysisDate
        """
        now = now or datetime.utcnow()

        try:
            history = await db.achievements.find(
                {"student": to_object_id(student_id)}
            ).sort("createdAt", -1).to_list(length=None)

            findings = []
            for check in (
                lambda: self.check_bulk_submissions(history, now),
                lambda: self.check_duplicate_submissions(history, candidate),
                lambda: self.check_unrealistic_progression(history, candidate, now),
                lambda: self.check_suspicious_timing(history, now),
                lambda: self.check_submission_frequency(history),
            ):
                try:
                    findings.append(check())
                except Exception as e:
                    logger.warning("Suspicious activity check failed: %s", e)

            findings.append(await self.check_cross_student_patterns(db, student_id, candidate, now))

            verdict = self.score_patterns(findings)
            verdict["analysisDate"] = now
            return verdict

        except Exception as e:
            logger.error("Suspicious activity analysis error: %s", e)
            return {
                "riskScore": 0,
                "isSuspicious": False,
                "requiresReview": True,
                "suspiciousPatterns": [],
                "recommendations": ["Manual review recommended due to analysis error"],
                "error": str(e),
                "analysisDate": now,
            }


suspicious_activity_detector = SuspiciousActivityDetector()
