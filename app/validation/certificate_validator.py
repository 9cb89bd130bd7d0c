"""
Certificate Validator
Combines Gemini vision analysis of a proof file with local rule checks
into a 0-100 trust score

The validator always produces a verdict: Gemini failures degrade to neutral
scores, and any other failure degrades to a VALIDATION_ERROR verdict.
"""

import base64
import json
import logging
import os
import re
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import httpx

from app.core import config
from app.files.file_utils import UPLOADS_PREFIX, resolve_upload
from app.points.points_service import round_half_up
from app.validation.gemini_client import get_gemini_client

logger = logging.getLogger(__name__)

LEGITIMATE_ISSUERS = (
    "NPTEL", "Coursera", "edX", "Udemy", "AWS", "Google", "Microsoft", "IBM",
    "Oracle", "Cisco", "CompTIA", "IEEE", "ACM", "HackerRank", "CodeChef",
    "LeetCode", "HackerEarth", "GeeksforGeeks",
)

GLOBAL_CERTIFICATION_PROVIDERS = ("AWS", "Google", "Microsoft", "Oracle", "IBM")

CATEGORY_KEYWORDS = {
    "Certification": ("certificate", "certified", "certification", "course completion"),
    "Competition": ("competition", "contest", "hackathon", "challenge", "winner", "rank"),
    "Course": ("course", "training", "workshop", "bootcamp", "program"),
    "Project": ("project", "development", "built", "created", "implemented"),
}

AI_SCORE_WEIGHTS = (
    ("authenticity_score", 0.30),
    ("issuer_legitimacy", 0.25),
    ("content_accuracy", 0.20),
    ("technical_quality", 0.15),
)
CHECKS_WEIGHT = 0.10

VALID_THRESHOLD = 70
LOW_SCORE_THRESHOLD = 40

MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
}

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")
SLASH_DATE = re.compile(r"^\d{2}/\d{2}/\d{4}")
JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


def mime_type_for(file_ref: str) -> str:
    ext = os.path.splitext(file_ref.split("?")[0])[1].lower()
    return MIME_TYPES.get(ext, "image/jpeg")


def parse_achievement_date(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        pass

    # Slash dates read month-first; day-first only when that cannot parse
    for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(text[:10], fmt)
        except ValueError:
            continue
    return None


def _years_before(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year - years)
    except ValueError:
        # Feb 29
        return moment.replace(year=moment.year - years, day=28)


def _as_score(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class CertificateValidator:

    # ==================== IMAGE PREPARATION ====================

    async def prepare_image_for_analysis(self, file_ref: str) -> Tuple[bytes, str, str]:
        """
        Load proof file bytes from a URL or the uploads directory

        Returns:
            (raw bytes, base64 string, mime type)
        """
        if file_ref.startswith("http://") or file_ref.startswith("https://"):
            async with httpx.AsyncClient() as client:
                response = await client.get(file_ref, timeout=config.IMAGE_DOWNLOAD_TIMEOUT_SECONDS)
                response.raise_for_status()
                data = response.content
        else:
            path = resolve_upload(file_ref) if file_ref.startswith(UPLOADS_PREFIX) else file_ref
            with open(path, "rb") as handle:
                data = handle.read()

        return data, base64.b64encode(data).decode("ascii"), mime_type_for(file_ref)

    # ==================== AI ANALYSIS ====================

    def build_prompt(self, achievement: dict) -> str:
        return f"""You are an expert certificate authenticity analyst for a university achievement portal.
Analyze the attached certificate image and judge whether it is genuine.

ACHIEVEMENT CLAIM:
- Title: {achievement.get("title")}
- Category: {achievement.get("category")}
- Level: {achievement.get("level")}
- Issuer: {achievement.get("issuer") or "Not specified"}
- Student Name: {achievement.get("studentName")}

CHECK FOR:
1. Signs of digital manipulation (inconsistent fonts, misaligned text, pixelation around names or dates)
2. Whether the issuer looks like a real organization and matches the claim
3. Whether the student name, title and level on the certificate match the claim
4. Overall print/render quality, logos, seals, signatures, verification IDs or QR codes

Respond ONLY with a JSON object in this exact format:
{{
    "authenticity_score": <0-100>,
    "issuer_legitimacy": <0-100>,
    "content_accuracy": <0-100>,
    "technical_quality": <0-100>,
    "fraud_indicators": ["..."],
    "positive_indicators": ["..."],
    "issuer_analysis": "...",
    "content_analysis": "...",
    "recommendation": "APPROVE" | "REVIEW" | "REJECT",
    "confidence_level": <0-100>,
    "detailed_notes": "..."
}}"""

    def parse_ai_response(self, response_text: str) -> Dict:
        """
        Raises:
            ValueError: No JSON object in the response
        """
        match = JSON_BLOCK.search(response_text or "")
        if not match:
            raise ValueError("No JSON object found in AI response")
        return json.loads(match.group(0))

    def fallback_analysis(self, error: Exception) -> Dict:
        return {
            "authenticity_score": 50,
            "issuer_legitimacy": 50,
            "content_accuracy": 50,
            "technical_quality": 50,
            "fraud_indicators": ["AI_ANALYSIS_FAILED"],
            "positive_indicators": [],
            "recommendation": "MANUAL_REVIEW",
            "confidence_level": 0,
            "detailed_notes": f"AI analysis failed: {error}",
        }

    async def perform_ai_analysis(self, file_ref: str, achievement: dict) -> Dict:
        try:
            data, _, mime_type = await self.prepare_image_for_analysis(file_ref)
            response_text = await get_gemini_client().run_vision(
                self.build_prompt(achievement), data, mime_type
            )
            return self.parse_ai_response(response_text)
        except Exception as e:
            logger.warning("AI certificate analysis failed: %s", e)
            return self.fallback_analysis(e)

    # ==================== LOCAL CHECKS ====================

    def validate_dates(self, achievement: dict, now: datetime = None) -> Dict:
        result = {"passed": True, "issues": []}
        raw = achievement.get("dateOfAchievement")
        if not raw:
            return result

        now = now or datetime.utcnow()
        achieved = parse_achievement_date(raw)

        if achieved is not None:
            if achieved > now:
                result["passed"] = False
                result["issues"].append("Achievement date is in the future")

            if achieved < _years_before(now, 10):
                result["issues"].append("Achievement is quite old (>10 years)")

        date_text = raw.isoformat() if isinstance(raw, datetime) else str(raw)
        if not ISO_DATE.match(date_text) and not SLASH_DATE.match(date_text):
            result["issues"].append("Unusual date format")

        return result

    def verify_issuer(self, achievement: dict) -> Dict:
        result = {"passed": True, "issues": [], "verifiedIssuer": None}
        issuer = achievement.get("issuer")

        if not issuer:
            result["passed"] = False
            result["issues"].append("No issuer specified")
            return result

        issuer_lower = issuer.lower()
        for known in LEGITIMATE_ISSUERS:
            if known.lower() in issuer_lower:
                result["verifiedIssuer"] = known
                result["issuerDetails"] = "Recognized legitimate issuer"
                return result

        result["issues"].append("Issuer not in known legitimate organizations list")
        return result

    def validate_category(self, achievement: dict) -> Dict:
        result = {"passed": True, "issues": []}
        category = achievement.get("category")
        title = achievement.get("title") or ""

        keywords = CATEGORY_KEYWORDS.get(category)
        if keywords and not any(keyword in title.lower() for keyword in keywords):
            result["passed"] = False
            result["issues"].append(f'Title "{title}" doesn\'t match category "{category}"')

        return result

    def validate_level(self, achievement: dict) -> Dict:
        result = {"passed": True, "issues": []}
        issuer = (achievement.get("issuer") or "").lower()

        if achievement.get("level") == "International" and achievement.get("category") == "Certification":
            if not any(provider.lower() in issuer for provider in GLOBAL_CERTIFICATION_PROVIDERS):
                result["issues"].append("International level claimed for non-global certification provider")

        return result

    def perform_verification_checks(self, achievement: dict, now: datetime = None) -> Dict:
        return {
            "dateValidation": self.validate_dates(achievement, now),
            "issuerVerification": self.verify_issuer(achievement),
            "categoryConsistency": self.validate_category(achievement),
            "levelAppropriate": self.validate_level(achievement),
        }

    # ==================== SCORING ====================

    def calculate_trust_score(self, ai_analysis: Dict, checks: Dict) -> int:
        score = 0.0
        total_weight = 0.0

        for key, weight in AI_SCORE_WEIGHTS:
            value = _as_score(ai_analysis.get(key))
            if value is not None:
                score += value * weight
                total_weight += weight

        if checks:
            pass_rate = sum(100 for check in checks.values() if check.get("passed")) / len(checks)
            score += pass_rate * CHECKS_WEIGHT
            total_weight += CHECKS_WEIGHT

        if total_weight <= 0:
            return 50
        return round_half_up(score / total_weight)

    def generate_recommendations(self, trust_score: int, ai_analysis: Dict) -> List[str]:
        recommendations = []

        if trust_score >= 80:
            recommendations.append("Certificate appears highly authentic - Safe to approve")
        elif trust_score >= 60:
            recommendations.append("Certificate shows good authenticity - Review details before approval")
            recommendations.append("Check issuer details and achievement claims manually")
        elif trust_score >= 40:
            recommendations.append("Certificate has authenticity concerns - Requires thorough manual review")
            recommendations.append("Contact student for additional verification")
        else:
            recommendations.append("Certificate shows significant red flags - Consider rejection")
            recommendations.append("Request student to provide additional proof or documentation")

        indicators = ai_analysis.get("fraud_indicators") or []
        if indicators:
            recommendations.append(f"Address fraud indicators: {', '.join(str(i) for i in indicators)}")

        return recommendations

    def identify_red_flags(self, ai_analysis: Dict, checks: Dict) -> List[str]:
        flags = [f"AI_FRAUD: {indicator}" for indicator in (ai_analysis.get("fraud_indicators") or [])]

        authenticity = _as_score(ai_analysis.get("authenticity_score"))
        if authenticity is not None and authenticity < LOW_SCORE_THRESHOLD:
            flags.append("LOW_AUTHENTICITY_SCORE")

        issuer_score = _as_score(ai_analysis.get("issuer_legitimacy"))
        if issuer_score is not None and issuer_score < LOW_SCORE_THRESHOLD:
            flags.append("UNVERIFIED_ISSUER")

        for name, check in checks.items():
            if not check.get("passed") and check.get("issues"):
                flags.append(f"{name.upper()}_FAILED: {check['issues'][0]}")

        return flags

    # ==================== ENTRY POINT ====================

    async def validate_certificate(self, file_ref: str, achievement: dict) -> Dict:
        """
        Args:
            file_ref: '/uploads/<name>', http(s) URL or local path
            achievement: title, category, level, issuer, studentName, dateOfAchievement

        Returns:
            dict: isValid, trustScore, aiAnalysis, verificationChecks,
                  recommendations, flags, timestamp
        """
        try:
            logger.info("Starting certificate validation for %s", achievement.get("title"))

            ai_analysis = await self.perform_ai_analysis(file_ref, achievement)
            checks = self.perform_verification_checks(achievement)
            trust_score = self.calculate_trust_score(ai_analysis, checks)

            return {
                "isValid": trust_score >= VALID_THRESHOLD,
                "trustScore": trust_score,
                "aiAnalysis": ai_analysis,
                "verificationChecks": checks,
                "recommendations": self.generate_recommendations(trust_score, ai_analysis),
                "flags": self.identify_red_flags(ai_analysis, checks),
                "timestamp": datetime.utcnow(),
            }

        except Exception as e:
            logger.error("Certificate validation error: %s", e)
            return {
                "isValid": False,
                "trustScore": 0,
                "flags": ["VALIDATION_ERROR"],
                "recommendations": ["Manual review required due to validation error"],
                "error": str(e),
                "timestamp": datetime.utcnow(),
            }


certificate_validator = CertificateValidator()
