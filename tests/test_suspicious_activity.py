"""
Tests for the suspicious-activity detector.
"""

import asyncio
import re
import time
from datetime import datetime, timedelta

import pytest
from bson import ObjectId

from app.detection.suspicious_activity import (
    SuspiciousActivityDetector,
    levenshtein_distance,
    local_hour,
    string_similarity,
    title_token_pattern,
)

NOW = datetime(2026, 3, 10, 2, 0, 0)

detector = SuspiciousActivityDetector()


@pytest.fixture
def server_zone(monkeypatch):
    """Switch the process-local time zone for one test"""
    def set_zone(name):
        monkeypatch.setenv("TZ", name)
        time.tzset()

    yield set_zone
    monkeypatch.undo()
    time.tzset()


@pytest.fixture(autouse=True)
def utc_server(server_zone):
    server_zone("UTC0")


def submission(days_ago, title="Cloud Practitioner", institute="AWS Academy", level="State"):
    return {
        "title": title,
        "organizedInstitute": institute,
        "level": level,
        "createdAt": NOW - timedelta(days=days_ago),
    }


class TestStringSimilarity:
    def test_levenshtein_known_distance(self):
        assert levenshtein_distance("kitten", "sitting") == 3

    @pytest.mark.parametrize("a, b", [
        ("hackathon", "hackathons"),
        ("nptel java", "java nptel"),
        ("", "abc"),
    ])
    def test_similarity_is_symmetric(self, a, b):
        assert string_similarity(a, b) == string_similarity(b, a)

    def test_identical_strings(self):
        assert string_similarity("smart india hackathon", "smart india hackathon") == 1

    def test_empty_strings_are_identical(self):
        assert string_similarity("", "") == 1.0


class TestHistoryChecks:
    def test_bulk_fires_at_five(self):
        history = [submission(d) for d in (0.5, 1, 2, 3, 7)]
        result = detector.check_bulk_submissions(history, NOW)
        assert result["suspicious"] is True
        assert result["type"] == "BULK_SUBMISSION"
        assert result["details"]["count"] == 5

    def test_bulk_does_not_fire_at_four(self):
        history = [submission(d) for d in (0.5, 1, 2, 3)]
        assert detector.check_bulk_submissions(history, NOW)["suspicious"] is False

    def test_bulk_ignores_older_than_seven_days(self):
        history = [submission(d) for d in (1, 2, 3, 4, 7.5)]
        assert detector.check_bulk_submissions(history, NOW)["suspicious"] is False

    def test_duplicate_title(self):
        history = [submission(40, title="Cloud Practitioner", institute="Some College")]
        candidate = {"title": "Cloud Practitioner!", "organizedInstitute": "Other Place"}
        result = detector.check_duplicate_submissions(history, candidate)
        assert result["suspicious"] is True
        assert result["details"]["existingTitles"] == ["Cloud Practitioner"]

    def test_no_duplicate_for_distinct_submission(self):
        history = [submission(40, title="Java Basics", institute="NPTEL")]
        candidate = {"title": "Smart India Hackathon", "organizedInstitute": "Ministry of Education"}
        assert detector.check_duplicate_submissions(history, candidate)["suspicious"] is False

    def test_unrealistic_progression(self):
        history = [submission(5, level="Department")]
        result = detector.check_unrealistic_progression(history, {"level": "International"}, NOW)
        assert result["suspicious"] is True
        assert result["details"]["levels"] == ["Department", "International"]

    def test_progression_needs_few_recent_submissions(self):
        history = [submission(d, level="College") for d in (1, 2, 3)]
        assert detector.check_unrealistic_progression(history, {"level": "National"}, NOW)["suspicious"] is False

    def test_suspicious_timing(self):
        history = [submission(d) for d in (1, 2)]  # both at 02:00
        result = detector.check_suspicious_timing(history, NOW)
        assert result["suspicious"] is True
        assert result["details"]["nightSubmissionPercentage"] == 100

    def test_timing_uses_local_clock(self, server_zone):
        evening_utc = datetime(2026, 3, 10, 18, 0, 0)
        history = [{"createdAt": evening_utc - timedelta(days=d)} for d in (1, 2, 3)]
        assert detector.check_suspicious_timing(history, evening_utc)["suspicious"] is False

        # 18:00 UTC is 23:30 in UTC+5:30
        server_zone("IST-5:30")
        assert local_hour(evening_utc) == 23
        result = detector.check_suspicious_timing(history, evening_utc)
        assert result["suspicious"] is True
        assert result["details"]["totalSubmissions"] == 4

    def test_regular_intervals(self):
        history = [submission(d) for d in (1, 2, 3, 4)]
        result = detector.check_submission_frequency(history)
        assert result["suspicious"] is True
        assert result["details"]["averageInterval"] == 1.0

    def test_frequency_needs_three_submissions(self):
        assert detector.check_submission_frequency([submission(1), submission(2)])["suspicious"] is False


class TestScoring:
    def test_score_is_capped_at_100(self):
        findings = [
            {"suspicious": True, "type": pattern}
            for pattern in (
                "BULK_SUBMISSION", "DUPLICATE_SUBMISSION", "UNREALISTIC_PROGRESSION",
                "SUSPICIOUS_TIMING", "REGULAR_INTERVALS", "CROSS_STUDENT_PATTERN",
            )
        ]
        verdict = detector.score_patterns(findings)
        assert verdict["riskScore"] == 100
        assert verdict["isSuspicious"] is True
        assert verdict["requiresReview"] is True
        assert len(verdict["suspiciousPatterns"]) == 6

    def test_review_threshold(self):
        verdict = detector.score_patterns([{"suspicious": True, "type": "DUPLICATE_SUBMISSION"}])
        assert verdict["riskScore"] == 30
        assert verdict["isSuspicious"] is False
        assert verdict["requiresReview"] is True
        assert "LOW RISK: Basic verification sufficient" in verdict["recommendations"]
        assert "Check if this is a resubmission or genuine duplicate achievement" in verdict["recommendations"]

    def test_clean_submission(self):
        verdict = detector.score_patterns([{"suspicious": False}])
        assert verdict == {
            "riskScore": 0,
            "isSuspicious": False,
            "requiresReview": False,
            "suspiciousPatterns": [],
            "recommendations": [],
        }


class TestAnalyzeSubmission:
    def test_all_compatible_checks_cap_at_100(self, db):
        student_id = ObjectId()
        candidate = {
            "title": "Cloud Practitioner",
            "organizedInstitute": "AWS Academy",
            "level": "State",
        }

        history = [dict(submission(d), student=student_id) for d in (1, 2, 3, 4, 5, 6)]
        others = [
            dict(submission(d, title="AWS Cloud Bootcamp"), student=ObjectId())
            for d in (1, 2, 3)
        ]
        asyncio.run(db.achievements.insert_many(history + others))

        verdict = asyncio.run(detector.analyze_submission_pattern(db, student_id, candidate, now=NOW))

        types = {p["type"] for p in verdict["suspiciousPatterns"]}
        assert types == {
            "BULK_SUBMISSION", "DUPLICATE_SUBMISSION", "SUSPICIOUS_TIMING",
            "REGULAR_INTERVALS", "CROSS_STUDENT_PATTERN",
        }
        # 25 + 30 + 15 + 10 + 35
        assert verdict["riskScore"] == 100
        assert verdict["isSuspicious"] is True

        cross = next(p for p in verdict["suspiciousPatterns"] if p["type"] == "CROSS_STUDENT_PATTERN")
        assert cross["details"]["count"] == 3

    def test_cross_student_counts_distinct_students(self, db):
        other = ObjectId()
        asyncio.run(db.achievements.insert_many([
            dict(submission(d, title="Cloud Bootcamp"), student=other) for d in (1, 2, 3)
        ]))
        candidate = {"title": "Cloud Practitioner", "organizedInstitute": "AWS Academy", "level": "State"}

        result = asyncio.run(detector.check_cross_student_patterns(db, ObjectId(), candidate, NOW))
        assert result["suspicious"] is False

    def test_cross_student_needs_whole_token(self, db):
        asyncio.run(db.achievements.insert_many([
            dict(submission(1, title="Tail Winds Trophy"), student=ObjectId()) for _ in range(3)
        ]))
        candidate = {"title": "AI Summit", "organizedInstitute": "AWS Academy", "level": "State"}

        result = asyncio.run(detector.check_cross_student_patterns(db, ObjectId(), candidate, NOW))
        assert result["suspicious"] is False

    def test_title_token_pattern(self):
        pattern = title_token_pattern([re.escape("AI"), re.escape("C++")])
        assert re.search(pattern, "Applied AI Workshop", re.I)
        assert re.search(pattern, "c++ sprint", re.I)
        assert not re.search(pattern, "Tail Winds", re.I)
        assert not re.search(pattern, "Objective-C++", re.I)

    def test_first_submission_is_clean(self, db):
        candidate = {"title": "Java Basics", "organizedInstitute": "NPTEL", "level": "College"}
        verdict = asyncio.run(detector.analyze_submission_pattern(
            db, ObjectId(), candidate, now=datetime(2026, 3, 10, 12, 0)
        ))
        assert verdict["riskScore"] == 0
        assert verdict["requiresReview"] is False

    def test_analysis_error_falls_back_to_review(self):
        class BrokenDB:
            @property
            def achievements(self):
                raise RuntimeError("database unavailable")

        verdict = asyncio.run(detector.analyze_submission_pattern(BrokenDB(), ObjectId(), {}, now=NOW))
        assert verdict["riskScore"] == 0
        assert verdict["requiresReview"] is True
        assert verdict["recommendations"] == ["Manual review recommended due to analysis error"]
        assert "database unavailable" in verdict["error"]
