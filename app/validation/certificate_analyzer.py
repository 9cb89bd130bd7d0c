"""
Certificate Text Analyzer
Gemini assessment of an achievement's title/description, with a
keyword-based fallback when Gemini is unavailable or answers badly
"""

import json
import logging
from typing import Dict, Optional

from app.validation.certificate_validator import JSON_BLOCK
from app.validation.gemini_client import get_gemini_client

logger = logging.getLogger(__name__)

PRESTIGIOUS_ORGS = (
    "google", "microsoft", "amazon", "aws", "ieee", "ibm", "oracle",
    "coursera", "udacity", "stanford", "mit", "harvard",
)
TECHNICAL_KEYWORDS = (
    "machine learning", "ai", "cloud", "blockchain", "data science",
    "cybersecurity", "devops", "full stack",
)
COMPETITION_KEYWORDS = (
    "hackathon", "winner", "finalist", "champion", "award", "1st place", "first prize",
)
SKILL_PATTERNS = (
    "python", "java", "javascript", "react", "node", "aws", "docker",
    "kubernetes", "ml", "ai", "data",
)
LEVEL_BONUS = {"international": 20, "national": 15, "state": 10}


class CertificateAnalyzer:

    def build_prompt(self, title: str, description: Optional[str], category: str, level: Optional[str]) -> str:
        return f"""Analyze this student achievement certificate and provide a detailed assessment:

Certificate Title: {title}
Description: {description or "No description provided"}
Category: {category}
Level: {level or "Not specified"}

Please provide:
1. A brief summary of the achievement (2-3 sentences)
2. Credibility score (0-100) based on the organization, complexity, and value
3. Key factors that influenced the credibility score
4. Recommended points to award (0-100)
5. Key highlights or skills demonstrated
6. Any red flags or concerns

Format your response as a JSON object with these fields:
summary, credibility_score, credibility_factors (array), recommended_points,
key_highlights (array), skills_identified (array), red_flags (array),
assessment_level (Excellent/Good/Fair/Needs Review), ai_confidence (High/Medium/Low)"""

    def pattern_analysis(
        self,
        title: str = "",
        description: Optional[str] = "",
        category: str = "",
        level: Optional[str] = ""
    ) -> Dict:
        title = title or ""
        description = description or ""
        category_key = (category or "").lower()
        level_key = (level or "").lower()
        title_lower = title.lower()
        desc_lower = description.lower()

        def mentions(words) -> bool:
            return any(w in title_lower or w in desc_lower for w in words)

        score = 50
        factors = []

        if mentions(PRESTIGIOUS_ORGS):
            score += 30
            factors.append("Issued by recognized organization")
        if mentions(TECHNICAL_KEYWORDS):
            score += 15
            factors.append("Technical skill certification")
        if mentions(COMPETITION_KEYWORDS):
            score += 20
            factors.append("Competition/Award achievement")

        score = min(100, score + LEVEL_BONUS.get(level_key, 0))

        highlights = []
        if category_key == "certification":
            assessment = "Professional certification demonstrating skill validation"
            points = int(score * 0.5)
            if "advanced" in title_lower or "professional" in title_lower:
                highlights.append("Advanced level certification")
                points += 10
        elif category_key == "competition":
            assessment = "Competitive achievement showing excellence"
            points = int(score * 0.7)
            if "1st" in title_lower or "winner" in title_lower or "champion" in title_lower:
                highlights.append("Top position achieved")
                points += 20
        elif category_key == "project":
            assessment = "Technical project demonstrating practical skills"
            points = int(score * 0.4)
            if "deployed" in desc_lower or "live" in desc_lower or "production" in desc_lower:
                highlights.append("Production-ready implementation")
                points += 15
        elif category_key == "internship":
            assessment = "Professional work experience"
            points = int(score * 0.6)
            if "ppo" in desc_lower or "full-time offer" in desc_lower:
                highlights.append("Received full-time offer")
                points += 25
        else:
            assessment = "General achievement"
            points = int(score * 0.3)

        if score >= 80:
            summary = (f"Highly credible {category} with exceptional value. This achievement demonstrates "
                       f"significant accomplishment and should be weighted heavily in evaluation.")
        elif score >= 60:
            summary = (f"Solid {category} with good credibility. This represents meaningful achievement "
                       f"and validates student's capabilities in the domain.")
        elif score >= 40:
            summary = (f"Moderate {category} with acceptable credibility. This shows student initiative "
                       f"and learning, though may need verification of details.")
        else:
            summary = (f"Basic {category} achievement. While showing student engagement, this may have "
                       f"limited industry recognition. Verify authenticity and scope.")

        red_flags = []
        if description and len(description) < 20:
            red_flags.append("Very brief description - request more details")
        if not description:
            red_flags.append("No description provided")
        if len(title) < 5:
            red_flags.append("Incomplete title information")

        if score >= 80:
            assessment_level = "Excellent"
        elif score >= 60:
            assessment_level = "Good"
        elif score >= 40:
            assessment_level = "Fair"
        else:
            assessment_level = "Needs Review"

        return {
            "summary": summary,
            "credibility_score": score,
            "credibility_factors": factors,
            "category_assessment": assessment,
            "recommended_points": points,
            "key_highlights": highlights,
            "skills_identified": [s.upper() for s in SKILL_PATTERNS if s in title_lower or s in desc_lower],
            "red_flags": red_flags,
            "assessment_level": assessment_level,
            "ai_confidence": "High" if score >= 70 else "Medium" if score >= 50 else "Low",
        }

    async def analyze(
        self,
        title: str,
        description: Optional[str],
        category: str,
        level: Optional[str]
    ) -> Dict:
        client = get_gemini_client()

        if client.is_configured:
            try:
                response_text = await client.run_text(self.build_prompt(title, description, category, level))
                match = JSON_BLOCK.search(response_text)
                if match:
                    analysis = json.loads(match.group(0))
                    analysis["powered_by"] = "Google Gemini AI"
                    return analysis
                logger.warning("Gemini certificate analysis returned no JSON, using pattern analysis")
            except Exception as e:
                logger.warning("Gemini certificate analysis failed, using pattern analysis: %s", e)

        analysis = self.pattern_analysis(title, description, category, level)
        analysis["powered_by"] = "Pattern-based Analysis"
        return analysis


certificate_analyzer = CertificateAnalyzer()
