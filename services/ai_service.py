"""
AI Service Module

This module handles AI operations using Google's Gemini API.
It scores announcement copy for quality and compliance, blending the
model's judgement with a weighted factor analysis, and rewrites copy on
request.
"""

import json
import re
from typing import Optional, List, Dict, Any, Tuple

import google.generativeai as genai

from config import settings
from utils.exceptions import AIServiceError
from utils.logger import get_logger

logger = get_logger(__name__)

SENTENCE_SPLIT = re.compile(r'[.!?]+')

# (pattern, weight per match, max matches counted)
ENGAGEMENT_PATTERNS = [
    (re.compile(r'\?'), 0.05, 3),
    (re.compile(r'!'), 0.05, 3),
    (re.compile(r'\b(join|participate|get|earn|learn|discover|explore|start|build)\b', re.I), 0.1, 3),
    (re.compile(r'\b(limited|exclusive|new|first|early|special|bonus|free|reward)\b', re.I), 0.1, 3),
    (re.compile(r'https?://\S+', re.I), 0.2, 3),
    (re.compile(r'@\w+'), 0.1, 3),
    (re.compile(r'#\w+'), 0.1, 3),
]

# (pattern, penalty) applied once per matching group
PROHIBITED_PATTERNS = [
    (re.compile(r'\b(scam|hack|steal|exploit|fake|fraudulent|illegal)\b', re.I), 0.2),
    (re.compile(r'(guaranteed profit|100% return|get rich quick|double your money)', re.I), 0.3),
    (re.compile(r'\b(password|seed phrase|private key|sensitive data)\b', re.I), 0.3),
    (re.compile(r'\b(porn|sex|explicit|nude|xxx)\b', re.I), 0.5),
    (re.compile(r'\b(hate|racist|nazi|terrorist|discrimination)\b', re.I), 0.5),
]

FEEDBACK_TIERS = [
    (0.9, "Excellent announcement! Clear, engaging and well suited to crypto communities."),
    (0.8, "Very good announcement with strong engagement potential."),
    (0.7, "Good announcement. A few tweaks could make it more effective."),
    (0.6, "Acceptable announcement, but it would benefit from improvements."),
    (0.5, "This announcement needs significant improvements before it performs well."),
]
POOR_FEEDBACK = "This announcement needs major revisions to be effective."

FACTOR_HINTS = {
    "length": "Consider expanding the content with more detail about your project.",
    "clarity": "Aim for sentences of moderate length to improve readability.",
    "relevance": "Mention the crypto or blockchain concepts your project relates to.",
    "engagement": "Add a clear call-to-action, a link or an incentive to boost engagement.",
    "compliance": "Remove wording that could be read as misleading, unsafe or prohibited.",
}


def _word_count(text: str) -> int:
    return len(text.split()) if text else 0


def score_length(title: str, content: str) -> float:
    title_words = _word_count(title)
    content_words = _word_count(content)
    title_part = 1.0 if title_words >= 5 else title_words / 5
    content_part = 1.0 if content_words >= 50 else content_words / 50
    return min(1.0, title_part * 0.3 + content_part * 0.7)


def score_clarity(content: str) -> float:
    sentences = [s for s in SENTENCE_SPLIT.split(content or "") if s.strip()]
    if not sentences:
        return 0.5
    average = sum(_word_count(s) for s in sentences) / len(sentences)
    if 5 < average < 25:
        return 1 - abs(15 - average) / 15
    return 0.5


def score_relevance(title: str, content: str, terms: Optional[List[str]] = None) -> float:
    text = f"{title} {content}".lower()
    hits = sum(1 for term in (terms or settings.CRYPTO_TERMS) if term in text)
    return min(1.0, hits * 0.1)


def score_engagement(title: str, content: str) -> float:
    text = f"{title} {content}"
    total = 0.0
    for pattern, weight, cap in ENGAGEMENT_PATTERNS:
        total += min(len(pattern.findall(text)), cap) * weight
    return min(1.0, total)


def score_compliance(title: str, content: str) -> Tuple[float, List[str]]:
    """
    Penalize prohibited wording.

    Returns:
        Tuple of (score floored at 0, one issue per matched group).
    """
    text = f"{title} {content}"
    score = 1.0
    issues = []
    for pattern, penalty in PROHIBITED_PATTERNS:
        match = pattern.search(text)
        if match:
            score -= penalty
            issues.append(f'Contains prohibited term: "{match.group(0)}"')
    return max(0.0, score), issues


def analyze_factors(title: str, content: str) -> Tuple[Dict[str, Dict[str, float]], float, List[str]]:
    """
    Run the weighted factor analysis.

    Returns:
        Tuple of (factors as {name: {weight, score}}, weighted total, compliance issues).
    """
    compliance, compliance_issues = score_compliance(title, content)
    raw = {
        "length": score_length(title, content),
        "clarity": score_clarity(content),
        "relevance": score_relevance(title, content),
        "engagement": score_engagement(title, content),
        "compliance": compliance,
    }
    factors = {
        name: {"weight": settings.FACTOR_WEIGHTS[name], "score": round(value, 4)}
        for name, value in raw.items()
    }
    total = sum(settings.FACTOR_WEIGHTS[name] * value for name, value in raw.items())
    return factors, total, compliance_issues


def describe_score(score: float) -> str:
    for threshold, text in FEEDBACK_TIERS:
        if score >= threshold:
            return text
    return POOR_FEEDBACK


def factor_hints(factors: Dict[str, Dict[str, float]]) -> List[str]:
    hints = []
    for name, threshold in settings.FACTOR_SUGGESTION_THRESHOLDS.items():
        factor = factors.get(name)
        if factor is not None and factor["score"] < threshold:
            hints.append(FACTOR_HINTS[name])
    return hints


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    """Pull the first JSON object out of a model response."""
    if not text:
        return None
    fenced = re.search(r'```(?:json)?\s*(\{.*?\})\s*```', text, re.DOTALL)
    candidate = fenced.group(1) if fenced else None
    if candidate is None:
        brace = re.search(r'\{.*\}', text, re.DOTALL)
        candidate = brace.group(0) if brace else None
    if candidate is None:
        return None
    try:
        data = json.loads(candidate)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class AIService:
    """Service for AI operations with Google's Gemini API."""

    def __init__(self, api_key: Optional[str] = None, model=None, model_names: Optional[List[str]] = None):
        """
        Initialize the AI service with the Gemini API.

        Args:
            api_key: Gemini API key, defaults to settings.GOOGLE_AI_API_KEY.
            model: Pre-built GenerativeModel (skips model discovery).
            model_names: Preferred model names, defaults to settings.DEFAULT_AI_MODELS.
        """
        if model is not None:
            self.model = model
            return

        api_key = api_key or settings.GOOGLE_AI_API_KEY
        if not api_key:
            raise ValueError("Missing required GOOGLE_AI_API_KEY")

        genai.configure(api_key=api_key)
        preferred_models = model_names or settings.DEFAULT_AI_MODELS

        try:
            available_models = [m.name for m in genai.list_models()]

            # Select a model based on preference order
            model_name = None
            for preferred in preferred_models:
                for available in available_models:
                    if preferred in available:
                        model_name = available
                        break
                if model_name:
                    break

            if not model_name and len(available_models) > 0:
                model_name = available_models[0]

            if not model_name:
                raise ValueError("No Gemini models available")

            logger.info(f"Selected AI model: {model_name}")
            self.model = genai.GenerativeModel(model_name=model_name)

        except Exception as e:
            logger.error(f"Error initializing Gemini AI: {e}")
            raise

    def _generate(self, prompt: str, temperature: float) -> str:
        try:
            response = self.model.generate_content(
                prompt,
                generation_config={"temperature": temperature}
            )
            return response.text
        except Exception as e:
            raise AIServiceError(f"Gemini request failed: {e}") from e

    def score(self, title: str, content: str) -> Dict[str, Any]:
        """
        Score an announcement with Gemini and the weighted factor analysis.

        Args:
            title: Announcement title.
            content: Announcement body.

        Returns:
            Dict[str, Any]: isValid, score, issues, feedback and factors.

        Raises:
            AIServiceError: If the Gemini call fails.
        """
        prompt = f"""You are an expert content moderator for crypto community announcements.
Evaluate the announcement below for quality, clarity, relevance to crypto communities,
engagement potential and compliance (no scams, unrealistic promises, requests for
private keys or seed phrases, adult or hateful content).

Title: {title}
Content: {content}

Respond ONLY with JSON in this format:
{{"isValid": true or false, "score": number between 0 and 1, "issues": ["issue", ...], "feedback": "short feedback"}}"""

        response_text = self._generate(prompt, settings.AI_VALIDATION_TEMPERATURE)
        result = extract_json(response_text)

        if result is None:
            logger.warning("Could not parse AI validation response, using word-count fallback")
            passes = _word_count(title) >= 5 and _word_count(content) >= 15
            result = {
                "isValid": passes,
                "score": 0.7 if passes else 0.3,
                "issues": [] if passes else ["Announcement is too short to evaluate"],
                "feedback": "AI feedback unavailable",
            }

        factors, calculated, compliance_issues = analyze_factors(title, content)

        ai_score = result.get("score")
        if isinstance(ai_score, (int, float)):
            final_score = settings.AI_SCORE_WEIGHT * float(ai_score) + settings.FACTOR_SCORE_WEIGHT * calculated
        else:
            final_score = calculated
        final_score = round(max(0.0, min(1.0, final_score)), 4)

        issues = list(result.get("issues") or [])
        for issue in compliance_issues:
            if issue not in issues:
                issues.append(issue)

        feedback_parts = [describe_score(final_score)]
        if result.get("feedback"):
            feedback_parts.append(str(result["feedback"]))
        feedback_parts.extend(factor_hints(factors))

        logger.info(f"AI score for '{title[:30]}': {final_score}")
        return {
            "isValid": bool(result.get("isValid", True)),
            "score": final_score,
            "issues": issues,
            "feedback": " ".join(feedback_parts),
            "factors": factors,
        }

    def enhance(self, title: str, content: str) -> Dict[str, Any]:
        """
        Rewrite an announcement for engagement while keeping its facts.

        Returns:
            Dict[str, Any]: enhancedTitle, enhancedContent and improvements.

        Raises:
            AIServiceError: If the Gemini call fails or the rewrite cannot be parsed.
        """
        prompt = f"""You are an expert crypto marketing copywriter. Improve the announcement below
so it is clearer and more engaging for crypto community members. Keep every factual claim,
do not invent features, returns or dates, and keep it concise.

Title: {title}
Content: {content}

Respond ONLY with JSON in this format:
{{"enhancedTitle": "...", "enhancedContent": "...", "improvements": ["what you changed", ...]}}"""

        response_text = self._generate(prompt, settings.AI_ENHANCEMENT_TEMPERATURE)
        result = extract_json(response_text)

        if not result or not result.get("enhancedTitle") or not result.get("enhancedContent"):
            raise AIServiceError("AI enhancement response could not be parsed")

        return {
            "enhancedTitle": str(result["enhancedTitle"]).strip(),
            "enhancedContent": str(result["enhancedContent"]).strip(),
            "improvements": [str(i) for i in result.get("improvements") or []],
        }
