"""
Content Validation Service

Screens announcement copy before it is offered to communities. Cheap local
rules run first and short-circuit obvious failures; everything else is
scored by the AI client. AI outages degrade to the local result instead of
blocking the user.
"""

from typing import Optional, List, Dict, Any

from config import settings
from data.models import EnhancedAnnouncement, FactorScore, ValidationVerdict
from services.protocols import AIScoringClient
from utils.exceptions import AIServiceError, EnhancementError, InputValidationError
from utils.logger import get_logger

logger = get_logger(__name__)

GENERIC_SUGGESTIONS = [
    "Your announcement is good to go! Consider adding a visual to increase engagement.",
    "Consider adding more specific details about benefits or features.",
    "Make sure your call-to-action is clear and compelling.",
    "Keep sentences short so the message reads well on mobile.",
]

FACTOR_SUGGESTIONS = {
    "length": "Expand your content with more detail so readers understand the offer.",
    "clarity": "Use shorter, clearer sentences to improve readability.",
    "relevance": "Explain how your project relates to crypto or blockchain.",
    "engagement": "Add a call-to-action, link or incentive to encourage engagement.",
    "compliance": "Remove wording that could be seen as misleading or prohibited.",
}


def _as_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _as_strings(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]


class ContentValidator:
    """Validates and enhances announcement copy."""

    def __init__(
        self,
        ai_client: Optional[AIScoringClient] = None,
        min_title_length: Optional[int] = None,
        min_content_length: Optional[int] = None,
        banned_terms: Optional[List[str]] = None
    ):
        """
        Args:
            ai_client: Scoring/rewriting backend; without one every passing
                announcement gets the local default verdict.
            min_title_length: Defaults to settings.MIN_TITLE_LENGTH.
            min_content_length: Defaults to settings.MIN_CONTENT_LENGTH.
            banned_terms: Defaults to settings.BANNED_TERMS.
        """
        self.ai_client = ai_client
        self.min_title_length = min_title_length if min_title_length is not None else settings.MIN_TITLE_LENGTH
        self.min_content_length = min_content_length if min_content_length is not None else settings.MIN_CONTENT_LENGTH
        self.banned_terms = [t.lower() for t in (banned_terms if banned_terms is not None else settings.BANNED_TERMS)]

    def local_issues(self, title: str, content: str) -> List[str]:
        """Return one issue string per violated local rule."""
        title = (title or "").strip()
        content = (content or "").strip()
        issues = []

        if len(title) < self.min_title_length:
            issues.append(f"Title must be at least {self.min_title_length} characters long")
        if len(content) < self.min_content_length:
            issues.append(f"Content must be at least {self.min_content_length} characters long")

        text = f"{title}\n{content}".lower()
        for term in self.banned_terms:
            if term in text:
                issues.append(f"Contains banned term: '{term}'")

        return issues

    def _fallback_verdict(self, reason: str) -> ValidationVerdict:
        return ValidationVerdict(
            is_valid=True,
            score=settings.DEFAULT_AI_SCORE,
            issues=[],
            feedback=f"Passed basic checks. AI validation was unavailable ({reason}).",
        )

    def validate(self, title: str, content: str) -> ValidationVerdict:
        """
        Validate an announcement.

        Args:
            title: Announcement title.
            content: Announcement body.

        Returns:
            ValidationVerdict: Never raises for AI failures.
        """
        issues = self.local_issues(title, content)
        if issues:
            logger.info(f"Local validation rejected announcement: {'; '.join(issues)}")
            return ValidationVerdict(
                is_valid=False,
                score=settings.LOCAL_REJECTION_SCORE,
                issues=issues,
                feedback="Please fix the listed issues and validate again.",
            )

        if self.ai_client is None:
            return self._fallback_verdict("no AI client configured")

        try:
            result = self.ai_client.score(title.strip(), content.strip())
        except AIServiceError as e:
            logger.warning(f"AI validation failed, using local result: {e}")
            return self._fallback_verdict("service error")
        except Exception as e:
            logger.error(f"Unexpected AI validation error, using local result: {e}", exc_info=True)
            return self._fallback_verdict("unexpected error")

        try:
            return self._verdict_from_response(result)
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Malformed AI validation response, using local result: {e}")
            return self._fallback_verdict("malformed response")

    def _verdict_from_response(self, result: Dict[str, Any]) -> ValidationVerdict:
        if not isinstance(result, dict):
            return self._fallback_verdict("malformed response")

        score = max(0.0, min(1.0, _as_float(result.get("score"), settings.DEFAULT_AI_SCORE)))

        factors = None
        if isinstance(result.get("factors"), dict):
            factors = {}
            for name, factor in result["factors"].items():
                if not isinstance(factor, dict):
                    continue
                factor_score = _as_float(factor.get("score"))
                if factor_score is None:
                    logger.debug(f"Ignoring factor '{name}' without a numeric score")
                    continue
                factors[name] = FactorScore(weight=_as_float(factor.get("weight"), 0.0), score=factor_score)

        is_valid = result.get("isValid")
        return ValidationVerdict(
            is_valid=True if is_valid is None else bool(is_valid),
            score=score,
            issues=_as_strings(result.get("issues")),
            feedback=result.get("feedback"),
            suggestions=_as_strings(result.get("suggestions")),
            factors=factors,
        )

    def enhance(self, title: str, content: str) -> EnhancedAnnouncement:
        """
        Ask the AI client for a rewrite.

        Raises:
            InputValidationError: If both title and content are empty.
            EnhancementError: On any failure; there is no fallback.
        """
        if not (title or "").strip() and not (content or "").strip():
            raise InputValidationError("Nothing to enhance: title and content are empty")
        if self.ai_client is None:
            raise EnhancementError("No AI client configured for enhancement")

        try:
            result = self.ai_client.enhance(title, content)
            return EnhancedAnnouncement(
                title=result["enhancedTitle"],
                content=result["enhancedContent"],
                improvements=list(result.get("improvements") or []),
            )
        except EnhancementError:
            raise
        except Exception as e:
            logger.error(f"Announcement enhancement failed: {e}")
            raise EnhancementError(f"Could not enhance announcement: {e}") from e

    @staticmethod
    def suggestions_from(verdict: ValidationVerdict) -> List[str]:
        """
        Derive improvement suggestions from a verdict. Never returns an empty list.
        """
        if verdict.suggestions:
            return list(verdict.suggestions)

        if verdict.issues:
            return [f"Fix issue: {issue}" for issue in verdict.issues]

        if verdict.factors:
            derived = []
            for name, threshold in settings.FACTOR_SUGGESTION_THRESHOLDS.items():
                factor = verdict.factors.get(name)
                if factor is not None and factor.score < threshold:
                    derived.append(FACTOR_SUGGESTIONS[name])
            if derived:
                return derived

        return list(GENERIC_SUGGESTIONS)
