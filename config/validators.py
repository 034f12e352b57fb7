"""
Configuration Validation for the Announcement Marketplace

This module contains configuration validation logic.
Kept apart from settings.py so settings stay import-cheap.
"""

from utils.exceptions import ConfigurationError


def validate_settings(require_payments: bool = False):
    """
    Validate that all required settings are properly configured.

    Args:
        require_payments: Also require the checkout gateway key (ignored in demo mode).

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    # Import settings here to avoid circular imports
    from config import settings

    errors = []

    # Required environment variables
    required_vars = [
        ("GOOGLE_AI_API_KEY", settings.GOOGLE_AI_API_KEY),
        ("DB_SERVER", settings.DB_SERVER),
        ("DB_NAME", settings.DB_NAME),
        ("DB_USER", settings.DB_USER),
        ("DB_PASSWORD", settings.DB_PASSWORD)
    ]

    for var_name, var_value in required_vars:
        if not var_value:
            errors.append(f"Missing required environment variable: {var_name}")

    if not settings.DB_CONNECTION_STRING:
        errors.append("Database connection string could not be built. Check DB_SERVER, DB_NAME, DB_USER, DB_PASSWORD.")

    if require_payments and not settings.PAYMENT_DEMO_MODE and not settings.COPPERX_API_KEY:
        errors.append("COPPERX_API_KEY is required unless PAYMENT_DEMO_MODE is enabled.")

    # Validate numeric settings are within reasonable bounds
    numeric_validations = [
        ("MIN_TITLE_LENGTH", settings.MIN_TITLE_LENGTH, 1, 200),
        ("MIN_CONTENT_LENGTH", settings.MIN_CONTENT_LENGTH, 1, 4000),
        ("LOCAL_REJECTION_SCORE", settings.LOCAL_REJECTION_SCORE, 0.0, 1.0),
        ("DEFAULT_AI_SCORE", settings.DEFAULT_AI_SCORE, 0.0, 1.0),
        ("AI_SCORE_WEIGHT", settings.AI_SCORE_WEIGHT, 0.0, 1.0),
        ("DEFAULT_PLATFORM_FEE", settings.DEFAULT_PLATFORM_FEE, 0.0, 10000.0),
        ("TELEGRAM_CAPTION_LIMIT", settings.TELEGRAM_CAPTION_LIMIT, 1, 4096),
    ]

    for name, value, min_val, max_val in numeric_validations:
        if value < min_val or value > max_val:
            errors.append(f"{name} must be between {min_val} and {max_val}, got {value}")

    # Factor weights must form a convex combination
    total_weight = round(sum(settings.FACTOR_WEIGHTS.values()), 6)
    if total_weight != 1.0:
        errors.append(f"FACTOR_WEIGHTS sum to {total_weight}, must be 1.0")

    blend = round(settings.AI_SCORE_WEIGHT + settings.FACTOR_SCORE_WEIGHT, 6)
    if blend != 1.0:
        errors.append(f"AI_SCORE_WEIGHT + FACTOR_SCORE_WEIGHT sum to {blend}, must be 1.0")

    if settings.HTTP_TIMEOUT_SECONDS <= 0:
        errors.append(f"HTTP_TIMEOUT_SECONDS must be positive, got {settings.HTTP_TIMEOUT_SECONDS}")

    # Raise all errors at once
    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)

    return True


def get_config_summary() -> dict:
    """
    Returns a summary of current configuration (without sensitive values).
    Useful for logging startup state.
    """
    from config import settings

    return {
        "ai": {
            "configured": bool(settings.GOOGLE_AI_API_KEY),
            "models": settings.DEFAULT_AI_MODELS,
        },
        "telegram": {
            "token_in_env": bool(settings.TELEGRAM_BOT_TOKEN),
            "bot_username": settings.TELEGRAM_BOT_USERNAME,
            "api_base": settings.TELEGRAM_API_BASE,
        },
        "payments": {
            "gateway_configured": bool(settings.COPPERX_API_KEY),
            "demo_mode": settings.PAYMENT_DEMO_MODE,
            "default_fee": settings.DEFAULT_PLATFORM_FEE,
            "currency": settings.DEFAULT_CURRENCY,
        },
        "database": {
            "server": settings.DB_SERVER[:20] + "..." if settings.DB_SERVER and len(settings.DB_SERVER) > 20 else settings.DB_SERVER,
            "database": settings.DB_NAME,
        },
        "validation": {
            "min_title_length": settings.MIN_TITLE_LENGTH,
            "min_content_length": settings.MIN_CONTENT_LENGTH,
            "banned_terms": len(settings.BANNED_TERMS),
        },
    }
