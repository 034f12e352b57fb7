"""
Configuration Settings for the Announcement Marketplace

This module centralizes all configuration settings for the marketplace backend,
including environment variables, API keys, and application constants.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Determine the application root directory
APP_ROOT = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
load_dotenv(dotenv_path=os.path.join(APP_ROOT, '.env'))


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


# API Keys and Authentication
GOOGLE_AI_API_KEY = os.getenv("GOOGLE_AI_API_KEY")

# Telegram Bot (platform_settings in the database takes precedence when set)
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
TELEGRAM_BOT_USERNAME = os.getenv("TELEGRAM_BOT_USERNAME")
TELEGRAM_API_BASE = os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org")

# Payment Gateway (CopperX)
COPPERX_API_KEY = os.getenv("COPPERX_API_KEY")
COPPERX_API_BASE = os.getenv("COPPERX_API_BASE", "https://api.copperx.dev/api/v1")
PAYMENT_DEMO_MODE = os.getenv("PAYMENT_DEMO_MODE", "false").lower() in ("1", "true", "yes")

# Public URL of the web frontend, used for checkout redirects
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:8080")

# Database Settings
DB_SERVER = os.getenv("DB_SERVER", "")
DB_NAME = os.getenv("DB_NAME", "")
DB_USER = os.getenv("DB_USER", "")
DB_PASSWORD = os.getenv("DB_PASSWORD", "")

# Build connection string safely (validation happens in validate_settings())
DB_CONNECTION_STRING = (
    f"DRIVER={{ODBC Driver 18 for SQL Server}}; "
    f"SERVER={DB_SERVER}; "
    f"DATABASE={DB_NAME}; "
    f"UID={DB_USER}; "
    f"PWD={DB_PASSWORD}; "
    f"TrustServerCertificate=yes; MARS_Connection=yes;"
) if all([DB_SERVER, DB_NAME, DB_USER, DB_PASSWORD]) else ""

# AI Model Settings
DEFAULT_AI_MODELS = [
    'gemini-2.0-flash',
    'gemini-2.0-flash-lite',
    'gemini-2.5-flash-lite',
    'gemini-2.5-flash'
]
AI_VALIDATION_TEMPERATURE = 0.2
AI_ENHANCEMENT_TEMPERATURE = 0.7

# =============================================================================
# Content Validation Settings
# =============================================================================

MIN_TITLE_LENGTH = 10                # Characters, after trimming
MIN_CONTENT_LENGTH = 50              # Characters, after trimming
LOCAL_REJECTION_SCORE = 0.4          # Score reported when local checks fail
DEFAULT_AI_SCORE = 0.65              # Score used when the AI omits one or is unavailable

BANNED_TERMS = [
    "scam",
    "guaranteed profit",
    "100% return",
    "get rich quick",
    "double your money",
    "seed phrase",
    "private key",
    "ponzi",
    "pump and dump",
]

# Blend of AI score and locally calculated factor score
AI_SCORE_WEIGHT = 0.7
FACTOR_SCORE_WEIGHT = 0.3

# Weighted factor analysis (weights sum to 1.0)
FACTOR_WEIGHTS = {
    "length": 0.15,
    "clarity": 0.25,
    "relevance": 0.20,
    "engagement": 0.25,
    "compliance": 0.15,
}

# Below these scores a factor produces an improvement suggestion
FACTOR_SUGGESTION_THRESHOLDS = {
    "length": 0.7,
    "clarity": 0.7,
    "relevance": 0.6,
    "engagement": 0.6,
    "compliance": 1.0,
}

CRYPTO_TERMS = [
    "blockchain", "crypto", "token", "coin", "wallet", "defi", "nft",
    "smart contract", "web3", "decentralized", "mining", "staking", "dao",
    "exchange", "cryptocurrency", "bitcoin", "ethereum", "protocol", "chain",
]

# =============================================================================
# Distribution Settings
# =============================================================================

SUPPORTED_DISPATCH_PLATFORMS = ["TELEGRAM"]
TELEGRAM_CAPTION_LIMIT = 1024        # Telegram's caption length limit
TELEGRAM_MESSAGE_LIMIT = 4096        # Telegram's message length limit
DEFAULT_CTA_LABEL = "Learn more"
VIDEO_EXTENSIONS = [".mp4", ".mov", ".webm", ".mkv", ".avi"]

TELEGRAM_WEBHOOK_UPDATES = ["message", "callback_query"]
BOT_WELCOME_MESSAGE = (
    "✅ Bot successfully connected to this community! "
    "Now you can receive approved announcements."
)

# =============================================================================
# Payment Settings
# =============================================================================

DEFAULT_PLATFORM_FEE = 1.0
DEFAULT_CURRENCY = "USDT"
GATEWAY_AMOUNT_DECIMALS = 8          # Checkout amounts are sent in 1e-8 units
CHECKOUT_PRODUCT_NAME = "Announcement Campaign"
CHECKOUT_PRODUCT_DESCRIPTION = "Payment for crypto announcement distribution"

# =============================================================================
# HTTP Settings
# =============================================================================

HTTP_TIMEOUT_SECONDS = _env_float("HTTP_TIMEOUT_SECONDS", 15.0)
