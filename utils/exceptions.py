"""
Custom Exception Classes for the Announcement Marketplace

This module defines custom exceptions for better error handling and
categorization of failures across the application.
"""

from typing import Optional


class MarketplaceError(Exception):
    """Base exception for all marketplace application errors."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(MarketplaceError):
    """Raised when configuration validation fails or required settings are missing."""
    pass


# =============================================================================
# Input and Lifecycle Errors
# =============================================================================

class InputValidationError(MarketplaceError):
    """Raised when caller-supplied input is missing or malformed."""
    pass


class InvalidTransitionError(MarketplaceError):
    """Raised when an announcement is moved between states illegally."""

    def __init__(self, current, target, message: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Illegal transition: {current} -> {target}")


# =============================================================================
# AI Service Errors
# =============================================================================

class AIServiceError(MarketplaceError):
    """Base exception for AI service errors."""
    pass


class EnhancementError(AIServiceError):
    """Raised when the AI rewrite of an announcement cannot be produced."""
    pass


# =============================================================================
# Messaging Platform Errors
# =============================================================================

class PlatformError(MarketplaceError):
    """Base exception for messaging platform errors."""
    pass


class TelegramAPIError(PlatformError):
    """Raised when the Telegram Bot API answers with ok=false."""

    def __init__(self, description: str, error_code: Optional[int] = None, method: Optional[str] = None):
        self.description = description
        self.error_code = error_code
        self.method = method
        super().__init__(description)


class TelegramTransportError(PlatformError):
    """Raised when the Telegram Bot API cannot be reached."""
    pass


# =============================================================================
# Payment Errors
# =============================================================================

class PaymentError(MarketplaceError):
    """Base exception for payment settlement errors."""
    pass


class PaymentGatewayError(PaymentError):
    """Raised when the checkout gateway rejects or fails a request."""
    pass


# =============================================================================
# Database Errors
# =============================================================================

class DatabaseError(MarketplaceError):
    """Base exception for database-related errors."""
    pass


class ConnectionError(DatabaseError):
    """Raised when database connection fails."""
    pass


class QueryError(DatabaseError):
    """Raised when a database query fails."""
    pass


class RecordNotFoundError(DatabaseError):
    """Raised when a referenced row does not exist."""
    pass
