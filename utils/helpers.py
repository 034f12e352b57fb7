"""
Helper Utility Module

This module provides various helper functions used throughout the marketplace.
"""

import json
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any
from urllib.parse import urlparse

CENT = Decimal("0.01")


def is_valid_url(url: str) -> bool:
    """
    Check if a URL is valid.

    Args:
        url: The URL to validate

    Returns:
        bool: True if the URL is valid, False otherwise
    """
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except Exception:
        return False


def truncate_text(text: str, max_length: int = 100, add_ellipsis: bool = True) -> str:
    """
    Truncate text to a maximum length.

    Args:
        text: The text to truncate
        max_length: Maximum length, including the ellipsis
        add_ellipsis: Whether to add an ellipsis if text is truncated

    Returns:
        str: Truncated text
    """
    if not text or len(text) <= max_length:
        return text

    if add_ellipsis:
        return text[:max(max_length - 3, 0)].rstrip() + "..."
    return text[:max_length].rstrip()


def safe_get(data: Dict[str, Any], *keys, default: Any = None) -> Any:
    """
    Safely get a value from a nested dictionary.

    Args:
        data: The dictionary to search
        *keys: The keys to follow
        default: Default value if key doesn't exist

    Returns:
        The value at the specified keys or the default value
    """
    for key in keys:
        try:
            data = data[key]
        except (KeyError, TypeError, IndexError):
            return default
    return data


def new_id() -> str:
    """Return a fresh UUID4 string for a new row."""
    return str(uuid.uuid4())


def to_money(value: Any) -> Decimal:
    """Convert a number or numeric string to a cent-rounded Decimal."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def split_evenly(total: Decimal, parts: int) -> List[Decimal]:
    """
    Split an amount into equal cent shares that sum exactly to the total.

    Leftover cents go to the first shares, one each.

    Args:
        total: Amount to split; rounded to cents first.
        parts: Number of shares.

    Returns:
        List[Decimal]: The shares, empty when parts is zero.
    """
    if parts <= 0:
        return []

    cents = int((to_money(total) * 100).to_integral_value(rounding=ROUND_HALF_UP))
    base, remainder = divmod(cents, parts)
    return [
        (Decimal(base + (1 if i < remainder else 0)) / 100).quantize(CENT)
        for i in range(parts)
    ]


def load_json(value: Any, default: Any = None) -> Any:
    """Decode a JSON column value, passing through already-decoded values."""
    if value is None or value == "":
        return default
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return default


def dump_json(value: Any) -> Optional[str]:
    """Encode a value for a JSON column."""
    if value is None:
        return None
    return json.dumps(value, default=str)
