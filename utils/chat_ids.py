"""
Telegram Chat Identifier Utilities

Community owners paste group identifiers in many shapes: bare usernames,
@usernames, t.me links, numeric ids with or without the leading "-" or the
"-100" supergroup prefix. These helpers reduce them to the forms the Bot API
accepts.
"""

import re
from typing import List, Optional

LINK_MARKERS = ("t.me/", "telegram.me/")
_NUMERIC = re.compile(r"^-?\d+$")


def _is_numeric(value: str) -> bool:
    return bool(_NUMERIC.match(value))


def extract_username(raw: str) -> Optional[str]:
    """
    Pull the trailing path segment out of a t.me / telegram.me link.

    Args:
        raw: Any user-entered identifier.

    Returns:
        Optional[str]: The segment without query string, or None if raw is not a link.
    """
    if not raw:
        return None

    lowered = raw.lower()
    for marker in LINK_MARKERS:
        index = lowered.find(marker)
        if index == -1:
            continue
        tail = raw[index + len(marker):]
        tail = tail.split("?", 1)[0].split("#", 1)[0].strip("/")
        segment = tail.split("/")[-1] if tail else ""
        return segment or None
    return None


def normalize_chat_id(raw: Optional[str]) -> str:
    """
    Normalize a user-entered chat identifier.

    Trims whitespace, reduces links to their trailing segment and prefixes
    non-numeric usernames with "@". Numeric and "-" prefixed values pass
    through untouched. Applying it twice gives the same result.

    Args:
        raw: The identifier as entered.

    Returns:
        str: The normalized identifier ("" for empty input).
    """
    if raw is None:
        return ""

    value = str(raw).strip()
    if not value:
        return ""

    username = extract_username(value)
    if username:
        value = username

    if _is_numeric(value) or value.startswith("@") or value.startswith("-"):
        return value
    return f"@{value}"


def chat_id_candidates(raw: Optional[str]) -> List[str]:
    """
    Build the ordered list of identifiers to try against getChat.

    The normalized form always comes first; later entries are the
    "@"-stripped or "@"-added forms, sign variants and the "-100" supergroup
    form for numeric ids, then any username found in a link.

    Args:
        raw: The identifier as entered or stored.

    Returns:
        List[str]: Distinct candidates, empty for empty input.
    """
    primary = normalize_chat_id(raw)
    if not primary:
        return []

    candidates = [primary]

    if primary.startswith("@"):
        candidates.append(primary[1:])
    elif not _is_numeric(primary):
        candidates.append(f"@{primary}")

    if _is_numeric(primary):
        digits = primary.lstrip("-")
        if primary.startswith("-"):
            candidates.append(digits)
            if not digits.startswith("100"):
                candidates.append(f"-100{digits}")
        else:
            candidates.append(f"-{digits}")
            candidates.append(f"-100{digits}")

    stripped = str(raw).strip()
    if stripped.startswith("@") and len(stripped) > 1:
        candidates.append(stripped[1:])

    username = extract_username(stripped)
    if username:
        bare = username.lstrip("@")
        candidates.extend([f"@{bare}", bare])

    unique = []
    for candidate in candidates:
        if candidate and candidate not in unique:
            unique.append(candidate)
    return unique
