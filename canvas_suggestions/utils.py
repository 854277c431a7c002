"""Utilities supporting the suggestion modules."""

from __future__ import annotations

import inspect
import math
import random
import re
import string
from datetime import datetime, timezone
from typing import Any, Optional


_ID_ALPHABET = string.ascii_lowercase + string.digits
_WHITESPACE = re.compile(r"\s+")


def generate_id(prefix: str, *, size: int = 12) -> str:
    """Generate a short unique identifier with a readable prefix."""

    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(size))
    return f"{prefix}_{suffix}"


def now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string with milliseconds."""

    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def safe_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def non_blank(value: Any) -> Optional[str]:
    """Return the stripped string, or None for anything blank or not a string."""

    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def clean_excerpt(text: str, max_length: int = 180) -> str:
    """Collapse whitespace and cut the text to ``max_length`` characters."""

    compact = _WHITESPACE.sub(" ", safe_text(text)).strip()
    if not compact:
        return ""
    if len(compact) <= max_length:
        return compact
    return compact[: max(16, max_length - 3)] + "..."


async def resolve(value: Any) -> Any:
    """Await ``value`` if a collaborator handed back an awaitable."""

    if inspect.isawaitable(value):
        return await value
    return value
