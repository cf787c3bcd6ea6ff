"""
glwatch Utilities
"""

import hashlib
from typing import Any, Optional


def mask_secret(secret: str, length: int = 5) -> str:
    """Return a short SHA-256 hash of a secret for logging."""
    h = hashlib.sha256(str(secret).encode("utf-8")).hexdigest()
    return f"<masked:{h[:length]}>"


def parse_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """Parse an int from a header or config value, returning default on failure."""
    if value is None or value == '':
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
