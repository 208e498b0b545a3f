# ==============================================================================
# Input Sanitization
# ==============================================================================
"""
Sanitizers for untrusted values sent by the tracking snippet.

Nothing in here raises: oversized or garbled input is truncated and cleaned
rather than rejected.
"""

import hashlib
import re

from postmetric.core.models import TRACKING_CODE_LENGTH

CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
TRACKING_CODE_PATTERN = re.compile(rf"^[0-9a-f]{{{TRACKING_CODE_LENGTH}}}$")

MAX_PATH_LENGTH = 2048
MAX_TITLE_LENGTH = 500


def is_valid_tracking_code(code: str | None) -> bool:
    """Tracking codes are 24 lowercase hex characters."""
    return bool(code) and TRACKING_CODE_PATTERN.match(code) is not None


def sanitize_text(value: str | None, max_length: int) -> str | None:
    """Truncate to max_length, then strip control characters."""
    if not value:
        return None
    cleaned = CONTROL_CHARS.sub("", value[:max_length])
    return cleaned or None


def sanitize_path(path: str | None, max_length: int = MAX_PATH_LENGTH) -> str:
    """Sanitize a page path, defaulting to "/"."""
    return sanitize_text(path, max_length) or "/"


def sanitize_title(title: str | None, max_length: int = MAX_TITLE_LENGTH) -> str | None:
    return sanitize_text(title, max_length)


def hash_path(path: str) -> str:
    """Replace a path with a short, stable digest for sites that hash paths."""
    return "#" + hashlib.sha256(path.encode("utf-8")).hexdigest()[:16]
