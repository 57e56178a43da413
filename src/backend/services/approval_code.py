"""
Approval code generation.

Codes look like ``VIS482913K7Q``: a prefix, the last six digits of the
millisecond clock and three random base-36 characters. Uniqueness is
enforced by the database; on a collision the caller asks for a new code.
"""

import secrets
import string
import time
from typing import Optional

from core.config import settings

_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase
_SUFFIX_LENGTH = 3


def generate_approval_code(
    prefix: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> str:
    """
    Generate a fresh approval code.

    Args:
        prefix: Code prefix (defaults to settings.visitor.approval_code_prefix)
        now_ms: Epoch milliseconds to use instead of the clock

    Returns:
        Approval code string
    """
    if prefix is None:
        prefix = settings.visitor.approval_code_prefix
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000

    time_part = str(now_ms)[-6:].rjust(6, "0")
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{prefix}{time_part}{suffix}"
