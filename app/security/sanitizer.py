"""Input sanitizers — framework-agnostic, pure functions.

Applied to free-text fields before they are persisted and to uploaded logos
before they reach the storage layer. None of these functions raise; invalid
input yields a sentinel (``None``, ``False`` or ``""``).
"""

from __future__ import annotations

import re
from typing import Optional

from app.constants import ALLOWED_IMAGE_EXTENSIONS, MAX_FILENAME_LENGTH, MAX_LOGO_BYTES

_PATH_UNSAFE_RE = re.compile(r"[^A-Za-z0-9-]")
_FILENAME_UNSAFE_RE = re.compile(r"[\x00-\x1f\x7f/\\:*?\"<>|]")
_DATA_URL_PREFIX_RE = re.compile(r"^data:[^,]*,")


def sanitize_text(value: Optional[str], max_length: int) -> str:
    """Trim surrounding whitespace, then truncate to ``max_length`` characters."""
    if not value:
        return ""
    text = str(value).strip()
    if len(text) > max_length:
        text = text[:max_length]
    return text


def validate_image_extension(filename: Optional[str]) -> Optional[str]:
    """Return the lower-cased final extension if it is an allowed image type.

    Query strings and fragments are stripped first. Only the last segment is
    inspected: ``evil.png.exe`` is rejected, ``a.exe.png`` is accepted.

    >>> validate_image_extension("photo.PNG?v=2")
    'png'
    >>> validate_image_extension("photo.exe") is None
    True
    """
    if not filename:
        return None
    name = filename.split("?", 1)[0].split("#", 1)[0]
    if "." not in name:
        return None
    ext = name.rsplit(".", 1)[1].lower()
    return ext if ext in ALLOWED_IMAGE_EXTENSIONS else None


def validate_encoded_size(payload: Optional[str], max_bytes: int = MAX_LOGO_BYTES) -> bool:
    """Check a base64 payload's decoded size without decoding it.

    A ``data:<mime>;base64,`` prefix is stripped. The decoded length is
    ``floor(len * 3 / 4)`` minus the trailing ``=`` padding; the bound is
    inclusive.
    """
    if not payload:
        return False
    encoded = _DATA_URL_PREFIX_RE.sub("", payload.strip(), count=1)
    if not encoded:
        return False
    padding = len(encoded) - len(encoded.rstrip("="))
    return (len(encoded) * 3) // 4 - padding <= max_bytes


def sanitize_identifier_for_path(value: Optional[str]) -> str:
    """Strip everything outside ``[A-Za-z0-9-]`` before use in a storage path."""
    if not value:
        return ""
    return _PATH_UNSAFE_RE.sub("", value)


def sanitize_filename(filename: Optional[str]) -> str:
    """Reduce an uploaded filename to a safe display name.

    Directory components are dropped (both ``/`` and ``\\``), control and
    reserved characters removed, leading dots stripped so the result is never
    a hidden file or ``..``.
    """
    if not filename:
        return ""
    base = re.split(r"[\\/]", filename)[-1]
    base = _FILENAME_UNSAFE_RE.sub("", base).strip().lstrip(".")
    return base[:MAX_FILENAME_LENGTH]
