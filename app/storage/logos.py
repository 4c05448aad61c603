"""Local-filesystem object storage for event and sponsor logos.

Layout under ``storage.logo_dir``:

    event-logos/<event-id>.<ext>
    sponsor-logos/<event-id>-<n>.<ext>

Path components come only from sanitize_identifier_for_path() and the
extension allow-list; nothing from the uploaded filename reaches the path.
Files are written in the default executor so the event loop never blocks on
disk I/O.

Sponsor logos are uploaded best-effort: each logo is an independent attempt
with its own Ok/Err, and the batch reports a partial aggregate
("3 of 5 succeeded") instead of failing as a whole.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import os
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from app.constants import MAX_LOGO_BYTES, MAX_SPONSOR_LOGOS
from app.errors import InvalidInputError, error_result
from app.models.result import Err, Ok, Result
from app.security.sanitizer import (
    sanitize_filename,
    sanitize_identifier_for_path,
    validate_encoded_size,
    validate_image_extension,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)

_DATA_URL_PREFIX_RE = re.compile(r"^data:[^,]*,")

EXTENSION_MESSAGE = "Logo must be a PNG, JPG, JPEG or WEBP image."
SIZE_MESSAGE = f"Logo must be {MAX_LOGO_BYTES // (1024 * 1024)} MB or smaller."
ENCODING_MESSAGE = "Logo data is not valid base64."
UPLOAD_FAILED_MESSAGE = "Failed to upload logo. Please try again."


@dataclass(frozen=True)
class LogoUpload:
    """A logo as submitted by the client: original filename + base64 payload."""

    filename: str
    data: str


@dataclass
class SponsorUploadResult:
    """Aggregate of a best-effort sponsor logo batch, one result per logo."""

    results: list[Result[dict[str, str]]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if isinstance(result, Ok))

    @property
    def uploaded(self) -> list[dict[str, str]]:
        return [result.value for result in self.results if isinstance(result, Ok)]

    @property
    def complete(self) -> bool:
        return self.succeeded == self.total

    @property
    def summary(self) -> str:
        return f"{self.succeeded} of {self.total} succeeded"

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "succeeded": self.succeeded,
            "total": self.total,
            "errors": [result.message for result in self.results if isinstance(result, Err)],
        }


def decode_logo(upload: LogoUpload, max_bytes: int = MAX_LOGO_BYTES) -> tuple[bytes, str]:
    """Validate a logo upload and return ``(raw_bytes, extension)``.

    The size ceiling is checked on the encoded length before decoding.

    Raises:
        InvalidInputError: Bad extension, oversized payload or invalid base64.
    """
    ext = validate_image_extension(upload.filename)
    if ext is None:
        raise InvalidInputError(EXTENSION_MESSAGE)
    if not validate_encoded_size(upload.data, max_bytes):
        raise InvalidInputError(SIZE_MESSAGE)
    encoded = _DATA_URL_PREFIX_RE.sub("", upload.data.strip(), count=1)
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInputError(ENCODING_MESSAGE)
    if not raw or len(raw) > max_bytes:
        raise InvalidInputError(SIZE_MESSAGE)
    return raw, ext


def _write_file(path: str, data: bytes) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "wb") as fh:
        fh.write(data)
    os.replace(tmp_path, path)


class LocalLogoStorage:
    """Stores logos on disk and hands back their public URLs.

    Args:
        base_dir:        Root directory (``~`` is expanded).
        public_base_url: URL prefix the files are served under (e.g. ``/storage``).
    """

    def __init__(self, base_dir: str, public_base_url: str = "/storage") -> None:
        self.base_dir = os.path.expanduser(base_dir)
        self.public_base_url = public_base_url.rstrip("/")

    def _safe_id(self, event_id: str) -> str:
        safe_id = sanitize_identifier_for_path(event_id)
        if not safe_id:
            raise InvalidInputError()
        return safe_id

    async def _store(self, relative_path: str, data: bytes) -> str:
        path = os.path.join(self.base_dir, *relative_path.split("/"))
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, _write_file, path, data)
        logger.debug("Logo stored", path=relative_path, size_bytes=len(data))
        return f"{self.public_base_url}/{relative_path}"

    async def save_event_logo(self, event_id: str, upload: LogoUpload) -> str:
        """Validate and store an event logo. Returns its public URL.

        Re-uploading for the same event overwrites the previous file.

        Raises:
            InvalidInputError: Invalid upload or event id.
            OSError:           Disk write failed.
        """
        safe_id = self._safe_id(event_id)
        raw, ext = decode_logo(upload)
        return await self._store(f"event-logos/{safe_id}.{ext}", raw)

    async def upload_sponsor_logos(
        self,
        event_id: str,
        uploads: Sequence[LogoUpload],
    ) -> SponsorUploadResult:
        """Store each sponsor logo independently. Never raises for a single logo."""
        result = SponsorUploadResult()
        safe_id: Optional[str] = sanitize_identifier_for_path(event_id)

        for index, upload in enumerate(uploads, start=1):
            try:
                if not safe_id:
                    raise InvalidInputError()
                if index > MAX_SPONSOR_LOGOS:
                    raise InvalidInputError(f"At most {MAX_SPONSOR_LOGOS} sponsor logos are allowed.")
                raw, ext = decode_logo(upload)
                url = await self._store(f"sponsor-logos/{safe_id}-{index}.{ext}", raw)
                result.results.append(Ok({"name": sanitize_filename(upload.filename), "url": url}))
            except Exception as exc:
                result.results.append(error_result(exc, "upload_sponsor_logo", UPLOAD_FAILED_MESSAGE))

        if result.total:
            logger.info(
                "Sponsor logo batch uploaded",
                event_id=safe_id,
                summary=result.summary,
            )
        return result
