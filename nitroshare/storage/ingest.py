from __future__ import annotations

"""
Upload ingestion.

Consumes the raw `multipart/form-data` request body as it arrives and streams
the `video` part into the caller's partition:

1) part headers parsed incrementally (python-multipart); the type check
   (lenient OR of extension and declared content type) runs before any byte
   of the file is written
2) part bytes buffered into `chunk_bytes` writes to a hidden staging file,
   aborting past the size ceiling
3) atomic claim of the final, timestamp-derived name via `os.link`, which never
   overwrites an existing asset
4) staging file removed in every outcome

Receiving the body is part of the operation, so the wall-clock timeout and the
size ceiling apply to the network upload itself. Whatever fails, no partial or
truncated file is left behind under an asset name.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncIterable, Dict, List, Optional, Tuple
from uuid import uuid4

import aiofiles
import anyio
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from nitroshare.core.config import Settings
from nitroshare.core.exceptions import (
    InvalidFileType,
    NoFileProvided,
    PayloadTooLarge,
    StorageError,
    UploadTimeout,
)
from nitroshare.storage.media import accepts_upload, extension_of, stored_extension, upload_filename
from nitroshare.storage.partitions import ensure_partition

logger = logging.getLogger("nitroshare.ingest")

__all__ = ["StoredUpload", "UploadIngestor", "MULTIPART_ENVELOPE_ALLOWANCE", "VIDEO_FIELD"]

# Bytes tolerated on top of MAX_UPLOAD_BYTES, in Content-Length and in the
# received body, for the multipart boundaries, part headers and small fields.
MULTIPART_ENVELOPE_ALLOWANCE = 64 * 1024

VIDEO_FIELD = "video"

_STAGING_PREFIX = ".upload-"
_MAX_CLAIM_ATTEMPTS = 1000


def _human_size(n: int) -> str:
    mib = 1024 * 1024
    if n >= mib and n % mib == 0:
        return f"{n // mib}MB"
    return f"{n} bytes"


@dataclass(frozen=True)
class StoredUpload:
    filename: str
    size: int
    uploaded_at: datetime
    original_name: str
    content_type: str


# ─────────────────────────────────────────────────────────────
# 📨 Multipart events
# ─────────────────────────────────────────────────────────────
class _MultipartEvents:
    """
    Thin adapter over python-multipart's callback parser.

    `feed()` pushes one body chunk and returns what it produced, in order:
    ("headers", {lower-name: value}), ("data", bytes) and ("end", None) per part.
    """

    def __init__(self, boundary: bytes) -> None:
        self._events: List[Tuple[str, Any]] = []
        self._headers: Dict[str, str] = {}
        self._field = b""
        self._value = b""
        self._parser = MultipartParser(
            boundary,
            callbacks={
                "on_part_begin": self._on_part_begin,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
            },
        )

    def feed(self, chunk: bytes) -> List[Tuple[str, Any]]:
        self._parser.write(chunk)
        return self._drain()

    def finish(self) -> List[Tuple[str, Any]]:
        self._parser.finalize()
        return self._drain()

    def _drain(self) -> List[Tuple[str, Any]]:
        events, self._events = self._events, []
        return events

    def _on_part_begin(self) -> None:
        self._headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers[self._field.decode("latin-1").lower()] = self._value.decode("latin-1")
        self._field = b""
        self._value = b""

    def _on_headers_finished(self) -> None:
        self._events.append(("headers", self._headers))

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append(("data", data[start:end]))

    def _on_part_end(self) -> None:
        self._events.append(("end", None))


def _boundary_of(content_type: Optional[str]) -> bytes:
    media_type, params = parse_options_header(content_type or "")
    boundary = params.get(b"boundary")
    if media_type != b"multipart/form-data" or not boundary:
        logger.warning("Upload rejected: not a multipart body (Content-Type=%s)", content_type or "-")
        raise NoFileProvided()
    return boundary


# ─────────────────────────────────────────────────────────────
# 📼 One upload in flight
# ─────────────────────────────────────────────────────────────
class _UploadSession:
    def __init__(self, ingestor: "UploadIngestor", email: str, now: Optional[datetime] = None) -> None:
        self.ingestor = ingestor
        self.email = email
        self.now = now
        self.uploaded_at: Optional[datetime] = None
        self.original = ""
        self.content_type = ""
        self.partition: Optional[Path] = None
        self.staging: Optional[Path] = None
        self.size = 0
        self.complete = False
        self._out: Any = None
        self._writing = False
        self._buffer = bytearray()

    async def consume(self, content_type: Optional[str], body: AsyncIterable[bytes]) -> None:
        events = _MultipartEvents(_boundary_of(content_type))
        ceiling = self.ingestor.max_bytes + MULTIPART_ENVELOPE_ALLOWANCE
        received = 0
        try:
            async for chunk in body:
                received += len(chunk)
                if received > ceiling:
                    logger.warning("Upload body exceeded %s bytes; aborting", ceiling)
                    raise self.ingestor._too_large()
                for kind, payload in events.feed(chunk):
                    await self._handle(kind, payload)
            for kind, payload in events.finish():
                await self._handle(kind, payload)
        except MultipartParseError as e:
            logger.warning("Malformed multipart body: %s", e)
            raise NoFileProvided("Malformed upload body") from e

        if self._writing:
            logger.warning("Upload body ended inside the video part: %s", self.original)
            raise NoFileProvided("Incomplete video upload")
        if not self.complete:
            raise NoFileProvided()

    async def _handle(self, kind: str, payload: Any) -> None:
        if kind == "headers":
            await self._begin_part(payload)
        elif kind == "data":
            if self._writing:
                await self._write(payload)
        elif kind == "end" and self._writing:
            await self._flush()
            await self._out.close()
            self._out = None
            self._writing = False
            self.complete = True

    async def _begin_part(self, headers: Dict[str, str]) -> None:
        _, options = parse_options_header(headers.get("content-disposition", ""))
        if options.get(b"name", b"").decode("latin-1") != VIDEO_FIELD or self.complete or self._writing:
            return

        filename = options.get(b"filename")
        if filename is None or not filename.strip():
            raise NoFileProvided()

        self.original = filename.decode("utf-8", errors="replace")
        self.content_type = headers.get("content-type", "")
        self.uploaded_at = (self.now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        ext = extension_of(self.original)
        logger.info("File upload attempt: name=%s type=%s", self.original, self.content_type or "-")

        if not accepts_upload(self.original, self.content_type):
            logger.warning(
                "File rejected: name=%s type=%s extension=%s reason=invalid file type",
                self.original, self.content_type or "-", ext or "-",
            )
            raise InvalidFileType(
                f"Only video files are allowed. Detected type: {self.content_type or 'unknown'}, "
                f"extension: {ext or 'none'}",
                details={"content_type": self.content_type, "extension": ext},
            )

        try:
            self.partition = ensure_partition(self.ingestor.root, self.email)
            self.staging = self.partition / f"{_STAGING_PREFIX}{uuid4().hex}.part"
            self._out = await aiofiles.open(self.staging, "xb")
        except OSError as e:
            logger.error("Cannot open staging file in %s: %s", self.partition, e)
            raise StorageError("Failed to store video") from e
        self._writing = True

    async def _write(self, data: bytes) -> None:
        self.size += len(data)
        if self.size > self.ingestor.max_bytes:
            logger.warning("Upload exceeded %s bytes; aborting", self.ingestor.max_bytes)
            raise self.ingestor._too_large()
        self._buffer += data
        if len(self._buffer) >= self.ingestor.chunk_bytes:
            await self._flush()

    async def _flush(self) -> None:
        if not self._buffer:
            return
        try:
            await self._out.write(bytes(self._buffer))
        except OSError as e:
            logger.error("Write failed for %s: %s", self.staging, e)
            raise StorageError("Failed to store video") from e
        self._buffer.clear()

    async def close(self) -> None:
        with anyio.CancelScope(shield=True):
            if self._out is not None:
                try:
                    await self._out.close()
                except OSError as e:
                    logger.error("Could not close staging file %s: %s", self.staging, e)
                self._out = None
        if self.staging is not None:
            UploadIngestor._discard(self.staging)


# ─────────────────────────────────────────────────────────────
# 🚚 Ingestor
# ─────────────────────────────────────────────────────────────
class UploadIngestor:
    def __init__(
        self,
        root: Path,
        *,
        max_bytes: int,
        chunk_bytes: int = 1024 * 1024,
        timeout_seconds: float = 600,
    ) -> None:
        self.root = root
        self.max_bytes = max_bytes
        self.chunk_bytes = chunk_bytes
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, cfg: Settings) -> "UploadIngestor":
        return cls(
            cfg.UPLOAD_ROOT,
            max_bytes=cfg.MAX_UPLOAD_BYTES,
            chunk_bytes=cfg.UPLOAD_CHUNK_BYTES,
            timeout_seconds=cfg.UPLOAD_TIMEOUT_SECONDS,
        )

    # ── Pre-flight ─────────────────────────────────────────────────────────
    def check_declared_length(self, content_length: Optional[str]) -> None:
        """Reject bodies whose declared length cannot possibly fit under the ceiling."""
        if not content_length:
            return
        try:
            declared = int(content_length)
        except ValueError:
            return
        if declared > self.max_bytes + MULTIPART_ENVELOPE_ALLOWANCE:
            logger.warning("Upload rejected before reading: Content-Length=%s", declared)
            raise self._too_large()

    def _too_large(self) -> PayloadTooLarge:
        return PayloadTooLarge(f"File too large. Maximum size is {_human_size(self.max_bytes)}.")

    # ── Main entry ─────────────────────────────────────────────────────────
    async def ingest(
        self,
        email: str,
        content_type: Optional[str],
        body: AsyncIterable[bytes],
        *,
        now: Optional[datetime] = None,
    ) -> StoredUpload:
        """
        Read a multipart request body and store its `video` part.

        `content_type` is the request's Content-Type (carries the boundary);
        `body` yields the raw body chunks as they arrive, e.g. `request.stream()`.
        """
        session = _UploadSession(self, email, now)
        try:
            with anyio.fail_after(self.timeout_seconds):
                await session.consume(content_type, body)
            ext = stored_extension(session.original, session.content_type)
            filename, uploaded_at = self._claim(session.staging, session.partition, session.uploaded_at, ext)
        except TimeoutError as e:
            logger.warning("Upload timed out after %ss: %s", self.timeout_seconds, session.original or "-")
            raise UploadTimeout() from e
        finally:
            await session.close()

        logger.info(
            "File uploaded successfully: %s/%s (%s bytes, from %s)",
            session.partition.name, filename, session.size, session.original,
        )
        return StoredUpload(
            filename=filename,
            size=session.size,
            uploaded_at=uploaded_at,
            original_name=session.original,
            content_type=session.content_type,
        )

    # ── Steps ──────────────────────────────────────────────────────────────
    @staticmethod
    def _claim(staging: Path, partition: Path, uploaded_at: datetime, ext: str) -> tuple[str, datetime]:
        """Link the staging file to the first free timestamp name (never overwrites)."""
        stamp = uploaded_at
        for _ in range(_MAX_CLAIM_ATTEMPTS):
            name = upload_filename(stamp, ext)
            try:
                os.link(staging, partition / name)
            except FileExistsError:
                stamp += timedelta(microseconds=1)
                continue
            except OSError as e:
                logger.error("Cannot finalize upload %s: %s", name, e)
                raise StorageError("Failed to store video") from e
            return name, stamp
        raise StorageError("Could not allocate a unique filename")

    @staticmethod
    def _discard(staging: Path) -> None:
        try:
            staging.unlink(missing_ok=True)
        except OSError as e:
            # The sweeper removes leftovers once they age out.
            logger.error("Could not remove staging file %s: %s", staging, e)
