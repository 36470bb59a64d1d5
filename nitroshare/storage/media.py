from __future__ import annotations

"""
Media kinds and asset naming.

Asset filenames are the UTC upload timestamp (microsecond precision) with
filename-unsafe characters replaced, plus the lower-cased extension:

    2026-10-16T12:30:05.123456Z  →  2026_10_16T12_30_05_123456Z.mp4

The fixed-width layout keeps lexical order equal to chronological order, and
`parse_upload_timestamp` turns a name back into its timestamp.
"""

import re
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Dict, Optional

__all__ = [
    "ALLOWED_EXTENSIONS",
    "VIDEO_MEDIA_PREFIX",
    "GENERIC_BINARY",
    "extension_of",
    "is_allowed_extension",
    "is_asset_name",
    "media_type_for",
    "accepts_upload",
    "stored_extension",
    "upload_filename",
    "parse_upload_timestamp",
]

# Extension → canonical media type.
MEDIA_TYPES: Dict[str, str] = {
    ".mp4": "video/mp4",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".wmv": "video/x-ms-wmv",
    ".flv": "video/x-flv",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
    ".m4v": "video/x-m4v",
    ".3gp": "video/3gpp",
}
ALLOWED_EXTENSIONS = frozenset(MEDIA_TYPES)

# Declared type → extension, for uploads accepted on content type alone.
_EXTENSION_FOR_TYPE: Dict[str, str] = {
    "video/mp4": ".mp4",
    "video/x-mp4": ".mp4",
    "video/mp4v-es": ".mp4",
    "video/h264": ".mp4",
    "video/avi": ".avi",
    "video/x-msvideo": ".avi",
    "video/quicktime": ".mov",
    "video/x-ms-wmv": ".wmv",
    "video/x-flv": ".flv",
    "video/webm": ".webm",
    "video/x-matroska": ".mkv",
    "video/x-m4v": ".m4v",
    "video/3gpp": ".3gp",
}
DEFAULT_EXTENSION = ".mp4"

VIDEO_MEDIA_PREFIX = "video/"
GENERIC_BINARY = "application/octet-stream"

_NAME_RE = re.compile(r"^[A-Za-z0-9_]+\.[A-Za-z0-9]{1,8}$")
_STAMP_RE = re.compile(r"^(\d{4})_(\d{2})_(\d{2})T(\d{2})_(\d{2})_(\d{2})_(\d{3}|\d{6})Z\.[A-Za-z0-9]+$")


def extension_of(filename: Optional[str]) -> str:
    return PurePath(filename or "").suffix.lower()


def is_allowed_extension(filename: Optional[str]) -> bool:
    return extension_of(filename) in ALLOWED_EXTENSIONS


def is_asset_name(filename: str) -> bool:
    """Plain file name (no separators, no dotfiles) with an allow-listed extension."""
    return bool(_NAME_RE.fullmatch(filename or "")) and is_allowed_extension(filename)


def media_type_for(filename: str) -> str:
    return MEDIA_TYPES.get(extension_of(filename), GENERIC_BINARY)


def _base_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def accepts_upload(filename: Optional[str], content_type: Optional[str]) -> bool:
    """Lenient type check: allow-listed extension OR video/* OR (octet-stream AND allow-listed extension).

    Mobile clients frequently mislabel the content type, hence the OR.
    """
    ext_ok = is_allowed_extension(filename)
    ctype = _base_type(content_type)
    type_ok = ctype.startswith(VIDEO_MEDIA_PREFIX) or (ctype == GENERIC_BINARY and ext_ok)
    return ext_ok or type_ok


def stored_extension(filename: Optional[str], content_type: Optional[str]) -> str:
    """Extension used for the stored asset; always allow-listed."""
    ext = extension_of(filename)
    if ext in ALLOWED_EXTENSIONS:
        return ext
    return _EXTENSION_FOR_TYPE.get(_base_type(content_type), DEFAULT_EXTENSION)


def upload_filename(uploaded_at: datetime, extension: str) -> str:
    stamp = uploaded_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return re.sub(r"[:.+-]", "_", stamp) + extension


def parse_upload_timestamp(filename: str) -> Optional[datetime]:
    """Inverse of `upload_filename`; None for names that don't follow the scheme."""
    m = _STAMP_RE.match(filename or "")
    if not m:
        return None
    year, month, day, hour, minute, second, frac = m.groups()
    try:
        return datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second),
            int(frac.ljust(6, "0")),
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None
