from __future__ import annotations

"""
Catalog reader and delete operation.

The filesystem is the record store: a partition's video assets are exactly the
regular files in it whose names carry an allow-listed extension. Anything else
(staging files, strays, sub-directories) is skipped silently.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from nitroshare.core.exceptions import NotFound, StorageError
from nitroshare.storage.media import is_asset_name, media_type_for, parse_upload_timestamp
from nitroshare.storage.partitions import partition_path

logger = logging.getLogger("nitroshare.catalog")

__all__ = ["VideoAsset", "created_at_of", "list_assets", "asset_path", "resolve_asset", "delete_asset"]


@dataclass(frozen=True)
class VideoAsset:
    filename: str
    size: int
    created_at: datetime
    media_type: str


def created_at_of(name: str, st: os.stat_result) -> datetime:
    """Canonical upload time of an entry.

    Order: timestamp encoded in the filename → filesystem birth time (where the
    platform reports one) → modification time.
    """
    stamped = parse_upload_timestamp(name)
    if stamped is not None:
        return stamped
    birth = getattr(st, "st_birthtime", None)
    if birth:
        return datetime.fromtimestamp(birth, tz=timezone.utc)
    return datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)


def list_assets(partition: Path) -> List[VideoAsset]:
    """Assets in `partition`, most recent first. Missing or empty partition → []."""
    try:
        with os.scandir(partition) as it:
            entries = list(it)
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.error("Unable to read partition %s: %s", partition, e)
        raise StorageError("Unable to read user directory") from e

    assets: List[VideoAsset] = []
    for entry in entries:
        if not is_asset_name(entry.name):
            continue
        try:
            if not entry.is_file(follow_symlinks=False):
                continue
            st = entry.stat(follow_symlinks=False)
        except FileNotFoundError:
            # Deleted (by the user or the sweeper) after the directory was read.
            continue
        assets.append(
            VideoAsset(
                filename=entry.name,
                size=st.st_size,
                created_at=created_at_of(entry.name, st),
                media_type=media_type_for(entry.name),
            )
        )

    assets.sort(key=lambda a: (a.created_at, a.filename), reverse=True)
    return assets


def asset_path(partition: Path, filename: str) -> Path:
    if not is_asset_name(filename):
        raise NotFound()
    return partition / filename


def resolve_asset(root: Path, key: str, filename: str) -> Path:
    """Existing asset path for a public (key, filename) pair, or `NotFound`."""
    path = asset_path(partition_path(root, key), filename)
    if not path.is_file():
        raise NotFound()
    return path


def delete_asset(partition: Path, filename: str) -> None:
    """Remove one asset; unknown or concurrently removed names raise `NotFound`."""
    path = asset_path(partition, filename)
    try:
        path.unlink()
    except (FileNotFoundError, IsADirectoryError) as e:
        raise NotFound() from e
    except OSError as e:
        logger.error("Failed to delete %s: %s", path, e)
        raise StorageError("Failed to delete video") from e
    logger.info("Deleted video: %s/%s", partition.name, filename)
