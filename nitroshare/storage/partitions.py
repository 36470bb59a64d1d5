from __future__ import annotations

"""
Storage partitioning.

Each principal owns one directory under the upload root, named by its
partition key (the email with every non-alphanumeric character replaced by
`_`). Partitions are created lazily and never removed; only their contents
expire.

The mapping is lossy (`a.b@x.io` and `a_b@x.io` share `a_b_x_io`), which is an
accepted limitation of the naming scheme.
"""

import logging
import re
from pathlib import Path

from nitroshare.core.exceptions import NotFound, StorageError

logger = logging.getLogger("nitroshare.storage")

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9]")
_KEY_RE = re.compile(r"^[A-Za-z0-9_]{1,255}$")

__all__ = ["partition_key", "is_partition_key", "partition_path", "ensure_partition"]


def partition_key(email: str) -> str:
    """`alice@example.com` → `alice_example_com`."""
    return _UNSAFE_RE.sub("_", email)


def is_partition_key(value: str) -> bool:
    return bool(_KEY_RE.fullmatch(value or ""))


def partition_path(root: Path, key: str) -> Path:
    """Path of the partition for `key` (not created).

    Raises `NotFound` for anything that is not a well-formed key, so callers on
    public routes never build paths from arbitrary input.
    """
    if not is_partition_key(key):
        raise NotFound()
    return root / key


def ensure_partition(root: Path, email: str) -> Path:
    """Return the principal's partition directory, creating it (and parents) if absent.

    Idempotent and safe to call concurrently: an already existing directory is
    success.
    """
    path = partition_path(root, partition_key(email))
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create partition %s: %s", path, e)
        raise StorageError("Unable to prepare user directory") from e
    return path
