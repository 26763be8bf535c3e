"""File identity and cache key derivation.

A cache key is the SHA-256 of ``"<name>_<size>_<mtime ISO-8601>"``. This is
a cheap metadata identity, not a content hash: replacing a file with one of
identical name, size and modification time reuses the old entry, and a
touch-only mtime bump forces regeneration.
"""

import hashlib
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

_ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


@dataclass(frozen=True)
class FileIdentity:
    """Filesystem metadata that identifies one version of a media file."""

    name: str
    size_bytes: int
    modified_at: datetime

    @classmethod
    def from_stat(cls, path: str | Path, stat: os.stat_result) -> "FileIdentity":
        return cls(
            name=Path(path).name,
            size_bytes=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )


def read_identity(path: str | Path) -> FileIdentity | None:
    """Read the identity of a file from its metadata.

    Returns None if the file is missing or its metadata cannot be read.
    """
    try:
        stat = os.stat(path)
    except OSError:
        logger.warning("Cannot read file metadata for %s", path, exc_info=True)
        return None
    return FileIdentity.from_stat(path, stat)


def canonical_string(identity: FileIdentity) -> str:
    """Build the ``name_size_timestamp`` string the key is hashed from."""
    modified = identity.modified_at
    if modified.tzinfo is not None:
        modified = modified.astimezone(timezone.utc)
    return f"{identity.name}_{identity.size_bytes}_{modified.strftime(_ISO_FORMAT)}"


def derive_key(identity: FileIdentity) -> str:
    """Compute the lowercase hex SHA-256 cache key for a file identity."""
    hasher = hashlib.sha256()
    hasher.update(canonical_string(identity).encode("utf-8"))
    return hasher.hexdigest()


def cache_key_for(path: str | Path) -> str | None:
    """Derive the cache key for a file on disk, or None if unreadable."""
    identity = read_identity(path)
    if identity is None:
        return None
    return derive_key(identity)
