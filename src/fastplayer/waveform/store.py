"""On-disk cache of waveform envelopes.

Each entry is one file, ``<key>.waveform``, holding a JSON array of
32-bit float amplitudes. There is no index: the key space is the
filename space. Every failure here degrades to a cache miss, so callers
never have to handle I/O errors from the store.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

import numpy as np

from ..config import CACHE_EXTENSION, ENVELOPE_LENGTH, config

logger = logging.getLogger(__name__)


class EnvelopeCacheStore:
    """Persistent key -> envelope mapping under a single cache directory.

    The directory is created lazily on first use. Writes go through a
    temporary file and ``os.replace`` so a crash never leaves a partially
    written entry behind.

    Args:
        cache_dir: Root directory for cache entries.
                   Defaults to ``~/.fastplayer/WaveformCache``.
    """

    def __init__(self, cache_dir: Path | None = None) -> None:
        self.cache_dir = Path(cache_dir) if cache_dir else config.waveform_cache_dir
        self._dir_ready = False

    def ensure_directory(self) -> bool:
        """Create the cache directory if needed.

        Returns:
            True if the directory exists afterwards, False if it could
            not be created (caching is then effectively disabled).
        """
        if self._dir_ready and self.cache_dir.is_dir():
            return True
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.warning("Cannot create waveform cache at %s", self.cache_dir, exc_info=True)
            self._dir_ready = False
            return False
        self._dir_ready = True
        return True

    def entry_path(self, key: str) -> Path:
        return self.cache_dir / f"{key}{CACHE_EXTENSION}"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> np.ndarray | None:
        """Look up a cached envelope.

        A corrupt entry is deleted so it cannot poison later lookups.

        Args:
            key: Cache key from ``derive_key``.

        Returns:
            The envelope as a float32 array, or None on a miss.
        """
        self.ensure_directory()
        path = self.entry_path(key)
        if not path.is_file():
            return None

        try:
            envelope = _decode_envelope(path.read_bytes())
        except (OSError, ValueError):
            logger.warning("Discarding unreadable waveform cache entry %s", path.name, exc_info=True)
            self._remove(path)
            return None

        logger.debug("Waveform cache hit %s (%d points)", key, len(envelope))
        return envelope

    def put(self, key: str, envelope: np.ndarray) -> bool:
        """Store an envelope, replacing any existing entry for the key.

        Returns:
            True if the entry was written, False if the write failed.
        """
        if not self.ensure_directory():
            return False

        payload = _encode_envelope(envelope)
        path = self.entry_path(key)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.cache_dir, prefix=f".{key}.", suffix=".tmp"
            )
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except OSError:
            logger.warning("Failed to write waveform cache entry %s", path.name, exc_info=True)
            if tmp_name is not None:
                self._remove(Path(tmp_name))
            return False

        logger.debug("Cached waveform %s (%d points)", key, len(envelope))
        return True

    def clear_all(self) -> int:
        """Delete every file in the cache directory.

        Individual failures are logged and skipped.

        Returns:
            Number of files removed.
        """
        try:
            entries = list(self.cache_dir.iterdir())
        except FileNotFoundError:
            return 0
        except OSError:
            logger.warning("Cannot list waveform cache at %s", self.cache_dir, exc_info=True)
            return 0

        removed = 0
        for entry in entries:
            if entry.is_file() and self._remove(entry):
                removed += 1
        logger.info("Cleared %d waveform cache entries", removed)
        return removed

    def stats(self) -> dict:
        """Return cache statistics.

        Returns:
            Dict with ``count`` (number of entries) and ``size_bytes``
            (total on-disk size of all files in the cache directory).

        Raises:
            OSError: If the cache directory exists but cannot be listed.
        """
        if not self.cache_dir.exists():
            return {"count": 0, "size_bytes": 0}

        count = 0
        size_bytes = 0
        for entry in self.cache_dir.iterdir():
            if not entry.is_file():
                continue
            try:
                size_bytes += entry.stat().st_size
            except FileNotFoundError:
                # Temp file of a concurrent put, already renamed into place
                continue
            if entry.suffix == CACHE_EXTENSION:
                count += 1
        return {"count": count, "size_bytes": size_bytes}

    def total_size_human(self) -> str:
        """Total cache size formatted as megabytes, e.g. ``"1.3 MB"``.

        Returns ``"Unknown"`` if the cache directory cannot be read.
        """
        try:
            size_bytes = self.stats()["size_bytes"]
        except OSError:
            logger.warning("Cannot measure waveform cache at %s", self.cache_dir, exc_info=True)
            return "Unknown"
        return f"{size_bytes / (1024 * 1024):.1f} MB"

    def _remove(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError:
            logger.warning("Failed to delete %s", path, exc_info=True)
            return False
        return True


def _encode_envelope(envelope: np.ndarray) -> bytes:
    values = np.asarray(envelope, dtype=np.float32).ravel()
    return json.dumps([float(v) for v in values]).encode("utf-8")


def _decode_envelope(data: bytes) -> np.ndarray:
    """Parse an entry body, raising ValueError for anything malformed."""
    try:
        values = json.loads(data.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ValueError("cache entry is not UTF-8") from e
    except RecursionError as e:
        raise ValueError("cache entry is nested too deeply") from e

    if not isinstance(values, list):
        raise ValueError("cache entry is not a list")
    if len(values) > ENVELOPE_LENGTH:
        raise ValueError(f"cache entry has {len(values)} points")
    for v in values:
        # bool is an int subclass; reject it along with non-numbers
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError(f"invalid amplitude {v!r}")

    try:
        with np.errstate(over="ignore", invalid="ignore"):
            envelope = np.asarray(values, dtype=np.float32)
    except OverflowError as e:
        raise ValueError("cache entry holds an out-of-range integer") from e

    # Finiteness is checked after the cast so float32 overflow counts too
    if not np.isfinite(envelope).all():
        raise ValueError("cache entry holds a non-finite amplitude")
    if envelope.size and float(np.abs(envelope).max()) > 1.0:
        raise ValueError("cache entry holds an amplitude outside [-1, 1]")
    return envelope
