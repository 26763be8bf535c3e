"""Configuration management for FastPlayer."""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Default paths
APP_DIR = Path.home() / ".fastplayer"
WAVEFORM_CACHE_DIR = APP_DIR / "WaveformCache"
LOG_DIR = APP_DIR / "logs"

# Cache directory override
CACHE_DIR_ENV = "FASTPLAYER_CACHE_DIR"

# Waveform parameters
ENVELOPE_LENGTH = 1000
PCM16_FULL_SCALE = 32768.0
CACHE_EXTENSION = ".waveform"

# Decoder subprocess limits (seconds)
PROBE_TIMEOUT_S = 15
DECODE_TIMEOUT_S = 120

# Playback position polling (10x per second)
POSITION_POLL_INTERVAL_MS = 100

DEFAULT_MAX_WORKERS = 2


def get_cache_dir() -> Path:
    """Get the waveform cache directory.

    Checks the FASTPLAYER_CACHE_DIR environment variable first, then
    falls back to ~/.fastplayer/WaveformCache.
    """
    override = os.environ.get(CACHE_DIR_ENV)
    if override and override.strip():
        return Path(override.strip()).expanduser()
    return WAVEFORM_CACHE_DIR


class Config:
    """Application configuration."""

    def __init__(
        self,
        waveform_cache_dir: Optional[Path] = None,
        max_workers: Optional[int] = None,
    ):
        self._waveform_cache_dir = waveform_cache_dir
        self.max_workers = max_workers or DEFAULT_MAX_WORKERS

    @property
    def waveform_cache_dir(self) -> Path:
        """Return the configured cache directory, honouring the env override."""
        return self._waveform_cache_dir or get_cache_dir()


LOG_FILE_NAME = "fastplayer.log"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

_LOG_FORMATTER = logging.Formatter(
    "%(asctime)s %(name)s %(levelname)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
)


def _is_console_handler(handler: logging.Handler) -> bool:
    # FileHandler subclasses StreamHandler
    return isinstance(handler, logging.StreamHandler) and not isinstance(
        handler, logging.FileHandler
    )


def setup_logging(verbose: bool = False, log_dir: Optional[Path] = None) -> None:
    """Attach console and rotating file handlers to the ``fastplayer`` logger.

    Child loggers such as ``fastplayer.waveform.store`` propagate to it.
    The file handler always records DEBUG. If the log directory cannot be
    created, logging continues on the console only.

    Calling again does not add handlers; it only updates the console level,
    so ``--verbose`` still takes effect after an earlier setup.

    Args:
        verbose: Console level DEBUG instead of INFO.
        log_dir: Directory for ``fastplayer.log``. Defaults to ``LOG_DIR``.
    """
    console_level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger("fastplayer")
    logger.setLevel(logging.DEBUG)

    existing = [h for h in logger.handlers if _is_console_handler(h)]
    if existing:
        for handler in existing:
            handler.setLevel(console_level)
        return

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(_LOG_FORMATTER)
    logger.addHandler(console)

    log_dir = log_dir if log_dir is not None else LOG_DIR
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
    except OSError:
        logger.warning("Cannot write log file in %s, logging to console only", log_dir, exc_info=True)
        return
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(_LOG_FORMATTER)
    logger.addHandler(file_handler)


# Global config instance
config = Config()
