"""Decode-and-downsample pipeline producing display envelopes."""

import logging
from pathlib import Path

import numpy as np

from ..config import ENVELOPE_LENGTH, PCM16_FULL_SCALE
from .decoder import AudioDecoder

logger = logging.getLogger(__name__)


def normalize_pcm16(samples: np.ndarray) -> np.ndarray:
    """Scale signed 16-bit samples to float32 in [-1.0, 1.0)."""
    return np.asarray(samples, dtype=np.float32) / np.float32(PCM16_FULL_SCALE)


def downsample(samples: np.ndarray, count: int = ENVELOPE_LENGTH) -> np.ndarray:
    """Reduce a sample sequence to ``count`` points by nearest-index selection.

    Output point ``i`` is ``samples[floor(i * len(samples) / count)]``.
    Sequences no longer than ``count`` are returned unchanged, so the
    result may be shorter than ``count``.
    """
    length = len(samples)
    if length <= count:
        return samples
    # Integer arithmetic keeps the floor exact for very long tracks
    indices = (np.arange(count, dtype=np.int64) * length) // count
    return samples[indices]


def extract_envelope(
    file_path: str | Path,
    decoder: AudioDecoder | None = None,
    count: int = ENVELOPE_LENGTH,
) -> np.ndarray:
    """Decode a media file's first audio track into a display envelope.

    The whole track is materialized in memory before downsampling.

    Args:
        file_path: Path to a readable media file.
        decoder: Decoder to use. Defaults to a new ``AudioDecoder``.
        count: Maximum envelope length.

    Returns:
        1D float32 array of at most ``count`` amplitudes in [-1.0, 1.0].
        Empty if the file has no audio track.

    Raises:
        DecodeError: If the file cannot be opened or decoded.
    """
    decoder = decoder or AudioDecoder()

    asset = decoder.open_asset(file_path)
    track = decoder.load_audio_track(asset)
    if track is None:
        logger.info("No audio track in %s", file_path)
        return np.array([], dtype=np.float32)

    pcm = decoder.decode_pcm16(asset, track)
    samples = normalize_pcm16(pcm)
    envelope = downsample(samples, count)
    logger.debug(
        "Extracted %d-point envelope from %d samples of %s",
        len(envelope),
        len(samples),
        file_path,
    )
    return envelope
