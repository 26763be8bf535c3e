"""Waveform extraction and caching."""

from .decoder import AudioDecoder, AudioTrack, DecodeError, MediaAsset
from .identity import FileIdentity, cache_key_for, derive_key, read_identity
from .pipeline import downsample, extract_envelope, normalize_pcm16
from .provider import EnvelopeRequest, EnvelopeResult, WaveformProvider, WaveformState
from .store import EnvelopeCacheStore

__all__ = [
    "AudioDecoder",
    "AudioTrack",
    "DecodeError",
    "EnvelopeCacheStore",
    "EnvelopeRequest",
    "EnvelopeResult",
    "FileIdentity",
    "MediaAsset",
    "WaveformProvider",
    "WaveformState",
    "cache_key_for",
    "derive_key",
    "downsample",
    "extract_envelope",
    "normalize_pcm16",
    "read_identity",
]
