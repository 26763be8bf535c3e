"""Audio track decoding to 16-bit PCM.

Tries soundfile first (handles WAV/FLAC/OGG/AIFF natively without
subprocess spawning). Falls back to ffprobe/ffmpeg for MP3/M4A and the
audio tracks of video containers, which libsndfile cannot read.

Samples are returned at the native sample rate in the decoder's
interleaved channel order; nothing is resampled or downmixed here.
"""

import json
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from ..config import DECODE_TIMEOUT_S, PROBE_TIMEOUT_S

logger = logging.getLogger(__name__)

BACKEND_SOUNDFILE = "soundfile"
BACKEND_FFMPEG = "ffmpeg"


class DecodeError(Exception):
    """Raised when a media file cannot be opened or decoded."""


@dataclass(frozen=True)
class AudioTrack:
    """One audio stream inside a media asset."""

    index: int
    sample_rate: int = 0
    channels: int = 0


@dataclass
class MediaAsset:
    """An opened media file and the audio tracks it contains."""

    path: str
    backend: str
    audio_tracks: list[AudioTrack] = field(default_factory=list)


class AudioDecoder:
    """Opens media files and decodes their audio to int16 PCM.

    Args:
        ffmpeg: ffmpeg executable name or path.
        ffprobe: ffprobe executable name or path.
        timeout: Seconds allowed for a full ffmpeg decode.
    """

    def __init__(
        self,
        ffmpeg: str = "ffmpeg",
        ffprobe: str = "ffprobe",
        timeout: float = DECODE_TIMEOUT_S,
    ) -> None:
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.timeout = timeout

    def open_asset(self, path: str | Path) -> MediaAsset:
        """Probe a media file for its audio tracks.

        Raises:
            DecodeError: If the file cannot be opened by either backend.
        """
        import soundfile as sf

        path = str(path)
        try:
            info = sf.info(path)
        except (RuntimeError, OSError):
            # soundfile can't open this format (MP3/M4A/video), try ffprobe
            return self._probe_with_ffprobe(path)

        track = AudioTrack(index=0, sample_rate=info.samplerate, channels=info.channels)
        return MediaAsset(path=path, backend=BACKEND_SOUNDFILE, audio_tracks=[track])

    def load_audio_track(self, asset: MediaAsset) -> AudioTrack | None:
        """Return the first audio track, or None if the asset has none."""
        if not asset.audio_tracks:
            return None
        return asset.audio_tracks[0]

    def decode_pcm16(self, asset: MediaAsset, track: AudioTrack) -> np.ndarray:
        """Decode a whole audio track to signed 16-bit samples.

        Returns:
            1D int16 array of interleaved samples.

        Raises:
            DecodeError: If decoding fails.
        """
        if asset.backend == BACKEND_SOUNDFILE:
            return self._decode_with_soundfile(asset.path)
        return self._decode_with_ffmpeg(asset.path, track)

    def _decode_with_soundfile(self, path: str) -> np.ndarray:
        import soundfile as sf

        try:
            data, _ = sf.read(path, dtype="int16", always_2d=True)
        except (RuntimeError, OSError) as e:
            raise DecodeError(f"soundfile could not decode {path}: {e}") from e
        # Row-major flatten of (frames, channels) keeps interleaved order
        return np.ascontiguousarray(data).reshape(-1)

    def _probe_with_ffprobe(self, path: str) -> MediaAsset:
        try:
            result = subprocess.run(
                [
                    self.ffprobe,
                    "-v",
                    "error",
                    "-select_streams",
                    "a",
                    "-show_entries",
                    "stream=index,sample_rate,channels",
                    "-of",
                    "json",
                    path,
                ],
                capture_output=True,
                timeout=PROBE_TIMEOUT_S,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise DecodeError(f"ffprobe failed for {path}: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise DecodeError(f"ffprobe could not open {path}: {stderr}")

        try:
            streams = json.loads(result.stdout or b"{}").get("streams", [])
        except ValueError as e:
            raise DecodeError(f"Unparseable ffprobe output for {path}") from e

        # -map 0:a:N addresses audio streams by their position among audio streams
        tracks = [
            AudioTrack(
                index=position,
                sample_rate=int(stream.get("sample_rate") or 0),
                channels=int(stream.get("channels") or 0),
            )
            for position, stream in enumerate(streams)
        ]
        return MediaAsset(path=path, backend=BACKEND_FFMPEG, audio_tracks=tracks)

    def _decode_with_ffmpeg(self, path: str, track: AudioTrack) -> np.ndarray:
        try:
            result = subprocess.run(
                [
                    self.ffmpeg,
                    "-nostdin",
                    "-i",
                    path,
                    "-map",
                    f"0:a:{track.index}",
                    "-f",
                    "s16le",
                    "-acodec",
                    "pcm_s16le",
                    "-loglevel",
                    "error",
                    "pipe:1",
                ],
                capture_output=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise DecodeError(f"ffmpeg failed for {path}: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise DecodeError(f"ffmpeg could not decode {path}: {stderr}")

        pcm = result.stdout
        if len(pcm) % 2:
            logger.debug("Dropping trailing odd byte from ffmpeg output for %s", path)
            pcm = pcm[:-1]
        return np.frombuffer(pcm, dtype="<i2").astype(np.int16)
