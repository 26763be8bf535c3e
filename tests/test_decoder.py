"""Tests for the soundfile / ffmpeg audio decoder."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import soundfile as sf

from fastplayer.waveform.decoder import (
    BACKEND_FFMPEG,
    BACKEND_SOUNDFILE,
    AudioDecoder,
    AudioTrack,
    DecodeError,
    MediaAsset,
)


def _completed(stdout=b"", stderr=b"", returncode=0):
    result = MagicMock()
    result.stdout = stdout
    result.stderr = stderr
    result.returncode = returncode
    return result


@pytest.fixture
def decoder():
    return AudioDecoder()


@pytest.fixture
def mono_wav(tmp_path):
    """A real 16-bit mono WAV file."""
    pcm = np.array([0, 1000, -1000, 32767, -32768, 5], dtype=np.int16)
    path = tmp_path / "mono.wav"
    sf.write(str(path), pcm, 8000, subtype="PCM_16")
    return path, pcm


@pytest.fixture
def stereo_wav(tmp_path):
    """A real 16-bit stereo WAV file."""
    frames = np.array([[1, -1], [2, -2], [3, -3]], dtype=np.int16)
    path = tmp_path / "stereo.wav"
    sf.write(str(path), frames, 22050, subtype="PCM_16")
    return path, frames


# =============================================================================
# soundfile path tests
# =============================================================================


class TestSoundfileBackend:
    """WAV/FLAC/OGG files go through soundfile."""

    def test_open_wav(self, decoder, mono_wav):
        path, _ = mono_wav
        asset = decoder.open_asset(path)
        assert asset.backend == BACKEND_SOUNDFILE
        assert asset.audio_tracks == [AudioTrack(index=0, sample_rate=8000, channels=1)]

    def test_decode_mono_samples_exactly(self, decoder, mono_wav):
        path, pcm = mono_wav
        asset = decoder.open_asset(path)
        result = decoder.decode_pcm16(asset, decoder.load_audio_track(asset))
        assert result.dtype == np.int16
        np.testing.assert_array_equal(result, pcm)

    def test_stereo_keeps_interleaved_order(self, decoder, stereo_wav):
        path, _ = stereo_wav
        asset = decoder.open_asset(path)
        result = decoder.decode_pcm16(asset, decoder.load_audio_track(asset))
        assert result.tolist() == [1, -1, 2, -2, 3, -3]

    def test_no_resampling(self, decoder, stereo_wav):
        path, _ = stereo_wav
        asset = decoder.open_asset(path)
        assert asset.audio_tracks[0].sample_rate == 22050

    def test_read_failure_raises_decode_error(self, decoder, mono_wav):
        path, _ = mono_wav
        asset = decoder.open_asset(path)
        with patch("soundfile.read", side_effect=RuntimeError("truncated")):
            with pytest.raises(DecodeError):
                decoder.decode_pcm16(asset, asset.audio_tracks[0])


# =============================================================================
# ffprobe / ffmpeg path tests
# =============================================================================


class TestFfmpegBackend:
    """Formats libsndfile cannot open fall back to ffprobe + ffmpeg."""

    def test_unreadable_by_soundfile_probes_with_ffprobe(self, decoder, tmp_path):
        movie = tmp_path / "clip.mp4"
        movie.write_bytes(b"\x00\x00\x00\x18ftypmp42")
        probe = json.dumps(
            {"streams": [{"index": 1, "sample_rate": "48000", "channels": 2}]}
        ).encode()

        with patch("subprocess.run", return_value=_completed(stdout=probe)) as run:
            asset = decoder.open_asset(movie)

        assert run.call_args.args[0][0] == "ffprobe"
        assert asset.backend == BACKEND_FFMPEG
        assert asset.audio_tracks == [AudioTrack(index=0, sample_rate=48000, channels=2)]

    def test_video_without_audio_has_no_tracks(self, decoder, tmp_path):
        movie = tmp_path / "silent.mp4"
        movie.write_bytes(b"\x00" * 32)
        with patch("subprocess.run", return_value=_completed(stdout=b'{"streams": []}')):
            asset = decoder.open_asset(movie)
        assert asset.audio_tracks == []
        assert decoder.load_audio_track(asset) is None

    def test_empty_probe_output_means_no_tracks(self, decoder, tmp_path):
        movie = tmp_path / "silent.mov"
        movie.write_bytes(b"\x00" * 32)
        with patch("subprocess.run", return_value=_completed(stdout=b"{}")):
            assert decoder.open_asset(movie).audio_tracks == []

    def test_probe_failure_raises(self, decoder, tmp_path):
        bogus = tmp_path / "bogus.bin"
        bogus.write_bytes(b"junk")
        with patch("subprocess.run", return_value=_completed(stderr=b"Invalid data", returncode=1)):
            with pytest.raises(DecodeError, match="Invalid data"):
                decoder.open_asset(bogus)

    def test_missing_ffprobe_raises(self, decoder, tmp_path):
        bogus = tmp_path / "bogus.m4a"
        bogus.write_bytes(b"junk")
        with patch("subprocess.run", side_effect=FileNotFoundError("ffprobe")):
            with pytest.raises(DecodeError):
                decoder.open_asset(bogus)

    def test_missing_file_raises(self, decoder, tmp_path):
        with patch("subprocess.run", return_value=_completed(stderr=b"No such file", returncode=1)):
            with pytest.raises(DecodeError):
                decoder.open_asset(tmp_path / "gone.mp3")

    def test_decode_reads_s16le_pipe(self, decoder):
        pcm = np.array([0, 256, -2, 32767, -32768], dtype="<i2")
        asset = MediaAsset("/clip.mp4", BACKEND_FFMPEG, [AudioTrack(index=0)])
        with patch("subprocess.run", return_value=_completed(stdout=pcm.tobytes())) as run:
            result = decoder.decode_pcm16(asset, asset.audio_tracks[0])

        cmd = run.call_args.args[0]
        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-f") + 1] == "s16le"
        assert cmd[cmd.index("-map") + 1] == "0:a:0"
        assert "-ar" not in cmd
        assert "-ac" not in cmd
        assert result.dtype == np.int16
        assert result.tolist() == [0, 256, -2, 32767, -32768]

    def test_decode_drops_odd_trailing_byte(self, decoder):
        asset = MediaAsset("/clip.mp4", BACKEND_FFMPEG, [AudioTrack(index=0)])
        with patch("subprocess.run", return_value=_completed(stdout=b"\x01\x00\x02")):
            assert decoder.decode_pcm16(asset, asset.audio_tracks[0]).tolist() == [1]

    def test_decode_failure_raises(self, decoder):
        asset = MediaAsset("/clip.mp4", BACKEND_FFMPEG, [AudioTrack(index=0)])
        with patch("subprocess.run", return_value=_completed(stderr=b"corrupt", returncode=1)):
            with pytest.raises(DecodeError, match="corrupt"):
                decoder.decode_pcm16(asset, asset.audio_tracks[0])

    def test_decode_timeout_raises(self, decoder):
        asset = MediaAsset("/clip.mp4", BACKEND_FFMPEG, [AudioTrack(index=0)])
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired("ffmpeg", 1)):
            with pytest.raises(DecodeError):
                decoder.decode_pcm16(asset, asset.audio_tracks[0])
