"""Tests for PCM16 quantization, level metering, and playback estimation."""

from __future__ import annotations

import numpy as np

from voxrelay.audio.pcm import (
    audio_level,
    estimate_playback_ms,
    float32_to_pcm16,
    pcm16_bytes_to_array,
    pcm16_to_float32,
)


def _samples(pcm: bytes) -> list[int]:
    return np.frombuffer(pcm, dtype="<i2").tolist()


class TestFloat32ToPcm16:
    def test_full_scale_positive(self) -> None:
        assert _samples(float32_to_pcm16(np.array([1.0], dtype=np.float32))) == [32767]

    def test_full_scale_negative(self) -> None:
        assert _samples(float32_to_pcm16(np.array([-1.0], dtype=np.float32))) == [-32768]

    def test_zero(self) -> None:
        assert _samples(float32_to_pcm16(np.array([0.0], dtype=np.float32))) == [0]

    def test_clamps_out_of_range(self) -> None:
        pcm = float32_to_pcm16(np.array([2.5, -3.0], dtype=np.float32))
        assert _samples(pcm) == [32767, -32768]

    def test_truncates_toward_zero(self) -> None:
        # 0.5 * 32767 = 16383.5 -> 16383; -0.5 * 32768 = -16384 exactly
        pcm = float32_to_pcm16(np.array([0.5, -0.5], dtype=np.float32))
        assert _samples(pcm) == [16383, -16384]

    def test_nan_is_silence(self) -> None:
        pcm = float32_to_pcm16(np.array([np.nan], dtype=np.float32))
        assert _samples(pcm) == [0]

    def test_little_endian_two_bytes_per_sample(self) -> None:
        pcm = float32_to_pcm16(np.array([1.0, 0.0], dtype=np.float32))
        assert pcm == b"\xff\x7f\x00\x00"

    def test_accepts_python_list(self) -> None:
        assert len(float32_to_pcm16([0.1, 0.2, 0.3])) == 6  # type: ignore[arg-type]


class TestPcm16Decode:
    def test_odd_trailing_byte_ignored(self) -> None:
        arr = pcm16_bytes_to_array(b"\x01\x00\x02")
        assert arr.tolist() == [1]

    def test_to_float32_range(self) -> None:
        out = pcm16_to_float32(b"\x00\x80\xff\x7f")
        assert out.dtype == np.float32
        assert out[0] == -1.0
        assert 0.999 < out[1] < 1.0


class TestAudioLevel:
    def test_empty_frame_is_zero(self) -> None:
        assert audio_level(b"") == 0.0

    def test_single_byte_is_zero(self) -> None:
        assert audio_level(b"\x7f") == 0.0

    def test_silence_is_zero(self) -> None:
        assert audio_level(np.zeros(160, dtype="<i2").tobytes()) == 0.0

    def test_constant_amplitude(self) -> None:
        frame = np.full(160, 16384, dtype="<i2").tobytes()
        assert audio_level(frame) == 50.0

    def test_capped_at_100(self) -> None:
        frame = np.full(160, -32768, dtype="<i2").tobytes()
        assert audio_level(frame) == 100.0


class TestEstimatePlaybackMs:
    def test_floor_applies_to_small_blobs(self) -> None:
        assert estimate_playback_ms(1000, bytes_per_second=32000, minimum_ms=2000) == 2000

    def test_scales_with_size(self) -> None:
        assert estimate_playback_ms(96_000, bytes_per_second=32000, minimum_ms=2000) == 3000
