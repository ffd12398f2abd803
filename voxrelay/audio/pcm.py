"""PCM16 conversion and level metering.

Pure functions over numpy arrays / raw bytes. Capture-side quantization is
deterministic: samples are clamped to [-1, 1], negatives scale by 32768 and
positives by 32767, and the product is truncated toward zero. So 1.0 maps to
32767, -1.0 to -32768, and 0.0 to 0.
"""

from __future__ import annotations

import numpy as np

from voxrelay._audio_constants import (
    AUDIO_LEVEL_MAX,
    BYTES_PER_SAMPLE_INT16,
    PCM_INT16_NEG_SCALE,
    PCM_INT16_POS_SCALE,
)

__all__ = [
    "audio_level",
    "estimate_playback_ms",
    "float32_to_pcm16",
    "pcm16_bytes_to_array",
    "pcm16_to_float32",
]


def float32_to_pcm16(samples: np.ndarray) -> bytes:
    """Quantize float samples in [-1, 1] to PCM16 little-endian bytes.

    Out-of-range values are clamped. NaN is treated as silence.
    """
    data = np.nan_to_num(np.asarray(samples, dtype=np.float32), nan=0.0)
    clamped = np.clip(data, -1.0, 1.0)
    scaled = np.where(clamped < 0, clamped * PCM_INT16_NEG_SCALE, clamped * PCM_INT16_POS_SCALE)
    return np.trunc(scaled).astype("<i2").tobytes()


def pcm16_bytes_to_array(frame: bytes) -> np.ndarray:
    """View PCM16 LE bytes as int16 samples. A trailing odd byte is ignored."""
    usable = len(frame) - (len(frame) % BYTES_PER_SAMPLE_INT16)
    return np.frombuffer(frame[:usable], dtype="<i2")


def pcm16_to_float32(frame: bytes) -> np.ndarray:
    """Convert PCM16 LE bytes back to float32 in [-1.0, ~1.0)."""
    return pcm16_bytes_to_array(frame).astype(np.float32) / PCM_INT16_NEG_SCALE


def audio_level(frame: bytes) -> float:
    """Normalized RMS of the frame scaled to 0-100.

    Returns 0.0 for frames with no complete sample.
    """
    samples = pcm16_bytes_to_array(frame)
    if samples.size == 0:
        return 0.0
    rms = float(np.sqrt(np.mean(np.square(samples.astype(np.float64)))))
    return min(AUDIO_LEVEL_MAX, rms / PCM_INT16_NEG_SCALE * AUDIO_LEVEL_MAX)


def estimate_playback_ms(
    audio_bytes: int,
    *,
    bytes_per_second: int,
    minimum_ms: int,
) -> int:
    """Rough playback duration of a compressed reply, from its byte size.

    A heuristic, not a decode: the reply is assumed to stream at a constant
    ``bytes_per_second``, with ``minimum_ms`` as a floor.
    """
    return max(minimum_ms, int(audio_bytes / bytes_per_second * 1000))
