"""Audio format constants shared by capture, ingest, and playback estimation.

PCM 16-bit little-endian mono at 16 kHz travels upstream; the synthesizer
returns one opaque ``audio/mpeg`` blob per reply.
"""

from __future__ import annotations

# --- PCM 16-bit format ---
PCM_INT16_MAX: int = 32767
PCM_INT16_MIN: int = -32768
# Negative floats scale by 32768, positive by 32767, so the full int16 range is used.
PCM_INT16_NEG_SCALE: float = 32768.0
PCM_INT16_POS_SCALE: float = 32767.0

BYTES_PER_SAMPLE_INT16: int = 2

# Recognizer input rate
STT_SAMPLE_RATE: int = 16000

# Synthesized reply format
TTS_MIME_TYPE: str = "audio/mpeg"

# Level metric range (percent)
AUDIO_LEVEL_MAX: float = 100.0
