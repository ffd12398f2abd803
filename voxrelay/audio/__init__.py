"""PCM16 audio helpers."""
