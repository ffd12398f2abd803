"""voxrelay: real-time voice session orchestrator (STT -> LLM -> TTS)."""

__version__ = "0.1.0"
