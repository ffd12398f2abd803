"""Centralized configuration via pydantic-settings.

All ``VOXRELAY_*`` environment variables are read, validated, and exposed here.
Logging env vars (``VOXRELAY_LOG_FORMAT``, ``VOXRELAY_LOG_LEVEL``) stay in
``voxrelay.logging`` so logging can be configured before settings load.

Usage::

    from voxrelay.config.settings import get_settings

    settings = get_settings()
    print(settings.session.echo_suppress_window_ms)

``.env`` files in the working directory are loaded automatically.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """HTTP server, socket keepalive, and idle-session sweeping."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    host: str = Field(default="127.0.0.1", validation_alias="VOXRELAY_HOST")
    port: int = Field(default=8000, ge=1, le=65535, validation_alias="VOXRELAY_PORT")
    cors_origins: str = Field(default="*", validation_alias="VOXRELAY_CORS_ORIGINS")
    ws_keepalive_interval_s: float = Field(
        default=30.0, gt=0, validation_alias="VOXRELAY_WS_KEEPALIVE_INTERVAL_S"
    )
    sweep_interval_s: float = Field(
        default=5.0, gt=0, le=600, validation_alias="VOXRELAY_SWEEP_INTERVAL_S"
    )
    polling_idle_timeout_s: float = Field(
        default=60.0, gt=0, le=3600, validation_alias="VOXRELAY_POLLING_IDLE_TIMEOUT_S"
    )
    max_audio_frame_bytes: int = Field(
        default=1_048_576, ge=1024, validation_alias="VOXRELAY_MAX_AUDIO_FRAME_BYTES"
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """CORS origins as a list (parsed from comma-separated string)."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @model_validator(mode="after")
    def _sweep_lt_idle(self) -> ServerSettings:
        if self.sweep_interval_s >= self.polling_idle_timeout_s:
            msg = "sweep_interval_s must be < polling_idle_timeout_s"
            raise ValueError(msg)
        return self


class SessionSettings(BaseSettings):
    """Per-session buffers, echo suppression, and playback estimation."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    echo_suppress_window_ms: int = Field(
        default=5000, ge=0, le=60_000, validation_alias="VOXRELAY_ECHO_SUPPRESS_WINDOW_MS"
    )
    min_transcript_chars: int = Field(
        default=2, ge=0, le=100, validation_alias="VOXRELAY_MIN_TRANSCRIPT_CHARS"
    )
    language_history_max: int = Field(
        default=20, ge=1, le=1000, validation_alias="VOXRELAY_LANGUAGE_HISTORY_MAX"
    )
    language_history_reported: int = Field(
        default=3, ge=0, le=50, validation_alias="VOXRELAY_LANGUAGE_HISTORY_REPORTED"
    )
    outbound_queue_max: int = Field(
        default=50, ge=1, le=10_000, validation_alias="VOXRELAY_OUTBOUND_QUEUE_MAX"
    )
    pending_audio_max: int = Field(
        default=5, ge=1, le=100, validation_alias="VOXRELAY_PENDING_AUDIO_MAX"
    )
    playback_min_ms: int = Field(
        default=2000, ge=0, le=60_000, validation_alias="VOXRELAY_PLAYBACK_MIN_MS"
    )
    playback_bytes_per_second: int = Field(
        default=32_000, gt=0, validation_alias="VOXRELAY_PLAYBACK_BYTES_PER_SECOND"
    )

    @model_validator(mode="after")
    def _reported_le_max(self) -> SessionSettings:
        if self.language_history_reported > self.language_history_max:
            msg = "language_history_reported must be <= language_history_max"
            raise ValueError(msg)
        return self


class PipelineSettings(BaseSettings):
    """Generation/synthesis options and collaborator timeout."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    collaborator_timeout_s: float = Field(
        default=10.0, gt=0, le=300, validation_alias="VOXRELAY_COLLABORATOR_TIMEOUT_S"
    )
    max_tokens: int = Field(default=75, ge=1, le=4096, validation_alias="VOXRELAY_MAX_TOKENS")
    temperature: float = Field(
        default=0.5, ge=0.0, le=2.0, validation_alias="VOXRELAY_TEMPERATURE"
    )
    model: str | None = Field(default=None, validation_alias="VOXRELAY_LLM_MODEL")
    default_voice: str | None = Field(default=None, validation_alias="VOXRELAY_DEFAULT_VOICE")


class ProviderSettings(BaseSettings):
    """Dotted import paths of the three collaborator implementations."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    recognizer: str | None = Field(default=None, validation_alias="VOXRELAY_RECOGNIZER")
    generator: str | None = Field(default=None, validation_alias="VOXRELAY_GENERATOR")
    synthesizer: str | None = Field(default=None, validation_alias="VOXRELAY_SYNTHESIZER")


class ClientSettings(BaseSettings):
    """Client transport: polling cadence, reconnect backoff, handshake."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    server_url: str = Field(
        default="http://localhost:8000", validation_alias="VOXRELAY_SERVER_URL"
    )
    poll_interval_s: float = Field(
        default=0.5, gt=0, le=60, validation_alias="VOXRELAY_POLL_INTERVAL_S"
    )
    reconnect_base_s: float = Field(
        default=1.0, ge=0, le=60, validation_alias="VOXRELAY_RECONNECT_BASE_S"
    )
    reconnect_increment_s: float = Field(
        default=0.5, ge=0, le=60, validation_alias="VOXRELAY_RECONNECT_INCREMENT_S"
    )
    reconnect_max_s: float = Field(
        default=5.0, gt=0, le=300, validation_alias="VOXRELAY_RECONNECT_MAX_S"
    )
    max_reconnect_attempts: int = Field(
        default=10, ge=0, le=1000, validation_alias="VOXRELAY_MAX_RECONNECT_ATTEMPTS"
    )
    handshake_timeout_s: float = Field(
        default=10.0, gt=0, le=120, validation_alias="VOXRELAY_HANDSHAKE_TIMEOUT_S"
    )
    http_timeout_s: float = Field(
        default=10.0, gt=0, le=300, validation_alias="VOXRELAY_HTTP_TIMEOUT_S"
    )

    @model_validator(mode="after")
    def _base_le_max(self) -> ClientSettings:
        if self.reconnect_base_s > self.reconnect_max_s:
            msg = "reconnect_base_s must be <= reconnect_max_s"
            raise ValueError(msg)
        return self


class VoxRelaySettings(BaseSettings):
    """Root settings. Aggregates all subsystem settings.

    Loads ``.env`` from the current directory when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    client: ClientSettings = Field(default_factory=ClientSettings)


@lru_cache(maxsize=1)
def get_settings() -> VoxRelaySettings:
    """Return the singleton ``VoxRelaySettings`` instance.

    The result is cached; subsequent calls return the same object.
    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    return VoxRelaySettings()
