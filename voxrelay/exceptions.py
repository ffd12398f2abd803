"""Typed exceptions for voxrelay.

Hierarchy:
    VoxRelayError (base)
    +-- ServiceNotConfiguredError
    +-- ConfigError
    |   +-- CollaboratorLoadError
    +-- SessionError
    |   +-- SessionNotFoundError
    |   +-- TransportConflictError
    |   +-- InvalidTransitionError
    +-- CollaboratorError
    |   +-- RecognizerError
    |   +-- GenerationError
    |   +-- SynthesisError
    |   +-- CollaboratorTimeoutError
    +-- TransportError
    |   +-- HandshakeError
    |   +-- ChannelClosedError
    |   +-- ReconnectExhaustedError
    +-- InvalidRequestError
"""

from __future__ import annotations


class VoxRelayError(Exception):
    """Base for all voxrelay exceptions."""


class ServiceNotConfiguredError(VoxRelayError):
    """A required component was not configured at startup.

    Raised by FastAPI dependencies when app.state is missing a component.
    Maps to HTTP 503.
    """

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name
        super().__init__(f"{service_name} not configured on this server")


# --- Configuration ---


class ConfigError(VoxRelayError):
    """Runtime configuration error."""


class CollaboratorLoadError(ConfigError):
    """A collaborator implementation could not be imported or instantiated."""

    def __init__(self, import_path: str, reason: str) -> None:
        self.import_path = import_path
        self.reason = reason
        super().__init__(f"Cannot load collaborator '{import_path}': {reason}")


# --- Session ---


class SessionError(VoxRelayError):
    """Client session error."""


class SessionNotFoundError(SessionError):
    """No live session for the given client id."""

    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        super().__init__(f"Session '{client_id}' not found")


class TransportConflictError(SessionError):
    """HTTP fallback used while the session has a socket sub-channel attached."""

    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        super().__init__(
            f"Session '{client_id}' is connected over sockets; HTTP fallback is not allowed"
        )


class InvalidTransitionError(SessionError):
    """Invalid assistant state transition."""

    def __init__(self, from_state: str, to_state: str) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state} -> {to_state}")


# --- Collaborators ---


class CollaboratorError(VoxRelayError):
    """An external collaborator (recognizer, generator, synthesizer) failed."""


class RecognizerError(CollaboratorError):
    """Speech recognizer could not be opened or failed mid-stream."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Speech recognizer error: {reason}")


class GenerationError(CollaboratorError):
    """Response generator failed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Response generation failed: {reason}")


class SynthesisError(CollaboratorError):
    """Speech synthesizer failed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Speech synthesis failed: {reason}")


class CollaboratorTimeoutError(CollaboratorError):
    """Collaborator did not answer within the configured timeout."""

    def __init__(self, collaborator: str, timeout_seconds: float) -> None:
        self.collaborator = collaborator
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{collaborator} did not respond within {timeout_seconds}s")


# --- Transport (client side) ---


class TransportError(VoxRelayError):
    """Client transport error."""


class HandshakeError(TransportError):
    """A sub-channel opened but its readiness handshake did not complete."""

    def __init__(self, channel: str, reason: str) -> None:
        self.channel = channel
        self.reason = reason
        super().__init__(f"Handshake failed on {channel} channel: {reason}")


class ChannelClosedError(TransportError):
    """A send was attempted on a sub-channel that is no longer open."""

    def __init__(self, channel: str, reason: str = "closed") -> None:
        self.channel = channel
        self.reason = reason
        super().__init__(f"{channel} channel unavailable: {reason}")


class ReconnectExhaustedError(TransportError):
    """The reconnect attempt ceiling was reached."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Gave up reconnecting after {attempts} attempts")


# --- Request ---


class InvalidRequestError(VoxRelayError):
    """Invalid request payload or parameter."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)
