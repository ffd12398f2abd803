"""Client half: transport, reconnect backoff, and assistant status."""

from voxrelay.client.backoff import ReconnectPolicy
from voxrelay.client.status import AssistantStatusTracker
from voxrelay.client.transport import VoiceTransport

__all__ = [
    "AssistantStatusTracker",
    "ReconnectPolicy",
    "VoiceTransport",
]
