"""Python client for the VoiceFlow API."""

from client.api import VoiceFlowAPIError, VoiceFlowClient
from client.export import recording_to_markdown
from client.polling import RecordingStatusPoller, TaskQueueView

__all__ = [
    "VoiceFlowAPIError",
    "VoiceFlowClient",
    "RecordingStatusPoller",
    "TaskQueueView",
    "recording_to_markdown",
]
