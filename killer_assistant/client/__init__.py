"""
Capture-side orchestration for Killer Assistant.

Session gate, capture loop, status line and the HTTP client they use.
"""

from .api import AssistantClient, RelayStatus
from .capture import CaptureDenied, CaptureLoop, CaptureState
from .session import SessionGate

__all__ = ["AssistantClient", "CaptureDenied", "CaptureLoop", "CaptureState", "RelayStatus", "SessionGate"]
