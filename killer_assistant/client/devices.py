"""
Capture device interfaces.

The capture loop only needs a screen handle that can be released and that
reports when its video ends, and a microphone that records one segment.
"""

import asyncio
from enum import Enum
from typing import Callable, List, Optional, Protocol


class FailureReason(Enum):
    """Why a capture device could not be acquired."""
    PERMISSION_DENIED = "permission-denied"
    NO_SOURCE = "no-source"
    UNKNOWN = "unknown"


class CaptureFailure(Exception):
    """Raised when a screen or microphone handle cannot be acquired."""
    def __init__(self, reason: FailureReason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason


class ScreenHandle(Protocol):
    def on_ended(self, callback: Callable[[], None]) -> None:
        """Register a callback fired when the shared video ends on its own."""

    def release(self) -> None:
        """Stop all tracks. Must tolerate being called more than once."""


class ScreenSource(Protocol):
    async def acquire(self) -> ScreenHandle:
        """Acquire a screen video+audio handle, raising CaptureFailure on refusal."""


class Microphone(Protocol):
    mime_type: str

    async def record(self, seconds: float) -> bytes:
        """Record one encoded segment. Cancelling the call stops the recording."""


class SpeechSynthesizer(Protocol):
    def speak(self, text: str, locale: str, rate: float) -> None:
        """Start speaking text without waiting for it to finish."""


class HeadlessScreen:
    """Screen handle without a video track, ended only by the user."""

    def __init__(self):
        self.released = False
        self._callbacks: List[Callable[[], None]] = []

    def on_ended(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def end(self) -> None:
        """Signal that the shared surface went away."""
        if self.released:
            return
        for callback in list(self._callbacks):
            callback()

    def release(self) -> None:
        self.released = True


class HeadlessScreenSource:
    """Screen source for terminals, where there is nothing to capture visually."""

    def __init__(self):
        self.current: Optional[HeadlessScreen] = None

    async def acquire(self) -> HeadlessScreen:
        await asyncio.sleep(0)
        self.current = HeadlessScreen()
        return self.current
