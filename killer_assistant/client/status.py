"""
Status line shown to the user while capturing.

Writes tagged with a cycle id are dropped once a newer cycle has written,
and after the capture stopped, so a late reply never overwrites newer state.
"""

import logging
from typing import Callable, Optional

from .api import RelayStatus
from .devices import FailureReason

logger = logging.getLogger(__name__)

READY = "স্ক্রিন শেয়ার করুন এবং বাংলায় কথা বলুন"
SHARING = "✅ স্ক্রিন শেয়ার চালু - এখন কথা বলুন"
STOPPED = "স্ক্রিন শেয়ার বন্ধ হয়েছে"
PROCESSING = "🤖 AI প্রসেসিং..."
NO_SPEECH = "🎤 কোন কথা শোনা যায়নি - আবার বলুন"
HEARD = "আপনি বললেন: {transcript}"
ANSWER = "AI সমাধান: {reply}"
DENIED = "সেবা অনুপলব্ধ! দয়া করে সাবস্ক্রিপশন আপগ্রেড করুন"
QUOTA = "টোকেন শেষ - দয়া করে সাবস্ক্রিপশন আপগ্রেড করুন"
VOICE_FAILED = "ভয়েস প্রসেসিং সমস্যা - আবার চেষ্টা করুন"
VOICE_UNREACHABLE = "ভয়েস সার্ভিস সংযোগ ব্যর্থ"
AI_FAILED = "AI সার্ভিস অনুপলব্ধ - আবার চেষ্টা করুন"
AI_UNREACHABLE = "AI সার্ভিস সংযোগ ব্যর্থ"
AI_EMPTY = "AI কোন উত্তর দেয়নি - আবার বলুন"
MIC_DENIED = "অডিও রেকর্ডিং ব্যর্থ - মাইক্রোফোন অনুমতি দিন"

CAPTURE_FAILED = {
    FailureReason.PERMISSION_DENIED: "স্ক্রিন শেয়ার অনুমতি দেওয়া হয়নি",
    FailureReason.NO_SOURCE: "শেয়ার করার মতো কোন স্ক্রিন পাওয়া যায়নি",
    FailureReason.UNKNOWN: "স্ক্রিন শেয়ার ব্যর্থ - আবার চেষ্টা করুন",
}

_TRANSCRIPTION_FAILURES = {
    RelayStatus.NO_SPEECH: NO_SPEECH,
    RelayStatus.ALLOWANCE_EXCEEDED: QUOTA,
    RelayStatus.FAILURE: VOICE_FAILED,
    RelayStatus.UNREACHABLE: VOICE_UNREACHABLE,
}

_COMPLETION_FAILURES = {
    RelayStatus.ALLOWANCE_EXCEEDED: QUOTA,
    RelayStatus.NO_RESPONSE: AI_EMPTY,
    RelayStatus.FAILURE: AI_FAILED,
    RelayStatus.UNREACHABLE: AI_UNREACHABLE,
}


def transcription_message(status: RelayStatus) -> str:
    return _TRANSCRIPTION_FAILURES.get(status, VOICE_FAILED)


def completion_message(status: RelayStatus) -> str:
    return _COMPLETION_FAILURES.get(status, AI_FAILED)


class StatusBoard:
    """Current status text plus the listening indicator."""

    def __init__(self, listener: Optional[Callable[[str], None]] = None):
        self.text = READY
        self.listening = False
        self._listener = listener
        self._latest_cycle = 0
        self._closed = True

    def open(self) -> None:
        """Accept cycle writes again, for a new sharing session."""
        self._closed = False

    def close(self, text: str = STOPPED) -> None:
        """Stop accepting cycle writes and show a final text."""
        self._closed = True
        self.listening = False
        self._set(text)

    def show(self, text: str, cycle_id: Optional[int] = None) -> bool:
        """Show a status text.

        Args:
            text: Text to show
            cycle_id: Recording cycle the text belongs to, None for session-level texts

        Returns:
            False if the text was dropped as stale
        """
        if cycle_id is not None:
            if self._closed or cycle_id < self._latest_cycle:
                logger.debug("Dropped stale status from cycle %d", cycle_id)
                return False
            self._latest_cycle = cycle_id
        self._set(text)
        return True

    def _set(self, text: str) -> None:
        self.text = text
        if self._listener is not None:
            self._listener(text)
