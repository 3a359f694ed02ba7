"""
Unit tests for the capture loop and status board.

Devices and the backend are replaced by in-memory fakes; each test drives
the loop with asyncio.run and short intervals.
"""

import asyncio
import io

import pytest
from rich.console import Console

from killer_assistant.client import status as messages
from killer_assistant.client.api import (
    CompletionResult,
    RelayStatus,
    RemoteTokenStatus,
    TranscriptionResult,
)
from killer_assistant.client.capture import CaptureDenied, CaptureLoop, CaptureState
from killer_assistant.client.devices import (
    CaptureFailure,
    FailureReason,
    HeadlessScreenSource,
)
from killer_assistant.client.speaker import ConsoleSpeaker
from killer_assistant.client.status import StatusBoard
from killer_assistant.config.loader import CaptureConfig
from killer_assistant.core.speech import BENGALI_LOCALE, DEFAULT_LOCALE, pick_voice_locale

FAST = CaptureConfig(interval_seconds=0.05, record_seconds=0.01, min_segment_bytes=1000)


class FakeApi:
    """In-memory backend recording every call."""

    def __init__(self, balance=None, share=RelayStatus.OK, transcript="হ্যালো", reply="উত্তর"):
        self.balance = balance or RemoteTokenStatus(100, 0, 100, "pro")
        self.share = share
        self.transcript = transcript
        self.reply = reply
        self.transcribed = []
        self.asked = []
        self.transcribe_called = asyncio.Event()
        self.ask_gate = None

    async def token_status(self, account_id):
        return self.balance

    async def start_share(self, account_id):
        return self.share

    async def transcribe(self, segment, account_id, mime_type="audio/webm"):
        self.transcribed.append((len(segment), mime_type))
        self.transcribe_called.set()
        if not self.transcript:
            return TranscriptionResult(RelayStatus.NO_SPEECH)
        return TranscriptionResult(RelayStatus.OK, self.transcript)

    async def ask(self, prompt, account_id):
        self.asked.append(prompt)
        if len(self.asked) == 1 and self.ask_gate is not None:
            await self.ask_gate.wait()
            return CompletionResult(RelayStatus.OK, "first")
        return CompletionResult(RelayStatus.OK, self.reply)


class FakeMicrophone:
    mime_type = "audio/wav"

    def __init__(self, segment=b"\x00" * 2000, failure=None):
        self.segment = segment
        self.failure = failure
        self.recordings = 0

    async def record(self, seconds):
        self.recordings += 1
        await asyncio.sleep(0)
        if self.failure is not None:
            raise self.failure
        return self.segment


class FakeSpeaker:
    def __init__(self):
        self.spoken = []
        self.event = asyncio.Event()

    def speak(self, text, locale, rate):
        self.spoken.append((text, locale, rate))
        self.event.set()


class RefusingScreenSource:
    def __init__(self, failure):
        self.failure = failure

    async def acquire(self):
        raise self.failure


def _loop(api=None, microphone=None, source=None, speaker=None, status=None):
    return CaptureLoop(
        account_id="u1",
        api=api or FakeApi(),
        screen_source=source or HeadlessScreenSource(),
        microphone=microphone or FakeMicrophone(),
        speaker=speaker,
        status=status,
        config=FAST,
    )


class TestCaptureLoop:
    """Test start gating, stopping and the per-cycle pipeline."""

    def test_full_cycle_speaks_answer(self):
        async def scenario():
            api = FakeApi(transcript="প্রিন্টার কাজ করছে না", reply="ড্রাইভার আপডেট করুন")
            speaker = FakeSpeaker()
            loop = _loop(api=api, speaker=speaker)

            await loop.start()
            assert loop.state is CaptureState.SHARING
            assert loop.timer_active

            await asyncio.wait_for(speaker.event.wait(), timeout=2)
            text = loop.status.text
            loop.stop()
            await loop.drain()
            return api, speaker, text

        api, speaker, text = asyncio.run(scenario())
        assert api.transcribed[0] == (2000, "audio/wav")
        assert api.asked[0] == "প্রিন্টার কাজ করছে না"
        assert speaker.spoken[0] == ("ড্রাইভার আপডেট করুন", BENGALI_LOCALE, 0.8)
        assert text == messages.ANSWER.format(reply="ড্রাইভার আপডেট করুন")

    def test_small_segment_is_never_sent(self):
        async def scenario():
            api = FakeApi()
            microphone = FakeMicrophone(segment=b"\x00" * 999)
            loop = _loop(api=api, microphone=microphone)

            await loop.start()
            await asyncio.sleep(0.12)
            loop.stop()
            await loop.drain()
            return api, microphone

        api, microphone = asyncio.run(scenario())
        assert microphone.recordings >= 1
        assert api.transcribed == []
        assert api.asked == []

    def test_empty_transcript_is_never_asked(self):
        async def scenario():
            api = FakeApi(transcript="")
            loop = _loop(api=api)

            await loop.start()
            await asyncio.wait_for(api.transcribe_called.wait(), timeout=2)
            await asyncio.sleep(0.01)
            text = loop.status.text
            loop.stop()
            await loop.drain()
            return api, text

        api, text = asyncio.run(scenario())
        assert api.transcribed
        assert api.asked == []
        assert text == messages.NO_SPEECH

    def test_stop_twice(self):
        async def scenario():
            source = HeadlessScreenSource()
            loop = _loop(source=source)
            await loop.start()
            loop.stop()
            loop.stop()
            await loop.drain()
            return loop, source

        loop, source = asyncio.run(scenario())
        assert loop.state is CaptureState.STOPPED
        assert not loop.timer_active
        assert source.current.released
        assert loop.status.text == messages.STOPPED

    def test_stop_after_screen_ended(self):
        async def scenario():
            source = HeadlessScreenSource()
            loop = _loop(source=source)
            await loop.start()
            source.current.end()
            assert loop.state is CaptureState.STOPPED
            loop.stop()
            await asyncio.wait_for(loop.wait_stopped(), timeout=1)
            await loop.drain()
            return loop

        loop = asyncio.run(scenario())
        assert not loop.timer_active
        assert loop.state is CaptureState.STOPPED

    def test_stop_before_start_is_noop(self):
        loop = _loop()
        loop.stop()
        assert loop.state is CaptureState.IDLE

    def test_exhausted_account_is_denied(self):
        async def scenario():
            source = HeadlessScreenSource()
            loop = _loop(api=FakeApi(balance=RemoteTokenStatus(100, 100, 0, "pro")), source=source)
            with pytest.raises(CaptureDenied):
                await loop.start()
            return loop, source

        loop, source = asyncio.run(scenario())
        assert loop.state is CaptureState.IDLE
        assert source.current is None
        assert loop.status.text == messages.DENIED

    def test_unbounded_account_may_start(self):
        async def scenario():
            api = FakeApi(balance=RemoteTokenStatus(15, 0, None, "free"))
            loop = _loop(api=api)
            await loop.start()
            state = loop.state
            loop.stop()
            await loop.drain()
            return state

        assert asyncio.run(scenario()) is CaptureState.SHARING

    def test_acquisition_failure_returns_to_idle(self):
        async def scenario():
            failure = CaptureFailure(FailureReason.PERMISSION_DENIED)
            loop = _loop(source=RefusingScreenSource(failure))
            with pytest.raises(CaptureFailure):
                await loop.start()
            return loop

        loop = asyncio.run(scenario())
        assert loop.state is CaptureState.IDLE
        assert not loop.timer_active
        assert loop.status.text == messages.CAPTURE_FAILED[FailureReason.PERMISSION_DENIED]

    def test_unexpected_acquisition_error(self):
        async def scenario():
            loop = _loop(source=RefusingScreenSource(RuntimeError("boom")))
            with pytest.raises(CaptureFailure) as excinfo:
                await loop.start()
            return loop, excinfo.value

        loop, failure = asyncio.run(scenario())
        assert failure.reason is FailureReason.UNKNOWN
        assert loop.state is CaptureState.IDLE

    def test_share_refused_stops(self):
        async def scenario():
            loop = _loop(api=FakeApi(share=RelayStatus.ALLOWANCE_EXCEEDED))
            await loop.start()
            return loop

        loop = asyncio.run(scenario())
        assert loop.state is CaptureState.STOPPED
        assert not loop.timer_active
        assert loop.status.text == messages.QUOTA

    def test_microphone_denied(self):
        async def scenario():
            microphone = FakeMicrophone(failure=CaptureFailure(FailureReason.PERMISSION_DENIED))
            api = FakeApi()
            loop = _loop(api=api, microphone=microphone)
            await loop.start()
            await asyncio.sleep(0.02)
            text = loop.status.text
            loop.stop()
            await loop.drain()
            return api, text

        api, text = asyncio.run(scenario())
        assert text == messages.MIC_DENIED
        assert api.transcribed == []

    def test_stale_reply_is_not_shown_or_spoken(self):
        async def scenario():
            api = FakeApi(reply="second")
            api.ask_gate = asyncio.Event()
            speaker = FakeSpeaker()
            loop = _loop(api=api, speaker=speaker)

            await loop.start()
            await asyncio.wait_for(speaker.event.wait(), timeout=2)
            api.ask_gate.set()
            await asyncio.sleep(0.01)
            text = loop.status.text
            loop.stop()
            await loop.drain()
            return speaker, text

        speaker, text = asyncio.run(scenario())
        assert [spoken[0] for spoken in speaker.spoken if spoken[0] == "first"] == []
        assert text != messages.ANSWER.format(reply="first")

    def test_late_reply_after_stop_is_dropped(self):
        async def scenario():
            api = FakeApi()
            api.ask_gate = asyncio.Event()
            speaker = FakeSpeaker()
            loop = _loop(api=api, speaker=speaker)

            await loop.start()
            while not api.asked:
                await asyncio.sleep(0.005)
            loop.stop()
            api.ask_gate.set()
            await loop.drain()
            return loop, speaker

        loop, speaker = asyncio.run(scenario())
        assert speaker.spoken == []
        assert loop.status.text == messages.STOPPED


class TestStatusBoard:
    """Test stale-write suppression."""

    def test_newer_cycle_wins(self):
        board = StatusBoard()
        board.open()
        assert board.show("two", cycle_id=2)
        assert not board.show("one", cycle_id=1)
        assert board.text == "two"
        assert board.show("two again", cycle_id=2)

    def test_closed_board_drops_cycle_writes(self):
        board = StatusBoard()
        board.open()
        board.close("done")
        assert not board.show("late", cycle_id=5)
        assert board.text == "done"
        assert board.show("session text")
        assert board.text == "session text"

    def test_listener_receives_texts(self):
        seen = []
        board = StatusBoard(listener=seen.append)
        board.open()
        board.show("a", cycle_id=1)
        board.close()
        assert seen == ["a", messages.STOPPED]

    def test_failure_messages(self):
        assert messages.transcription_message(RelayStatus.NO_SPEECH) == messages.NO_SPEECH
        assert messages.transcription_message(RelayStatus.ALLOWANCE_EXCEEDED) == messages.QUOTA
        assert messages.completion_message(RelayStatus.NO_RESPONSE) == messages.AI_EMPTY
        assert messages.completion_message(RelayStatus.UNREACHABLE) == messages.AI_UNREACHABLE


class TestVoiceLocale:
    """Test speech language selection."""

    def test_bengali_text(self):
        assert pick_voice_locale("আপনার প্রিন্টার") == BENGALI_LOCALE

    def test_mixed_text(self):
        assert pick_voice_locale("Restart the PC, তারপর দেখুন") == BENGALI_LOCALE

    def test_english_text(self):
        assert pick_voice_locale("Restart the printer") == DEFAULT_LOCALE
        assert pick_voice_locale("") == DEFAULT_LOCALE


class TestConsoleSpeaker:
    """Test the terminal speech stand-in."""

    def test_prints_reply_with_locale(self):
        console = Console(file=io.StringIO(), width=80)
        ConsoleSpeaker(console).speak("ড্রাইভার আপডেট করুন", BENGALI_LOCALE, 0.8)
        output = console.file.getvalue()
        assert "ড্রাইভার" in output
        assert "bn-BD" in output
