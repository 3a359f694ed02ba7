"""
Capture loop.

Orchestrates one screen-sharing session: a gated start, a recurring timer
that records short audio segments, and the transcribe-then-ask chain for
each segment.

States:
    IDLE -> REQUESTING -> SHARING -> STOPPED
    (REQUESTING falls back to IDLE when the screen cannot be acquired)

Each recording cycle gets a monotonically increasing id. Recording is
cancelled on stop; uploads already sent are left to finish, but their
results are dropped by the status board once stale.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Set

from killer_assistant.config.loader import CaptureConfig
from killer_assistant.core.speech import SPEECH_RATE, pick_voice_locale

from . import status as messages
from .api import AssistantClient, RelayStatus
from .devices import CaptureFailure, FailureReason, Microphone, ScreenHandle, ScreenSource, SpeechSynthesizer
from .status import StatusBoard

logger = logging.getLogger(__name__)


class CaptureState(Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    SHARING = "sharing"
    STOPPED = "stopped"


class CaptureDenied(Exception):
    """The account has no allowance left to start sharing."""


class CaptureLoop:
    """Screen-share session driving periodic recordings."""

    def __init__(
        self,
        account_id: str,
        api: AssistantClient,
        screen_source: ScreenSource,
        microphone: Microphone,
        speaker: Optional[SpeechSynthesizer] = None,
        status: Optional[StatusBoard] = None,
        config: Optional[CaptureConfig] = None,
    ):
        self.account_id = account_id
        self.api = api
        self.screen_source = screen_source
        self.microphone = microphone
        self.speaker = speaker
        self.status = status or StatusBoard()
        self.config = config or CaptureConfig()
        self.state = CaptureState.IDLE
        self.cycle_id = 0
        self._screen: Optional[ScreenHandle] = None
        self._timer: Optional[asyncio.Task] = None
        self._recordings: Set[asyncio.Task] = set()
        self._uploads: Set[asyncio.Task] = set()
        self._stopped = asyncio.Event()

    @property
    def sharing(self) -> bool:
        return self.state is CaptureState.SHARING

    @property
    def timer_active(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def start(self) -> None:
        """Start sharing.

        Raises:
            CaptureDenied: If the account has no allowance left
            CaptureFailure: If the screen could not be acquired
        """
        if self.state in (CaptureState.REQUESTING, CaptureState.SHARING):
            return

        balance = await self.api.token_status(self.account_id)
        if balance is None or not balance.has_allowance:
            self.status.show(messages.DENIED)
            raise CaptureDenied(f"no allowance left for {self.account_id}")

        self.state = CaptureState.REQUESTING
        self._stopped.clear()
        try:
            screen = await self.screen_source.acquire()
        except CaptureFailure as e:
            self._fail(e.reason)
            raise
        except Exception as e:
            self._fail(FailureReason.UNKNOWN)
            raise CaptureFailure(FailureReason.UNKNOWN, str(e)) from e

        if self.state is not CaptureState.REQUESTING:
            # stopped while the user was picking a screen
            screen.release()
            return

        self._screen = screen
        self.state = CaptureState.SHARING
        screen.on_ended(self._on_screen_ended)
        self.status.open()
        self.status.show(messages.SHARING)
        logger.info("Sharing started for %s", self.account_id)

        charged = await self.api.start_share(self.account_id)
        if charged is RelayStatus.ALLOWANCE_EXCEEDED:
            self.stop(messages.QUOTA)
            return
        if charged is not RelayStatus.OK:
            logger.warning("Screen share charge failed for %s: %s", self.account_id, charged.value)

        if self.sharing:
            self._timer = asyncio.create_task(self._tick())

    def stop(self, text: str = messages.STOPPED) -> None:
        """Stop sharing. Safe to call repeatedly and after the screen ended."""
        if self.state not in (CaptureState.REQUESTING, CaptureState.SHARING):
            return
        self.state = CaptureState.STOPPED

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._recordings):
            task.cancel()

        screen, self._screen = self._screen, None
        if screen is not None:
            screen.release()

        self.status.close(text)
        self._stopped.set()
        logger.info("Sharing stopped for %s", self.account_id)

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    async def drain(self) -> None:
        """Wait for recordings and uploads still in flight."""
        pending = self._recordings | self._uploads
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = self._recordings | self._uploads

    def _fail(self, reason: FailureReason) -> None:
        self.state = CaptureState.IDLE
        self.status.show(messages.CAPTURE_FAILED[reason])
        logger.warning("Screen capture failed for %s: %s", self.account_id, reason.value)

    def _on_screen_ended(self) -> None:
        logger.info("Shared screen ended for %s", self.account_id)
        self.stop()

    async def _tick(self) -> None:
        while self.sharing:
            self._launch_cycle()
            await asyncio.sleep(self.config.interval_seconds)

    def _launch_cycle(self) -> None:
        self.cycle_id += 1
        task = asyncio.create_task(self._record(self.cycle_id))
        self._recordings.add(task)
        task.add_done_callback(self._recordings.discard)

    async def _record(self, cycle_id: int) -> None:
        self.status.listening = True
        try:
            segment = await self.microphone.record(self.config.record_seconds)
        except CaptureFailure as e:
            logger.warning("Microphone unavailable: %s", e.reason.value)
            self.status.show(messages.MIC_DENIED, cycle_id)
            return
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Recording failed in cycle %d", cycle_id)
            self.status.show(messages.VOICE_FAILED, cycle_id)
            return
        finally:
            self.status.listening = False

        upload = asyncio.create_task(self._process(cycle_id, segment))
        self._uploads.add(upload)
        upload.add_done_callback(self._uploads.discard)

    async def _process(self, cycle_id: int, segment: bytes) -> None:
        if len(segment) < self.config.min_segment_bytes:
            logger.debug("Discarded %d byte segment from cycle %d", len(segment), cycle_id)
            return

        self.status.show(messages.PROCESSING, cycle_id)
        heard = await self.api.transcribe(segment, self.account_id, self.microphone.mime_type)
        if heard.status is not RelayStatus.OK:
            self.status.show(messages.transcription_message(heard.status), cycle_id)
            return

        self.status.show(messages.HEARD.format(transcript=heard.text), cycle_id)
        answer = await self.api.ask(heard.text, self.account_id)
        if answer.status is not RelayStatus.OK:
            self.status.show(messages.completion_message(answer.status), cycle_id)
            return

        if self.status.show(messages.ANSWER.format(reply=answer.reply), cycle_id):
            self._speak(answer.reply)

    def _speak(self, reply: str) -> None:
        if self.speaker is None:
            return
        try:
            self.speaker.speak(reply, pick_voice_locale(reply), SPEECH_RATE)
        except Exception:
            logger.exception("Speech synthesis failed")
