"""
Local microphone recorder.

Records 16 kHz mono PCM through PortAudio and wraps each segment as WAV.
"""

import asyncio
import io
import logging
import wave
from typing import List

import numpy as np
import sounddevice as sd

from .devices import CaptureFailure, FailureReason

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
FRAME_MS = 10
FRAME_SAMPLES = SAMPLE_RATE * FRAME_MS // 1000


def pcm_to_wav(pcm16: bytes) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(SAMPLE_RATE)
        wf.writeframes(pcm16)
    return buffer.getvalue()


class SoundDeviceMicrophone:
    """Microphone backed by a sounddevice input stream."""

    mime_type = "audio/wav"

    def __init__(self, device=None):
        self.device = device

    async def record(self, seconds: float) -> bytes:
        frames: List[bytes] = []

        def cb(indata, _frames, _time_info, status):
            if status:
                logger.debug("input status: %s", status)
            frame = indata[:, 0].astype(np.float32)
            pcm16 = np.clip(frame * 32768.0, -32768, 32767).astype(np.int16)
            frames.append(pcm16.tobytes())

        try:
            stream = sd.InputStream(
                samplerate=SAMPLE_RATE,
                channels=1,
                dtype="float32",
                blocksize=FRAME_SAMPLES,
                device=self.device,
                callback=cb,
            )
        except sd.PortAudioError as e:
            raise CaptureFailure(FailureReason.NO_SOURCE, str(e)) from e

        with stream:
            await asyncio.sleep(seconds)

        if not frames:
            return b""
        return pcm_to_wav(b"".join(frames))
