"""
Async HTTP client for the assistant backend.

Relay calls never raise: every outcome, transport failures included, is
reported as a RelayStatus so the capture loop can carry on to its next cycle.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from killer_assistant.errors import EmptyReply

logger = logging.getLogger(__name__)


class RelayStatus(Enum):
    """Outcome of a relay call as seen by the capture client."""
    OK = "ok"
    NO_SPEECH = "no_speech"
    ALLOWANCE_EXCEEDED = "allowance_exceeded"
    NO_RESPONSE = "no_response"
    FAILURE = "failure"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class TranscriptionResult:
    status: RelayStatus
    text: str = ""


@dataclass(frozen=True)
class CompletionResult:
    status: RelayStatus
    reply: str = ""


@dataclass(frozen=True)
class RemoteTokenStatus:
    """Token status body returned by the backend."""
    total_tokens: int
    used_tokens: int
    remaining_tokens: Optional[int]
    subscription: str

    @property
    def unbounded(self) -> bool:
        return self.remaining_tokens is None

    @property
    def has_allowance(self) -> bool:
        return self.unbounded or self.remaining_tokens > 0

    @classmethod
    def from_json(cls, data: dict) -> "RemoteTokenStatus":
        return cls(
            total_tokens=data["totalTokens"],
            used_tokens=data["usedTokens"],
            remaining_tokens=data.get("remainingTokens"),
            subscription=data["subscription"],
        )


class AssistantClient:
    """Client for the billed and account routes of the backend."""

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        token: Optional[str] = None,
        timeout: float = 30.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.http = http or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)

    async def aclose(self) -> None:
        await self.http.aclose()

    async def token_status(self, account_id: str) -> Optional[RemoteTokenStatus]:
        """Fetch the account's balance, or None if it could not be read."""
        try:
            response = await self.http.get(f"/api/tokens/{account_id}")
        except httpx.HTTPError as e:
            logger.warning("Token status request failed: %s", e)
            return None
        if response.status_code != 200:
            logger.warning("Token status returned %d for %s", response.status_code, account_id)
            return None
        try:
            return RemoteTokenStatus.from_json(_body(response))
        except (ValueError, KeyError) as e:
            logger.warning("Malformed token status for %s: %s", account_id, e)
            return None

    async def start_share(self, account_id: str) -> RelayStatus:
        """Charge the screen-share start cost."""
        try:
            response = await self.http.post("/api/share", json={"userId": account_id})
        except httpx.HTTPError as e:
            logger.warning("Share charge request failed: %s", e)
            return RelayStatus.UNREACHABLE
        return _status_of(response)

    async def transcribe(self, segment: bytes, account_id: str, mime_type: str = "audio/webm") -> TranscriptionResult:
        """Send one recorded segment for transcription."""
        extension = mime_type.split("/")[-1].split(";")[0] or "webm"
        files = {"audio": (f"audio.{extension}", segment, mime_type)}
        try:
            response = await self.http.post("/api/transcribe", files=files, data={"userId": account_id})
        except httpx.HTTPError as e:
            logger.warning("Transcription request failed: %s", e)
            return TranscriptionResult(RelayStatus.UNREACHABLE)

        status = _status_of(response)
        if status is not RelayStatus.OK:
            return TranscriptionResult(status)
        try:
            transcript = _text(_body(response), "transcript").strip()
        except ValueError as e:
            logger.warning("Malformed transcription response: %s", e)
            return TranscriptionResult(RelayStatus.FAILURE)
        if not transcript:
            return TranscriptionResult(RelayStatus.NO_SPEECH)
        return TranscriptionResult(RelayStatus.OK, transcript)

    async def ask(self, prompt: str, account_id: str) -> CompletionResult:
        """Ask the chat-completion relay to answer a transcript."""
        try:
            response = await self.http.post("/api/ask", json={"prompt": prompt, "userId": account_id})
        except httpx.HTTPError as e:
            logger.warning("Completion request failed: %s", e)
            return CompletionResult(RelayStatus.UNREACHABLE)

        status = _status_of(response)
        if status is RelayStatus.FAILURE and _error_of(response) == EmptyReply.MESSAGE:
            return CompletionResult(RelayStatus.NO_RESPONSE)
        if status is not RelayStatus.OK:
            return CompletionResult(status)
        try:
            reply = _text(_body(response), "reply")
        except ValueError as e:
            logger.warning("Malformed completion response: %s", e)
            return CompletionResult(RelayStatus.FAILURE)
        if not reply.strip():
            return CompletionResult(RelayStatus.NO_RESPONSE)
        return CompletionResult(RelayStatus.OK, reply)


def _status_of(response: httpx.Response) -> RelayStatus:
    if response.status_code == 200:
        return RelayStatus.OK
    if response.status_code == 429:
        return RelayStatus.ALLOWANCE_EXCEEDED
    logger.warning("%s %s returned %d", response.request.method, response.request.url.path, response.status_code)
    return RelayStatus.FAILURE


def _body(response: httpx.Response) -> dict:
    """Decoded JSON object of a response.

    Raises:
        ValueError: If the body is not a JSON object
    """
    data = response.json()
    if not isinstance(data, dict):
        raise ValueError("response body is not a JSON object")
    return data


def _text(body: dict, key: str) -> str:
    value = body.get(key) or ""
    if not isinstance(value, str):
        raise ValueError(f"'{key}' is not a string")
    return value


def _error_of(response: httpx.Response) -> str:
    try:
        return _text(_body(response), "error")
    except ValueError:
        return ""
