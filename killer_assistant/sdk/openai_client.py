"""
Metered OpenAI relay.

Forwards audio to speech-to-text and questions to chat completion, charging
metered accounts and recording an interaction for each successful exchange.
"""

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from openai import OpenAI, OpenAIError

from ..config.loader import EngineConfig
from ..core.instructions import build_messages
from ..core.ledger import BalanceLedger
from ..core.pricing import BilledAction
from ..errors import AllowanceExceeded, EmptyReply, RequestValidationError, UpstreamFailure
from ..storage.models import Account, InteractionAction, InteractionRecord
from ..storage.repository import insert_interaction

logger = logging.getLogger(__name__)


class MeteredOpenAI:
    """OpenAI client wrapper that gates, debits and records every billed call.

    The allowance gate runs before the engine is called. Once the engine
    has answered, debiting and logging are best-effort: their failures are
    logged and never turn a successful answer into an error.
    """

    def __init__(
        self,
        ledger: BalanceLedger,
        engine: Optional[EngineConfig] = None,
        db_path: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        """Initialize the relay.

        Args:
            ledger: Balance ledger used for gating and debiting
            engine: Model names and generation parameters
            db_path: Database file path for interaction records
                (defaults to the ledger's account store)
            client: OpenAI client, created from the environment when omitted
        """
        self.ledger = ledger
        self.engine = engine or EngineConfig()
        self.db_path = db_path or ledger.repository.db_path
        self.client = client or OpenAI()

    def transcribe(
        self,
        audio: bytes,
        account_id: str,
        filename: str = "audio.webm",
        content_type: str = "audio/webm",
    ) -> str:
        """Transcribe an audio segment for an account.

        Args:
            audio: Encoded audio as produced by the recorder (required)
            account_id: Account to bill (required)
            filename: Upload name; the engine infers the container from it
            content_type: MIME type of the audio

        Returns:
            The stripped transcript, possibly empty when no speech was heard

        Raises:
            RequestValidationError: If audio or account_id is missing
            AccountNotFound: If the account does not exist
            AllowanceExceeded: If a metered account has no balance left
            UpstreamFailure: If the speech-to-text engine fails
        """
        if not audio:
            raise RequestValidationError("Audio file is required")
        if not account_id:
            raise RequestValidationError("User ID is required")

        account = self.ledger.ensure_allowance(account_id)

        try:
            result = self.client.audio.transcriptions.create(
                model=self.engine.transcription_model,
                file=(filename, audio, content_type),
                language=self.engine.language,
            )
        except OpenAIError as e:
            logger.error("Transcription failed for %s: %s", account_id, e)
            raise UpstreamFailure("Transcription service failed") from e

        transcript = (getattr(result, "text", None) or "").strip()
        if not transcript:
            return ""

        cost = self._charge(account, BilledAction.TRANSCRIPTION)
        self._record(account_id, InteractionAction.TRANSCRIPTION, "", transcript, cost)
        return transcript

    def complete(self, prompt: str, account_id: str) -> str:
        """Answer a transcribed question for an account.

        Args:
            prompt: The user's question (required)
            account_id: Account to bill (required)

        Returns:
            The engine's reply

        Raises:
            RequestValidationError: If prompt or account_id is missing
            AccountNotFound: If the account does not exist
            AllowanceExceeded: If a metered account has no balance left
            UpstreamFailure: If the engine fails or returns an empty reply
        """
        if not prompt or not prompt.strip():
            raise RequestValidationError("Prompt is required")
        if not account_id:
            raise RequestValidationError("User ID is required")

        account = self.ledger.ensure_allowance(account_id)

        try:
            response = self.client.chat.completions.create(
                model=self.engine.chat_model,
                messages=build_messages(prompt),
                max_tokens=self.engine.max_tokens,
                temperature=self.engine.temperature,
            )
        except OpenAIError as e:
            logger.error("Chat completion failed for %s: %s", account_id, e)
            raise UpstreamFailure("Something went wrong with the AI service") from e

        reply = None
        if response.choices:
            reply = response.choices[0].message.content
        if not reply or not reply.strip():
            raise EmptyReply()

        cost = self._charge(account, BilledAction.COMPLETION)
        self._record(account_id, InteractionAction.COMPLETION, prompt, reply, cost)
        return reply

    def _charge(self, account: Account, action: BilledAction) -> int:
        """Debit a metered account after a successful engine call.

        Returns:
            Units charged (0 for unmetered plans or when the debit was refused)
        """
        cost = self.ledger.cost_for(account, action)
        if not cost:
            return 0
        try:
            self.ledger.charge(account.id, action)
        except AllowanceExceeded:
            # Another request drained the balance between gate and debit
            logger.warning("Debit of %s refused for %s after a successful call", action.value, account.id)
            return 0
        except sqlite3.Error:
            logger.exception("Debit of %s failed for %s after a successful call", action.value, account.id)
            return 0
        return cost

    def _record(
        self,
        account_id: str,
        action: InteractionAction,
        prompt: str,
        response: str,
        cost: int,
    ) -> None:
        record = InteractionRecord(
            account_id=account_id,
            action=action,
            prompt=prompt,
            response=response,
            cost=cost,
            timestamp=datetime.now(),
        )
        try:
            insert_interaction(record, self.db_path)
        except Exception:
            logger.exception("Failed to record %s interaction for %s", action.value, account_id)
