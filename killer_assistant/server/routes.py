"""
HTTP routes of the assistant backend.

Billed routes (ask, transcribe, share) are grouped on their own router so
bearer-token verification can be attached to them as a whole.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel

from killer_assistant.core.ledger import BalanceLedger, TokenStatus
from killer_assistant.core.pricing import BilledAction
from killer_assistant.errors import RequestValidationError
from killer_assistant.sdk.openai_client import MeteredOpenAI
from killer_assistant.storage.repository import AccountRepository, fetch_recent_interactions

from .dependencies import get_ledger, get_relay, get_repository

logger = logging.getLogger(__name__)

billed_router = APIRouter(prefix="/api", tags=["billed"])
router = APIRouter(tags=["accounts"])


class AskRequest(BaseModel):
    prompt: Optional[str] = None
    userId: Optional[str] = None


class ShareRequest(BaseModel):
    userId: Optional[str] = None


def _token_body(status: TokenStatus) -> dict:
    return {
        "totalTokens": status.total_tokens,
        "usedTokens": status.used_tokens,
        "remainingTokens": status.remaining_tokens,
        "subscription": status.subscription,
    }


@billed_router.post("/ask")
def ask(body: AskRequest, relay: MeteredOpenAI = Depends(get_relay)):
    """Answer a transcribed question."""
    if not body.prompt or not body.prompt.strip():
        raise RequestValidationError("Prompt is required")
    if not body.userId:
        raise RequestValidationError("User ID is required")

    reply = relay.complete(body.prompt, body.userId)
    return {"reply": reply}


@billed_router.post("/transcribe")
def transcribe(
    audio: Optional[UploadFile] = File(None),
    userId: Optional[str] = Form(None),
    relay: MeteredOpenAI = Depends(get_relay),
):
    """Transcribe one recorded audio segment."""
    if audio is None:
        raise RequestValidationError("Audio file is required")
    if not userId:
        raise RequestValidationError("User ID is required")

    data = audio.file.read()
    if not data:
        raise RequestValidationError("Audio file is required")

    transcript = relay.transcribe(
        data,
        userId,
        filename=audio.filename or "audio.webm",
        content_type=audio.content_type or "audio/webm",
    )
    return {"transcript": transcript}


@billed_router.post("/share")
def start_share(
    body: ShareRequest,
    ledger: BalanceLedger = Depends(get_ledger),
):
    """Charge the screen-share start cost and report the new balance."""
    if not body.userId:
        raise RequestValidationError("User ID is required")

    account = ledger.ensure_allowance(body.userId)
    if ledger.cost_for(account, BilledAction.SCREEN_SHARE):
        ledger.charge(account.id, BilledAction.SCREEN_SHARE)
    logger.info("Screen share started for %s", account.id)
    return _token_body(TokenStatus.of(ledger.repository.require_account(account.id)))


@router.get("/api/tokens/{user_id}")
def token_status(user_id: str, repository: AccountRepository = Depends(get_repository)):
    """Report allowance, consumption and plan of an account."""
    return _token_body(TokenStatus.of(repository.require_account(user_id)))


@router.get("/api/interactions/{user_id}")
def interactions(
    user_id: str,
    limit: int = Query(20, ge=1, le=200),
    repository: AccountRepository = Depends(get_repository),
):
    """Most recent interaction records of an account, newest first."""
    repository.require_account(user_id)
    records = fetch_recent_interactions(
        account_id=user_id, limit=limit, db_path=repository.db_path
    )
    return {
        "interactions": [
            {
                "action": record.action.value,
                "prompt": record.prompt,
                "response": record.response,
                "tokensUsed": record.cost,
                "timestamp": record.timestamp.isoformat(),
            }
            for record in records
        ]
    }


@router.get("/health")
def health():
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}
