"""
FastAPI dependencies resolving the services held on the application state.
"""

from typing import Optional

from fastapi import Header, Request

from killer_assistant.core.ledger import BalanceLedger
from killer_assistant.errors import AuthenticationError
from killer_assistant.sdk.openai_client import MeteredOpenAI
from killer_assistant.storage.identity import IdentityProvider
from killer_assistant.storage.repository import AccountRepository


def get_repository(request: Request) -> AccountRepository:
    return request.app.state.repository


def get_ledger(request: Request) -> BalanceLedger:
    return request.app.state.ledger


def get_relay(request: Request) -> MeteredOpenAI:
    return request.app.state.relay


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def verify_bearer_token(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> str:
    """Resolve the Authorization bearer token to a uid.

    Raises:
        AuthenticationError: If the header is missing or the token is unknown
    """
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("No token provided")
    uid = get_identity_provider(request).verify_token(token)
    request.state.uid = uid
    return uid
