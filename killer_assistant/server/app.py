"""
Killer Assistant API server.

Builds the FastAPI application: account store, balance ledger, metered
relay and identity provider are created once and kept on app.state.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import OpenAI

from killer_assistant.config.loader import Settings, load_settings
from killer_assistant.core.ledger import BalanceLedger
from killer_assistant.sdk.openai_client import MeteredOpenAI
from killer_assistant.storage.identity import LocalIdentityProvider
from killer_assistant.storage.repository import AccountRepository, initialize_schema
from killer_assistant.utils.logging import init_logging

from . import routes
from .dependencies import verify_bearer_token
from .errors import setup_error_handling

logger = logging.getLogger(__name__)

SERVICE_NAME = "killer-assistant"


def create_app(settings: Optional[Settings] = None, openai_client: Optional[OpenAI] = None) -> FastAPI:
    """Create the API application.

    Args:
        settings: Application settings (loaded from KILLER_ASSISTANT_CONFIG when omitted)
        openai_client: OpenAI client, created from the environment when omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or load_settings()
    db_path = settings.server.db_path
    initialize_schema(db_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_logging(settings.server.log_level, SERVICE_NAME)
        logger.info("Starting %s on database %s", SERVICE_NAME, db_path)
        if not settings.server.require_auth:
            logger.warning("Billed routes are served without bearer-token verification")
        yield
        logger.info("%s stopped", SERVICE_NAME)

    app = FastAPI(
        title="Killer Assistant API",
        description="Token-metered relay to speech-to-text and chat-completion engines",
        lifespan=lifespan,
    )

    repository = AccountRepository(db_path)
    ledger = BalanceLedger(
        repository,
        pricing=settings.pricing,
        first_session_bonus=settings.grants.first_session_bonus,
    )
    app.state.settings = settings
    app.state.repository = repository
    app.state.ledger = ledger
    app.state.relay = MeteredOpenAI(ledger, engine=settings.engine, client=openai_client)
    app.state.identity_provider = LocalIdentityProvider(db_path)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_error_handling(app)

    billed_dependencies = [Depends(verify_bearer_token)] if settings.server.require_auth else []
    app.include_router(routes.billed_router, dependencies=billed_dependencies)
    app.include_router(routes.router)

    return app
