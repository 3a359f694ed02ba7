"""
Session gate.

Holds the signed-in identity and its account, creates the account record
on sign-up or first federated sign-in, and notifies subscribers whenever
the current account changes. Components receive the gate explicitly.
"""

import logging
from typing import Callable, List, Optional

from killer_assistant.config.loader import GrantConfig
from killer_assistant.core.ledger import BalanceLedger, format_token_display
from killer_assistant.storage.identity import FederatedAssertion, Identity, IdentityProvider
from killer_assistant.storage.models import Account, Plan

logger = logging.getLogger(__name__)

Listener = Callable[[Optional[Account]], None]


class SessionGate:
    """Signed-in session and its account, reactive to sign-in and sign-out."""

    def __init__(
        self,
        provider: IdentityProvider,
        ledger: BalanceLedger,
        grants: Optional[GrantConfig] = None,
    ):
        self.provider = provider
        self.ledger = ledger
        self.grants = grants or GrantConfig()
        self.identity: Optional[Identity] = None
        self._account: Optional[Account] = None
        self._listeners: List[Listener] = []

    def current_account(self) -> Optional[Account]:
        return self._account

    @property
    def token(self) -> Optional[str]:
        return self.identity.token if self.identity else None

    def token_display(self) -> str:
        return format_token_display(self._account)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with the account on every change.

        Returns:
            A callable that unregisters the listener
        """
        self._listeners.append(listener)
        listener(self._account)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, email: str, password: str) -> Account:
        identity = self.provider.sign_in(email, password)
        return self._signed_in(identity)

    def sign_up(self, email: str, password: str, display_name: str = "User") -> Account:
        identity = self.provider.sign_up(email, password, display_name)
        self._create_account(identity)
        return self._signed_in(identity)

    def sign_in_with_federated_provider(self, assertion: FederatedAssertion) -> Account:
        identity = self.provider.sign_in_federated(assertion)
        if self.ledger.repository.get_account(identity.uid) is None:
            self._create_account(identity)
        return self._signed_in(identity)

    def sign_out(self, token: Optional[str] = None) -> None:
        """Close the current session, or the session of the given token."""
        token = token or self.token
        if token is not None:
            self.provider.sign_out(token)
        if self.identity is not None:
            logger.info("Signed out %s", self.identity.uid)
        self.identity = None
        self._set_account(None)

    def refresh(self) -> Optional[Account]:
        """Reload the current account, e.g. after a billed action."""
        if self.identity is None:
            return None
        self._set_account(self.ledger.repository.get_account(self.identity.uid))
        return self._account

    def _create_account(self, identity: Identity) -> Account:
        account = Account(
            id=identity.uid,
            plan=Plan.UNMETERED_BASIC,
            allowance=self.grants.starting_allowance,
            consumed=0,
            display_name=identity.display_name or "User",
            email=identity.email,
            first_session_bonus_pending=True,
        )
        logger.info("Creating account for %s", identity.uid)
        return self.ledger.repository.create_account(account)

    def _signed_in(self, identity: Identity) -> Account:
        self.identity = identity
        account = self.ledger.load(identity.uid)
        self._set_account(account)
        return account

    def _set_account(self, account: Optional[Account]) -> None:
        self._account = account
        for listener in list(self._listeners):
            listener(account)
