"""
Balance ledger.

Tracks each account's consumption allowance and debits it per billed action.

Rules:
- Unmetered plans report an unbounded balance and are never debited.
- Metered plans report allowance - consumed; a debit is refused once
  that reaches zero.
- The first-session bonus is granted exactly once per account.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Union

from killer_assistant.errors import AllowanceExceeded
from killer_assistant.storage.models import Account
from killer_assistant.storage.repository import AccountRepository

from .pricing import PRICING_TABLE, BilledAction, PricingTable

logger = logging.getLogger(__name__)

UNBOUNDED = math.inf

Balance = Union[int, float]


def has_allowance(available: Balance) -> bool:
    """Whether a balance still admits a billed action."""
    return available > 0


def available_for(account: Account) -> Balance:
    """Balance of an already-loaded account."""
    if not account.plan.is_metered:
        return UNBOUNDED
    return account.allowance - account.consumed


@dataclass(frozen=True)
class TokenStatus:
    """Snapshot of an account's balance as reported to clients."""
    total_tokens: int
    used_tokens: int
    remaining_tokens: Optional[int]  # None means unbounded
    subscription: str

    @classmethod
    def of(cls, account: Account) -> "TokenStatus":
        available = available_for(account)
        return cls(
            total_tokens=account.allowance,
            used_tokens=account.consumed,
            remaining_tokens=None if available == UNBOUNDED else available,
            subscription=account.plan.wire_name,
        )


def format_token_display(account: Optional[Account]) -> str:
    """Text shown next to the plan badge: '0' without data, '∞' when unbounded."""
    if account is None:
        return "0"
    available = available_for(account)
    if available == UNBOUNDED:
        return "∞"
    return str(available)


class BalanceLedger:
    """Reads and debits account balances through the account store."""

    def __init__(
        self,
        repository: AccountRepository,
        pricing: PricingTable = PRICING_TABLE,
        first_session_bonus: int = 10,
    ):
        if first_session_bonus < 0:
            raise ValueError("first_session_bonus cannot be negative")
        self.repository = repository
        self.pricing = pricing
        self.first_session_bonus = first_session_bonus

    def load(self, account_id: str) -> Account:
        """Load an account, granting the first-session bonus if still pending.

        Raises:
            AccountNotFound: If the account does not exist
        """
        account = self.repository.require_account(account_id)
        if account.first_session_bonus_pending:
            if self.repository.apply_first_session_bonus(account_id, self.first_session_bonus):
                logger.info(
                    "First session bonus of %d awarded to %s", self.first_session_bonus, account_id
                )
            account = self.repository.require_account(account_id)
        return account

    def available(self, account_id: str) -> Balance:
        """Available balance, or UNBOUNDED for unmetered plans.

        Raises:
            AccountNotFound: If the account does not exist
        """
        return available_for(self.repository.require_account(account_id))

    def ensure_allowance(self, account_id: str) -> Account:
        """Gate check run before every billed call site.

        Returns:
            The account, when it may start a billed action

        Raises:
            AccountNotFound: If the account does not exist
            AllowanceExceeded: If a metered account has no balance left
        """
        account = self.repository.require_account(account_id)
        if not has_allowance(available_for(account)):
            raise AllowanceExceeded(account_id)
        return account

    def debit(self, account_id: str, amount: int) -> int:
        """Add amount to the consumed counter of a metered account.

        A no-op for unmetered plans. The debit either fully applies or
        fully fails; nothing is cached in memory.

        Returns:
            consumed after the debit

        Raises:
            AccountNotFound: If the account does not exist
            AllowanceExceeded: If a metered account has no balance left
        """
        consumed = self.repository.increment_consumed(account_id, amount)
        logger.debug("Debited %d from %s, consumed now %d", amount, account_id, consumed)
        return consumed

    def charge(self, account_id: str, action: BilledAction) -> int:
        """Debit the priced cost of an action. Returns consumed after the debit."""
        return self.debit(account_id, self.pricing.cost_of(action))

    def cost_for(self, account: Account, action: BilledAction) -> int:
        """Units an action costs this account (0 for unmetered plans)."""
        if not account.plan.is_metered:
            return 0
        return self.pricing.cost_of(action)
