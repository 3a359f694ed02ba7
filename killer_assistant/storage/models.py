"""
Data models for storage layer.

Defines the account record, its subscription plans and the interaction log entry.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Plan(Enum):
    """Subscription plans. Only METERED draws down a finite allowance."""
    METERED = "metered"
    UNMETERED_BASIC = "unmetered-basic"
    UNMETERED_TOP = "unmetered-top"

    @property
    def is_metered(self) -> bool:
        return self is Plan.METERED

    @property
    def wire_name(self) -> str:
        """Name used for the plan by the HTTP API and the stored documents."""
        return _WIRE_NAMES[self]

    @classmethod
    def from_wire(cls, name: str) -> "Plan":
        """Resolve a plan from its wire name or its own value.

        Raises:
            ValueError: If the name matches no plan
        """
        normalized = (name or "").strip().lower()
        for plan, wire in _WIRE_NAMES.items():
            if normalized in (wire, plan.value):
                return plan
        valid = sorted(_WIRE_NAMES.values())
        raise ValueError(f"Unknown plan '{name}', expected one of: {valid}")


_WIRE_NAMES = {
    Plan.METERED: "pro",
    Plan.UNMETERED_BASIC: "free",
    Plan.UNMETERED_TOP: "premium",
}


class InteractionAction(Enum):
    """Billed action an interaction record was written for."""
    TRANSCRIPTION = "transcription"
    COMPLETION = "completion"


@dataclass(frozen=True)
class Account:
    """Per-user record tracking plan and balance.

    For metered plans the available balance is allowance - consumed.
    Unmetered plans never have consumed incremented.
    """
    id: str
    plan: Plan
    allowance: int
    consumed: int
    display_name: str = "User"
    email: str = ""
    first_session_bonus_pending: bool = True

    def __post_init__(self):
        """Validate counters are non-negative."""
        if not self.id:
            raise ValueError("id cannot be empty")
        if self.allowance < 0:
            raise ValueError("allowance cannot be negative")
        if self.consumed < 0:
            raise ValueError("consumed cannot be negative")


@dataclass(frozen=True)
class InteractionRecord:
    """Immutable audit entry for one completed exchange.

    Append-only: once written, a record is never modified or deleted.
    """
    account_id: str
    action: InteractionAction
    prompt: str
    response: str
    cost: int
    timestamp: datetime
