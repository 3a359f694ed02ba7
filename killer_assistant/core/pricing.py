"""
Pricing of billed actions.

One canonical table of per-action costs, charged to metered accounts only.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class BilledAction(Enum):
    """Actions that draw down a metered allowance."""
    SCREEN_SHARE = "screen_share"
    TRANSCRIPTION = "transcription"
    COMPLETION = "completion"


@dataclass(frozen=True)
class PricingTable:
    """Fixed per-action cost table."""
    prices: Dict[BilledAction, int]

    def __post_init__(self):
        """Validate every action is priced with a positive integer."""
        missing = set(BilledAction) - set(self.prices)
        if missing:
            raise ValueError(f"Missing prices for actions: {sorted(a.value for a in missing)}")
        for action, cost in self.prices.items():
            if not isinstance(cost, int) or isinstance(cost, bool) or cost <= 0:
                raise ValueError(f"Price for {action.value} must be a positive integer")

    def cost_of(self, action: BilledAction) -> int:
        """Get the cost of a billed action.

        Args:
            action: Billed action

        Returns:
            Units charged to a metered account for the action
        """
        return self.prices[action]


# Default pricing table - completion uses the backend's canonical cost
PRICING_TABLE = PricingTable({
    BilledAction.SCREEN_SHARE: 1,
    BilledAction.TRANSCRIPTION: 2,
    BilledAction.COMPLETION: 10,
})
