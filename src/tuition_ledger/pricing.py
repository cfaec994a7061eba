"""Tuition pricing table and the initial/balance installment split."""

import enum
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from pydantic import BaseModel

from .exceptions import UnknownPlan

CURRENCY = "NGN"

# Provider amounts are in kobo
MINOR_UNITS_PER_MAJOR = 100

INITIAL_SHARE_RATIO = Decimal("0.6")


class PlanDuration(int, enum.Enum):
    """Supported training plans, in months."""
    FOUR_MONTHS = 4
    EIGHT_MONTHS = 8
    TWELVE_MONTHS = 12


DEFAULT_TUITION: Dict[int, int] = {
    PlanDuration.FOUR_MONTHS.value: 400_000,
    PlanDuration.EIGHT_MONTHS.value: 800_000,
    PlanDuration.TWELVE_MONTHS.value: 1_100_000,
}


class PricingEntry(BaseModel):
    """Total cost of a plan and its two installments."""
    duration: int
    total_cost: int
    initial_share: int
    balance_share: int


def split_tuition(total_cost: int) -> tuple[int, int]:
    """Split a tuition total into (initial, balance) shares.

    The initial share is 60% rounded half-up; the balance is whatever remains,
    so the two always add back up to the total.
    """
    if total_cost < 0:
        raise ValueError(f"Tuition cannot be negative: {total_cost}")
    initial = int(
        (Decimal(total_cost) * INITIAL_SHARE_RATIO).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    return initial, total_cost - initial


class PricingTable:
    """Lookup from plan duration to a PricingEntry."""

    def __init__(self, prices: Optional[Dict[int, int]] = None):
        self.prices = dict(prices if prices is not None else DEFAULT_TUITION)

    def entry_for(self, duration: int) -> PricingEntry:
        """Return the pricing entry for a duration.

        Raises:
            UnknownPlan: If the duration has no configured tuition.
        """
        total = self.prices.get(int(duration))
        if total is None:
            raise UnknownPlan(f"No tuition configured for a {duration}-month plan")
        initial, balance = split_tuition(total)
        return PricingEntry(
            duration=int(duration),
            total_cost=total,
            initial_share=initial,
            balance_share=balance,
        )

    def tuition_for(self, duration: int) -> int:
        return self.entry_for(duration).total_cost


default_pricing = PricingTable()


def format_amount(amount: int) -> str:
    return f"{CURRENCY} {amount:,}"
