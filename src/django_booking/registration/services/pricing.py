"""Multi-booking discount calculation.

Pure functions with no database access: the same list of prices always yields
the same summary. Two participants in one order earn the pair discount, three
or more earn the group discount.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from django_booking.registration.errors import EmptyOrderError

WHOLE_UNIT = Decimal("1")


@dataclass(frozen=True)
class DiscountTier:
    """A named discount rate that applies from ``min_items`` participants."""

    name: str
    min_items: int
    percent: int


TIER_NONE = DiscountTier(name="none", min_items=1, percent=0)
TIER_PAIR = DiscountTier(name="pair", min_items=2, percent=10)
TIER_GROUP = DiscountTier(name="group", min_items=3, percent=15)

# Highest threshold first.
DISCOUNT_TIERS = (TIER_GROUP, TIER_PAIR, TIER_NONE)


@dataclass
class PricingSummary:
    """Pricing breakdown for one order."""

    subtotal: Decimal
    discount_tier: str
    discount_percent: int
    discount_amount: Decimal
    final_amount: Decimal
    item_discounts: list[Decimal] = field(default_factory=list)


def get_discount_tier(item_count: int) -> DiscountTier:
    """Return the discount tier for an order with ``item_count`` participants."""
    for tier in DISCOUNT_TIERS:
        if item_count >= tier.min_items:
            return tier
    return TIER_NONE


def calculate_pricing(prices: Sequence[Decimal]) -> PricingSummary:
    """Compute subtotal, multi-booking discount and final amount.

    The discount is ``subtotal * percent / 100`` rounded half-up to a whole
    currency unit. It is then spread across the items in proportion to their
    price, with the last item absorbing any rounding remainder so the
    per-item discounts always add up to the order discount.

    Args:
        prices: Per-item prices, one entry per participant seat.

    Returns:
        A :class:`PricingSummary` for the order.

    Raises:
        EmptyOrderError: If ``prices`` is empty.
    """
    if not prices:
        raise EmptyOrderError

    amounts = [Decimal(price) for price in prices]
    subtotal = sum(amounts, Decimal("0"))
    tier = get_discount_tier(len(amounts))
    discount = (subtotal * tier.percent / Decimal(100)).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)

    return PricingSummary(
        subtotal=subtotal,
        discount_tier=tier.name,
        discount_percent=tier.percent,
        discount_amount=discount,
        final_amount=subtotal - discount,
        item_discounts=_distribute_discount(discount, amounts, subtotal),
    )


def _distribute_discount(discount: Decimal, amounts: list[Decimal], subtotal: Decimal) -> list[Decimal]:
    """Split ``discount`` across ``amounts`` proportionally; the last item takes the remainder."""
    shares: list[Decimal] = []
    remaining = discount
    for i, amount in enumerate(amounts):
        if i == len(amounts) - 1 or subtotal == 0:
            share = remaining
        else:
            share = (discount * amount / subtotal).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)
            share = min(share, remaining)
        shares.append(share)
        remaining -= share
    return shares
