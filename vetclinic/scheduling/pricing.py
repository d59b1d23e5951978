from collections.abc import Callable, Sequence
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict


class PricingContext(BaseModel):
    """Facts about a booking that price adjustments may depend on."""

    model_config = ConfigDict(frozen=True)

    service_id: str
    is_emergency: bool = False


PriceAdjustment = Callable[[Decimal, PricingContext], Decimal]

CENT = Decimal("0.01")


def emergency_surcharge(rate: Decimal) -> PriceAdjustment:
    """Add ``rate`` × price for emergency bookings; other bookings pass through."""

    def adjust(price: Decimal, context: PricingContext) -> Decimal:
        if not context.is_emergency:
            return price
        return price + price * rate

    return adjust


def round_to_cents(price: Decimal, context: PricingContext) -> Decimal:
    return price.quantize(CENT, rounding=ROUND_HALF_UP)


def default_adjustments(surcharge_rate: Decimal) -> list[PriceAdjustment]:
    return [emergency_surcharge(surcharge_rate), round_to_cents]


def quote_price(
    base_price: Decimal, context: PricingContext, adjustments: Sequence[PriceAdjustment]
) -> Decimal:
    """Apply ``adjustments`` to ``base_price`` in order."""
    price = base_price
    for adjust in adjustments:
        price = adjust(price, context)
    return price
