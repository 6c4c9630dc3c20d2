from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, NamedTuple

CENT = Decimal("0.01")


class FeeSplit(NamedTuple):
    platform_fee: Decimal
    seller_amount: Decimal


def to_decimal(value) -> Decimal:
    """
    Stored prices are floats (Mongo doubles). Going through str() keeps
    0.1 as 0.1 instead of its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_cents(amount) -> int:
    return int(to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def compute_order_total(price_per_minute, length_minutes) -> Decimal:
    total = to_decimal(price_per_minute) * to_decimal(length_minutes)
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def split_payment_fee(total_price, fee_rate) -> FeeSplit:
    """
    Split a total into (platform_fee, seller_amount).

    Works in integer cents: fee = round_half_up(cents * rate), seller gets
    the remainder, so the two parts always add back to the total.
    """
    total_cents = to_cents(total_price)
    fee_cents = int(
        (Decimal(total_cents) * to_decimal(fee_rate)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    return FeeSplit(
        platform_fee=from_cents(fee_cents),
        seller_amount=from_cents(total_cents - fee_cents),
    )


def sum_prices(values: Iterable) -> Decimal:
    return sum((to_decimal(v) for v in values), Decimal("0")).quantize(CENT, rounding=ROUND_HALF_UP)


def as_money(value: Decimal) -> float:
    """Mongo and JSON boundary: Decimal -> float with cent precision."""
    return float(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))
