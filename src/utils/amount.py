"""Money amount utilities."""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def quantize_money(amount: Decimal) -> Decimal:
    """Round an amount to cents, half up.

    Example: 12.345 -> 12.35, 12.344 -> 12.34
    """
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_platform_fee(total_amount: Decimal, percentage: Decimal) -> Decimal:
    """Platform fee for a sale.

    Args:
        total_amount: Order total (price * quantity)
        percentage: Fee percentage, e.g. 5 for 5%

    Returns:
        Fee rounded to cents
    """
    return quantize_money(total_amount * percentage / HUNDRED)


def split_order_amount(
    unit_price: Decimal, quantity: int, percentage: Decimal
) -> tuple[Decimal, Decimal, Decimal]:
    """Compute (total_amount, platform_fee, seller_amount) for an order.

    seller_amount is derived by subtraction so that
    total_amount == platform_fee + seller_amount always holds exactly.
    """
    total_amount = quantize_money(unit_price * quantity)
    platform_fee = calculate_platform_fee(total_amount, percentage)
    return total_amount, platform_fee, total_amount - platform_fee
