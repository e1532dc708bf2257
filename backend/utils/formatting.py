from decimal import Decimal, ROUND_HALF_UP

TWO_PLACES = Decimal("0.01")


def to_money(amount) -> Decimal:
    """Quantize any numeric value to 2 decimal places, rounding half up."""
    if amount is None:
        return Decimal("0.00")
    if not isinstance(amount, Decimal):
        # str() keeps floats from leaking binary noise into the result
        amount = Decimal(str(amount))
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_currency(amount, symbol: str = "") -> str:
    value = to_money(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"
