"""Currency helpers for FCFA (XOF) amounts.

XOF is pegged to the euro, so card payments settled in EUR use a fixed rate.
"""
from app.core.config import settings

MAX_PAYMENT_AMOUNT = 10_000_000


def xof_to_eur_cents(amount_xof: float, rate: float = None) -> int:
    """Convert an FCFA amount to euro cents for Stripe."""
    rate = rate or settings.XOF_PER_EUR
    return int(round(amount_xof / rate * 100))


def to_minor_units(amount: float, currency: str, rate: float = None) -> int:
    """Amount in the card processor's settlement currency (EUR cents)."""
    currency = currency.upper()
    if currency == "XOF":
        return xof_to_eur_cents(amount, rate)
    if currency == "EUR":
        return int(round(amount * 100))
    raise ValueError(f"Unsupported currency: {currency}")


def is_valid_amount(amount: float) -> bool:
    return amount is not None and 0 < amount <= MAX_PAYMENT_AMOUNT


def format_fcfa(amount: float) -> str:
    """2500 -> '2 500 FCFA'"""
    return f"{int(round(amount)):,}".replace(",", " ") + " FCFA"
