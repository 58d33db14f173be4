"""
Odds representation conversions

American odds, decimal odds, implied probability and prediction-market
prices (0-1). All functions are pure.
"""

import math
from typing import Optional


def parse_american_odds(raw) -> Optional[float]:
    """
    Parse a feed odds value ("150", "-120", "+100") into American odds.

    Returns None for unparsable values and for odds in the invalid
    range (-100, +100) exclusive.
    """
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or -100 < value < 100:
        return None
    return value


def american_to_decimal(american_odds: float) -> float:
    """
    Convert American odds to decimal odds

    Examples:
        -120 -> 1.833
        +150 -> 2.500
    """
    if american_odds > 0:
        return (american_odds / 100) + 1
    else:
        return (100 / abs(american_odds)) + 1


def decimal_to_american(decimal_odds: float) -> int:
    """
    Convert decimal odds to American odds, rounded to the nearest integer

    Examples:
        2.50 -> +150
        1.667 -> -150
    """
    if decimal_odds <= 1:
        raise ValueError(f"Decimal odds must be > 1, got {decimal_odds}")
    if decimal_odds >= 2:
        return int(round((decimal_odds - 1) * 100))
    else:
        return int(round(-100 / (decimal_odds - 1)))


def american_to_probability(american_odds: float) -> float:
    """Implied probability of American odds (1 / decimal)."""
    return 1 / american_to_decimal(american_odds)


def is_valid_price(price) -> bool:
    """Prediction-market prices live in the open interval (0, 1)."""
    try:
        value = float(price)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and 0 < value < 1


def price_to_decimal(price: float) -> Optional[float]:
    """Price 0.50 -> 2.00 decimal. None outside (0, 1)."""
    if not is_valid_price(price):
        return None
    return 1 / price


def price_to_american(price: float) -> Optional[int]:
    """Price 0.60 -> -150. None outside (0, 1)."""
    decimal_odds = price_to_decimal(price)
    if decimal_odds is None:
        return None
    return decimal_to_american(decimal_odds)


# === Display formatting ===

def format_american_odds(american_odds) -> str:
    if american_odds is None:
        return "N/A"
    american_odds = int(round(american_odds))
    return f"+{american_odds}" if american_odds > 0 else str(american_odds)


def format_decimal_odds(decimal_odds) -> str:
    if decimal_odds is None:
        return "N/A"
    return f"{decimal_odds:.2f}"


def format_implied_probability(probability) -> str:
    if probability is None:
        return "N/A"
    return f"{probability * 100:.1f}%"


def format_price_cents(price) -> str:
    """0.50 -> 50¢"""
    if not is_valid_price(price):
        return "N/A"
    return f"{round(price * 100)}¢"


def format_price_odds(price) -> dict:
    """All display forms of a price: cents, decimal, American, implied probability."""
    if not is_valid_price(price):
        return {
            "cents": "N/A",
            "decimal": "N/A",
            "american": "N/A",
            "implied_probability": "N/A",
        }
    return {
        "cents": format_price_cents(price),
        "decimal": format_decimal_odds(price_to_decimal(price)),
        "american": format_american_odds(price_to_american(price)),
        "implied_probability": format_implied_probability(price),
    }
