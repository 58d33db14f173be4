"""
Sportsbook odds module

Converts between American, decimal and prediction-market price odds and
reconciles streamed sportsbook odds against Polymarket prices.
"""

from .odds import (
    parse_american_odds,
    american_to_decimal,
    decimal_to_american,
    american_to_probability,
    price_to_decimal,
    price_to_american,
    format_price_odds,
)

from .odds_comparison import (
    OddsComparison,
    correlate_all,
)

__all__ = [
    # Conversions
    "parse_american_odds",
    "american_to_decimal",
    "decimal_to_american",
    "american_to_probability",
    "price_to_decimal",
    "price_to_american",
    "format_price_odds",
    # Reconciliation
    "OddsComparison",
    "correlate_all",
]
