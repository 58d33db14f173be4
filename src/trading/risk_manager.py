"""
Risk Manager for the Odds Trading Bot

Handles:
1. Per-trade sizing (fixed fraction of the portfolio cap, with a ceiling)
2. Portfolio exposure cap across all open positions
3. Which confidence tiers may be auto-traded
"""

from dataclasses import dataclass
from typing import Iterable, Tuple

from ..core.config import TradingConfig
from ..core.models import Confidence, Opportunity, Position


@dataclass
class SizingPolicy:
    """per-trade amount = min(max_position_size * trade_fraction, max_trade_amount)"""
    trade_fraction: float = 0.10
    max_trade_amount: float = 50.0

    def position_size(self, max_position_size: float) -> float:
        return min(max_position_size * self.trade_fraction, self.max_trade_amount)


class RiskManager:
    """
    Pre-trade checks for new positions.

    Reads limits from the TradingConfig it was built with on every call,
    so runtime edits of max_position_size take effect immediately.
    """

    def __init__(self, config: TradingConfig = None, sizing: SizingPolicy = None,
                 auto_trade_confidences: Tuple[Confidence, ...] = None):
        self.config = config or TradingConfig()
        self.sizing = sizing or SizingPolicy(
            trade_fraction=self.config.trade_fraction,
            max_trade_amount=self.config.max_trade_amount,
        )
        self.auto_trade_confidences = tuple(auto_trade_confidences or (Confidence.MEDIUM, Confidence.HIGH))

    @property
    def max_position_size(self) -> float:
        return self.config.max_position_size

    def position_size(self) -> float:
        """Amount for the next trade under the sizing policy"""
        return self.sizing.position_size(self.max_position_size)

    @staticmethod
    def total_exposure(positions: Iterable[Position]) -> float:
        """Sum of remaining open amounts"""
        return sum(p.amount for p in positions if p.is_active)

    def check_exposure(self, current_exposure: float) -> Tuple[bool, str]:
        """
        Check the portfolio cap.

        Returns:
            (is_ok, message) - is_ok=False once exposure meets or exceeds the cap
        """
        if current_exposure >= self.max_position_size:
            return (False, f"Maximum position size reached: ${current_exposure:.2f} >= "
                           f"${self.max_position_size:.2f}")
        return (True, "")

    def check_confidence(self, opportunity: Opportunity) -> Tuple[bool, str]:
        if opportunity.confidence not in self.auto_trade_confidences:
            return (False, f"{opportunity.confidence.value} confidence is not auto-traded")
        return (True, "")

    def check_new_position(self, opportunity: Opportunity, current_exposure: float) -> Tuple[bool, str]:
        """
        Run all checks for opening a position on an opportunity.

        Returns:
            (can_open, reason)
        """
        ok, msg = self.check_exposure(current_exposure)
        if not ok:
            return (False, msg)
        return self.check_confidence(opportunity)
