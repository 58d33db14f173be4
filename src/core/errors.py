"""
Error taxonomy for the trading bot

Component code raises these at the boundary where a failure is detected and
catches them where the failure must not stop the owning loop (feed dispatch,
trading tick, cleanup tick).
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ErrorType(Enum):
    """Categories of errors for tracking"""
    NETWORK = "network"             # Feed drop / connect failure
    VALIDATION = "validation"       # Malformed frame, out-of-range price
    NO_LIQUIDITY = "no_liquidity"   # Missing bid/ask
    NOT_FOUND = "not_found"         # Sell for an instrument with no position
    ORDER_FAILED = "order_failed"   # Order book read / submission failed
    CONFIG = "config"               # Bad configuration value
    UNKNOWN = "unknown"             # Uncategorized errors


@dataclass
class ErrorRecord:
    """Record of a single error"""
    timestamp: datetime
    error_type: ErrorType
    message: str
    token_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "error_type": self.error_type.value,
            "message": self.message,
            "token_id": self.token_id,
        }


class TradingError(Exception):
    """Base class for all component-level failures"""
    error_type = ErrorType.UNKNOWN


class InvalidInputError(TradingError, ValueError):
    """Input rejected at the boundary (never reaches the stores)"""
    error_type = ErrorType.VALIDATION


class NoLiquidityError(TradingError):
    """Order book has no price on the side we need"""
    error_type = ErrorType.NO_LIQUIDITY


class PositionNotFoundError(TradingError):
    """No open position for the requested instrument"""
    error_type = ErrorType.NOT_FOUND


class OrderError(TradingError):
    """Order book read or order submission failed. Never retried."""
    error_type = ErrorType.ORDER_FAILED


class ConfigError(TradingError, ValueError):
    """Missing or invalid configuration value"""
    error_type = ErrorType.CONFIG


class BotStoppingError(TradingError):
    """Work refused or dropped because the bot is shutting down"""
