"""
Position Manager - opens, closes and tracks positions

Lifecycle per instrument:
    no position -> OPEN -> (PARTIALLY_CLOSED ->)* CLOSED

At most one active position per token. An instrument with an order in
flight is reserved until the order call returns, so a second buy or a
racing sell on the same token is refused instead of double-submitted.
Order submission is never retried.
"""

import json
import math
import os
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from ..core.client import extract_order_id
from ..core.config import TradingConfig
from ..core.errors import (
    ErrorRecord,
    InvalidInputError,
    NoLiquidityError,
    OrderError,
    PositionNotFoundError,
    TradingError,
)
from ..core.models import HistoryEntry, Opportunity, Position, PositionStatus
from .risk_manager import RiskManager

# Remaining amounts at or below this are treated as fully closed
_AMOUNT_EPSILON = 1e-9


class PositionManager:
    """
    Position ledger and order execution.

    `client` is the outbound order interface: get_orderbook(token_id),
    buy_contract(token_id, amount, price), sell_contract(token_id, amount, price)
    and get_active_orders().
    """

    def __init__(self, client, config: TradingConfig = None, risk_manager: RiskManager = None,
                 on_error: Callable[[ErrorRecord], None] = None):
        self.client = client
        self.config = config or TradingConfig()
        self.risk = risk_manager or RiskManager(self.config)
        self.on_error = on_error

        self._positions: Dict[str, Position] = {}    # token_id -> active position
        self._closed: List[Position] = []
        self._history: List[HistoryEntry] = []
        self._in_flight: Dict[str, float] = {}       # token_id -> reserved buy amount (0 for sells)
        self._lock = threading.Lock()

    def _report(self, error: TradingError, token_id: str = None):
        print(f"[POSITIONS] {error}")
        if self.on_error:
            self.on_error(ErrorRecord(
                timestamp=datetime.now(timezone.utc),
                error_type=error.error_type,
                message=str(error),
                token_id=token_id,
            ))

    # === Entry ===

    def evaluate_opportunity(self, opportunity: Opportunity, now: datetime = None) -> Optional[Position]:
        """
        Open a position on an opportunity if policy allows.

        No-op when the token already has a position (or an order in flight),
        when open exposure meets the cap, or when confidence isn't auto-traded.
        Failures are reported and swallowed so the caller's loop keeps going.
        """
        token_id = opportunity.token_id

        with self._lock:
            if token_id in self._positions or token_id in self._in_flight:
                return None

            exposure = self._total_exposure_locked()
            ok, reason = self.risk.check_exposure(exposure)
            if not ok:
                print(f"[POSITIONS] {reason}")
                return None

            ok, reason = self.risk.check_confidence(opportunity)
            if not ok:
                return None

            amount = self.risk.position_size()
            self._in_flight[token_id] = amount

        try:
            return self._execute_buy(opportunity, amount, now)
        except TradingError as e:
            self._report(e, token_id)
            return None
        finally:
            with self._lock:
                self._in_flight.pop(token_id, None)

    def _execute_buy(self, opportunity: Opportunity, amount: float, now: datetime = None) -> Position:
        """Buy at the best ask. Position and history entry are committed together."""
        token_id = opportunity.token_id

        orderbook = self.client.get_orderbook(token_id)
        if orderbook is None:
            raise OrderError(f"Order book unavailable for {token_id}")
        best_ask = orderbook.best_ask
        if best_ask is None:
            raise NoLiquidityError(f"No asks available for buy order on {token_id}")

        result = self.client.buy_contract(token_id, amount, best_ask)
        if not isinstance(result, dict) or result.get("error"):
            message = result.get("message", "Unknown error") if isinstance(result, dict) else result
            raise OrderError(f"Buy order failed for {token_id}: {message}")

        now = now or datetime.now(timezone.utc)
        order_id = extract_order_id(result)
        match = opportunity.match

        position = Position(
            token_id=token_id,
            amount=amount,
            entry_price=best_ask,
            entry_time=now,
            value_analysis=opportunity.value_analysis,
            game_key=match.event_key,
            game_info=match.game_info,
            order_id=order_id,
            initial_amount=amount,
        )
        entry = HistoryEntry(
            action="buy",
            token_id=token_id,
            amount=amount,
            price=best_ask,
            timestamp=now,
            order_id=order_id,
            value_analysis=opportunity.value_analysis,
            game_key=match.event_key,
            order_result=dict(result),
        )

        with self._lock:
            self._positions[token_id] = position
            self._history.append(entry)

        print(f"[POSITIONS] BUY {token_id}: ${amount:.2f} @ {best_ask:.3f} "
              f"(edge {opportunity.edge*100:.1f}%, {opportunity.confidence.value} confidence)")
        return position

    # === Exit ===

    def sell_position(self, token_id: str, amount: float = None, now: datetime = None) -> dict:
        """
        Sell all (amount=None) or part of a position at the best bid.

        Raises:
            PositionNotFoundError: no active position for token_id
            NoLiquidityError: order book has no bids
            OrderError: order book read or submission failed
            InvalidInputError: amount not finite, <= 0 or above the remaining amount
        """
        try:
            with self._lock:
                position = self._positions.get(token_id)
                if position is None:
                    raise PositionNotFoundError(f"No active position found for token {token_id}")
                if token_id in self._in_flight:
                    raise OrderError(f"Order already in flight for {token_id}")

                sell_amount = position.amount if amount is None else float(amount)
                if (not math.isfinite(sell_amount) or sell_amount <= 0
                        or sell_amount > position.amount + _AMOUNT_EPSILON):
                    raise InvalidInputError(
                        f"Sell amount {sell_amount} must be in (0, {position.amount}] for {token_id}"
                    )
                self._in_flight[token_id] = 0.0

            try:
                return self._execute_sell(position, sell_amount, now)
            finally:
                with self._lock:
                    self._in_flight.pop(token_id, None)

        except TradingError as e:
            self._report(e, token_id)
            raise

    def _execute_sell(self, position: Position, sell_amount: float, now: datetime = None) -> dict:
        token_id = position.token_id

        orderbook = self.client.get_orderbook(token_id)
        if orderbook is None:
            raise OrderError(f"Order book unavailable for {token_id}")
        best_bid = orderbook.best_bid
        if best_bid is None:
            raise NoLiquidityError(f"No bids available for sell order on {token_id}")

        result = self.client.sell_contract(token_id, sell_amount, best_bid)
        if not isinstance(result, dict) or result.get("error"):
            message = result.get("message", "Unknown error") if isinstance(result, dict) else result
            raise OrderError(f"Sell order failed for {token_id}: {message}")

        now = now or datetime.now(timezone.utc)

        with self._lock:
            position.amount -= sell_amount
            position.sell_price = best_bid
            position.sell_time = now

            if position.amount <= _AMOUNT_EPSILON:
                position.amount = 0.0
                position.status = PositionStatus.CLOSED
                del self._positions[token_id]
                self._closed.append(position)
            else:
                position.status = PositionStatus.PARTIALLY_CLOSED

            self._history.append(HistoryEntry(
                action="sell",
                token_id=token_id,
                amount=sell_amount,
                price=best_bid,
                timestamp=now,
                order_id=extract_order_id(result),
                game_key=position.game_key,
                order_result=dict(result),
            ))
            remaining = position.amount

        print(f"[POSITIONS] SELL {token_id}: ${sell_amount:.2f} @ {best_bid:.3f} "
              f"(remaining ${remaining:.2f})")
        return result

    # === Auto-sell ===

    def find_expired_positions(self, now: datetime = None) -> List[str]:
        """Tokens held longer than auto_sell_hours"""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            return [
                token_id for token_id, position in self._positions.items()
                if position.hours_held(now) > self.config.auto_sell_hours
            ]

    def run_auto_sell(self, now: datetime = None) -> List[str]:
        """Fully sell every expired position. One failure doesn't stop the sweep."""
        now = now or datetime.now(timezone.utc)
        sold = []
        for token_id in self.find_expired_positions(now):
            try:
                self.sell_position(token_id, now=now)
            except TradingError:
                continue
            sold.append(token_id)
            print(f"[POSITIONS] Auto-sold {token_id} after {self.config.auto_sell_hours:g}h time limit")
        return sold

    # === Reads ===

    def _total_exposure_locked(self) -> float:
        return self.risk.total_exposure(self._positions.values()) + sum(self._in_flight.values())

    def has_position(self, token_id: str) -> bool:
        with self._lock:
            return token_id in self._positions

    def get_total_position_value(self) -> float:
        with self._lock:
            return self.risk.total_exposure(self._positions.values())

    def get_active_positions(self) -> List[Position]:
        with self._lock:
            return [replace(p) for p in self._positions.values()]

    def get_trading_history(self) -> List[HistoryEntry]:
        with self._lock:
            return list(self._history)

    def get_status(self) -> dict:
        with self._lock:
            return {
                "active_positions": len(self._positions),
                "closed_positions": len(self._closed),
                "total_position_value": self.risk.total_exposure(self._positions.values()),
                "max_position_size": self.config.max_position_size,
                "trading_history": len(self._history),
            }

    # === Startup / shutdown ===

    def load_active_orders(self) -> list:
        """Log open orders the exchange already has for this wallet"""
        orders = self.client.get_active_orders()
        for order in orders:
            print(f"[POSITIONS] Found active order {order.get('order_id') or order.get('id')} "
                  f"on {order.get('token_id') or order.get('asset_id')}")
        return orders

    def save_trading_history(self, path: str):
        """Write the audit trail as JSON (atomic tmp+replace)."""
        history = [entry.to_dict() for entry in self.get_trading_history()]
        path = os.path.abspath(path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        tmp_path = path + ".tmp"
        with open(tmp_path, "w") as f:
            json.dump(history, f, indent=2)
        os.replace(tmp_path, path)
        print(f"[POSITIONS] Trading history saved: {len(history)} entries -> {path}")
