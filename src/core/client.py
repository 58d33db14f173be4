"""
Polymarket CLOB API Client

Order book reads and order submission. Methods return the decoded JSON body,
or {"error": True, ...} on failure. Nothing here retries: a repeated
place_order could double-submit.
"""

import json
from typing import Optional

import requests

from .config import PolymarketConfig
from .models import Orderbook, OrderbookLevel


class PolymarketClient:
    """
    Polymarket CLOB client.

    WARNING: This trades real money!
    """

    def __init__(self, config: PolymarketConfig, session: requests.Session = None):
        self.base_url = config.clob_url.rstrip("/")
        self.private_key = config.private_key
        self.wallet_address = config.wallet_address
        self.timeout = config.request_timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def _request(self, method: str, path: str, params: dict = None, data: dict = None) -> dict:
        """Make request, returning the JSON body or an error dict"""
        url = f"{self.base_url}{path}"

        try:
            body = json.dumps(data) if data is not None else None
            resp = self.session.request(method, url, params=params, data=body, timeout=self.timeout)

            if resp.status_code in [200, 201]:
                return resp.json()
            else:
                print(f"[POLYMARKET] {method} {path} failed: {resp.status_code} {resp.text[:200]}")
                return {"error": True, "status_code": resp.status_code, "message": resp.text}

        except (requests.RequestException, ValueError) as e:
            print(f"[POLYMARKET] {method} {path} error: {e}")
            return {"error": True, "message": str(e)}

    def _signed(self, payload: dict) -> dict:
        return {**payload, "maker": self.wallet_address, "private_key": self.private_key}

    @staticmethod
    def _is_error(result) -> bool:
        return isinstance(result, dict) and bool(result.get("error"))

    # =========================================================================
    # MARKET METHODS
    # =========================================================================

    def get_orderbook(self, token_id: str) -> Optional[Orderbook]:
        """Get the order book, best level first on each side. None on API error."""
        result = self._request("GET", "/book", params={"token_id": token_id})
        if self._is_error(result):
            return None

        def levels(raw_levels, best_first_desc: bool) -> list[OrderbookLevel]:
            parsed = []
            for level in raw_levels or []:
                try:
                    parsed.append(OrderbookLevel(float(level["price"]), float(level.get("size", 0))))
                except (KeyError, TypeError, ValueError):
                    continue
            return sorted(parsed, key=lambda lv: lv.price, reverse=best_first_desc)

        return Orderbook(
            token_id=token_id,
            bids=levels(result.get("bids"), best_first_desc=True),
            asks=levels(result.get("asks"), best_first_desc=False),
        )

    def get_midpoint(self, token_id: str) -> Optional[float]:
        """Midpoint price (0-1). None on API error or missing value."""
        result = self._request("GET", "/midpoint", params={"token_id": token_id})
        if self._is_error(result):
            return None
        try:
            return float(result.get("mid"))
        except (TypeError, ValueError):
            return None

    def search_markets(self, query: str, limit: int = 50) -> dict:
        return self._request("GET", "/markets", params={"search": query, "limit": limit, "sort": "volume"})

    def get_market(self, market_id: str) -> dict:
        return self._request("GET", f"/markets/{market_id}")

    def get_trades(self, token_id: str, limit: int = 100) -> dict:
        return self._request("GET", "/trades", params={"token_id": token_id, "limit": limit})

    # =========================================================================
    # TRADING METHODS
    # =========================================================================

    def place_order(
        self,
        token_id: str,
        side: str,  # "buy" or "sell"
        amount: float,
        price: float,  # 0-1
        order_type: str = "limit",
    ) -> dict:
        """
        Place a single order.

        Returns:
            Order response with order_id, or an error dict
        """
        order_data = {
            "token_id": token_id,
            "side": side,
            "amount": amount,
            "price": price,
            "order_type": order_type,
        }
        print(f"[POLYMARKET] Placing {order_type} {side} {amount} @ {price} on {token_id}")
        return self._request("POST", "/orders", data=self._signed(order_data))

    def place_multiple_orders(self, orders: list[dict]) -> dict:
        print(f"[POLYMARKET] Placing {len(orders)} orders")
        return self._request("POST", "/orders/batch", data={"orders": [self._signed(o) for o in orders]})

    def get_order(self, order_id: str) -> dict:
        return self._request("GET", f"/orders/{order_id}")

    def get_active_orders(self) -> list:
        """Open orders for the wallet. Empty list on API error."""
        result = self._request("GET", "/orders", params={"maker": self.wallet_address, "status": "active"})
        if self._is_error(result):
            return []
        if isinstance(result, list):
            return result
        return result.get("orders", []) or result.get("data", []) or []

    def cancel_order(self, order_id: str) -> dict:
        return self._request("DELETE", f"/orders/{order_id}", data={"private_key": self.private_key})

    def cancel_multiple_orders(self, order_ids: list[str]) -> dict:
        return self._request("DELETE", "/orders/batch",
                             data={"order_ids": order_ids, "private_key": self.private_key})

    def buy_contract(self, token_id: str, amount: float, price: float) -> dict:
        return self.place_order(token_id, "buy", amount, price, "limit")

    def sell_contract(self, token_id: str, amount: float, price: float) -> dict:
        return self.place_order(token_id, "sell", amount, price, "limit")

    def market_buy(self, token_id: str, amount: float) -> dict:
        """Buy at the best ask"""
        orderbook = self.get_orderbook(token_id)
        if orderbook is None:
            return {"error": True, "message": "Order book unavailable"}
        if orderbook.best_ask is None:
            return {"error": True, "message": "No asks available for market buy"}
        return self.place_order(token_id, "buy", amount, orderbook.best_ask, "market")

    def market_sell(self, token_id: str, amount: float) -> dict:
        """Sell at the best bid"""
        orderbook = self.get_orderbook(token_id)
        if orderbook is None:
            return {"error": True, "message": "Order book unavailable"}
        if orderbook.best_bid is None:
            return {"error": True, "message": "No bids available for market sell"}
        return self.place_order(token_id, "sell", amount, orderbook.best_bid, "market")

    # =========================================================================
    # ACCOUNT METHODS
    # =========================================================================

    def get_wallet_info(self) -> dict:
        return self._request("GET", "/wallet/info", params={"address": self.wallet_address})

    def get_position(self, token_id: str) -> Optional[dict]:
        wallet = self.get_wallet_info()
        if self._is_error(wallet):
            return None
        for position in wallet.get("positions", []) or []:
            if position.get("token_id") == token_id:
                return position
        return None


def extract_order_id(result: dict) -> Optional[str]:
    """Order id from a place_order response (the API has used several spellings)."""
    for key in ("order_id", "orderID", "orderId", "id"):
        if result.get(key):
            return str(result[key])
    return None
