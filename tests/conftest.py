"""
Shared fakes for the test suite. Nothing here touches the network.
"""

from datetime import datetime, timezone

import pytest

from src.core.config import BotConfig, PolymarketConfig, TradingConfig
from src.core.models import (
    FeedEvent,
    FeedEventKind,
    Orderbook,
    OrderbookLevel,
)
from src.sports.odds_comparison import OddsComparison
from src.trading.trading_bot import TradingBot

NOW = datetime(2026, 1, 15, 20, 0, tzinfo=timezone.utc)


class FakeOrderClient:
    """In-memory stand-in for PolymarketClient"""

    def __init__(self):
        self.books = {}             # token_id -> Orderbook (missing = API error)
        self.midpoints = {}         # token_id -> price
        self.active_orders = []
        self.orders = []            # (side, token_id, amount, price)
        self.next_result = None     # Override the next order response

    def set_book(self, token_id, bids=(), asks=()):
        self.books[token_id] = Orderbook(
            token_id=token_id,
            bids=[OrderbookLevel(p, 100) for p in bids],
            asks=[OrderbookLevel(p, 100) for p in asks],
        )

    def get_orderbook(self, token_id):
        return self.books.get(token_id)

    def _order(self, side, token_id, amount, price):
        self.orders.append((side, token_id, amount, price))
        if self.next_result is not None:
            result, self.next_result = self.next_result, None
            return result
        return {"order_id": f"order-{len(self.orders)}", "status": "live"}

    def buy_contract(self, token_id, amount, price):
        return self._order("buy", token_id, amount, price)

    def sell_contract(self, token_id, amount, price):
        return self._order("sell", token_id, amount, price)

    def get_midpoint(self, token_id):
        return self.midpoints.get(token_id)

    def get_active_orders(self):
        return list(self.active_orders)


class FakeFeed:
    """Handler registry without a connection"""

    def __init__(self):
        self.handlers = {}
        self.started = False
        self.closed = False
        self.is_connected = False

    def on(self, kind, handler):
        self.handlers.setdefault(FeedEventKind(kind), []).append(handler)

    def emit(self, event):
        for handler in self.handlers.get(event.kind, []):
            handler(event)

    def start(self):
        self.started = True

    def close(self):
        self.closed = True

    def get_connection_status(self):
        return {
            "is_connected": self.is_connected,
            "state": "disconnected",
            "reconnect_attempts": 0,
            "gave_up": False,
            "subscription_filters": {},
        }


def game_event(kind=FeedEventKind.GAME_UPDATE, sport="NHL", home="Toronto Maple Leafs",
               away="Boston Bruins", game="2026-01-15, 07", home_odds="-150", away_odds="+130",
               market="Moneyline", extra_outcomes=None):
    """FeedEvent with a two-way market for one game"""
    message = {
        "action": kind.value,
        "data": {
            "sport": sport,
            "home_team": home,
            "away_team": away,
            "game": game,
            "sportsbook": "draftkings",
            "outcomes": {
                f"{home} {market}": {"odds": home_odds, "outcome_name": market, "outcome_target": home},
                f"{away} {market}": {"odds": away_odds, "outcome_name": market, "outcome_target": away},
                **(extra_outcomes or {}),
            },
        },
    }
    return FeedEvent.from_message(kind, message)


@pytest.fixture
def client():
    return FakeOrderClient()


@pytest.fixture
def bot_with_position(client):
    """TradingBot (never started) holding a $10 position on token-1"""
    config = BotConfig(polymarket=PolymarketConfig(token_ids=["token-1"]))
    bot = TradingBot(config, feed=FakeFeed(), client=client)
    client.set_book("token-1", bids=[0.48], asks=[0.52])
    bot.comparison.ingest_price("token-1", 0.50, NOW)
    bot.handle_odds_update(game_event(home_odds="-233"))
    assert bot.positions.has_position("token-1")
    return bot


@pytest.fixture
def make_event():
    return game_event


@pytest.fixture
def make_opportunity():
    """Factory: opportunity on token_id whose best outcome implies `probability` at `price`"""
    def build(token_id="token-1", probability=0.70, price=0.50, home="Toronto Maple Leafs"):
        comparison = OddsComparison(TradingConfig())
        decimal_odds = 1 / probability
        if decimal_odds >= 2:
            american = f"+{round((decimal_odds - 1) * 100)}"
        else:
            american = str(round(-100 / (decimal_odds - 1)))
        comparison.ingest_odds(game_event(home=home, home_odds=american, away_odds="+400"), NOW)
        comparison.ingest_price(token_id, price, NOW)
        opportunities = comparison.find_trading_opportunities()
        assert len(opportunities) == 1, f"Expected one opportunity, got {len(opportunities)}"
        return opportunities[0]
    return build
