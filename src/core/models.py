"""
Core data models for the odds trading bot
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Mapping, NamedTuple, Optional, Tuple


class FeedEventKind(Enum):
    """Streaming feed actions (plus the internal reconnect_failed signal)"""
    SOCKET_CONNECTED = "socket_connected"
    INITIAL_STATE = "initial_state"
    GAME_UPDATE = "game_update"
    GAME_ADDED = "game_added"
    GAME_REMOVED = "game_removed"
    LINE_UPDATE = "line_update"
    BOOK_CLEAR = "book_clear"
    ERROR = "error"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    RECONNECT_FAILED = "reconnect_failed"


# Kinds that carry a full game payload and update the odds store
ODDS_UPDATE_KINDS = (
    FeedEventKind.INITIAL_STATE,
    FeedEventKind.GAME_UPDATE,
    FeedEventKind.GAME_ADDED,
    FeedEventKind.LINE_UPDATE,
)


class EventKey(NamedTuple):
    """Derived event identity: sport + matchup + scheduling discriminator"""
    sport: str
    home_team: str
    away_team: str
    game: str

    def __str__(self) -> str:
        return f"{self.sport}:{self.home_team} vs {self.away_team} [{self.game}]"


@dataclass(frozen=True)
class OutcomeRecord:
    """Single outcome line as sent by the feed"""
    name: str               # Outcome key, e.g. "Toronto Maple Leafs Moneyline"
    market: str             # outcome_name, e.g. "Moneyline"
    target: str             # outcome_target (team)
    odds: str               # Raw American odds string
    link: Optional[str] = None


@dataclass(frozen=True)
class FeedEvent:
    """Typed domain event produced from one inbound frame"""
    kind: FeedEventKind
    sport: str = ""
    home_team: str = ""
    away_team: str = ""
    game: str = ""
    sportsbook: str = ""
    outcomes: Mapping[str, OutcomeRecord] = field(default_factory=lambda: MappingProxyType({}))
    message: str = ""
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event_key(self) -> EventKey:
        return EventKey(self.sport, self.home_team, self.away_team, self.game)

    @classmethod
    def from_message(cls, kind: FeedEventKind, message: dict) -> "FeedEvent":
        """Build an event from a decoded envelope. Raises ValueError on bad shapes."""
        if kind == FeedEventKind.ERROR:
            return cls(kind=kind, message=str(message.get("message", "")))

        data = message.get("data") or {}
        if not isinstance(data, dict):
            raise ValueError(f"'data' must be an object, got {type(data).__name__}")

        raw_outcomes = data.get("outcomes") or {}
        if not isinstance(raw_outcomes, dict):
            raise ValueError("'outcomes' must be an object")

        outcomes = {}
        for name, raw in raw_outcomes.items():
            if not isinstance(raw, dict):
                raise ValueError(f"outcome {name!r} must be an object")
            odds = raw.get("odds")
            outcomes[name] = OutcomeRecord(
                name=name,
                market=str(raw.get("outcome_name") or ""),
                target=str(raw.get("outcome_target") or ""),
                odds="" if odds is None else str(odds),
                link=raw.get("link"),
            )

        return cls(
            kind=kind,
            sport=str(data.get("sport") or ""),
            home_team=str(data.get("home_team") or ""),
            away_team=str(data.get("away_team") or ""),
            game=str(data.get("game") or ""),
            sportsbook=str(data.get("sportsbook") or ""),
            outcomes=MappingProxyType(outcomes),
            message=str(message.get("message") or ""),
        )


@dataclass(frozen=True)
class OddsSnapshot:
    """Latest outcome mapping for one event"""
    event_key: EventKey
    outcomes: Mapping[str, OutcomeRecord]
    timestamp: datetime

    @property
    def sport(self) -> str:
        return self.event_key.sport

    @classmethod
    def from_event(cls, event: FeedEvent, timestamp: datetime) -> "OddsSnapshot":
        return cls(event_key=event.event_key, outcomes=event.outcomes, timestamp=timestamp)


@dataclass(frozen=True)
class PriceSnapshot:
    """Latest price (0-1, exclusive) for one instrument"""
    token_id: str
    price: float
    timestamp: datetime


@dataclass(frozen=True)
class GameInfo:
    """Game description carried on matches and positions"""
    sport: str
    home_team: str
    away_team: str
    game: str
    timestamp: datetime

    @classmethod
    def from_snapshot(cls, snapshot: OddsSnapshot) -> "GameInfo":
        key = snapshot.event_key
        return cls(key.sport, key.home_team, key.away_team, key.game, snapshot.timestamp)

    @property
    def display_name(self) -> str:
        return f"{self.home_team} vs {self.away_team}"


@dataclass(frozen=True)
class OutcomeOdds:
    """Sportsbook outcome converted into every odds representation"""
    team: str
    odds: str
    american_odds: float
    decimal_odds: float
    implied_probability: float
    link: Optional[str] = None


@dataclass(frozen=True)
class PriceOdds:
    """Prediction-market price converted into odds representations"""
    token_id: str
    price: float
    decimal_odds: float
    american_odds: int

    @property
    def implied_probability(self) -> float:
        return self.price


@dataclass(frozen=True)
class MarketMatch:
    """One odds snapshot paired with one price snapshot for a single pass"""
    event_key: EventKey
    token_id: str
    game_info: GameInfo
    outcomes: Tuple[OutcomeOdds, ...]
    price: PriceOdds
    timestamp: datetime


class Confidence(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ValueAnalysis:
    """Best edge found on a match"""
    value: float                 # Edge (implied probability - price probability)
    outcome: OutcomeOdds
    price_decimal_odds: float
    confidence: Confidence
    recommended_action: str = "buy"

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "team": self.outcome.team,
            "odds": self.outcome.odds,
            "implied_probability": self.outcome.implied_probability,
            "price_decimal_odds": self.price_decimal_odds,
            "confidence": self.confidence.value,
            "recommended_action": self.recommended_action,
        }


@dataclass(frozen=True)
class Opportunity:
    """A match whose best edge cleared the minimum threshold"""
    match: MarketMatch
    value_analysis: ValueAnalysis

    @property
    def token_id(self) -> str:
        return self.match.token_id

    @property
    def event_key(self) -> EventKey:
        return self.match.event_key

    @property
    def edge(self) -> float:
        return self.value_analysis.value

    @property
    def confidence(self) -> Confidence:
        return self.value_analysis.confidence

    @property
    def recommendation(self) -> dict:
        return {
            "action": self.value_analysis.recommended_action,
            "token_id": self.token_id,
            "confidence": self.confidence.value,
            "expected_value": self.edge,
        }

    def to_dict(self) -> dict:
        return {
            "event": str(self.event_key),
            "game": self.match.game_info.display_name,
            "token_id": self.token_id,
            "price": self.match.price.price,
            "value_analysis": self.value_analysis.to_dict(),
            "recommendation": self.recommendation,
        }


@dataclass
class OrderbookLevel:
    """Single price level in orderbook"""
    price: float    # 0-1
    size: float


@dataclass
class Orderbook:
    """Order book for one instrument, best level first on each side"""
    token_id: str
    bids: list[OrderbookLevel] = field(default_factory=list)
    asks: list[OrderbookLevel] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0].price if self.asks else None

    @property
    def mid(self) -> Optional[float]:
        if self.best_bid is not None and self.best_ask is not None:
            return (self.best_bid + self.best_ask) / 2
        return None


class PositionStatus(Enum):
    OPEN = "open"
    PARTIALLY_CLOSED = "partially_closed"
    CLOSED = "closed"


@dataclass
class Position:
    """Open exposure on one instrument"""
    token_id: str
    amount: float                # Remaining open amount (dollars)
    entry_price: float
    entry_time: datetime
    value_analysis: Optional[ValueAnalysis] = None
    game_key: Optional[EventKey] = None
    game_info: Optional[GameInfo] = None
    order_id: Optional[str] = None
    status: PositionStatus = PositionStatus.OPEN
    initial_amount: float = 0.0
    sell_price: Optional[float] = None
    sell_time: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in (PositionStatus.OPEN, PositionStatus.PARTIALLY_CLOSED)

    def hours_held(self, now: datetime) -> float:
        return (now - self.entry_time).total_seconds() / 3600

    def to_dict(self) -> dict:
        return {
            "token_id": self.token_id,
            "amount": self.amount,
            "initial_amount": self.initial_amount,
            "entry_price": self.entry_price,
            "entry_time": self.entry_time.isoformat(),
            "game": self.game_info.display_name if self.game_info else None,
            "order_id": self.order_id,
            "status": self.status.value,
            "sell_price": self.sell_price,
            "sell_time": self.sell_time.isoformat() if self.sell_time else None,
            "value_analysis": self.value_analysis.to_dict() if self.value_analysis else None,
        }


@dataclass(frozen=True)
class HistoryEntry:
    """Append-only audit record of one buy or sell"""
    action: str                  # "buy" or "sell"
    token_id: str
    amount: float
    price: float
    timestamp: datetime
    order_id: Optional[str] = None
    value_analysis: Optional[ValueAnalysis] = None
    game_key: Optional[EventKey] = None
    order_result: Mapping = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "token_id": self.token_id,
            "amount": self.amount,
            "price": self.price,
            "timestamp": self.timestamp.isoformat(),
            "order_id": self.order_id,
            "game": str(self.game_key) if self.game_key else None,
            "value_analysis": self.value_analysis.to_dict() if self.value_analysis else None,
        }
