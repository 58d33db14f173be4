from .client import PolymarketClient, extract_order_id
from .config import BotConfig, FeedConfig, PolymarketConfig, TradingConfig, load_config
from .errors import (
    ErrorRecord,
    ErrorType,
    TradingError,
    InvalidInputError,
    NoLiquidityError,
    PositionNotFoundError,
    OrderError,
    ConfigError,
    BotStoppingError,
)
from .models import (
    FeedEvent,
    FeedEventKind,
    EventKey,
    OddsSnapshot,
    PriceSnapshot,
    MarketMatch,
    Opportunity,
    Confidence,
    Position,
    PositionStatus,
    HistoryEntry,
    Orderbook,
    OrderbookLevel,
)
from .websocket_client import BoltOddsWebSocket, ConnectionState, SubscriptionFilters
