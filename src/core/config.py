"""
Centralized Configuration for the Odds Trading Bot

Values come from the environment. The UI-editable trading fields can be
persisted to data/trading_config.json and re-applied on start.
"""

import json
import os
import threading
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .errors import ConfigError

_CONFIG_FILE = os.path.join(os.path.dirname(__file__), "..", "..", "data", "trading_config.json")

# Values shipped in the example .env that must never reach a live connection
_PLACEHOLDERS = {
    "your_api_key_here",
    "your_private_key_here",
    "your_wallet_address_here",
}

# Fields that the dashboard may change at runtime and persist
EDITABLE_TRADING_FIELDS = (
    "min_value_threshold",
    "max_position_size",
    "auto_sell_enabled",
    "auto_sell_hours",
)

# (min, max) accepted for numeric overrides
_OVERRIDE_BOUNDS = {
    "min_value_threshold": (0, 1),
    "max_position_size": (0, None),
    "auto_sell_hours": (0.01, None),
}


@dataclass
class FeedConfig:
    """Streaming odds feed settings"""
    api_key: str = ""
    ws_url: str = "wss://spro.agency/api"

    # Subscription filters (empty list = no filter on that dimension)
    sports: list = field(default_factory=lambda: ["NHL"])
    sportsbooks: list = field(default_factory=list)
    games: list = field(default_factory=list)
    markets: list = field(default_factory=lambda: ["Moneyline", "Spread", "Total"])

    # Reconnect: delay = base * 2^(attempt-1), give up after max attempts
    max_reconnect_attempts: int = 10
    reconnect_delay_seconds: float = 5.0


@dataclass
class PolymarketConfig:
    """Order interface settings"""
    clob_url: str = "https://clob.polymarket.com"
    private_key: str = ""
    wallet_address: str = ""
    token_ids: list = field(default_factory=list)  # Instruments whose prices are polled
    request_timeout: float = 15.0


@dataclass
class TradingConfig:
    """Matching, value, sizing and lifecycle policy"""
    # Matching policy (moneyline-only, single tracked sport)
    tracked_sport: str = "NHL"
    moneyline_market: str = "Moneyline"

    # Value calculation
    min_value_threshold: float = 0.05           # 5% min edge
    high_confidence_edge: float = 0.15          # edge > 15% = high
    medium_confidence_edge: float = 0.10        # edge > 10% = medium

    # Sizing: per trade = min(max_position_size * trade_fraction, max_trade_amount)
    max_position_size: float = 100.0            # Portfolio exposure cap ($)
    trade_fraction: float = 0.10
    max_trade_amount: float = 50.0

    # Auto-sell
    auto_sell_enabled: bool = False
    auto_sell_hours: float = 2.0

    # Scheduling
    trading_interval_seconds: float = 30.0
    cleanup_interval_seconds: float = 300.0
    max_data_age_minutes: float = 60.0

    # Audit trail dump on stop
    history_file: Optional[str] = None


@dataclass
class BotConfig:
    feed: FeedConfig = field(default_factory=FeedConfig)
    polymarket: PolymarketConfig = field(default_factory=PolymarketConfig)
    trading: TradingConfig = field(default_factory=TradingConfig)


def _split_list(value: str) -> list:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _parse_float(name: str, value: str, minimum: float = None, maximum: float = None) -> float:
    try:
        number = float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    if minimum is not None and number < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {number}")
    if maximum is not None and number > maximum:
        raise ConfigError(f"{name} must be <= {maximum}, got {number}")
    return number


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if not value or value in _PLACEHOLDERS:
        raise ConfigError(f"Missing or invalid configuration: {name}")
    return value


def _check_uri(name: str, value: str, schemes: tuple) -> str:
    if not value.startswith(schemes):
        raise ConfigError(f"{name} must start with one of {schemes}, got {value!r}")
    return value


def load_config(env: Mapping[str, str] = None) -> BotConfig:
    """Build and validate the bot configuration from environment variables."""
    env = os.environ if env is None else env
    config = BotConfig()

    feed = config.feed
    feed.api_key = _require(env, "BOLTODDS_API_KEY")
    feed.ws_url = _check_uri("BOLTODDS_WS_URL", env.get("BOLTODDS_WS_URL", feed.ws_url), ("ws://", "wss://"))
    for attr, name in (("sports", "BOLTODDS_SPORTS"), ("sportsbooks", "BOLTODDS_SPORTSBOOKS"),
                       ("games", "BOLTODDS_GAMES"), ("markets", "BOLTODDS_MARKETS")):
        if name in env:
            setattr(feed, attr, _split_list(env[name]))

    poly = config.polymarket
    poly.clob_url = _check_uri("POLYMARKET_CLOB_URL", env.get("POLYMARKET_CLOB_URL", poly.clob_url),
                               ("http://", "https://"))
    poly.private_key = _require(env, "POLYMARKET_PRIVATE_KEY")
    poly.wallet_address = _require(env, "POLYMARKET_WALLET_ADDRESS")
    poly.token_ids = _split_list(env.get("POLYMARKET_TOKEN_IDS", ""))

    trading = config.trading
    if "MIN_VALUE_THRESHOLD" in env:
        trading.min_value_threshold = _parse_float("MIN_VALUE_THRESHOLD", env["MIN_VALUE_THRESHOLD"], 0, 1)
    if "MAX_POSITION_SIZE" in env:
        trading.max_position_size = _parse_float("MAX_POSITION_SIZE", env["MAX_POSITION_SIZE"], 0)
    if "AUTO_SELL_ENABLED" in env:
        trading.auto_sell_enabled = _parse_bool("AUTO_SELL_ENABLED", env["AUTO_SELL_ENABLED"])
    if "AUTO_SELL_HOURS" in env:
        trading.auto_sell_hours = _parse_float("AUTO_SELL_HOURS", env["AUTO_SELL_HOURS"], 0)
        if trading.auto_sell_hours == 0:
            raise ConfigError("AUTO_SELL_HOURS must be > 0")
    if "TRACKED_SPORT" in env:
        sport = env["TRACKED_SPORT"].strip()
        if not sport:
            raise ConfigError("TRACKED_SPORT must not be empty")
        trading.tracked_sport = sport
    trading.history_file = env.get("TRADING_HISTORY_FILE") or None

    return config


# Serializes reads/writes of the persisted overrides file
_config_lock = threading.Lock()


def save_trading_config(trading: TradingConfig, path: str = None):
    """Persist the UI-editable fields of TradingConfig.

    Reads current values under the lock, then writes to disk outside the lock.
    Uses atomic tmp+replace write.
    """
    with _config_lock:
        data = {key: getattr(trading, key) for key in EDITABLE_TRADING_FIELDS}
    config_path = os.path.abspath(path or _CONFIG_FILE)
    os.makedirs(os.path.dirname(config_path), exist_ok=True)
    tmp_path = config_path + ".tmp"
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp_path, config_path)
    print(f"[CONFIG] Saved trading config to {config_path}")


def apply_trading_overrides(trading: TradingConfig, data: Mapping) -> TradingConfig:
    """Apply editable overrides in place, coercing to each field's type.

    Raises ConfigError for unknown keys or values that do not convert.
    """
    parsed = {}
    for key, value in data.items():
        if key not in EDITABLE_TRADING_FIELDS:
            raise ConfigError(f"{key} is not an editable trading setting")
        if isinstance(getattr(trading, key), bool):
            parsed[key] = value if isinstance(value, bool) else _parse_bool(key, str(value))
        else:
            parsed[key] = _parse_float(key, str(value), *_OVERRIDE_BOUNDS[key])

    # All-or-nothing: nothing is applied if any value is rejected
    with _config_lock:
        for key, value in parsed.items():
            setattr(trading, key, value)
    return trading


def apply_saved_overrides(trading: TradingConfig, path: str = None) -> bool:
    """Load persisted overrides into `trading`. Returns True if a file was applied."""
    config_path = os.path.abspath(path or _CONFIG_FILE)
    if not os.path.exists(config_path):
        return False

    try:
        with open(config_path, "r") as f:
            data = json.load(f)
        apply_trading_overrides(
            trading, {k: v for k, v in data.items() if k in EDITABLE_TRADING_FIELDS}
        )
    except (OSError, ValueError) as e:
        print(f"[CONFIG] Failed to load config: {e}")
        return False

    print(f"[CONFIG] Loaded trading config from {config_path}")
    return True
