"""
Trading Bot - wires the odds feed, the value engine and the position ledger

Threads:
    boltodds-feed      asyncio loop for the websocket (see BoltOddsWebSocket)
    bot-worker         runs every store mutation, one task at a time
    trading-tick       every 30s: poll prices, evaluate opportunities, auto-sell
    cleanup-tick       every 5min: evict stale data, log status

Feed handlers and ticks never touch the stores directly; they enqueue work
for the worker. A manual sell enqueues too and waits for the result.
"""

import queue
import threading
from collections import deque
from concurrent.futures import CancelledError, Future
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..core.client import PolymarketClient
from ..core.config import BotConfig, apply_trading_overrides, save_trading_config
from ..core.errors import BotStoppingError, ErrorRecord, ErrorType, InvalidInputError, TradingError
from ..core.models import ODDS_UPDATE_KINDS, FeedEvent, FeedEventKind, Opportunity
from ..core.websocket_client import BoltOddsWebSocket
from ..sports.odds_comparison import OddsComparison
from .position_manager import PositionManager
from .risk_manager import RiskManager

# Number of failures kept for status reporting
MAX_ERROR_RECORDS = 50


class TradingBot:
    """
    Composition root for the bot.

    Usage:
        bot = TradingBot(load_config())
        bot.start()
        ...
        bot.sell_position(token_id)
        bot.stop()
    """

    def __init__(
        self,
        config: BotConfig,
        feed: BoltOddsWebSocket = None,
        client: PolymarketClient = None,
        comparison: OddsComparison = None,
        positions: PositionManager = None,
    ):
        self.config = config
        self.client = client or PolymarketClient(config.polymarket)
        self.feed = feed or BoltOddsWebSocket(config.feed)
        self.comparison = comparison or OddsComparison(config.trading)
        self.risk = RiskManager(config.trading)
        self.positions = positions or PositionManager(
            self.client, config.trading, self.risk, on_error=self.record_error
        )

        # Worker
        self._tasks: queue.Queue = queue.Queue()
        self._worker: Optional[threading.Thread] = None

        # Ticks
        self._stop_event = threading.Event()
        self._tick_threads: List[threading.Thread] = []

        self._running = False
        self._lock = threading.Lock()
        self._errors: deque = deque(maxlen=MAX_ERROR_RECORDS)
        self._started_at: Optional[datetime] = None

        # Fatal: reconnect budget spent or an unexpected error on the worker
        self._fatal = threading.Event()
        self._fatal_reason = ""

        self._register_handlers()

    def _register_handlers(self):
        for kind in ODDS_UPDATE_KINDS:
            self.feed.on(kind, lambda event: self.dispatch(self.handle_odds_update, event))
        self.feed.on(FeedEventKind.GAME_REMOVED, lambda event: self.dispatch(self.handle_game_removed, event))
        self.feed.on(FeedEventKind.ERROR, self.handle_feed_error)
        self.feed.on(FeedEventKind.RECONNECT_FAILED, self.handle_reconnect_failed)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_fatal(self) -> bool:
        return self._fatal.is_set()

    @property
    def fatal_reason(self) -> str:
        return self._fatal_reason

    def wait_for_fatal(self, timeout: float = None) -> bool:
        """Block until the bot hits a fatal condition. True if it did."""
        return self._fatal.wait(timeout)

    # === Errors ===

    def record_error(self, record: ErrorRecord):
        with self._lock:
            self._errors.append(record)

    def _record(self, error_type: ErrorType, message: str, token_id: str = None):
        self.record_error(ErrorRecord(
            timestamp=datetime.now(timezone.utc),
            error_type=error_type,
            message=message,
            token_id=token_id,
        ))

    def mark_fatal(self, reason: str):
        self._fatal_reason = reason
        self._fatal.set()
        print(f"[BOT] FATAL: {reason}")

    # === Worker ===

    @staticmethod
    def _run_task(fn: Callable, args: tuple, future: Future):
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(*args))
        except Exception as e:
            future.set_exception(e)

    def _worker_loop(self):
        while True:
            task = self._tasks.get()
            if task is None:
                break
            fn, args, future = task
            self._run_task(fn, args, future)

    def submit(self, fn: Callable, *args) -> Future:
        """
        Run fn(*args) on the worker and return a Future for its result.

        Before start() (and after the worker has exited) the call runs inline.
        While stopping, new work is refused with a BotStoppingError.
        """
        future = Future()
        with self._lock:
            worker_alive = self._worker is not None and self._worker.is_alive()
            if worker_alive and self._running:
                self._tasks.put((fn, args, future))
                return future
        if worker_alive:
            future.set_exception(BotStoppingError("Bot is stopping"))
            return future

        self._run_task(fn, args, future)
        return future

    def dispatch(self, fn: Callable, *args) -> Future:
        """Fire-and-forget submit. An unexpected (non-trading) error becomes fatal."""
        future = self.submit(fn, *args)
        future.add_done_callback(lambda f: self._check_task(fn, f))
        return future

    def _check_task(self, fn: Callable, future: Future):
        if future.cancelled():
            return
        error = future.exception()
        if error is None or isinstance(error, TradingError):
            return
        name = getattr(fn, "__name__", repr(fn))
        self._record(ErrorType.UNKNOWN, f"Unhandled error in {name}: {error}")
        self.mark_fatal(f"Unhandled error in {name}: {error}")

    def _drain_queue(self) -> int:
        """Cancel queued tasks that haven't started"""
        cancelled = 0
        while True:
            try:
                task = self._tasks.get_nowait()
            except queue.Empty:
                return cancelled
            if task is not None and task[2].cancel():
                cancelled += 1

    # === Feed handlers (run on the worker) ===

    def handle_odds_update(self, event: FeedEvent):
        self.comparison.ingest_odds(event)
        self.check_trading_opportunities(log=False)

    def handle_game_removed(self, event: FeedEvent):
        key = event.event_key
        if self.comparison.remove_odds(key):
            print(f"[BOT] Removed odds for {key}")
        for position in self.positions.get_active_positions():
            if position.game_key == key:
                print(f"[BOT] Position {position.token_id} stays open after {key} was removed "
                      f"(${position.amount:.2f})")

    # === Feed handlers (run on the feed thread) ===

    def handle_feed_error(self, event: FeedEvent):
        self._record(ErrorType.NETWORK, f"Feed error: {event.message}")

    def handle_reconnect_failed(self, event: FeedEvent):
        self._record(ErrorType.NETWORK, event.message)
        self.mark_fatal(f"Odds feed unavailable: {event.message}")

    # === Trading ===

    def refresh_prices(self) -> int:
        """Poll midpoints for the configured instruments. Returns how many were stored."""
        stored = 0
        for token_id in self.config.polymarket.token_ids:
            price = self.client.get_midpoint(token_id)
            if price is None:
                continue
            try:
                self.comparison.ingest_price(token_id, price)
            except InvalidInputError as e:
                print(f"[BOT] Rejected price: {e}")
                self._record(e.error_type, str(e), token_id)
                continue
            stored += 1
        return stored

    def check_trading_opportunities(self, now: datetime = None, log: bool = True) -> List[Opportunity]:
        opportunities = self.comparison.find_trading_opportunities()
        if opportunities and log:
            print(f"[BOT] Found {len(opportunities)} opportunities:")
            for opp in opportunities[:3]:
                print(f"      {opp.token_id}: {opp.edge*100:.1f}% edge on "
                      f"{opp.value_analysis.outcome.team} ({opp.confidence.value})")

        for opp in opportunities:
            self.positions.evaluate_opportunity(opp, now)
        return opportunities

    def run_trading_cycle(self, now: datetime = None):
        """Trading tick: refresh prices, evaluate opportunities, sweep expired positions"""
        self.refresh_prices()
        self.check_trading_opportunities(now)
        if self.config.trading.auto_sell_enabled:
            self.positions.run_auto_sell(now)

    def run_cleanup_cycle(self, now: datetime = None):
        """Cleanup tick: evict stale snapshots and log a status line"""
        self.comparison.clear_old_data(self.config.trading.max_data_age_minutes, now)
        data = self.comparison.get_data_status()
        positions = self.positions.get_status()
        print(f"[BOT] Status: connected={self.feed.is_connected}, "
              f"{data['odds_games']} games, {data['price_tokens']} prices, "
              f"{positions['active_positions']} positions (${positions['total_position_value']:.2f})")

    def load_active_positions(self) -> list:
        orders = self.positions.load_active_orders()
        print(f"[BOT] Loaded {len(orders)} active orders")
        return orders

    def sell_position(self, token_id: str, amount: float = None, timeout: float = None) -> dict:
        """Manual sell, serialized with the auto-sell sweep. Raises TradingError subclasses."""
        future = self.submit(self.positions.sell_position, token_id, amount)
        try:
            return future.result(timeout)
        except CancelledError:
            # Dropped from the queue by stop()
            raise BotStoppingError("Bot is stopping") from None

    def get_opportunities(self) -> List[Opportunity]:
        return self.comparison.find_trading_opportunities()

    def update_trading_config(self, data: dict, persist: bool = True) -> dict:
        """Apply dashboard edits to the live TradingConfig (and save them)"""
        apply_trading_overrides(self.config.trading, data)
        if persist:
            save_trading_config(self.config.trading)
        return self.get_trading_config()

    def get_trading_config(self) -> dict:
        trading = self.config.trading
        return {
            "tracked_sport": trading.tracked_sport,
            "min_value_threshold": trading.min_value_threshold,
            "max_position_size": trading.max_position_size,
            "auto_sell_enabled": trading.auto_sell_enabled,
            "auto_sell_hours": trading.auto_sell_hours,
        }

    # === Lifecycle ===

    def _tick_loop(self, interval: float, fn: Callable):
        while not self._stop_event.wait(interval):
            self.dispatch(fn)

    def start(self):
        """Start the worker, the feed and both ticks"""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._started_at = datetime.now(timezone.utc)
        self._stop_event.clear()

        print("[BOT] Starting trading bot...")
        self._worker = threading.Thread(target=self._worker_loop, name="bot-worker", daemon=True)
        self._worker.start()

        self.dispatch(self.load_active_positions)
        self.feed.start()

        trading = self.config.trading
        self._tick_threads = [
            threading.Thread(target=self._tick_loop, args=(trading.trading_interval_seconds, self.run_trading_cycle),
                             name="trading-tick", daemon=True),
            threading.Thread(target=self._tick_loop, args=(trading.cleanup_interval_seconds, self.run_cleanup_cycle),
                             name="cleanup-tick", daemon=True),
        ]
        for thread in self._tick_threads:
            thread.start()
        print("[BOT] Trading bot started")

    def stop(self):
        """
        Close the feed, stop the ticks and let the in-flight task finish.

        Queued tasks that haven't started are cancelled; an order call that
        is already running completes on its own terms.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False

        print("[BOT] Stopping trading bot...")
        self.feed.close()

        self._stop_event.set()
        for thread in self._tick_threads:
            if thread is not threading.current_thread():
                thread.join(timeout=5)
        self._tick_threads = []

        cancelled = self._drain_queue()
        if cancelled:
            print(f"[BOT] Cancelled {cancelled} queued tasks")

        if self._worker:
            self._tasks.put(None)
            if self._worker is not threading.current_thread():
                self._worker.join()

        history_file = self.config.trading.history_file
        if history_file:
            try:
                self.positions.save_trading_history(history_file)
            except OSError as e:
                print(f"[BOT] Failed to save trading history: {e}")

        print("[BOT] Trading bot stopped")

    # === Status ===

    def get_status(self) -> dict:
        data = self.comparison.get_data_status()
        last_update = data["last_update"]
        with self._lock:
            errors = [e.to_dict() for e in self._errors]
            started_at = self._started_at

        return {
            "is_running": self._running,
            "fatal": self.is_fatal,
            "fatal_reason": self._fatal_reason or None,
            "started_at": started_at.isoformat() if started_at else None,
            **self.positions.get_status(),
            "data_status": {
                "odds_games": data["odds_games"],
                "price_tokens": data["price_tokens"],
                "last_update": last_update.isoformat() if last_update else None,
            },
            "connection_status": self.feed.get_connection_status(),
            "trading_config": self.get_trading_config(),
            "recent_errors": errors,
        }
