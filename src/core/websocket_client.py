"""
BoltOdds WebSocket Client for Real-Time Sportsbook Odds

Keeps one persistent connection to the odds feed, turns frames into typed
FeedEvents and fans them out to registered handlers. Reconnects with
exponential backoff (base * 2^(attempt-1)) and gives up after a fixed
number of attempts, emitting RECONNECT_FAILED.
"""

import asyncio
import json
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Union

import websockets

from .config import FeedConfig
from .models import FeedEvent, FeedEventKind

Handler = Callable[[FeedEvent], None]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"     # Connected and subscription sent


@dataclass
class SubscriptionFilters:
    """Subscription filter set. Empty list = wildcard on that dimension."""
    sports: List[str] = field(default_factory=lambda: ["NHL"])
    sportsbooks: List[str] = field(default_factory=list)
    games: List[str] = field(default_factory=list)
    markets: List[str] = field(default_factory=lambda: ["Moneyline", "Spread", "Total"])

    def to_dict(self) -> dict:
        return {
            "sports": list(self.sports),
            "sportsbooks": list(self.sportsbooks),
            "games": list(self.games),
            "markets": list(self.markets),
        }


class BoltOddsWebSocket:
    """
    WebSocket client for the BoltOdds streaming feed.

    Usage:
        ws = BoltOddsWebSocket(feed_config)
        ws.on(FeedEventKind.GAME_UPDATE, handle_update)
        ws.start()  # Runs in background thread

        print(ws.get_connection_status())

        ws.close()
    """

    def __init__(
        self,
        config: FeedConfig,
        connect: Callable[..., Awaitable] = None,
        sleep: Callable[[float], Awaitable] = None,
    ):
        self.config = config
        self.filters = SubscriptionFilters(
            sports=list(config.sports),
            sportsbooks=list(config.sportsbooks),
            games=list(config.games),
            markets=list(config.markets),
        )
        self.max_reconnect_attempts = config.max_reconnect_attempts
        self.reconnect_delay = config.reconnect_delay_seconds

        self._connect_fn = connect or websockets.connect
        self._sleep_fn = sleep

        # Handlers per event kind, called in registration order
        self._handlers: Dict[FeedEventKind, List[Handler]] = {}
        self._handlers_lock = threading.Lock()

        # Connection state
        self._ws = None
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_attempts: int = 0
        self._gave_up = False
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def uri(self) -> str:
        return f"{self.config.ws_url}?key={self.config.api_key}"

    @property
    def masked_uri(self) -> str:
        return f"{self.config.ws_url}?key=***"

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def gave_up(self) -> bool:
        return self._gave_up

    # === Event registry ===

    def on(self, kind: Union[FeedEventKind, str], handler: Handler):
        """Register handler(event) for an event kind. Several handlers per kind are allowed."""
        kind = FeedEventKind(kind)
        with self._handlers_lock:
            self._handlers.setdefault(kind, []).append(handler)

    def emit(self, event: FeedEvent):
        """Deliver an event to every handler for its kind. A failing handler doesn't stop the rest."""
        with self._handlers_lock:
            handlers = list(self._handlers.get(event.kind, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                print(f"[FEED] Error in {event.kind.value} handler: {e}")

    # === Frame handling ===

    def handle_message(self, raw: Union[str, bytes]):
        """Parse one frame and dispatch it. Bad frames are logged and dropped."""
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            message = json.loads(raw)
            if not isinstance(message, dict):
                raise ValueError("frame is not a JSON object")
        except ValueError as e:
            print(f"[FEED] Error parsing message: {e} ({str(raw)[:200]!r})")
            return

        action = message.get("action")

        if action == "ping":
            return

        try:
            kind = FeedEventKind(action)
        except ValueError:
            kind = None
        if kind is None or kind == FeedEventKind.RECONNECT_FAILED:
            print(f"[FEED] Unknown message type received: {action!r}")
            return

        try:
            event = FeedEvent.from_message(kind, message)
        except ValueError as e:
            print(f"[FEED] Dropping malformed {action} frame: {e}")
            return

        if kind == FeedEventKind.SOCKET_CONNECTED:
            print("[FEED] Authentication successful")
        elif kind in (FeedEventKind.INITIAL_STATE, FeedEventKind.GAME_ADDED, FeedEventKind.GAME_REMOVED):
            print(f"[FEED] {action}: {event.sport} {event.game}")
        elif kind == FeedEventKind.BOOK_CLEAR:
            print(f"[FEED] Book cleared: {event.sportsbook}")
        elif kind == FeedEventKind.ERROR:
            print(f"[FEED] Error from feed: {event.message}")
        elif kind == FeedEventKind.SUBSCRIPTION_UPDATED:
            print("[FEED] Subscription updated")

        self.emit(event)

    # === Connection ===

    def _subscribe_message(self) -> dict:
        return {"action": "subscribe", "filters": self.filters.to_dict()}

    async def _send_subscribe(self):
        """Send the current filter set"""
        if not self._ws:
            return
        await self._ws.send(json.dumps(self._subscribe_message()))
        print(f"[FEED] Subscribed with filters {self.filters.to_dict()}")

    async def connect(self) -> bool:
        """Open the connection and subscribe. Failures return False, never raise."""
        self._state = ConnectionState.CONNECTING
        print(f"[FEED] Connecting to {self.masked_uri}")

        try:
            self._ws = await self._connect_fn(self.uri, ping_interval=30, ping_timeout=10)
            print("[FEED] Connected")
            await self._send_subscribe()
            self._state = ConnectionState.CONNECTED
            self._reconnect_attempts = 0
            return True
        except Exception as e:
            print(f"[FEED] Connection failed: {e}")
            await self._drop_connection()
            return False

    async def _drop_connection(self):
        ws, self._ws = self._ws, None
        self._state = ConnectionState.DISCONNECTED
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                print(f"[FEED] Error closing socket: {e}")

    async def _wait(self, delay: float):
        """Backoff delay that ends early when the client is closed"""
        if self._sleep_fn:
            await self._sleep_fn(delay)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _schedule_reconnect(self) -> bool:
        """Wait out the backoff for the next attempt. False once the budget is spent."""
        if self._reconnect_attempts >= self.max_reconnect_attempts:
            self._gave_up = True
            print(f"[FEED] FATAL: max reconnection attempts ({self.max_reconnect_attempts}) "
                  f"reached. Stopping reconnection.")
            self.emit(FeedEvent(
                kind=FeedEventKind.RECONNECT_FAILED,
                message=f"Gave up after {self._reconnect_attempts} reconnection attempts",
            ))
            return False

        self._reconnect_attempts += 1
        delay = self.reconnect_delay * 2 ** (self._reconnect_attempts - 1)
        print(f"[FEED] Reconnecting in {delay:.0f}s "
              f"(attempt {self._reconnect_attempts}/{self.max_reconnect_attempts})")
        await self._wait(delay)
        return self._running

    async def _receive_loop(self):
        """Dispatch frames until the server closes the connection"""
        try:
            async for message in self._ws:
                self.handle_message(message)
            print("[FEED] Connection closed by server")
        except websockets.exceptions.ConnectionClosed as e:
            print(f"[FEED] Connection closed: {e}")
        except Exception as e:
            print(f"[FEED] Receive error: {e}")
        finally:
            await self._drop_connection()

    async def run(self):
        """Connect, receive and reconnect until closed or the retry budget is spent."""
        self._running = True
        self._gave_up = False
        self._stop_event = asyncio.Event()

        while self._running:
            if not await self.connect():
                if not await self._schedule_reconnect():
                    break
                continue

            await self._receive_loop()

            if not self._running:
                break
            if not await self._schedule_reconnect():
                break

        self._running = False
        self._state = ConnectionState.DISCONNECTED

    def _run_async(self):
        """Run the async event loop in a thread"""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        try:
            self._loop.run_until_complete(self.run())
        finally:
            self._loop.close()

    def start(self):
        """Start WebSocket connection in background thread"""
        if self._thread and self._thread.is_alive():
            return

        self._thread = threading.Thread(target=self._run_async, name="boltodds-feed", daemon=True)
        self._thread.start()
        print("[FEED] Started background thread")

    def update_subscription(self, **filters):
        """Merge new filter lists (sports=[...], markets=[...]) and resend if connected"""
        for name, values in filters.items():
            if not hasattr(self.filters, name):
                raise ValueError(f"Unknown subscription filter: {name}")
            setattr(self.filters, name, list(values))

        if self.is_connected and self._loop and self._loop.is_running():
            asyncio.run_coroutine_threadsafe(self._send_subscribe(), self._loop)

    def close(self):
        """Stop the client and close the connection. Safe to call more than once."""
        was_running = self._running
        self._running = False

        loop = self._loop
        on_feed_thread = self._thread is threading.current_thread()
        if loop and loop.is_running():
            if self._stop_event:
                loop.call_soon_threadsafe(self._stop_event.set)
            future = asyncio.run_coroutine_threadsafe(self._drop_connection(), loop)
            if not on_feed_thread:
                try:
                    future.result(timeout=5)
                except Exception as e:
                    print(f"[FEED] Error during close: {e}")

        if self._thread and not on_feed_thread:
            self._thread.join(timeout=5)

        self._state = ConnectionState.DISCONNECTED
        if was_running:
            print("[FEED] Connection closed")

    def get_connection_status(self) -> dict:
        """Connection flag, attempt count and active filters. No side effects."""
        return {
            "is_connected": self.is_connected,
            "state": self._state.value,
            "reconnect_attempts": self._reconnect_attempts,
            "gave_up": self._gave_up,
            "subscription_filters": self.filters.to_dict(),
        }
