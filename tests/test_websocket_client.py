"""
Unit tests for the BoltOdds feed client

The socket is a fake driven by asyncio.run; backoff sleeps are recorded
instead of waited.
"""

import asyncio
import json
import pytest

from src.core.config import FeedConfig
from src.core.models import FeedEventKind
from src.core.websocket_client import BoltOddsWebSocket, ConnectionState


class FakeSocket:
    """Yields the given frames, then ends as if the server closed"""

    def __init__(self, frames=()):
        self.frames = list(frames)
        self.sent = []
        self.closed = False

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame


class FakeConnector:
    """connect() stand-in: pops sockets or exceptions, refuses once empty"""

    def __init__(self, outcomes=()):
        self.outcomes = list(outcomes)
        self.calls = []

    async def __call__(self, uri, **kwargs):
        self.calls.append((uri, kwargs))
        outcome = self.outcomes.pop(0) if self.outcomes else OSError("connection refused")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def frame(action, **data):
    message = {"action": action}
    if data:
        message["data"] = data
    return json.dumps(message)


GAME_DATA = {
    "sport": "NHL",
    "home_team": "Toronto Maple Leafs",
    "away_team": "Boston Bruins",
    "game": "2026-01-15, 07",
    "sportsbook": "draftkings",
    "outcomes": {
        "Toronto Maple Leafs Moneyline": {
            "odds": "-150", "outcome_name": "Moneyline", "outcome_target": "Toronto Maple Leafs",
        },
    },
}


def make_feed(outcomes=(), max_attempts=3, delay=5.0):
    connector = FakeConnector(outcomes)
    delays = []
    snapshots = []

    config = FeedConfig(api_key="secret-key", max_reconnect_attempts=max_attempts,
                        reconnect_delay_seconds=delay)
    feed = None

    async def sleep(seconds):
        delays.append(seconds)
        snapshots.append(feed.get_connection_status())

    feed = BoltOddsWebSocket(config, connect=connector, sleep=sleep)
    return feed, connector, delays, snapshots


def collect(feed, kind):
    events = []
    feed.on(kind, events.append)
    return events


class TestDispatch:
    """Frame parsing and handler fan-out"""

    def test_game_update_dispatched(self):
        feed, _, _, _ = make_feed()
        events = collect(feed, FeedEventKind.GAME_UPDATE)

        feed.handle_message(frame("game_update", **GAME_DATA))

        assert len(events) == 1
        event = events[0]
        assert event.sport == "NHL"
        assert event.event_key.home_team == "Toronto Maple Leafs"
        assert event.outcomes["Toronto Maple Leafs Moneyline"].odds == "-150"

    def test_bad_frames_dropped(self):
        feed, _, _, _ = make_feed()
        events = collect(feed, FeedEventKind.GAME_UPDATE)

        feed.handle_message("{not json")
        feed.handle_message("[1, 2, 3]")
        feed.handle_message(frame("ping"))
        feed.handle_message(frame("brand_new_action", **GAME_DATA))
        feed.handle_message(json.dumps({"action": "game_update", "data": "oops"}))
        feed.handle_message(frame("game_update", **GAME_DATA))

        assert len(events) == 1, "Only the valid frame gets through"

    def test_reconnect_failed_not_accepted_from_wire(self):
        feed, _, _, _ = make_feed()
        events = collect(feed, FeedEventKind.RECONNECT_FAILED)
        feed.handle_message(frame("reconnect_failed"))
        assert events == []

    def test_failing_handler_isolated(self):
        """A handler that raises doesn't stop the rest"""
        feed, _, _, _ = make_feed()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        feed.on(FeedEventKind.GAME_ADDED, broken)
        feed.on(FeedEventKind.GAME_ADDED, received.append)
        feed.handle_message(frame("game_added", **GAME_DATA))
        feed.handle_message(frame("game_added", **GAME_DATA))

        assert len(received) == 2

    def test_handlers_in_registration_order(self):
        feed, _, _, _ = make_feed()
        order = []
        feed.on("line_update", lambda e: order.append("first"))
        feed.on(FeedEventKind.LINE_UPDATE, lambda e: order.append("second"))
        feed.handle_message(frame("line_update", **GAME_DATA))
        assert order == ["first", "second"]

    def test_error_frame(self):
        feed, _, _, _ = make_feed()
        events = collect(feed, FeedEventKind.ERROR)
        feed.handle_message(json.dumps({"action": "error", "message": "bad key"}))
        assert events[0].message == "bad key"

    def test_bytes_frame(self):
        feed, _, _, _ = make_feed()
        events = collect(feed, FeedEventKind.BOOK_CLEAR)
        feed.handle_message(frame("book_clear", sportsbook="fanduel").encode())
        assert events[0].sportsbook == "fanduel"


class TestConnection:
    """Connect, subscribe and reconnect"""

    def test_subscribes_on_connect(self):
        socket = FakeSocket()
        feed, connector, _, _ = make_feed([socket], max_attempts=0)

        asyncio.run(feed.run())

        uri, kwargs = connector.calls[0]
        assert uri == "wss://spro.agency/api?key=secret-key"
        assert kwargs == {"ping_interval": 30, "ping_timeout": 10}
        assert socket.sent == [{
            "action": "subscribe",
            "filters": {
                "sports": ["NHL"],
                "sportsbooks": [],
                "games": [],
                "markets": ["Moneyline", "Spread", "Total"],
            },
        }]
        assert socket.closed

    def test_frames_delivered_then_reconnect(self):
        socket = FakeSocket([frame("socket_connected"), frame("game_update", **GAME_DATA)])
        feed, connector, delays, _ = make_feed([socket], max_attempts=2)
        updates = collect(feed, FeedEventKind.GAME_UPDATE)
        failures = collect(feed, FeedEventKind.RECONNECT_FAILED)

        asyncio.run(feed.run())

        assert len(updates) == 1
        assert delays == [5.0, 10.0]
        assert len(connector.calls) == 3
        assert len(failures) == 1

    def test_backoff_and_attempt_count(self):
        """After N failures (N < cap) the client is still retrying, disconnected, at attempt N"""
        feed, connector, delays, snapshots = make_feed([], max_attempts=4, delay=2.0)
        failures = collect(feed, FeedEventKind.RECONNECT_FAILED)

        asyncio.run(feed.run())

        assert delays == [2.0, 4.0, 8.0, 16.0]
        for n, status in enumerate(snapshots, 1):
            assert status["reconnect_attempts"] == n
            assert status["is_connected"] is False

        # Cap reached: no further attempt scheduled
        assert len(connector.calls) == 5
        assert len(failures) == 1
        assert feed.gave_up
        assert feed.state == ConnectionState.DISCONNECTED

    def test_successful_connect_resets_attempts(self):
        outcomes = [OSError("down"), OSError("down"), FakeSocket()]
        feed, connector, delays, _ = make_feed(outcomes, max_attempts=3)

        asyncio.run(feed.run())

        # 2 failures, success resets, then 3 more failures until the cap
        assert delays == [5.0, 10.0, 5.0, 10.0, 20.0]
        assert len(connector.calls) == 6

    def test_close_stops_reconnecting(self):
        feed, connector, delays, _ = make_feed([], max_attempts=10)

        async def sleep(seconds):
            delays.append(seconds)
            feed.close()

        feed._sleep_fn = sleep
        asyncio.run(feed.run())

        assert len(connector.calls) == 1
        assert not feed.gave_up
        assert feed.get_connection_status()["is_connected"] is False

    def test_close_idempotent(self):
        feed, _, _, _ = make_feed()
        feed.close()
        feed.close()
        assert feed.state == ConnectionState.DISCONNECTED


class TestSubscription:

    def test_update_filters(self):
        feed, _, _, _ = make_feed()
        feed.update_subscription(sports=["NBA", "NHL"], sportsbooks=["draftkings"])
        filters = feed.get_connection_status()["subscription_filters"]
        assert filters["sports"] == ["NBA", "NHL"]
        assert filters["sportsbooks"] == ["draftkings"]
        assert filters["markets"] == ["Moneyline", "Spread", "Total"]

    def test_unknown_filter(self):
        feed, _, _, _ = make_feed()
        with pytest.raises(ValueError):
            feed.update_subscription(leagues=["NHL"])

    def test_key_not_in_masked_uri(self):
        feed, _, _, _ = make_feed()
        assert "secret-key" not in feed.masked_uri
