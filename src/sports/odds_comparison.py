"""
Odds Comparison - reconciles sportsbook odds against prediction-market prices

Keeps two independent stores:
    - odds snapshots by event identity (from the streaming feed)
    - price snapshots by token id (from the order interface)

Each pass pairs every odds snapshot with every price snapshot, keeps pairs
whose odds side has moneyline outcomes for the tracked sport, computes the
edge of each outcome against the price and ranks the matches whose best edge
clears the threshold.

Known gap: the price side is an opaque token id with no declared link to the
odds-side event, so the default correlation accepts every pair. Pass a
`correlate(odds_snapshot, price_snapshot) -> bool` to restrict pairing.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from ..core.config import TradingConfig
from ..core.errors import InvalidInputError
from ..core.models import (
    Confidence,
    EventKey,
    FeedEvent,
    GameInfo,
    MarketMatch,
    OddsSnapshot,
    Opportunity,
    OutcomeOdds,
    PriceOdds,
    PriceSnapshot,
    ValueAnalysis,
)
from .odds import (
    american_to_decimal,
    is_valid_price,
    parse_american_odds,
    price_to_american,
    price_to_decimal,
)

Correlator = Callable[[OddsSnapshot, PriceSnapshot], bool]


def correlate_all(odds: OddsSnapshot, price: PriceSnapshot) -> bool:
    """Default pairing: every odds snapshot with every price snapshot."""
    return True


class OddsComparison:
    """
    Reconciliation and value engine.

    Usage:
        comparison = OddsComparison(config)
        comparison.ingest_odds(event)
        comparison.ingest_price("123", 0.55)
        for opp in comparison.find_trading_opportunities():
            print(opp.token_id, opp.edge, opp.confidence)
    """

    def __init__(self, config: TradingConfig = None, correlate: Correlator = None):
        self.config = config or TradingConfig()
        self.correlate = correlate or correlate_all

        self._odds: Dict[EventKey, OddsSnapshot] = {}
        self._prices: Dict[str, PriceSnapshot] = {}
        self._lock = threading.Lock()

    # === Ingestion ===

    def ingest_odds(self, event: FeedEvent, now: datetime = None) -> OddsSnapshot:
        """Store the event's outcomes under its identity, replacing any previous snapshot."""
        snapshot = OddsSnapshot.from_event(event, now or datetime.now(timezone.utc))
        with self._lock:
            self._odds[snapshot.event_key] = snapshot
        return snapshot

    def remove_odds(self, event_key: EventKey) -> bool:
        """Drop the snapshot for a removed game. Returns True if one existed."""
        with self._lock:
            return self._odds.pop(event_key, None) is not None

    def ingest_price(self, token_id: str, price, now: datetime = None) -> PriceSnapshot:
        """Store a price for a token. Prices outside (0, 1) raise InvalidInputError."""
        if not token_id:
            raise InvalidInputError("Price update without a token id")
        if isinstance(price, bool) or not is_valid_price(price):
            raise InvalidInputError(f"Price for {token_id} must be in (0, 1), got {price!r}")

        snapshot = PriceSnapshot(token_id, float(price), now or datetime.now(timezone.utc))
        with self._lock:
            self._prices[token_id] = snapshot
        return snapshot

    def get_odds_snapshot(self, event_key: EventKey) -> Optional[OddsSnapshot]:
        with self._lock:
            return self._odds.get(event_key)

    def get_price_snapshot(self, token_id: str) -> Optional[PriceSnapshot]:
        with self._lock:
            return self._prices.get(token_id)

    def _snapshot_stores(self) -> Tuple[List[OddsSnapshot], List[PriceSnapshot]]:
        with self._lock:
            return list(self._odds.values()), list(self._prices.values())

    # === Matching ===

    def find_moneyline_outcomes(self, snapshot: OddsSnapshot) -> List[OutcomeOdds]:
        """Moneyline outcomes with parsable odds, in feed order."""
        outcomes = []
        for record in snapshot.outcomes.values():
            if record.market != self.config.moneyline_market or not record.odds:
                continue
            american = parse_american_odds(record.odds)
            if american is None:
                print(f"[ODDS] Skipping outcome {record.name!r}: invalid odds {record.odds!r}")
                continue
            decimal_odds = american_to_decimal(american)
            outcomes.append(OutcomeOdds(
                team=record.target,
                odds=record.odds,
                american_odds=american,
                decimal_odds=decimal_odds,
                implied_probability=1 / decimal_odds,
                link=record.link,
            ))
        return outcomes

    def compare_markets(self, odds: OddsSnapshot, price: PriceSnapshot,
                        now: datetime = None) -> Optional[MarketMatch]:
        """Pair one odds snapshot with one price snapshot, or None if they don't match."""
        if odds.sport != self.config.tracked_sport:
            return None
        if not self.correlate(odds, price):
            return None

        outcomes = self.find_moneyline_outcomes(odds)
        if not outcomes:
            return None

        return MarketMatch(
            event_key=odds.event_key,
            token_id=price.token_id,
            game_info=GameInfo.from_snapshot(odds),
            outcomes=tuple(outcomes),
            price=PriceOdds(
                token_id=price.token_id,
                price=price.price,
                decimal_odds=price_to_decimal(price.price),
                american_odds=price_to_american(price.price),
            ),
            timestamp=now or datetime.now(timezone.utc),
        )

    def find_matching_markets(self) -> List[MarketMatch]:
        """All matches over a consistent snapshot of both stores."""
        odds_snapshots, price_snapshots = self._snapshot_stores()
        now = datetime.now(timezone.utc)

        matches = []
        for odds in odds_snapshots:
            for price in price_snapshots:
                match = self.compare_markets(odds, price, now)
                if match:
                    matches.append(match)
        return matches

    # === Value ===

    def calculate_confidence(self, value: float) -> Confidence:
        if value > self.config.high_confidence_edge:
            return Confidence.HIGH
        if value > self.config.medium_confidence_edge:
            return Confidence.MEDIUM
        return Confidence.LOW

    def calculate_value(self, match: MarketMatch) -> Optional[ValueAnalysis]:
        """
        Best edge across the match's outcomes, if it clears the threshold.

        edge = outcome implied probability - 1 / price decimal odds
        Ties keep the first outcome in feed order.
        """
        if not match.outcomes or not match.price.decimal_odds:
            return None

        price_probability = 1 / match.price.decimal_odds
        best_value = None
        best_outcome = None

        for outcome in match.outcomes:
            value = outcome.implied_probability - price_probability
            if value > self.config.min_value_threshold and (best_value is None or value > best_value):
                best_value = value
                best_outcome = outcome

        if best_outcome is None:
            return None

        return ValueAnalysis(
            value=best_value,
            outcome=best_outcome,
            price_decimal_odds=match.price.decimal_odds,
            confidence=self.calculate_confidence(best_value),
        )

    def find_trading_opportunities(self) -> List[Opportunity]:
        """Matches whose best edge clears the threshold, highest edge first. No side effects."""
        opportunities = []
        for match in self.find_matching_markets():
            analysis = self.calculate_value(match)
            if analysis:
                opportunities.append(Opportunity(match=match, value_analysis=analysis))

        # sort() is stable, equal edges keep store order
        opportunities.sort(key=lambda o: o.edge, reverse=True)
        return opportunities

    # === Maintenance / status ===

    def clear_old_data(self, max_age_minutes: float = 60, now: datetime = None) -> Tuple[int, int]:
        """Evict snapshots older than now - max_age_minutes. Returns (odds_removed, prices_removed)."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=max_age_minutes)

        with self._lock:
            stale_odds = [k for k, s in self._odds.items() if s.timestamp < cutoff]
            stale_prices = [k for k, s in self._prices.items() if s.timestamp < cutoff]
            for key in stale_odds:
                del self._odds[key]
            for key in stale_prices:
                del self._prices[key]
            remaining_odds, remaining_prices = len(self._odds), len(self._prices)

        print(f"[ODDS] Cleared old data before {cutoff.isoformat()}: "
              f"{remaining_odds} odds snapshots, {remaining_prices} prices remain")
        return len(stale_odds), len(stale_prices)

    def get_data_status(self) -> dict:
        with self._lock:
            timestamps = [s.timestamp for s in self._odds.values()]
            timestamps += [s.timestamp for s in self._prices.values()]
            return {
                "odds_games": len(self._odds),
                "price_tokens": len(self._prices),
                "last_update": max(timestamps) if timestamps else None,
            }

    def get_odds_summary(self) -> dict:
        status = self.get_data_status()
        last_update = status["last_update"]
        return {
            "odds_games": status["odds_games"],
            "price_tokens": status["price_tokens"],
            "opportunities": len(self.find_trading_opportunities()),
            "last_update": last_update.isoformat() if last_update else None,
        }
