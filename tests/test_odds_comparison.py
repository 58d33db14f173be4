"""
Unit tests for the odds comparison engine
"""

import pytest
from datetime import timedelta

from src.core.config import TradingConfig
from src.core.errors import InvalidInputError
from src.core.models import Confidence, EventKey, FeedEventKind
from src.sports.odds_comparison import OddsComparison

from conftest import NOW


def comparison_with(config=None, **kwargs):
    return OddsComparison(config or TradingConfig(), **kwargs)


class TestIngestion:
    """Store updates"""

    def test_odds_overwrite_not_merge(self, make_event):
        """A new event for the same game replaces the whole outcome mapping"""
        comp = comparison_with()
        first = make_event(extra_outcomes={"Over 5.5": {"odds": "-110", "outcome_name": "Total"}})
        comp.ingest_odds(first, NOW)
        comp.ingest_odds(make_event(home_odds="-200"), NOW + timedelta(minutes=1))

        snapshot = comp.get_odds_snapshot(first.event_key)
        assert "Over 5.5" not in snapshot.outcomes, "Old outcomes should not survive an update"
        assert snapshot.outcomes["Toronto Maple Leafs Moneyline"].odds == "-200"
        assert snapshot.timestamp == NOW + timedelta(minutes=1)

    def test_identity_distinguishes_games(self, make_event):
        """Same matchup on a different date is a different event"""
        comp = comparison_with()
        comp.ingest_odds(make_event(game="2026-01-15, 07"), NOW)
        comp.ingest_odds(make_event(game="2026-01-17, 07"), NOW)
        assert comp.get_data_status()["odds_games"] == 2

    def test_identity_has_no_separator_collisions(self):
        """Team names containing separators can't alias another matchup"""
        a = EventKey("NHL", "A vs B", "C", "g")
        b = EventKey("NHL", "A", "B vs C", "g")
        assert a != b

    @pytest.mark.parametrize("price", [0, 1, -0.5, 1.5, True, "abc"])
    def test_invalid_price_rejected(self, price):
        """Out-of-range prices never reach the store"""
        comp = comparison_with()
        with pytest.raises(InvalidInputError):
            comp.ingest_price("token-1", price, NOW)
        assert comp.get_price_snapshot("token-1") is None

    def test_valid_price_stored(self):
        comp = comparison_with()
        comp.ingest_price("token-1", 0.55, NOW)
        snapshot = comp.get_price_snapshot("token-1")
        assert snapshot.price == 0.55
        assert snapshot.timestamp == NOW

    def test_remove_odds(self, make_event):
        comp = comparison_with()
        event = make_event()
        comp.ingest_odds(event, NOW)
        assert comp.remove_odds(event.event_key)
        assert not comp.remove_odds(event.event_key), "Second removal finds nothing"


class TestMatching:
    """Pairing odds snapshots with price snapshots"""

    def test_every_pair_considered(self, make_event):
        """Default correlation pairs every odds snapshot with every price"""
        comp = comparison_with()
        comp.ingest_odds(make_event(game="g1"), NOW)
        comp.ingest_odds(make_event(game="g2"), NOW)
        comp.ingest_price("token-1", 0.5, NOW)
        comp.ingest_price("token-2", 0.5, NOW)
        assert len(comp.find_matching_markets()) == 4

    def test_other_sport_excluded(self, make_event):
        comp = comparison_with()
        comp.ingest_odds(make_event(sport="NBA"), NOW)
        comp.ingest_price("token-1", 0.5, NOW)
        assert comp.find_matching_markets() == []

    def test_moneyline_only(self, make_event):
        """Simplification: spread/total-only games are not matched at all"""
        comp = comparison_with()
        comp.ingest_odds(make_event(market="Spread"), NOW)
        comp.ingest_price("token-1", 0.5, NOW)
        assert comp.find_matching_markets() == []

    def test_non_moneyline_outcomes_ignored(self, make_event):
        """Only moneyline outcomes are carried on the match"""
        comp = comparison_with()
        comp.ingest_odds(make_event(extra_outcomes={
            "Over 5.5": {"odds": "-500", "outcome_name": "Total", "outcome_target": "Over"},
        }), NOW)
        comp.ingest_price("token-1", 0.5, NOW)
        matches = comp.find_matching_markets()
        assert len(matches) == 1
        assert {o.team for o in matches[0].outcomes} == {"Toronto Maple Leafs", "Boston Bruins"}

    def test_invalid_outcome_odds_skipped(self, make_event):
        comp = comparison_with()
        comp.ingest_odds(make_event(home_odds="abc"), NOW)
        comp.ingest_price("token-1", 0.5, NOW)
        matches = comp.find_matching_markets()
        assert [o.team for o in matches[0].outcomes] == ["Boston Bruins"]

    def test_custom_correlation(self, make_event):
        """A correlate function restricts pairing"""
        comp = comparison_with(correlate=lambda odds, price: price.token_id == odds.event_key.game)
        comp.ingest_odds(make_event(game="g1"), NOW)
        comp.ingest_odds(make_event(game="g2"), NOW)
        comp.ingest_price("g1", 0.5, NOW)
        matches = comp.find_matching_markets()
        assert [(m.event_key.game, m.token_id) for m in matches] == [("g1", "g1")]


class TestValueCalculation:
    """Edge, threshold and confidence"""

    def test_negative_edge_no_opportunity(self, make_event):
        """40% implied vs 55% price: edge -0.15, nothing emitted"""
        comp = comparison_with()
        comp.ingest_odds(make_event(home_odds="+150", away_odds="+150"), NOW)
        comp.ingest_price("token-1", 0.55, NOW)
        assert comp.find_trading_opportunities() == []

    def test_high_confidence_edge(self, make_event):
        """70% implied vs 50% price: edge 0.20, high confidence"""
        comp = comparison_with()
        comp.ingest_odds(make_event(home_odds="-233", away_odds="+400"), NOW)
        comp.ingest_price("token-1", 0.50, NOW)

        opportunities = comp.find_trading_opportunities()
        assert len(opportunities) == 1
        opp = opportunities[0]
        assert abs(opp.edge - 0.20) < 0.001, f"Edge wrong: {opp.edge}"
        assert opp.confidence == Confidence.HIGH
        assert opp.value_analysis.outcome.team == "Toronto Maple Leafs"
        assert opp.recommendation["action"] == "buy"
        assert opp.recommendation["token_id"] == "token-1"

    def test_confidence_tiers(self):
        comp = comparison_with()
        assert comp.calculate_confidence(0.16) == Confidence.HIGH
        assert comp.calculate_confidence(0.15) == Confidence.MEDIUM
        assert comp.calculate_confidence(0.11) == Confidence.MEDIUM
        assert comp.calculate_confidence(0.10) == Confidence.LOW

    def test_low_confidence_still_ranked(self, make_event):
        """Edge between threshold and 0.10 is emitted as low confidence"""
        comp = comparison_with()
        comp.ingest_odds(make_event(home_odds="-133", away_odds="+400"), NOW)
        comp.ingest_price("token-1", 0.50, NOW)
        opportunities = comp.find_trading_opportunities()
        assert len(opportunities) == 1
        assert opportunities[0].confidence == Confidence.LOW

    def test_threshold_is_strict(self, make_event):
        """Edge equal to the threshold is not enough"""
        comp = comparison_with(TradingConfig(min_value_threshold=0.25))
        comp.ingest_odds(make_event(home_odds="+100", away_odds="+400"), NOW)
        comp.ingest_price("token-1", 0.25, NOW)
        analysis = comp.calculate_value(comp.find_matching_markets()[0])
        assert analysis is None

    def test_first_max_wins_ties(self, make_event):
        comp = comparison_with()
        comp.ingest_odds(make_event(home_odds="-233", away_odds="-233"), NOW)
        comp.ingest_price("token-1", 0.50, NOW)
        opp = comp.find_trading_opportunities()[0]
        assert opp.value_analysis.outcome.team == "Toronto Maple Leafs"


class TestOpportunities:

    def test_sorted_by_edge_descending(self, make_event):
        comp = comparison_with()
        comp.ingest_odds(make_event(home_odds="-233", away_odds="+400"), NOW)
        comp.ingest_price("cheap", 0.40, NOW)
        comp.ingest_price("fair", 0.55, NOW)
        comp.ingest_price("rich", 0.60, NOW)
        edges = [o.edge for o in comp.find_trading_opportunities()]
        assert edges == sorted(edges, reverse=True)
        assert len(edges) == 3

    def test_one_per_event_and_instrument(self, make_event):
        comp = comparison_with()
        for game in ("g1", "g2", "g3"):
            comp.ingest_odds(make_event(game=game, home_odds="-233"), NOW)
        for token in ("t1", "t2"):
            comp.ingest_price(token, 0.45, NOW)
        pairs = [(o.event_key, o.token_id) for o in comp.find_trading_opportunities()]
        assert len(pairs) == len(set(pairs)) == 6

    def test_no_side_effects(self, make_event):
        comp = comparison_with()
        comp.ingest_odds(make_event(home_odds="-233"), NOW)
        comp.ingest_price("token-1", 0.5, NOW)
        first = comp.find_trading_opportunities()
        second = comp.find_trading_opportunities()
        assert [o.edge for o in first] == [o.edge for o in second]
        assert comp.get_data_status()["odds_games"] == 1


class TestClearOldData:

    def test_removes_exactly_stale_entries(self, make_event):
        comp = comparison_with()
        comp.ingest_odds(make_event(game="old"), NOW - timedelta(minutes=61))
        comp.ingest_odds(make_event(game="new"), NOW - timedelta(minutes=59))
        comp.ingest_price("old", 0.5, NOW - timedelta(minutes=90))
        comp.ingest_price("edge", 0.5, NOW - timedelta(minutes=60))
        comp.ingest_price("new", 0.5, NOW)

        removed = comp.clear_old_data(60, now=NOW)

        assert removed == (1, 1)
        status = comp.get_data_status()
        assert status["odds_games"] == 1
        assert status["price_tokens"] == 2
        assert comp.get_price_snapshot("edge") is not None, "Exactly 60 minutes old is kept"
        assert comp.get_odds_snapshot(make_event(game="new").event_key) is not None

    def test_status_last_update(self, make_event):
        comp = comparison_with()
        assert comp.get_data_status()["last_update"] is None
        comp.ingest_odds(make_event(), NOW)
        comp.ingest_price("token-1", 0.5, NOW + timedelta(seconds=5))
        assert comp.get_data_status()["last_update"] == NOW + timedelta(seconds=5)

    def test_odds_summary(self, make_event):
        comp = comparison_with()
        comp.ingest_odds(make_event(home_odds="-233"), NOW)
        comp.ingest_price("token-1", 0.5, NOW)
        summary = comp.get_odds_summary()
        assert summary["opportunities"] == 1
        assert summary["last_update"] == NOW.isoformat()


def test_initial_state_event_kind(make_event):
    """Any full-game event kind feeds the store the same way"""
    comp = comparison_with()
    comp.ingest_odds(make_event(kind=FeedEventKind.INITIAL_STATE), NOW)
    assert comp.get_data_status()["odds_games"] == 1
