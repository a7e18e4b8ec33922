"""Tests for the auto-betting strategy."""

from __future__ import annotations

from decimal import Decimal

from pitch_ledger.analysis.queries import ScheduledMatchView
from pitch_ledger.analysis.strategy import HighestOddsStrategy
from pitch_ledger.engine.base import OddsSnapshot, Side


def _view(match_id: int, home, draw, away) -> ScheduledMatchView:
    def dec(value):
        return None if value is None else Decimal(str(value))

    snapshot = OddsSnapshot(
        id=match_id,
        match_id=match_id,
        home_odds=dec(home),
        draw_odds=dec(draw),
        away_odds=dec(away),
        captured_at="2025-01-15T12:00:00+00:00",
        is_active=True,
    )
    return ScheduledMatchView(match_id, "Matchday 1", f"Home {match_id}", f"Away {match_id}", snapshot)


def test_backs_longest_price():
    strategy = HighestOddsStrategy()
    [suggestion] = strategy.suggest([_view(1, 1.8, 3.4, 4.5)], Decimal("100"))
    assert suggestion.side is Side.AWAY
    assert suggestion.odds == Decimal("4.5")
    assert suggestion.stake == Decimal("10.00")
    assert suggestion.reference == "Matchday 1-Home 1-Away 1"


def test_ignores_prices_at_or_below_threshold():
    strategy = HighestOddsStrategy(min_odds=2.0)
    assert strategy.suggest([_view(1, 1.5, 2.0, 1.9)], Decimal("100")) == []


def test_ignores_incomplete_prices():
    strategy = HighestOddsStrategy()
    no_snapshot = ScheduledMatchView(2, "Matchday 1", "X", "Y", None)
    assert strategy.suggest([_view(1, None, 3.0, 4.0), no_snapshot], Decimal("100")) == []


def test_tie_prefers_home():
    strategy = HighestOddsStrategy()
    [suggestion] = strategy.suggest([_view(1, 3.0, 3.0, 3.0)], Decimal("100"))
    assert suggestion.side is Side.HOME


def test_stops_when_balance_runs_low():
    strategy = HighestOddsStrategy(stake=Decimal("10.00"), min_balance=Decimal("10.00"))
    views = [_view(i, 3.0, 3.1, 3.2) for i in range(1, 4)]
    suggestions = strategy.suggest(views, Decimal("25.00"))
    assert [s.match_id for s in suggestions] == [1, 2]


def test_nothing_below_min_balance():
    strategy = HighestOddsStrategy(min_balance=Decimal("50.00"))
    assert strategy.suggest([_view(1, 3.0, 3.1, 3.2)], Decimal("40.00")) == []


def test_skips_matches_with_open_bets():
    strategy = HighestOddsStrategy()
    views = [_view(1, 3.0, 3.1, 3.2), _view(2, 3.0, 3.1, 3.2)]
    suggestions = strategy.suggest(views, Decimal("100"), already_backed={1})
    assert [s.match_id for s in suggestions] == [2]
