"""Pluggable auto-betting strategies that consume the read views."""

from __future__ import annotations

import abc
from collections.abc import Collection
from dataclasses import dataclass
from decimal import Decimal

import structlog

from pitch_ledger.analysis.queries import ScheduledMatchView
from pitch_ledger.engine.base import Side

log = structlog.get_logger()


@dataclass(frozen=True)
class BetSuggestion:
    match_id: int
    reference: str
    side: Side
    odds: Decimal
    stake: Decimal


class BettingStrategy(abc.ABC):
    @abc.abstractmethod
    def suggest(
        self,
        matches: list[ScheduledMatchView],
        balance: Decimal,
        already_backed: Collection[int] = (),
    ) -> list[BetSuggestion]:
        """Return the bets this strategy would place right now.

        Matches in ``already_backed`` hold an open bet and must be skipped.
        """
        ...


class HighestOddsStrategy(BettingStrategy):
    """Back the longest-priced side when it is above a threshold.

    Only matches with all three prices published and no open bet are
    considered, and nothing is suggested once the balance drops under
    ``min_balance``.
    """

    def __init__(
        self,
        min_odds: float = 2.0,
        stake: Decimal = Decimal("10.00"),
        min_balance: Decimal = Decimal("10.00"),
    ) -> None:
        self._min_odds = Decimal(str(min_odds))
        self._stake = stake
        self._min_balance = min_balance

    def suggest(
        self,
        matches: list[ScheduledMatchView],
        balance: Decimal,
        already_backed: Collection[int] = (),
    ) -> list[BetSuggestion]:
        suggestions: list[BetSuggestion] = []
        remaining = balance
        for view in matches:
            snapshot = view.odds
            if snapshot is None or view.match_id in already_backed:
                continue
            prices = [(side, snapshot.odds_for(side)) for side in Side]
            if any(price is None for _, price in prices):
                continue
            # Ties go to the first side in HOME, DRAW, AWAY order.
            side, best = max(prices, key=lambda p: p[1])  # type: ignore[arg-type,return-value]
            if best <= self._min_odds:
                continue
            if remaining < self._min_balance or remaining < self._stake:
                log.debug("strategy_balance_exhausted", balance=str(remaining))
                break
            suggestions.append(
                BetSuggestion(view.match_id, view.reference, side, best, self._stake)
            )
            remaining -= self._stake
        return suggestions
