"""Read-side views over the ledger for the CLI and strategies."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import structlog

from pitch_ledger.db.repository import Repository
from pitch_ledger.engine.base import (
    Account,
    Bet,
    BetStatus,
    OddsSnapshot,
    Transaction,
    from_cents,
)
from pitch_ledger.engine.identity import normalize_name
from pitch_ledger.errors import InvalidMatch, StorageError

log = structlog.get_logger()


@dataclass(frozen=True)
class BetView:
    bet: Bet
    stage_name: str
    home_team: str
    away_team: str
    full_time_score: str | None
    running_profit_loss: Decimal = Decimal("0.00")


@dataclass(frozen=True)
class ScheduledMatchView:
    match_id: int
    stage_name: str
    home_team: str
    away_team: str
    odds: OddsSnapshot | None

    @property
    def reference(self) -> str:
        return f"{self.stage_name}-{self.home_team}-{self.away_team}"


@dataclass(frozen=True)
class MatchResultView:
    match_id: int
    stage_name: str
    home_team: str
    away_team: str
    full_time_score: str | None
    result: str
    match_date: str
    match_time: str | None


@dataclass(frozen=True)
class AccountSummary:
    account: Account
    recent_bets: list[BetView]
    total_bets: int
    win_rate: float


def _bet_view(row, running: Decimal = Decimal("0.00")) -> BetView:
    return BetView(
        bet=Bet.from_row(row),
        stage_name=row["stage_name"],
        home_team=row["home_team"],
        away_team=row["away_team"],
        full_time_score=row["full_time_score"],
        running_profit_loss=running,
    )


class LedgerQueries:
    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    async def account_summary(self, recent: int = 10) -> AccountSummary:
        row = await self._repo.get_account()
        if row is None:
            raise StorageError("account has not been created")
        account = Account.from_row(row)
        recent_bets = [_bet_view(r) for r in await self._repo.get_bet_views(limit=recent)]
        total = account.total_wins + account.total_losses
        win_rate = round(account.total_wins / total * 100, 1) if total else 0.0
        return AccountSummary(account, recent_bets, total, win_rate)

    async def scheduled_matches(self) -> list[ScheduledMatchView]:
        """Open matches in creation order with their latest active odds."""
        views = []
        for row, snapshot in await self._repo.get_scheduled_with_latest_odds():
            views.append(
                ScheduledMatchView(
                    match_id=row["id"],
                    stage_name=row["stage_name"],
                    home_team=row["home_team"],
                    away_team=row["away_team"],
                    odds=OddsSnapshot.from_row(snapshot) if snapshot else None,
                )
            )
        return views

    async def bet_history(self) -> list[BetView]:
        """All bets, newest first, each carrying the cumulative settled P/L up to it."""
        rows = await self._repo.get_bet_views()
        running = Decimal("0.00")
        chronological = []
        for row in reversed(rows):
            if row["status"] != BetStatus.PENDING.value:
                running += from_cents(row["profit_loss_cents"])
            chronological.append(_bet_view(row, running))
        return list(reversed(chronological))

    async def transaction_history(self, limit: int | None = 50) -> list[Transaction]:
        return [Transaction.from_row(r) for r in await self._repo.get_transactions(limit)]

    async def completed_results(self, limit: int = 20) -> dict[str, list[MatchResultView]]:
        """Recent results grouped by stage, newest first within each stage."""
        grouped: dict[str, list[MatchResultView]] = {}
        for row in await self._repo.get_recent_completed(limit):
            grouped.setdefault(row["stage_name"], []).append(
                MatchResultView(
                    match_id=row["id"],
                    stage_name=row["stage_name"],
                    home_team=row["home_team"],
                    away_team=row["away_team"],
                    full_time_score=row["full_time_score"],
                    result=row["result"],
                    match_date=row["match_date"],
                    match_time=row["match_time"],
                )
            )
        return grouped

    async def pending_bet_count(self) -> int:
        return await self._repo.count_pending_bets()

    async def matches_with_pending_bets(self) -> set[int]:
        return set(await self._repo.get_match_ids_with_pending_bets())


async def resolve_match_selector(queries: LedgerQueries, selector: int | str) -> int:
    """Resolve a match id or a "Stage-Home-Away" reference to a scheduled match id.

    Raises ``InvalidMatch`` when nothing open matches.
    """
    if isinstance(selector, int) or str(selector).strip().isdigit():
        return int(selector)

    wanted = normalize_name(str(selector))
    for view in reversed(await queries.scheduled_matches()):
        if normalize_name(view.reference) == wanted:
            return view.match_id
    raise InvalidMatch(f"no scheduled match for {selector!r}")
