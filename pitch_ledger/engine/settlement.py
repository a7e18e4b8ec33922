"""Resolve pending bets once a match has a final result."""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from decimal import Decimal

import structlog

from pitch_ledger.db.repository import Repository
from pitch_ledger.engine.base import (
    Bet,
    BetOutcome,
    BetStatus,
    MatchResult,
    MatchStatus,
    Side,
    to_cents,
)
from pitch_ledger.engine.bets import BetEngine
from pitch_ledger.engine.funds import FundsManager
from pitch_ledger.engine.matches import MatchLedger
from pitch_ledger.errors import InvalidMatch

log = structlog.get_logger()

_WINNING_SIDE = {
    MatchResult.HOME_WIN: Side.HOME,
    MatchResult.AWAY_WIN: Side.AWAY,
    MatchResult.DRAW: Side.DRAW,
}

_STATUS_FOR = {
    BetOutcome.WIN: BetStatus.WON,
    BetOutcome.LOSS: BetStatus.LOST,
    BetOutcome.PUSH: BetStatus.PUSH,
}


def determine_outcome(side: Side, result: MatchResult) -> BetOutcome:
    """A bet wins only when its side matches the result; there is no push rule."""
    return BetOutcome.WIN if _WINNING_SIDE[result] is side else BetOutcome.LOSS


def compute_payout(
    stake: Decimal, potential_payout: Decimal, outcome: BetOutcome
) -> tuple[Decimal, Decimal, Decimal]:
    """Return (actual_payout, profit_loss, account_credit) for a settled bet.

    The stake left the balance at placement. A win credits its profit, a
    loss credits nothing and a push hands the stake back.
    """
    if outcome is BetOutcome.WIN:
        profit = potential_payout - stake
        return potential_payout, profit, profit
    if outcome is BetOutcome.PUSH:
        return stake, Decimal("0.00"), stake
    return Decimal("0.00"), -stake, Decimal("0.00")


@dataclass
class SettledBet:
    bet_id: int
    status: BetStatus
    actual_payout: Decimal
    profit_loss: Decimal


@dataclass
class SettlementReport:
    match_id: int
    result: MatchResult | None
    settled: list[SettledBet] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.settled)

    @property
    def profit_loss(self) -> Decimal:
        return sum((s.profit_loss for s in self.settled), Decimal("0.00"))


class SettlementCoordinator:
    def __init__(
        self,
        repo: Repository,
        matches: MatchLedger,
        bets: BetEngine,
        funds: FundsManager,
    ) -> None:
        self._repo = repo
        self._matches = matches
        self._bets = bets
        self._funds = funds
        # Locks exist only while some task holds or waits on them.
        self._match_locks: dict[int, asyncio.Lock] = {}
        self._lock_users: Counter[int] = Counter()

    @asynccontextmanager
    async def _match_lock(self, match_id: int) -> AsyncIterator[None]:
        lock = self._match_locks.setdefault(match_id, asyncio.Lock())
        self._lock_users[match_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[match_id] -= 1
            if not self._lock_users[match_id]:
                del self._lock_users[match_id]
                del self._match_locks[match_id]

    async def settle_for_match(self, match_id: int) -> SettlementReport:
        """Settle every PENDING bet on a completed match.

        Each bet is its own atomic unit; a failure mid-batch leaves the
        remaining bets PENDING for the next reconcile pass. Calling this again
        is a no-op once nothing is pending.
        """
        async with self._match_lock(match_id):
            match = await self._matches.get(match_id)
            if match is None:
                raise InvalidMatch(f"match {match_id} does not exist")
            if match.status is not MatchStatus.COMPLETED or match.result is None:
                raise InvalidMatch(f"match {match_id} is not completed")

            report = SettlementReport(match_id=match_id, result=match.result)
            pending = await self._bets.pending_for_match(match_id)
            if not pending:
                log.debug("settlement_nothing_pending", match_id=match_id)
                return report

            score = match.full_time_score or f"{match.home_score}:{match.away_score}"
            for bet in pending:
                settled = await self._settle_one(bet, match.result, score)
                if settled is not None:
                    report.settled.append(settled)

        log.info(
            "match_settled",
            match_id=match_id,
            result=match.result.value,
            bets=report.count,
            profit_loss=str(report.profit_loss),
        )
        return report

    async def reconcile(self) -> int:
        """Settle any completed match that still has pending bets. Returns bets settled."""
        total = 0
        for match_id in await self._matches.completed_with_pending_bets():
            try:
                report = await self.settle_for_match(match_id)
            except Exception:
                log.exception("reconcile_match_error", match_id=match_id)
                continue
            total += report.count
        if total:
            log.info("reconcile_settled", bets=total)
        return total

    async def _settle_one(
        self, bet: Bet, result: MatchResult, score: str
    ) -> SettledBet | None:
        outcome = determine_outcome(bet.side, result)
        status = _STATUS_FOR[outcome]
        actual_payout, profit_loss, credit = compute_payout(
            bet.stake, bet.potential_payout, outcome
        )
        description = f"Bet {status.value.lower()} on {bet.side.value} ({score})"

        async with self._repo.transaction():
            moved = await self._repo.settle_bet(
                bet.id, status.value, to_cents(actual_payout), to_cents(profit_loss)
            )
            if not moved:
                log.warning("bet_already_settled", bet_id=bet.id)
                return None
            account = await self._funds.apply_settlement(
                bet.id, outcome, profit_loss, credit, description
            )

        log.info(
            "bet_settled",
            bet_id=bet.id,
            match_id=bet.match_id,
            status=status.value,
            payout=str(actual_payout),
            profit_loss=str(profit_loss),
            balance=str(account.balance),
        )
        return SettledBet(bet.id, status, actual_payout, profit_loss)
