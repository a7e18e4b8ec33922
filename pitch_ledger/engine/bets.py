"""Bet placement: validate, freeze odds and debit the stake atomically."""

from __future__ import annotations

from typing import Any

import structlog

from pitch_ledger.db.repository import Repository
from pitch_ledger.engine.base import Bet, MatchStatus, Side, parse_amount, quantize, to_cents
from pitch_ledger.engine.funds import FundsManager
from pitch_ledger.engine.matches import MatchLedger
from pitch_ledger.engine.odds import OddsLog
from pitch_ledger.errors import InvalidMatch, OddsUnavailable

log = structlog.get_logger()


class BetEngine:
    def __init__(
        self,
        repo: Repository,
        matches: MatchLedger,
        odds: OddsLog,
        funds: FundsManager,
    ) -> None:
        self._repo = repo
        self._matches = matches
        self._odds = odds
        self._funds = funds

    async def place_bet(self, match_id: int, side: Side | str, stake: Any) -> int:
        """Place a wager on a scheduled match at its current odds.

        The odds are frozen on the bet. Validation, bet insert, balance debit
        and the BET_PLACED journal entry form one unit: any failure leaves
        no trace.
        """
        side = Side(side.upper() if isinstance(side, str) else side)
        amount = parse_amount(stake)

        async with self._repo.transaction():
            match = await self._matches.get(match_id)
            if match is None:
                raise InvalidMatch(f"match {match_id} does not exist")
            if match.status is not MatchStatus.SCHEDULED:
                raise InvalidMatch(f"match {match_id} is {match.status.value}, betting is closed")

            snapshot = await self._odds.latest_active_snapshot(match_id)
            odds = snapshot.odds_for(side) if snapshot else None
            if odds is None:
                raise OddsUnavailable(f"no {side.value} odds for match {match_id}")

            potential_payout = quantize(amount * odds)
            bet_id = await self._repo.insert_bet(
                match_id,
                side.value,
                float(odds),
                to_cents(amount),
                to_cents(potential_payout),
            )
            account = await self._funds.apply_bet_placement(
                bet_id, amount, f"Bet placed on {side.value} (match {match_id})"
            )

        log.info(
            "bet_placed",
            bet_id=bet_id,
            match_id=match_id,
            side=side.value,
            stake=str(amount),
            odds=str(odds),
            potential_payout=str(potential_payout),
            balance=str(account.balance),
        )
        return bet_id

    async def get_bet(self, bet_id: int) -> Bet | None:
        row = await self._repo.get_bet(bet_id)
        return Bet.from_row(row) if row else None

    async def pending_for_match(self, match_id: int) -> list[Bet]:
        return [Bet.from_row(r) for r in await self._repo.get_pending_bets(match_id)]
