"""Core domain types shared by the ledger components."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pitch_ledger.errors import InvalidAmount

CENT = Decimal("0.01")


class MatchStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"


class MatchResult(str, Enum):
    HOME_WIN = "HOME_WIN"
    AWAY_WIN = "AWAY_WIN"
    DRAW = "DRAW"


class Side(str, Enum):
    HOME = "HOME"
    DRAW = "DRAW"
    AWAY = "AWAY"


class BetStatus(str, Enum):
    PENDING = "PENDING"
    WON = "WON"
    LOST = "LOST"
    PUSH = "PUSH"


class BetOutcome(str, Enum):
    WIN = "WIN"
    LOSS = "LOSS"
    PUSH = "PUSH"


class TransactionKind(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    BET_PLACED = "BET_PLACED"
    BET_SETTLEMENT = "BET_SETTLEMENT"


# ── Money helpers ───────────────────────────────────────────────────


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal) -> int:
    return int(quantize(value) * 100)


def from_cents(cents: int) -> Decimal:
    return quantize(Decimal(cents) / 100)


def to_decimal(value: float | None) -> Decimal | None:
    """Convert a stored REAL (odds) to Decimal without float noise."""
    if value is None:
        return None
    return Decimal(str(value))


def parse_amount(value: Any) -> Decimal:
    """Parse a user-supplied funds amount.

    Accepts ints, floats, Decimals and numeric strings. Raises
    ``InvalidAmount`` unless the result is a finite amount of at least
    one cent.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmount(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(value.strip() if isinstance(value, str) else str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"Invalid amount: {value!r}") from None
    if not amount.is_finite():
        raise InvalidAmount(f"Invalid amount: {value!r}")
    amount = quantize(amount)
    if amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {value!r}")
    return amount


# ── Entities ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Match:
    id: int
    stage_id: int
    home_team_id: int
    away_team_id: int
    home_score: int
    away_score: int
    full_time_score: str | None
    match_date: str
    match_time: str | None
    status: MatchStatus
    result: MatchResult | None
    is_final: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: Any) -> Match:
        return cls(
            id=row["id"],
            stage_id=row["stage_id"],
            home_team_id=row["home_team_id"],
            away_team_id=row["away_team_id"],
            home_score=row["home_score"],
            away_score=row["away_score"],
            full_time_score=row["full_time_score"],
            match_date=row["match_date"],
            match_time=row["match_time"],
            status=MatchStatus(row["status"]),
            result=MatchResult(row["result"]) if row["result"] else None,
            is_final=bool(row["is_final"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass(frozen=True)
class OddsSnapshot:
    id: int
    match_id: int
    home_odds: Decimal | None
    draw_odds: Decimal | None
    away_odds: Decimal | None
    captured_at: str
    is_active: bool

    def odds_for(self, side: Side) -> Decimal | None:
        if side is Side.HOME:
            return self.home_odds
        if side is Side.DRAW:
            return self.draw_odds
        return self.away_odds

    @classmethod
    def from_row(cls, row: Any) -> OddsSnapshot:
        return cls(
            id=row["id"],
            match_id=row["match_id"],
            home_odds=to_decimal(row["home_odds"]),
            draw_odds=to_decimal(row["draw_odds"]),
            away_odds=to_decimal(row["away_odds"]),
            captured_at=row["captured_at"],
            is_active=bool(row["is_active"]),
        )


@dataclass(frozen=True)
class Account:
    balance: Decimal
    total_deposits: Decimal
    total_withdrawals: Decimal
    total_wins: int
    total_losses: int
    total_profit_loss: Decimal
    updated_at: str

    @classmethod
    def from_row(cls, row: Any) -> Account:
        return cls(
            balance=from_cents(row["balance_cents"]),
            total_deposits=from_cents(row["total_deposits_cents"]),
            total_withdrawals=from_cents(row["total_withdrawals_cents"]),
            total_wins=row["total_wins"],
            total_losses=row["total_losses"],
            total_profit_loss=from_cents(row["total_profit_loss_cents"]),
            updated_at=row["updated_at"],
        )


@dataclass(frozen=True)
class Bet:
    id: int
    match_id: int
    side: Side
    odds_taken: Decimal
    stake: Decimal
    potential_payout: Decimal
    status: BetStatus
    actual_payout: Decimal
    profit_loss: Decimal
    placed_at: str
    settled_at: str | None

    @classmethod
    def from_row(cls, row: Any) -> Bet:
        return cls(
            id=row["id"],
            match_id=row["match_id"],
            side=Side(row["side"]),
            odds_taken=Decimal(str(row["odds_taken"])),
            stake=from_cents(row["stake_cents"]),
            potential_payout=from_cents(row["potential_payout_cents"]),
            status=BetStatus(row["status"]),
            actual_payout=from_cents(row["actual_payout_cents"]),
            profit_loss=from_cents(row["profit_loss_cents"]),
            placed_at=row["placed_at"],
            settled_at=row["settled_at"],
        )


@dataclass(frozen=True)
class Transaction:
    id: int
    bet_id: int | None
    kind: TransactionKind
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    description: str | None
    occurred_at: str

    @classmethod
    def from_row(cls, row: Any) -> Transaction:
        return cls(
            id=row["id"],
            bet_id=row["bet_id"],
            kind=TransactionKind(row["kind"]),
            amount=from_cents(row["amount_cents"]),
            balance_before=from_cents(row["balance_before_cents"]),
            balance_after=from_cents(row["balance_after_cents"]),
            description=row["description"],
            occurred_at=row["occurred_at"],
        )
