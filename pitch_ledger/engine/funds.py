"""Single-account balance and the append-only transaction journal."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import structlog

from pitch_ledger.db.repository import Repository
from pitch_ledger.engine.base import (
    Account,
    BetOutcome,
    TransactionKind,
    from_cents,
    parse_amount,
    quantize,
    to_cents,
)
from pitch_ledger.errors import InsufficientFunds, StorageError

log = structlog.get_logger()


class FundsManager:
    """The only writer of the account row.

    Each operation reads the balance, computes the new one, writes it and
    appends the matching journal entry inside one repository transaction.
    """

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    async def ensure_account(self, starting_balance: Any) -> Account:
        """Create the singleton account on first run."""
        opening = quantize(Decimal(str(starting_balance)))
        async with self._repo.transaction():
            row = await self._repo.get_account()
            if row is None:
                cents = to_cents(opening)
                await self._repo.insert_account(cents)
                await self._repo.insert_transaction(
                    TransactionKind.DEPOSIT.value,
                    cents,
                    0,
                    cents,
                    "Initial account setup",
                )
                log.info("account_created", balance=str(opening))
                row = await self._repo.get_account()
        return Account.from_row(row)

    async def get_account(self) -> Account:
        row = await self._repo.get_account()
        if row is None:
            raise StorageError("account has not been created")
        return Account.from_row(row)

    async def deposit(self, amount: Any, description: str = "Manual deposit") -> Account:
        value = parse_amount(amount)
        cents = to_cents(value)
        account = await self._apply(
            TransactionKind.DEPOSIT,
            cents,
            description,
            deposits_delta=cents,
        )
        log.info("deposit", amount=str(value), balance=str(account.balance))
        return account

    async def withdraw(self, amount: Any, description: str = "Manual withdrawal") -> Account:
        value = parse_amount(amount)
        cents = to_cents(value)
        account = await self._apply(
            TransactionKind.WITHDRAWAL,
            -cents,
            description,
            withdrawals_delta=cents,
        )
        log.info("withdrawal", amount=str(value), balance=str(account.balance))
        return account

    async def apply_bet_placement(
        self, bet_id: int, stake: Decimal, description: str
    ) -> Account:
        """Debit a stake. Must run inside the unit that inserts the bet."""
        return await self._apply(
            TransactionKind.BET_PLACED,
            -to_cents(stake),
            description,
            bet_id=bet_id,
        )

    async def apply_settlement(
        self,
        bet_id: int,
        outcome: BetOutcome,
        profit_loss: Decimal,
        credit: Decimal,
        description: str,
    ) -> Account:
        """Credit a settled bet and update the win/loss tallies.

        Must run inside the unit that moves the bet out of PENDING.
        """
        return await self._apply(
            TransactionKind.BET_SETTLEMENT,
            to_cents(credit),
            description,
            bet_id=bet_id,
            wins_delta=1 if outcome is BetOutcome.WIN else 0,
            losses_delta=1 if outcome is BetOutcome.LOSS else 0,
            profit_loss_delta=to_cents(profit_loss),
        )

    async def _apply(
        self,
        kind: TransactionKind,
        delta_cents: int,
        description: str,
        bet_id: int | None = None,
        **totals: int,
    ) -> Account:
        async with self._repo.transaction():
            row = await self._repo.get_account()
            if row is None:
                raise StorageError("account has not been created")
            before = row["balance_cents"]
            after = before + delta_cents
            if after < 0:
                raise InsufficientFunds(
                    f"{kind.value.lower()} of {from_cents(-delta_cents)} exceeds "
                    f"balance {from_cents(before)}"
                )
            await self._repo.update_account(after, **totals)
            await self._repo.insert_transaction(
                kind.value, delta_cents, before, after, description, bet_id=bet_id
            )
            row = await self._repo.get_account()
        return Account.from_row(row)
