"""Journal replay: the transaction log must reproduce the account balance."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

import structlog

from pitch_ledger.db.repository import Repository
from pitch_ledger.engine.base import Transaction, from_cents

log = structlog.get_logger()


@dataclass
class AuditResult:
    replayed_balance: Decimal
    stored_balance: Decimal | None
    entries: int
    # Ids of journal entries whose balance_before doesn't follow the previous entry
    broken_links: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return (
            self.stored_balance is not None
            and self.replayed_balance == self.stored_balance
            and not self.broken_links
        )


def replay(journal: list[Transaction], opening_balance: Decimal = Decimal("0.00")) -> AuditResult:
    balance = opening_balance
    broken: list[int] = []
    for tx in journal:
        if tx.balance_before != balance or tx.balance_after != tx.balance_before + tx.amount:
            broken.append(tx.id)
        balance += tx.amount
    return AuditResult(balance, None, len(journal), broken)


class LedgerAuditor:
    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    async def verify(self) -> AuditResult:
        rows, account = await self._repo.get_journal_with_balance()
        result = replay([Transaction.from_row(r) for r in rows])
        if account is not None:
            result.stored_balance = from_cents(account["balance_cents"])

        if result.ok:
            log.info("ledger_audit_ok", entries=result.entries, balance=str(result.replayed_balance))
        else:
            log.error(
                "ledger_audit_mismatch",
                replayed=str(result.replayed_balance),
                stored=str(result.stored_balance),
                broken_links=result.broken_links,
            )
        return result
