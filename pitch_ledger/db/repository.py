"""Data access layer for pitch-ledger."""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import aiosqlite
import structlog

from pitch_ledger.errors import StorageError

log = structlog.get_logger()

_MATCH_VIEW_SQL = """
    SELECT m.*, s.display_name AS stage_name,
           ht.display_name AS home_team, at.display_name AS away_team
    FROM matches m
    JOIN stages s ON m.stage_id = s.id
    JOIN teams ht ON m.home_team_id = ht.id
    JOIN teams at ON m.away_team_id = at.id
"""


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class Repository:
    """SQL access to the ledger tables over a single shared connection.

    All writes happen inside ``transaction()``, which holds the write lock
    for the whole unit. Reads outside a unit take the same lock, so no
    reader sees a balance change without its journal entry. The task that
    owns an open unit can read and nest further units freely.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task | None = None

    # ── Unit of work ────────────────────────────────────────────────

    @property
    def in_transaction(self) -> bool:
        return self._owner is not None and self._owner is asyncio.current_task()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed statements as one atomic unit.

        Any exception rolls the unit back; sqlite failures are re-raised as
        ``StorageError``. Nested use by the owning task joins the outer unit.
        """
        if self.in_transaction:
            yield
            return

        async with self._lock:
            self._owner = asyncio.current_task()
            try:
                try:
                    await self._db.execute("BEGIN IMMEDIATE")
                except sqlite3.Error as exc:
                    raise StorageError(f"could not begin transaction: {exc}") from exc
                try:
                    yield
                except BaseException:
                    await self._rollback()
                    raise
                try:
                    await self._db.commit()
                except sqlite3.Error as exc:
                    await self._rollback()
                    raise StorageError(f"commit failed: {exc}") from exc
            finally:
                self._owner = None

    async def _rollback(self) -> None:
        try:
            await self._db.rollback()
        except sqlite3.Error:
            log.exception("rollback_failed")

    @asynccontextmanager
    async def _reading(self) -> AsyncIterator[None]:
        if self.in_transaction:
            yield
            return
        async with self._lock:
            yield

    async def _fetchone(self, sql: str, params: tuple = ()) -> aiosqlite.Row | None:
        async with self._reading():
            try:
                cursor = await self._db.execute(sql, params)
                return await cursor.fetchone()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    async def _fetchall(self, sql: str, params: tuple = ()) -> list[aiosqlite.Row]:
        async with self._reading():
            try:
                cursor = await self._db.execute(sql, params)
                return list(await cursor.fetchall())
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    async def _write(self, sql: str, params: tuple | dict = ()) -> aiosqlite.Cursor:
        if not self.in_transaction:
            raise RuntimeError("writes must run inside Repository.transaction()")
        try:
            return await self._db.execute(sql, params)
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc

    # ── Stages and teams ────────────────────────────────────────────

    async def get_or_create_named(self, table: str, key: str, display_name: str) -> int:
        """Return the id for a normalized name in ``stages`` or ``teams``."""
        if table not in ("stages", "teams"):
            raise ValueError(f"unknown identity table: {table}")
        await self._write(
            f"INSERT OR IGNORE INTO {table} (name, display_name, created_at) VALUES (?, ?, ?)",
            (key, display_name, utcnow()),
        )
        row = await self._fetchone(f"SELECT id FROM {table} WHERE name = ?", (key,))
        if row is None:
            raise StorageError(f"{table} row for {key!r} vanished after insert")
        return row["id"]

    async def get_named_id(self, table: str, key: str) -> int | None:
        if table not in ("stages", "teams"):
            raise ValueError(f"unknown identity table: {table}")
        row = await self._fetchone(f"SELECT id FROM {table} WHERE name = ?", (key,))
        return row["id"] if row else None

    # ── Matches ─────────────────────────────────────────────────────

    async def find_match_by_key(
        self, stage_id: int, home_team_id: int, away_team_id: int, match_date: str
    ) -> aiosqlite.Row | None:
        """Find the match for a natural key, preferring a SCHEDULED row."""
        sql = """
            SELECT * FROM matches
            WHERE stage_id = ? AND home_team_id = ? AND away_team_id = ?
              AND match_date = ?
            ORDER BY (status = 'SCHEDULED') DESC, created_at DESC, id DESC
            LIMIT 1
        """
        return await self._fetchone(
            sql, (stage_id, home_team_id, away_team_id, match_date)
        )

    async def find_latest_scheduled(
        self, stage_id: int, home_team_id: int, away_team_id: int
    ) -> aiosqlite.Row | None:
        sql = """
            SELECT * FROM matches
            WHERE stage_id = ? AND home_team_id = ? AND away_team_id = ?
              AND status = 'SCHEDULED'
            ORDER BY created_at DESC, id DESC
            LIMIT 1
        """
        return await self._fetchone(sql, (stage_id, home_team_id, away_team_id))

    async def insert_match(self, row: dict[str, Any]) -> int:
        now = utcnow()
        sql = """
            INSERT INTO matches
                (stage_id, home_team_id, away_team_id, home_score, away_score,
                 full_time_score, match_date, match_time, status, result,
                 is_final, created_at, updated_at)
            VALUES
                (:stage_id, :home_team_id, :away_team_id, :home_score, :away_score,
                 :full_time_score, :match_date, :match_time, :status, :result,
                 :is_final, :created_at, :updated_at)
        """
        params = {
            "home_score": 0,
            "away_score": 0,
            "full_time_score": None,
            "match_time": None,
            "result": None,
            "is_final": 0,
            **row,
            "created_at": now,
            "updated_at": now,
        }
        cursor = await self._write(sql, params)
        return cursor.lastrowid  # type: ignore[return-value]

    async def complete_match(
        self,
        match_id: int,
        home_score: int,
        away_score: int,
        full_time_score: str,
        result: str,
        is_final: bool,
        match_time: str | None = None,
    ) -> None:
        sql = """
            UPDATE matches
            SET home_score = ?, away_score = ?, full_time_score = ?,
                status = 'COMPLETED', result = ?, is_final = ?,
                match_time = COALESCE(match_time, ?), updated_at = ?
            WHERE id = ?
        """
        await self._write(
            sql,
            (
                home_score, away_score, full_time_score, result,
                int(is_final), match_time, utcnow(), match_id,
            ),
        )

    async def get_match(self, match_id: int) -> aiosqlite.Row | None:
        return await self._fetchone("SELECT * FROM matches WHERE id = ?", (match_id,))

    async def get_matches_by_status(self, status: str) -> list[aiosqlite.Row]:
        sql = "SELECT * FROM matches WHERE status = ? ORDER BY created_at ASC, id ASC"
        return await self._fetchall(sql, (status,))

    async def get_recent_completed(self, limit: int) -> list[aiosqlite.Row]:
        sql = f"""
            {_MATCH_VIEW_SQL}
            WHERE m.status = 'COMPLETED'
            ORDER BY m.match_date DESC, m.match_time DESC, m.id DESC
            LIMIT ?
        """
        return await self._fetchall(sql, (limit,))

    async def get_completed_with_pending_bets(self) -> list[int]:
        sql = """
            SELECT DISTINCT m.id FROM matches m
            JOIN bets b ON b.match_id = m.id
            WHERE m.status = 'COMPLETED' AND b.status = 'PENDING'
            ORDER BY m.id ASC
        """
        rows = await self._fetchall(sql)
        return [row["id"] for row in rows]

    async def get_match_view(self, match_id: int) -> aiosqlite.Row | None:
        return await self._fetchone(f"{_MATCH_VIEW_SQL} WHERE m.id = ?", (match_id,))

    # ── Odds snapshots ──────────────────────────────────────────────

    async def insert_odds_snapshot(
        self,
        match_id: int,
        home_odds: float | None,
        draw_odds: float | None,
        away_odds: float | None,
        captured_at: str,
    ) -> int:
        sql = """
            INSERT INTO odds_snapshots
                (match_id, home_odds, draw_odds, away_odds, captured_at, is_active)
            VALUES (?, ?, ?, ?, ?, 1)
        """
        cursor = await self._write(sql, (match_id, home_odds, draw_odds, away_odds, captured_at))
        return cursor.lastrowid  # type: ignore[return-value]

    async def get_latest_active_snapshot(self, match_id: int) -> aiosqlite.Row | None:
        sql = """
            SELECT * FROM odds_snapshots
            WHERE match_id = ? AND is_active = 1
            ORDER BY id DESC
            LIMIT 1
        """
        return await self._fetchone(sql, (match_id,))

    async def get_snapshots(self, match_id: int) -> list[aiosqlite.Row]:
        sql = "SELECT * FROM odds_snapshots WHERE match_id = ? ORDER BY id ASC"
        return await self._fetchall(sql, (match_id,))

    async def get_scheduled_with_latest_odds(
        self,
    ) -> list[tuple[aiosqlite.Row, aiosqlite.Row | None]]:
        """Scheduled matches joined with their latest active snapshot (if any)."""
        sql = f"""
            {_MATCH_VIEW_SQL}
            WHERE m.status = 'SCHEDULED'
            ORDER BY m.created_at ASC, m.id ASC
        """
        matches = await self._fetchall(sql)
        odds_sql = """
            SELECT o.* FROM odds_snapshots o
            JOIN (
                SELECT match_id, MAX(id) AS latest_id FROM odds_snapshots
                WHERE is_active = 1
                GROUP BY match_id
            ) latest ON o.id = latest.latest_id
            JOIN matches m ON m.id = o.match_id
            WHERE m.status = 'SCHEDULED'
        """
        snapshots = {row["match_id"]: row for row in await self._fetchall(odds_sql)}
        return [(row, snapshots.get(row["id"])) for row in matches]

    # ── Account ─────────────────────────────────────────────────────

    async def get_account(self) -> aiosqlite.Row | None:
        return await self._fetchone("SELECT * FROM account WHERE id = 1")

    async def insert_account(self, balance_cents: int) -> None:
        now = utcnow()
        sql = """
            INSERT INTO account (id, balance_cents, created_at, updated_at)
            VALUES (1, ?, ?, ?)
        """
        await self._write(sql, (balance_cents, now, now))

    async def update_account(
        self,
        balance_cents: int,
        deposits_delta: int = 0,
        withdrawals_delta: int = 0,
        wins_delta: int = 0,
        losses_delta: int = 0,
        profit_loss_delta: int = 0,
    ) -> None:
        sql = """
            UPDATE account
            SET balance_cents = ?,
                total_deposits_cents = total_deposits_cents + ?,
                total_withdrawals_cents = total_withdrawals_cents + ?,
                total_wins = total_wins + ?,
                total_losses = total_losses + ?,
                total_profit_loss_cents = total_profit_loss_cents + ?,
                updated_at = ?
            WHERE id = 1
        """
        await self._write(
            sql,
            (
                balance_cents, deposits_delta, withdrawals_delta,
                wins_delta, losses_delta, profit_loss_delta, utcnow(),
            ),
        )

    # ── Bets ────────────────────────────────────────────────────────

    async def insert_bet(
        self,
        match_id: int,
        side: str,
        odds_taken: float,
        stake_cents: int,
        potential_payout_cents: int,
    ) -> int:
        sql = """
            INSERT INTO bets
                (match_id, side, odds_taken, stake_cents, potential_payout_cents,
                 status, placed_at)
            VALUES (?, ?, ?, ?, ?, 'PENDING', ?)
        """
        cursor = await self._write(
            sql, (match_id, side, odds_taken, stake_cents, potential_payout_cents, utcnow())
        )
        return cursor.lastrowid  # type: ignore[return-value]

    async def get_bet(self, bet_id: int) -> aiosqlite.Row | None:
        return await self._fetchone("SELECT * FROM bets WHERE id = ?", (bet_id,))

    async def get_pending_bets(self, match_id: int) -> list[aiosqlite.Row]:
        sql = """
            SELECT * FROM bets
            WHERE match_id = ? AND status = 'PENDING'
            ORDER BY id ASC
        """
        return await self._fetchall(sql, (match_id,))

    async def settle_bet(
        self,
        bet_id: int,
        status: str,
        actual_payout_cents: int,
        profit_loss_cents: int,
    ) -> bool:
        """Move a PENDING bet to a terminal status. Returns False if it wasn't pending."""
        sql = """
            UPDATE bets
            SET status = ?, actual_payout_cents = ?, profit_loss_cents = ?, settled_at = ?
            WHERE id = ? AND status = 'PENDING'
        """
        cursor = await self._write(
            sql, (status, actual_payout_cents, profit_loss_cents, utcnow(), bet_id)
        )
        return cursor.rowcount == 1

    async def get_bet_views(self, limit: int | None = None) -> list[aiosqlite.Row]:
        """Bets joined with match and team names, newest first."""
        sql = """
            SELECT b.*, s.display_name AS stage_name,
                   ht.display_name AS home_team, at.display_name AS away_team,
                   m.full_time_score
            FROM bets b
            JOIN matches m ON b.match_id = m.id
            JOIN stages s ON m.stage_id = s.id
            JOIN teams ht ON m.home_team_id = ht.id
            JOIN teams at ON m.away_team_id = at.id
            ORDER BY b.placed_at DESC, b.id DESC
        """
        if limit is not None:
            sql += " LIMIT ?"
            return await self._fetchall(sql, (limit,))
        return await self._fetchall(sql)

    async def get_match_ids_with_pending_bets(self) -> list[int]:
        sql = "SELECT DISTINCT match_id FROM bets WHERE status = 'PENDING' ORDER BY match_id"
        rows = await self._fetchall(sql)
        return [row["match_id"] for row in rows]

    async def count_pending_bets(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) AS cnt FROM bets WHERE status = 'PENDING'")
        return row["cnt"] if row else 0

    # ── Transactions ────────────────────────────────────────────────

    async def insert_transaction(
        self,
        kind: str,
        amount_cents: int,
        balance_before_cents: int,
        balance_after_cents: int,
        description: str,
        bet_id: int | None = None,
    ) -> int:
        sql = """
            INSERT INTO transactions
                (bet_id, kind, amount_cents, balance_before_cents,
                 balance_after_cents, description, occurred_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """
        cursor = await self._write(
            sql,
            (
                bet_id, kind, amount_cents, balance_before_cents,
                balance_after_cents, description, utcnow(),
            ),
        )
        return cursor.lastrowid  # type: ignore[return-value]

    async def get_transactions(self, limit: int | None = None) -> list[aiosqlite.Row]:
        """Journal entries, newest first."""
        sql = "SELECT * FROM transactions ORDER BY id DESC"
        if limit is not None:
            return await self._fetchall(sql + " LIMIT ?", (limit,))
        return await self._fetchall(sql)

    async def get_journal_with_balance(self) -> tuple[list[aiosqlite.Row], aiosqlite.Row | None]:
        """The full journal in insertion order plus the account row, read as one snapshot."""
        async with self._reading():
            try:
                cursor = await self._db.execute("SELECT * FROM transactions ORDER BY id ASC")
                journal = list(await cursor.fetchall())
                cursor = await self._db.execute("SELECT * FROM account WHERE id = 1")
                account = await cursor.fetchone()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
        return journal, account
