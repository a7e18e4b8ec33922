"""Append-only odds snapshots per match."""

from __future__ import annotations

import math
from decimal import Decimal

import structlog

from pitch_ledger.db.repository import Repository, utcnow
from pitch_ledger.engine.base import OddsSnapshot

log = structlog.get_logger()


def _clean_odds(value: float | Decimal | None) -> float | None:
    # A published price must be a positive multiplier; anything else is "no odds".
    if value is None:
        return None
    value = float(value)
    if not math.isfinite(value) or value <= 0:
        return None
    return value


class OddsLog:
    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    async def append_snapshot(
        self,
        match_id: int,
        home_odds: float | Decimal | None,
        draw_odds: float | Decimal | None,
        away_odds: float | Decimal | None,
        captured_at: str | None = None,
    ) -> int:
        """Insert a new active snapshot. Never updates an existing one."""
        async with self._repo.transaction():
            snapshot_id = await self._repo.insert_odds_snapshot(
                match_id,
                _clean_odds(home_odds),
                _clean_odds(draw_odds),
                _clean_odds(away_odds),
                captured_at or utcnow(),
            )
        log.info(
            "odds_snapshot_appended",
            match_id=match_id,
            snapshot_id=snapshot_id,
            home=home_odds,
            draw=draw_odds,
            away=away_odds,
        )
        return snapshot_id

    async def latest_active_snapshot(self, match_id: int) -> OddsSnapshot | None:
        row = await self._repo.get_latest_active_snapshot(match_id)
        return OddsSnapshot.from_row(row) if row else None

    async def history(self, match_id: int) -> list[OddsSnapshot]:
        """All snapshots for a match in insertion order."""
        return [OddsSnapshot.from_row(r) for r in await self._repo.get_snapshots(match_id)]
