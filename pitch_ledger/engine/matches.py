"""Match ledger: the authoritative store of matches, scores and results."""

from __future__ import annotations

import re
from datetime import datetime, timezone

import structlog

from pitch_ledger.db.repository import Repository
from pitch_ledger.engine.base import Match, MatchResult, MatchStatus

log = structlog.get_logger()

_SCORE_SIDE = re.compile(r"\d+")


def _parse_side(text: str) -> int:
    text = text.strip()
    if not _SCORE_SIDE.fullmatch(text):
        return 0
    return int(text)


def parse_score(score: str | None) -> tuple[int, int]:
    """Split a "H:A" score string into integers.

    Scraped text is noisy, so a side that isn't a whole number (after trimming)
    counts as 0 instead of failing the whole observation.
    """
    if not score:
        return 0, 0
    home, _, away = score.partition(":")
    return _parse_side(home), _parse_side(away)


def derive_result(home_score: int, away_score: int) -> MatchResult:
    if home_score > away_score:
        return MatchResult.HOME_WIN
    if away_score > home_score:
        return MatchResult.AWAY_WIN
    return MatchResult.DRAW


def today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class MatchLedger:
    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    async def upsert_match_result(
        self,
        stage_id: int,
        home_team_id: int,
        away_team_id: int,
        match_date: str,
        score: str | tuple[int, int],
        *,
        match_time: str | None = None,
        is_final: bool = True,
    ) -> int:
        """Record a final score, updating the match with the same natural key if any.

        The natural key is (stage, home team, away team, date); failing that,
        the pairing's open SCHEDULED match is used. An existing match becomes
        COMPLETED; a COMPLETED match only gets its score fields
        refreshed. A score string is stored as observed. Returns the match id.
        """
        if isinstance(score, tuple):
            home_score, away_score = score
            score_text = f"{home_score}:{away_score}"
        else:
            home_score, away_score = parse_score(score)
            score_text = score
        result = derive_result(home_score, away_score)

        async with self._repo.transaction():
            existing = await self._repo.find_match_by_key(
                stage_id, home_team_id, away_team_id, match_date
            )
            if existing is None:
                # Odds may have opened the match on an earlier day.
                existing = await self._repo.find_latest_scheduled(
                    stage_id, home_team_id, away_team_id
                )
            if existing is not None:
                match_id = existing["id"]
                await self._repo.complete_match(
                    match_id, home_score, away_score, score_text, result.value, is_final,
                    match_time=match_time,
                )
                was = existing["status"]
            else:
                match_id = await self._repo.insert_match(
                    {
                        "stage_id": stage_id,
                        "home_team_id": home_team_id,
                        "away_team_id": away_team_id,
                        "home_score": home_score,
                        "away_score": away_score,
                        "full_time_score": score_text,
                        "match_date": match_date,
                        "match_time": match_time,
                        "status": MatchStatus.COMPLETED.value,
                        "result": result.value,
                        "is_final": int(is_final),
                    }
                )
                was = None

        log.info(
            "match_upserted",
            match_id=match_id,
            score=score_text,
            result=result.value,
            previous_status=was,
        )
        return match_id

    async def ensure_scheduled_match(
        self,
        stage_id: int,
        home_team_id: int,
        away_team_id: int,
        match_date: str | None = None,
    ) -> int:
        """Return the newest SCHEDULED match for this pairing, creating one if needed."""
        async with self._repo.transaction():
            existing = await self._repo.find_latest_scheduled(
                stage_id, home_team_id, away_team_id
            )
            if existing is not None:
                return existing["id"]
            match_id = await self._repo.insert_match(
                {
                    "stage_id": stage_id,
                    "home_team_id": home_team_id,
                    "away_team_id": away_team_id,
                    "match_date": match_date or today(),
                    "status": MatchStatus.SCHEDULED.value,
                }
            )
        log.info("scheduled_match_created", match_id=match_id)
        return match_id

    async def get(self, match_id: int) -> Match | None:
        row = await self._repo.get_match(match_id)
        return Match.from_row(row) if row else None

    async def get_scheduled(self) -> list[Match]:
        rows = await self._repo.get_matches_by_status(MatchStatus.SCHEDULED.value)
        return [Match.from_row(r) for r in rows]

    async def get_recent_completed(self, limit: int = 20) -> list[Match]:
        rows = await self._repo.get_recent_completed(limit)
        return [Match.from_row(r) for r in rows]

    async def completed_with_pending_bets(self) -> list[int]:
        return await self._repo.get_completed_with_pending_bets()
