"""Tests for the observation ingestion pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from pitch_ledger.api.schemas import MatchObservation, OddsObservation
from pitch_ledger.engine.base import BetStatus, MatchStatus, Side
from pitch_ledger.engine.ingestion import IngestionPipeline

OBSERVED = datetime(2025, 1, 15, 18, 30, tzinfo=timezone.utc)


def _result(score: str, **overrides) -> MatchObservation:
    data = {
        "stage_name": "Matchday 1",
        "home_team_name": "Team A",
        "away_team_name": "Team B",
        "full_time_score": score,
        "observed_at": OBSERVED,
    }
    data.update(overrides)
    return MatchObservation(**data)


def _odds(**overrides) -> OddsObservation:
    data = {
        "stage_name": "Matchday 1",
        "home_team_name": "Team A",
        "away_team_name": "Team B",
        "home_odds": 2.5,
        "draw_odds": 3.2,
        "away_odds": 2.8,
        "observed_at": OBSERVED,
    }
    data.update(overrides)
    return OddsObservation(**data)


@pytest.mark.asyncio
async def test_result_creates_completed_match(ingestion, matches):
    match_id = await ingestion.ingest_match(_result("3:2"))
    match = await matches.get(match_id)
    assert match.status is MatchStatus.COMPLETED
    assert match.match_date == "2025-01-15"
    assert match.match_time == "18:30:00"


@pytest.mark.asyncio
async def test_repeat_observation_is_dropped(ingestion, repo):
    first = await ingestion.ingest_match(_result("1:0"))
    again = await ingestion.ingest_match(_result(" 1 : 0 ", home_team_name="TEAM A"))
    assert first is not None
    assert again is None
    assert len(await repo._fetchall("SELECT id FROM matches")) == 1


@pytest.mark.asyncio
async def test_odds_then_result_settles_bets(ingestion, bets, funds):
    match_id = await ingestion.ingest_odds(_odds())
    bet_id = await bets.place_bet(match_id, Side.HOME, 50)

    completed = await ingestion.ingest_match(_result("2:0"))
    assert completed == match_id

    bet = await bets.get_bet(bet_id)
    assert bet.status is BetStatus.WON
    assert (await funds.get_account()).balance == Decimal("1025.00")


@pytest.mark.asyncio
async def test_odds_for_new_pairing_open_a_scheduled_match(ingestion, matches, odds):
    match_id = await ingestion.ingest_odds(_odds(home_team_name="Team C", away_team_name="Team D"))
    match = await matches.get(match_id)
    assert match.status is MatchStatus.SCHEDULED
    snapshot = await odds.latest_active_snapshot(match_id)
    assert snapshot.captured_at == OBSERVED.isoformat()


@pytest.mark.asyncio
async def test_noisy_odds_stored_as_missing(ingestion, odds):
    match_id = await ingestion.ingest_odds(_odds(home_odds="-", draw_odds="N/A"))
    snapshot = await odds.latest_active_snapshot(match_id)
    assert snapshot.home_odds is None
    assert snapshot.draw_odds is None
    assert snapshot.away_odds == Decimal("2.8")


@pytest.mark.asyncio
async def test_batch_counts(ingestion, bets):
    match_id = await ingestion.ingest_odds(_odds())
    await bets.place_bet(match_id, Side.AWAY, 10)

    counts = await ingestion.ingest_batch(
        [_result("0:1"), _result("0:1")],
        [_odds(stage_name="Matchday 2")],
    )
    assert counts == {"matches": 1, "odds": 1, "settled": 1, "errors": 0}


@pytest.mark.asyncio
async def test_batch_skips_failing_observation(identities, matches, odds, settlement):
    broken = AsyncMock(side_effect=[ValueError("boom"), (7, 0)])
    pipeline = IngestionPipeline(identities, matches, odds, settlement)
    pipeline._record_match = broken  # type: ignore[method-assign]

    counts = await pipeline.ingest_batch(
        [_result("1:0"), _result("2:0", home_team_name="Team C")], []
    )
    assert counts["errors"] == 1
    assert counts["matches"] == 1
    assert broken.await_count == 2


@pytest.mark.asyncio
async def test_batch_continues_after_bad_odds(ingestion, matches):
    counts = await ingestion.ingest_batch(
        [],
        [_odds(stage_name="   "), _odds(stage_name="Matchday 3")],
    )
    assert counts["errors"] == 1
    assert counts["odds"] == 1
    assert len(await matches.get_scheduled()) == 1


@pytest.mark.asyncio
async def test_unchanged_odds_are_not_appended_again(ingestion, odds):
    match_id = await ingestion.ingest_odds(_odds())
    for _ in range(3):
        counts = await ingestion.ingest_batch([], [_odds()])
        assert counts["odds"] == 0
    assert await ingestion.ingest_odds(_odds()) is None

    assert len(await odds.history(match_id)) == 1


@pytest.mark.asyncio
async def test_moved_odds_are_appended(ingestion, odds):
    match_id = await ingestion.ingest_odds(_odds())
    await ingestion.ingest_odds(_odds(home_odds=2.4))
    await ingestion.ingest_odds(_odds())

    history = await odds.history(match_id)
    assert [s.home_odds for s in history] == [Decimal("2.5"), Decimal("2.4"), Decimal("2.5")]


@pytest.mark.asyncio
async def test_same_prices_open_next_match_after_completion(ingestion, odds, matches):
    first = await ingestion.ingest_odds(_odds())
    await ingestion.ingest_match(_result("1:0"))

    second = await ingestion.ingest_odds(_odds())
    assert second is not None
    assert second != first
    assert len(await odds.history(second)) == 1
    assert (await matches.get(second)).status is MatchStatus.SCHEDULED


@pytest.mark.asyncio
async def test_old_result_observations_are_forgotten(ingestion):
    old = _result("1:0", observed_at=datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc))
    await ingestion.ingest_batch([old], [])
    await ingestion.ingest_batch([_result("2:2")], [])

    assert ingestion._observation_key(old) not in ingestion._seen
    assert ingestion._observation_key(_result("2:2")) in ingestion._seen


def test_prune_keeps_recent_observations(identities, matches, odds, settlement):
    pipeline = IngestionPipeline(identities, matches, odds, settlement)
    pipeline._seen = {
        ("s", "a", "b", "1:0", "2025-01-13"),
        ("s", "a", "b", "1:0", "2025-01-14"),
        ("s", "a", "b", "1:0", "2025-01-15"),
    }
    assert pipeline.prune_seen(datetime(2025, 1, 15).date()) == 1
    assert {key[4] for key in pipeline._seen} == {"2025-01-14", "2025-01-15"}
