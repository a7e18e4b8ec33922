"""Tests for the match ledger: score parsing, upserts and lifecycle."""

from __future__ import annotations

import pytest

from pitch_ledger.engine.base import MatchResult, MatchStatus
from pitch_ledger.engine.matches import derive_result, parse_score


class TestParseScore:
    def test_plain(self):
        assert parse_score("2:1") == (2, 1)

    def test_whitespace_and_noise(self):
        assert parse_score(" 3 : 0 ") == (3, 0)

    def test_unparseable_side_defaults_to_zero(self):
        assert parse_score("2:x") == (2, 0)
        assert parse_score("?:4") == (0, 4)

    def test_non_integer_side_defaults_to_zero(self):
        assert parse_score("2.5:1") == (0, 1)
        assert parse_score("1 2:0") == (0, 0)
        assert parse_score("1a:3") == (0, 3)
        assert parse_score("-1:2") == (0, 2)

    def test_no_delimiter(self):
        assert parse_score("abc") == (0, 0)

    def test_empty(self):
        assert parse_score("") == (0, 0)
        assert parse_score(None) == (0, 0)


class TestDeriveResult:
    def test_home_win(self):
        assert derive_result(2, 1) is MatchResult.HOME_WIN

    def test_away_win(self):
        assert derive_result(0, 3) is MatchResult.AWAY_WIN

    def test_draw(self):
        assert derive_result(1, 1) is MatchResult.DRAW


async def _ids(identities):
    stage = await identities.resolve_stage("Matchday 1")
    home = await identities.resolve_team("Team A")
    away = await identities.resolve_team("Team B")
    return stage, home, away


@pytest.mark.asyncio
async def test_upsert_inserts_completed_match(identities, matches):
    stage, home, away = await _ids(identities)
    match_id = await matches.upsert_match_result(stage, home, away, "2025-01-15", "2:1")

    match = await matches.get(match_id)
    assert match.status is MatchStatus.COMPLETED
    assert match.result is MatchResult.HOME_WIN
    assert (match.home_score, match.away_score) == (2, 1)
    assert match.is_final is True


@pytest.mark.asyncio
async def test_upsert_same_key_updates_instead_of_inserting(identities, matches, repo):
    stage, home, away = await _ids(identities)
    first = await matches.upsert_match_result(stage, home, away, "2025-01-15", "1:1")
    second = await matches.upsert_match_result(stage, home, away, "2025-01-15", "2:1")

    assert first == second
    rows = await repo._fetchall("SELECT * FROM matches")
    assert len(rows) == 1
    match = await matches.get(first)
    assert match.result is MatchResult.HOME_WIN
    assert match.full_time_score == "2:1"


@pytest.mark.asyncio
async def test_different_date_is_a_new_match(identities, matches):
    stage, home, away = await _ids(identities)
    first = await matches.upsert_match_result(stage, home, away, "2025-01-15", "1:0")
    second = await matches.upsert_match_result(stage, home, away, "2025-01-16", "1:0")
    assert first != second


@pytest.mark.asyncio
async def test_upsert_completes_scheduled_match(identities, matches):
    stage, home, away = await _ids(identities)
    scheduled = await matches.ensure_scheduled_match(stage, home, away, "2025-01-15")
    completed = await matches.upsert_match_result(stage, home, away, "2025-01-15", "0:2")

    assert scheduled == completed
    match = await matches.get(completed)
    assert match.status is MatchStatus.COMPLETED
    assert match.result is MatchResult.AWAY_WIN


@pytest.mark.asyncio
async def test_upsert_completes_scheduled_match_from_earlier_day(identities, matches):
    stage, home, away = await _ids(identities)
    scheduled = await matches.ensure_scheduled_match(stage, home, away, "2025-01-14")
    completed = await matches.upsert_match_result(stage, home, away, "2025-01-15", "0:0")
    assert scheduled == completed


@pytest.mark.asyncio
async def test_completed_match_never_reverts(identities, matches):
    stage, home, away = await _ids(identities)
    match_id = await matches.upsert_match_result(stage, home, away, "2025-01-15", "3:1")
    await matches.upsert_match_result(stage, home, away, "2025-01-15", "3:1")

    match = await matches.get(match_id)
    assert match.status is MatchStatus.COMPLETED
    assert await matches.get_scheduled() == []


@pytest.mark.asyncio
async def test_ensure_scheduled_reuses_open_match(identities, matches):
    stage, home, away = await _ids(identities)
    first = await matches.ensure_scheduled_match(stage, home, away)
    second = await matches.ensure_scheduled_match(stage, home, away)
    assert first == second
    assert [m.id for m in await matches.get_scheduled()] == [first]


@pytest.mark.asyncio
async def test_ensure_scheduled_after_completion_opens_new_match(identities, matches):
    stage, home, away = await _ids(identities)
    first = await matches.ensure_scheduled_match(stage, home, away, "2025-01-15")
    await matches.upsert_match_result(stage, home, away, "2025-01-15", "1:0")
    second = await matches.ensure_scheduled_match(stage, home, away, "2025-01-15")
    assert second != first


@pytest.mark.asyncio
async def test_get_scheduled_in_creation_order(identities, matches):
    stage = await identities.resolve_stage("Matchday 2")
    teams = [await identities.resolve_team(n) for n in ("A", "B", "C", "D")]
    first = await matches.ensure_scheduled_match(stage, teams[0], teams[1])
    second = await matches.ensure_scheduled_match(stage, teams[2], teams[3])
    assert [m.id for m in await matches.get_scheduled()] == [first, second]


@pytest.mark.asyncio
async def test_recent_completed_newest_first(identities, matches):
    stage, home, away = await _ids(identities)
    older = await matches.upsert_match_result(
        stage, home, away, "2025-01-14", "1:0", match_time="10:00:00"
    )
    newer = await matches.upsert_match_result(
        stage, home, away, "2025-01-15", "0:1", match_time="09:00:00"
    )
    recent = await matches.get_recent_completed(limit=5)
    assert [m.id for m in recent] == [newer, older]
    assert len(await matches.get_recent_completed(limit=1)) == 1


@pytest.mark.asyncio
async def test_observed_score_text_is_kept(identities, matches):
    stage, home, away = await _ids(identities)
    match_id = await matches.upsert_match_result(stage, home, away, "2025-01-15", "2 : 1")

    match = await matches.get(match_id)
    assert match.full_time_score == "2 : 1"
    assert (match.home_score, match.away_score) == (2, 1)
    assert match.result is MatchResult.HOME_WIN


@pytest.mark.asyncio
async def test_unparseable_score_side_decides_result(identities, matches):
    stage, home, away = await _ids(identities)
    match_id = await matches.upsert_match_result(stage, home, away, "2025-01-15", "2.5:1")

    match = await matches.get(match_id)
    assert (match.home_score, match.away_score) == (0, 1)
    assert match.result is MatchResult.AWAY_WIN
    assert match.full_time_score == "2.5:1"
