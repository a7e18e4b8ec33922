"""Shared test fixtures."""

from __future__ import annotations

from decimal import Decimal

import pytest

from pitch_ledger.analysis.audit import LedgerAuditor
from pitch_ledger.analysis.queries import LedgerQueries
from pitch_ledger.config import Settings
from pitch_ledger.db.migrations import init_db
from pitch_ledger.db.repository import Repository
from pitch_ledger.engine.bets import BetEngine
from pitch_ledger.engine.funds import FundsManager
from pitch_ledger.engine.identity import IdentityResolver
from pitch_ledger.engine.ingestion import IngestionPipeline
from pitch_ledger.engine.matches import MatchLedger
from pitch_ledger.engine.odds import OddsLog
from pitch_ledger.engine.settlement import SettlementCoordinator


@pytest.fixture
def settings() -> Settings:
    return Settings(
        db_path=":memory:",
        starting_balance=Decimal("1000.00"),
        feed_base_url="http://feed.test",
    )


@pytest.fixture
async def db():
    conn = await init_db(":memory:")
    yield conn
    await conn.close()


@pytest.fixture
async def repo(db) -> Repository:
    return Repository(db)


@pytest.fixture
def identities(repo) -> IdentityResolver:
    return IdentityResolver(repo)


@pytest.fixture
def matches(repo) -> MatchLedger:
    return MatchLedger(repo)


@pytest.fixture
def odds(repo) -> OddsLog:
    return OddsLog(repo)


@pytest.fixture
async def funds(repo) -> FundsManager:
    manager = FundsManager(repo)
    await manager.ensure_account(Decimal("1000.00"))
    return manager


@pytest.fixture
def bets(repo, matches, odds, funds) -> BetEngine:
    return BetEngine(repo, matches, odds, funds)


@pytest.fixture
def settlement(repo, matches, bets, funds) -> SettlementCoordinator:
    return SettlementCoordinator(repo, matches, bets, funds)


@pytest.fixture
def ingestion(identities, matches, odds, settlement) -> IngestionPipeline:
    return IngestionPipeline(identities, matches, odds, settlement)


@pytest.fixture
def queries(repo) -> LedgerQueries:
    return LedgerQueries(repo)


@pytest.fixture
def auditor(repo) -> LedgerAuditor:
    return LedgerAuditor(repo)


@pytest.fixture
async def scheduled_match(identities, matches, odds) -> int:
    """A SCHEDULED "Matchday 1: Team A vs Team B" with odds 2.5 / 3.2 / 2.8."""
    stage_id = await identities.resolve_stage("Matchday 1")
    home_id = await identities.resolve_team("Team A")
    away_id = await identities.resolve_team("Team B")
    match_id = await matches.ensure_scheduled_match(stage_id, home_id, away_id, "2025-01-15")
    await odds.append_snapshot(match_id, 2.5, 3.2, 2.8)
    return match_id


@pytest.fixture
def complete(repo, matches):
    """Complete an existing match with the given score, keyed like a result observation."""

    async def _complete(match_id: int, score: str) -> int:
        row = await repo.get_match(match_id)
        return await matches.upsert_match_result(
            row["stage_id"], row["home_team_id"], row["away_team_id"], row["match_date"], score
        )

    return _complete
