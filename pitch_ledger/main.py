"""Entry point for the pitch-ledger service."""

from __future__ import annotations

import asyncio
import signal
import sys
from dataclasses import dataclass

import aiosqlite
import structlog

from pitch_ledger.analysis.audit import LedgerAuditor
from pitch_ledger.analysis.queries import LedgerQueries
from pitch_ledger.analysis.strategy import HighestOddsStrategy
from pitch_ledger.api.feed_client import FeedClient
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
from pitch_ledger.polling.scheduler import Poller, create_scheduler


def configure_logging(level: str) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            structlog._log_levels.NAME_TO_LEVEL[level.lower()]
        ),
    )


@dataclass
class Ledger:
    """The wired-up components sharing one connection."""

    db: aiosqlite.Connection
    repo: Repository
    identities: IdentityResolver
    matches: MatchLedger
    odds: OddsLog
    funds: FundsManager
    bets: BetEngine
    settlement: SettlementCoordinator
    ingestion: IngestionPipeline
    queries: LedgerQueries
    auditor: LedgerAuditor


async def open_ledger(settings: Settings) -> Ledger:
    db = await init_db(settings.db_path)
    repo = Repository(db)
    identities = IdentityResolver(repo)
    matches = MatchLedger(repo)
    odds = OddsLog(repo)
    funds = FundsManager(repo)
    bets = BetEngine(repo, matches, odds, funds)
    settlement = SettlementCoordinator(repo, matches, bets, funds)
    ingestion = IngestionPipeline(identities, matches, odds, settlement)

    await funds.ensure_account(settings.starting_balance)

    return Ledger(
        db=db,
        repo=repo,
        identities=identities,
        matches=matches,
        odds=odds,
        funds=funds,
        bets=bets,
        settlement=settlement,
        ingestion=ingestion,
        queries=LedgerQueries(repo),
        auditor=LedgerAuditor(repo),
    )


async def run() -> None:
    settings = Settings()
    configure_logging(settings.log_level)

    log = structlog.get_logger()
    log.info("starting", version="0.1.0")

    ledger = await open_ledger(settings)
    feed = FeedClient(settings) if settings.feed_base_url else None
    if feed is None:
        log.warning("feed_not_configured")

    strategy = HighestOddsStrategy(
        min_odds=settings.auto_bet_min_odds,
        stake=settings.auto_bet_stake,
        min_balance=settings.auto_bet_min_balance,
    )
    poller = Poller(
        settings, feed, ledger.ingestion, ledger.settlement, ledger.bets,
        ledger.queries, strategy, ledger.auditor,
    )
    scheduler = create_scheduler(poller, settings)

    stop_event = asyncio.Event()

    def handle_shutdown(*_: object) -> None:
        log.info("shutdown_requested")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_shutdown)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler for SIGTERM
            pass

    scheduler.start()
    log.info("scheduler_started", ingest_interval_seconds=settings.ingest_interval_seconds)

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.shutdown(wait=False)
        if feed is not None:
            await feed.close()
        await ledger.db.close()
        log.info("shutdown_complete")


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
