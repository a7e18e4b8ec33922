"""APScheduler-based ingestion and settlement scheduler."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from pitch_ledger.analysis.audit import LedgerAuditor
from pitch_ledger.analysis.queries import LedgerQueries
from pitch_ledger.analysis.strategy import BettingStrategy
from pitch_ledger.api.feed_client import FeedClient
from pitch_ledger.config import Settings
from pitch_ledger.engine.bets import BetEngine
from pitch_ledger.engine.ingestion import IngestionPipeline
from pitch_ledger.engine.settlement import SettlementCoordinator
from pitch_ledger.errors import LedgerError

log = structlog.get_logger()


class Poller:
    def __init__(
        self,
        settings: Settings,
        feed: FeedClient | None,
        ingestion: IngestionPipeline,
        settlement: SettlementCoordinator,
        bets: BetEngine,
        queries: LedgerQueries,
        strategy: BettingStrategy,
        auditor: LedgerAuditor,
    ) -> None:
        self._settings = settings
        self._feed = feed
        self._ingestion = ingestion
        self._settlement = settlement
        self._bets = bets
        self._queries = queries
        self._strategy = strategy
        self._auditor = auditor
        self._cycle_count = 0

    async def ingest_cycle(self) -> None:
        """Pull observations from the feed and run them through the ledger."""
        if self._feed is None:
            log.debug("ingest_skipped_no_feed")
            return

        self._cycle_count += 1
        log.info("ingest_cycle_start", cycle=self._cycle_count)

        try:
            matches, odds = await self._feed.fetch_all()
        except Exception:
            log.exception("ingest_fetch_error")
            return

        if not matches and not odds:
            log.info("ingest_no_data")
            return

        try:
            await self._ingestion.ingest_batch(matches, odds)
        except Exception:
            log.exception("ingest_cycle_error")

    async def betting_triggers(self) -> None:
        """Run the strategy over open matches; place bets only when auto-betting is on."""
        try:
            summary = await self._queries.account_summary()
            scheduled = await self._queries.scheduled_matches()
            backed = await self._queries.matches_with_pending_bets()
            suggestions = self._strategy.suggest(scheduled, summary.account.balance, backed)
            pending = await self._queries.pending_bet_count()
        except Exception:
            log.exception("betting_triggers_error")
            return

        log.info(
            "betting_triggers_checked",
            balance=str(summary.account.balance),
            scheduled=len(scheduled),
            suggestions=len(suggestions),
            pending_bets=pending,
        )

        for suggestion in suggestions:
            log.info(
                "bet_suggested",
                match=suggestion.reference,
                side=suggestion.side.value,
                odds=str(suggestion.odds),
                stake=str(suggestion.stake),
            )
            if not self._settings.auto_bet_enabled:
                continue
            try:
                await self._bets.place_bet(suggestion.match_id, suggestion.side, suggestion.stake)
            except LedgerError as exc:
                log.warning("auto_bet_rejected", match_id=suggestion.match_id, reason=str(exc))

    async def reconcile(self) -> None:
        """Settle stragglers and check the journal still replays to the balance."""
        try:
            settled = await self._settlement.reconcile()
            audit = await self._auditor.verify()
            log.info("reconcile_done", settled=settled, ledger_ok=audit.ok)
        except Exception:
            log.exception("reconcile_error")


def create_scheduler(poller: Poller, settings: Settings) -> AsyncIOScheduler:
    """Create and configure the APScheduler instance."""
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        poller.ingest_cycle,
        "interval",
        seconds=settings.ingest_interval_seconds,
        id="ingest_observations",
        name="Ingest match and odds observations",
        max_instances=1,
        next_run_time=datetime.now(timezone.utc),  # run immediately on start
    )

    scheduler.add_job(
        poller.betting_triggers,
        "interval",
        seconds=settings.betting_check_interval_seconds,
        id="betting_triggers",
        name="Check betting strategy triggers",
        max_instances=1,
    )

    scheduler.add_job(
        poller.reconcile,
        "interval",
        minutes=settings.reconcile_interval_minutes,
        id="reconcile_settlements",
        name="Settle completed matches with pending bets",
        max_instances=1,
    )

    return scheduler
