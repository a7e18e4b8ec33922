"""Ingestion: turn scraper observations into ledger updates and settlements."""

from __future__ import annotations

from datetime import date, timedelta

import structlog

from pitch_ledger.api.schemas import MatchObservation, OddsObservation
from pitch_ledger.engine.identity import IdentityResolver, normalize_name
from pitch_ledger.engine.matches import MatchLedger, parse_score
from pitch_ledger.engine.odds import OddsLog
from pitch_ledger.engine.settlement import SettlementCoordinator

log = structlog.get_logger()

# Results observed more than this long before the newest one are forgotten.
SEEN_RETENTION = timedelta(days=1)

_Prices = tuple[float | None, float | None, float | None]


class IngestionPipeline:
    """Sequential consumer of match and odds observations.

    One instance per process. Match observations already seen in this
    process are dropped before touching storage, and an odds observation
    that repeats the last prices recorded for its match is not appended.
    """

    def __init__(
        self,
        identities: IdentityResolver,
        matches: MatchLedger,
        odds: OddsLog,
        settlement: SettlementCoordinator,
    ) -> None:
        self._identities = identities
        self._matches = matches
        self._odds = odds
        self._settlement = settlement
        self._seen: set[tuple[str, str, str, str, str]] = set()
        self._last_prices: dict[int, _Prices] = {}

    @staticmethod
    def _observation_key(obs: MatchObservation) -> tuple[str, str, str, str, str]:
        home, away = parse_score(obs.full_time_score)
        return (
            normalize_name(obs.stage_name),
            normalize_name(obs.home_team_name),
            normalize_name(obs.away_team_name),
            f"{home}:{away}",
            obs.observed_at.date().isoformat(),
        )

    async def ingest_match(self, obs: MatchObservation) -> int | None:
        """Record a result and settle its bets. Returns the match id, or None if a repeat."""
        match_id, _ = await self._record_match(obs)
        return match_id

    async def _record_match(self, obs: MatchObservation) -> tuple[int | None, int]:
        key = self._observation_key(obs)
        if key in self._seen:
            log.debug("match_observation_repeat", stage=key[0], home=key[1], away=key[2])
            return None, 0

        stage_id = await self._identities.resolve_stage(obs.stage_name)
        home_id = await self._identities.resolve_team(obs.home_team_name)
        away_id = await self._identities.resolve_team(obs.away_team_name)

        match_id = await self._matches.upsert_match_result(
            stage_id,
            home_id,
            away_id,
            obs.observed_at.date().isoformat(),
            obs.full_time_score,
            match_time=obs.observed_at.time().replace(microsecond=0).isoformat(),
            is_final=obs.is_final,
        )
        self._seen.add(key)
        # The match is closed; its prices will never be compared again.
        self._last_prices.pop(match_id, None)

        report = await self._settlement.settle_for_match(match_id)
        return match_id, report.count

    async def ingest_odds(self, obs: OddsObservation) -> int | None:
        """Attach an odds snapshot to the pairing's scheduled match.

        Returns the match id, or None when the prices repeat the match's
        last snapshot from this process.
        """
        stage_id = await self._identities.resolve_stage(obs.stage_name)
        home_id = await self._identities.resolve_team(obs.home_team_name)
        away_id = await self._identities.resolve_team(obs.away_team_name)

        match_id = await self._matches.ensure_scheduled_match(
            stage_id, home_id, away_id, obs.observed_at.date().isoformat()
        )
        prices = (obs.home_odds, obs.draw_odds, obs.away_odds)
        if self._last_prices.get(match_id) == prices:
            log.debug("odds_observation_repeat", match_id=match_id, reference=obs.match_reference)
            return None

        await self._odds.append_snapshot(
            match_id,
            obs.home_odds,
            obs.draw_odds,
            obs.away_odds,
            captured_at=obs.observed_at.isoformat(),
        )
        self._last_prices[match_id] = prices
        return match_id

    def prune_seen(self, newest: date) -> int:
        """Forget result observations dated before ``newest - SEEN_RETENTION``."""
        cutoff = (newest - SEEN_RETENTION).isoformat()
        stale = {key for key in self._seen if key[4] < cutoff}
        self._seen -= stale
        return len(stale)

    async def ingest_batch(
        self,
        matches: list[MatchObservation],
        odds: list[OddsObservation],
    ) -> dict[str, int]:
        """Run one ingestion cycle; a failing observation is logged and skipped.

        Returns counts: {"matches": N, "odds": N, "settled": N, "errors": N}
        """
        counts = {"matches": 0, "odds": 0, "settled": 0, "errors": 0}

        for obs in matches:
            try:
                match_id, settled = await self._record_match(obs)
            except Exception:
                log.exception(
                    "ingest_match_error",
                    stage=obs.stage_name,
                    home=obs.home_team_name,
                    away=obs.away_team_name,
                )
                counts["errors"] += 1
                continue
            if match_id is not None:
                counts["matches"] += 1
                counts["settled"] += settled

        for obs in odds:
            try:
                match_id = await self.ingest_odds(obs)
            except Exception:
                log.exception("ingest_odds_error", reference=obs.match_reference)
                counts["errors"] += 1
                continue
            if match_id is not None:
                counts["odds"] += 1

        # Settlement ran inline per match; the sweep catches any stragglers.
        counts["settled"] += await self._settlement.reconcile()

        if matches:
            pruned = self.prune_seen(max(obs.observed_at.date() for obs in matches))
            if pruned:
                log.debug("seen_observations_pruned", count=pruned)

        log.info("ingest_cycle_complete", **counts)
        return counts
