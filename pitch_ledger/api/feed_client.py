"""Async client for the observation feed published by the scraper."""

from __future__ import annotations

import httpx
import structlog

from pitch_ledger.api.schemas import MatchObservation, OddsObservation
from pitch_ledger.config import Settings

log = structlog.get_logger()


class FeedClient:
    def __init__(
        self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        if not settings.feed_base_url:
            raise ValueError("feed_base_url is not configured")
        self._client = httpx.AsyncClient(
            base_url=settings.feed_base_url,
            timeout=settings.feed_timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_matches(self) -> list[MatchObservation]:
        """Fetch the latest finished-match observations."""
        resp = await self._client.get("/matches")
        resp.raise_for_status()
        observations = [MatchObservation(**item) for item in resp.json()]
        log.debug("feed_matches_fetched", count=len(observations))
        return observations

    async def fetch_odds(self) -> list[OddsObservation]:
        """Fetch the latest odds observations for upcoming matches."""
        resp = await self._client.get("/odds")
        resp.raise_for_status()
        observations = [OddsObservation(**item) for item in resp.json()]
        log.debug("feed_odds_fetched", count=len(observations))
        return observations

    async def fetch_all(self) -> tuple[list[MatchObservation], list[OddsObservation]]:
        return await self.fetch_matches(), await self.fetch_odds()
