"""Resolve raw stage and team names to stable ids."""

from __future__ import annotations

import re

import structlog

from pitch_ledger.db.repository import Repository

log = structlog.get_logger()

_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """Trim, collapse inner whitespace and case-fold a display name."""
    return _WHITESPACE.sub(" ", name).strip().casefold()


def _clean_display(name: str) -> str:
    return _WHITESPACE.sub(" ", name).strip()


class IdentityResolver:
    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    async def resolve_stage(self, name: str) -> int:
        return await self._resolve("stages", name)

    async def resolve_team(self, name: str) -> int:
        return await self._resolve("teams", name)

    async def lookup_team(self, name: str) -> int | None:
        """Return the team id for ``name`` without creating it."""
        return await self._repo.get_named_id("teams", normalize_name(name))

    async def lookup_stage(self, name: str) -> int | None:
        return await self._repo.get_named_id("stages", normalize_name(name))

    async def _resolve(self, table: str, name: str) -> int:
        key = normalize_name(name)
        if not key:
            raise ValueError(f"empty name for {table}")
        async with self._repo.transaction():
            entity_id = await self._repo.get_or_create_named(table, key, _clean_display(name))
        log.debug("identity_resolved", table=table, name=key, id=entity_id)
        return entity_id
