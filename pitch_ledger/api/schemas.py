"""Pydantic models for observations emitted by the scraper feed."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

_MISSING_ODDS = {"", "-", "n/a", "na", "none", "null"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MatchObservation(BaseModel):
    stage_name: str
    home_team_name: str
    away_team_name: str
    full_time_score: str
    observed_at: datetime = Field(default_factory=_now)
    is_final: bool = True


class OddsObservation(BaseModel):
    stage_name: str
    home_team_name: str
    away_team_name: str
    home_odds: float | None = None
    draw_odds: float | None = None
    away_odds: float | None = None
    observed_at: datetime = Field(default_factory=_now)

    @field_validator("home_odds", "draw_odds", "away_odds", mode="before")
    @classmethod
    def _blank_odds(cls, value: object) -> object:
        # Sites render missing prices as placeholders; treat them as absent.
        if isinstance(value, str):
            text = value.strip()
            if text.lower() in _MISSING_ODDS:
                return None
            try:
                return float(text)
            except ValueError:
                return None
        return value

    @property
    def match_reference(self) -> str:
        return f"{self.stage_name}-{self.home_team_name}-{self.away_team_name}"
