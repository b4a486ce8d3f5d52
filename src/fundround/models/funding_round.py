"""Funding round models — the round window, its four phase windows, and phase resolution."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as SQLite returns them) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class RoundPhase(StrEnum):
    """Where a funding round stands at a given instant.

    The str mixin allows direct comparison with the upper-case status strings
    used for proposals (``ProposalStatus.VOTING == RoundPhase.VOTING``).
    """

    UPCOMING = "UPCOMING"
    SUBMISSION = "SUBMISSION"
    CONSIDERATION = "CONSIDERATION"
    DELIBERATION = "DELIBERATION"
    VOTING = "VOTING"
    BETWEEN_PHASES = "BETWEEN_PHASES"
    COMPLETED = "COMPLETED"


# Chronological order of the windowed phases.
PHASE_ORDER: tuple[RoundPhase, ...] = (
    RoundPhase.SUBMISSION,
    RoundPhase.CONSIDERATION,
    RoundPhase.DELIBERATION,
    RoundPhase.VOTING,
)


class PhaseWindow(BaseModel):
    """A closed interval ``[start, end]``."""

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        return as_utc(value)

    def contains(self, instant: datetime) -> bool:
        return self.start <= as_utc(instant) <= self.end


class FundingRound(BaseModel):
    """A funding round: total budget, overall window, and four phase windows."""

    id: str
    name: str = ""
    topic_id: str | None = None
    total_budget: Decimal = Field(default=Decimal("0"))
    start: datetime
    end: datetime
    submission: PhaseWindow
    consideration: PhaseWindow
    deliberation: PhaseWindow
    voting: PhaseWindow

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        return as_utc(value)

    def window_for(self, phase: RoundPhase) -> PhaseWindow:
        """Return the window of a windowed phase (SUBMISSION..VOTING)."""
        windows = {
            RoundPhase.SUBMISSION: self.submission,
            RoundPhase.CONSIDERATION: self.consideration,
            RoundPhase.DELIBERATION: self.deliberation,
            RoundPhase.VOTING: self.voting,
        }
        if phase not in windows:
            raise KeyError(f"Phase {phase} has no window")
        return windows[phase]


class PhaseResolution(BaseModel):
    """Result of resolving a round's phase at an instant.

    ``window`` is set for the four windowed phases. For ``BETWEEN_PHASES``,
    ``previous_phase`` is the phase that just ended and ``next_phase`` /
    ``next_phase_starts_at`` describe what comes next (both ``None`` once
    voting has ended but the round window is still open).
    """

    phase: RoundPhase
    window: PhaseWindow | None = None
    previous_phase: RoundPhase | None = None
    next_phase: RoundPhase | None = None
    next_phase_starts_at: datetime | None = None
