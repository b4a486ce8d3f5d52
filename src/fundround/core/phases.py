"""Phase resolution — which phase of a funding round is active at a given instant.

All functions here are pure: they read a ``FundingRound`` and a timestamp
and never touch the database.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from fundround.core.errors import InvalidConfigurationError
from fundround.models.funding_round import (
    PHASE_ORDER,
    FundingRound,
    PhaseResolution,
    PhaseWindow,
    RoundPhase,
    as_utc,
)

PhaseStatus = Literal["not-started", "ongoing", "ended"]


def resolve_phase(funding_round: FundingRound, now: datetime | None = None) -> PhaseResolution:
    """Resolve the round's phase at ``now`` (defaults to the current time).

    Windows are closed intervals checked in chronological order; the first
    match wins, so an instant shared by two touching windows belongs to the
    earlier phase.
    """
    instant = as_utc(now or datetime.now(UTC))

    if instant < funding_round.start:
        return PhaseResolution(phase=RoundPhase.UPCOMING)
    if instant > funding_round.end:
        return PhaseResolution(phase=RoundPhase.COMPLETED)

    for phase in PHASE_ORDER:
        window = funding_round.window_for(phase)
        if window.contains(instant):
            return PhaseResolution(phase=phase, window=window)

    previous: RoundPhase | None = None
    for phase in PHASE_ORDER:
        window = funding_round.window_for(phase)
        if window.start > instant:
            return PhaseResolution(
                phase=RoundPhase.BETWEEN_PHASES,
                previous_phase=previous,
                next_phase=phase,
                next_phase_starts_at=window.start,
            )
        previous = phase

    # Voting is over but the round window is still open.
    return PhaseResolution(phase=RoundPhase.BETWEEN_PHASES, previous_phase=previous)


def validate_phase_windows(funding_round: FundingRound) -> None:
    """Reject malformed round configuration. Never repairs anything.

    Raises:
        InvalidConfigurationError: If the budget is negative, a window ends
            before it starts, windows are out of chronological order, or a
            window falls outside the round window.
    """
    if funding_round.total_budget < 0:
        raise InvalidConfigurationError(
            f"Funding round {funding_round.id}: total budget must not be negative"
        )
    if funding_round.start > funding_round.end:
        raise InvalidConfigurationError(
            f"Funding round {funding_round.id}: round ends before it starts"
        )

    previous: tuple[RoundPhase, PhaseWindow] | None = None
    for phase in PHASE_ORDER:
        window = funding_round.window_for(phase)
        if window.start > window.end:
            raise InvalidConfigurationError(
                f"Funding round {funding_round.id}: {phase.value} window ends before it starts"
            )
        if previous is not None and previous[1].end > window.start:
            raise InvalidConfigurationError(
                f"Funding round {funding_round.id}: {previous[0].value} window "
                f"must end before {phase.value} starts"
            )
        previous = (phase, window)

    if funding_round.submission.start < funding_round.start:
        raise InvalidConfigurationError(
            f"Funding round {funding_round.id}: submission starts before the round"
        )
    if funding_round.voting.end > funding_round.end:
        raise InvalidConfigurationError(
            f"Funding round {funding_round.id}: voting ends after the round"
        )


def phase_status(window: PhaseWindow, now: datetime | None = None) -> PhaseStatus:
    """Coarse status of a single window, for phase cards."""
    instant = as_utc(now or datetime.now(UTC))
    if instant < window.start:
        return "not-started"
    if instant > window.end:
        return "ended"
    return "ongoing"


def phase_progress(window: PhaseWindow, now: datetime | None = None) -> float:
    """Percentage (0-100) of the window that has elapsed."""
    instant = as_utc(now or datetime.now(UTC))
    if instant <= window.start:
        return 0.0
    if instant >= window.end:
        return 100.0
    total = (window.end - window.start).total_seconds()
    elapsed = (instant - window.start).total_seconds()
    return min(max(elapsed / total * 100, 0.0), 100.0)
