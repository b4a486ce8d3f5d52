"""Funding round API endpoints — phase, consideration summary, allocation."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from fundround.api.deps import EventBusDep, RepoDep, SettingsDep
from fundround.core.allocation import finalize_round_allocation, load_distribution_summary
from fundround.core.consideration import consideration_phase_summary
from fundround.core.errors import (
    FundingRoundNotFoundError,
    InvalidConfigurationError,
    VotingNotClosedError,
)
from fundround.core.phases import phase_progress, phase_status, resolve_phase
from fundround.db.repository import funding_round_model

router = APIRouter(prefix="/api/funding-rounds", tags=["funding-rounds"])


# --- Request Models ---


class AllocationRequest(BaseModel):
    ranked_winner_ids: list[str | int]


# --- Endpoints ---


@router.get("/{funding_round_id}/phase")
async def api_round_phase(
    funding_round_id: str,
    repo: RepoDep,
    now: datetime | None = None,
) -> dict:
    """Current phase of a round, with a status card per phase window."""
    row = await repo.get_funding_round(funding_round_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Funding round not found")
    try:
        funding_round = funding_round_model(row)
    except InvalidConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    resolution = resolve_phase(funding_round, now)

    windows = {}
    for name in ("submission", "consideration", "deliberation", "voting"):
        window = getattr(funding_round, name)
        windows[name] = {
            "start": window.start.isoformat(),
            "end": window.end.isoformat(),
            "status": phase_status(window, now),
            "progress": round(phase_progress(window, now), 1),
        }

    return {
        "data": {
            **resolution.model_dump(mode="json"),
            "funding_round_id": funding_round.id,
            "windows": windows,
        },
    }


@router.get("/{funding_round_id}/consideration-summary")
async def api_consideration_summary(
    funding_round_id: str,
    repo: RepoDep,
    settings: SettingsDep,
) -> dict:
    try:
        summary = await consideration_phase_summary(
            repo,
            funding_round_id,
            min_reviewer_approvals=settings.consideration_reviewer_approval_threshold,
            breakdown_limits=settings.budget_limits,
        )
    except FundingRoundNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"data": summary.model_dump(mode="json")}


@router.post("/{funding_round_id}/allocation")
async def api_preview_allocation(
    funding_round_id: str,
    body: AllocationRequest,
    repo: RepoDep,
    settings: SettingsDep,
) -> dict:
    """Dry run: how the budget would be distributed for this ranking. Writes nothing."""
    try:
        summary = await load_distribution_summary(
            repo,
            funding_round_id,
            body.ranked_winner_ids,
            breakdown_limits=settings.budget_limits,
        )
    except FundingRoundNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"data": summary.model_dump(mode="json")}


@router.post("/{funding_round_id}/allocation/finalize")
async def api_finalize_allocation(
    funding_round_id: str,
    body: AllocationRequest,
    repo: RepoDep,
    event_bus: EventBusDep,
) -> dict:
    """Allocate and write APPROVED / REJECTED for every candidate."""
    try:
        result = await finalize_round_allocation(
            repo,
            funding_round_id,
            body.ranked_winner_ids,
            event_bus=event_bus,
        )
    except FundingRoundNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except VotingNotClosedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvalidConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"data": result.model_dump(mode="json")}
