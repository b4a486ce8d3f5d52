"""Proposal API endpoints — consideration votes, eligibility signals, re-evaluation."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from fundround.api.deps import EventBusDep, RepoDep, SettingsDep
from fundround.core.consideration import (
    evaluate_proposal,
    record_eligibility_signal,
    submit_consideration_vote,
)
from fundround.core.errors import (
    InvalidConfigurationError,
    InvalidVoteError,
    NotFoundError,
    VoteNotAllowedError,
)
from fundround.models.proposal import ReviewDecision

router = APIRouter(prefix="/api/proposals", tags=["proposals"])


# --- Request Models ---


class ConsiderationVoteRequest(BaseModel):
    voter_id: str
    decision: ReviewDecision
    feedback: str


class EligibilitySignalRequest(BaseModel):
    eligible: bool
    vote_data: dict = Field(default_factory=dict)


# --- Endpoints ---


@router.post("/{proposal_id}/consideration-votes")
async def api_consideration_vote(
    proposal_id: str,
    body: ConsiderationVoteRequest,
    repo: RepoDep,
    settings: SettingsDep,
    event_bus: EventBusDep,
) -> dict:
    """Record a reviewer's vote (re-voting overwrites) and re-evaluate the proposal."""
    try:
        decision = await submit_consideration_vote(
            repo,
            proposal_id,
            body.voter_id,
            body.decision,
            body.feedback,
            min_reviewer_approvals=settings.consideration_reviewer_approval_threshold,
            event_bus=event_bus,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (InvalidVoteError, InvalidConfigurationError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except VoteNotAllowedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"data": decision.model_dump(mode="json")}


@router.post("/{proposal_id}/eligibility")
async def api_eligibility_signal(
    proposal_id: str,
    body: EligibilitySignalRequest,
    repo: RepoDep,
    settings: SettingsDep,
    event_bus: EventBusDep,
) -> dict:
    """Store the latest on-chain eligibility pushed by the vote indexer."""
    try:
        decision = await record_eligibility_signal(
            repo,
            proposal_id,
            body.eligible,
            vote_data=body.vote_data,
            min_reviewer_approvals=settings.consideration_reviewer_approval_threshold,
            event_bus=event_bus,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"data": decision.model_dump(mode="json")}


@router.post("/{proposal_id}/evaluate")
async def api_evaluate_proposal(
    proposal_id: str,
    repo: RepoDep,
    settings: SettingsDep,
    event_bus: EventBusDep,
) -> dict:
    try:
        decision = await evaluate_proposal(
            repo,
            proposal_id,
            min_reviewer_approvals=settings.consideration_reviewer_approval_threshold,
            event_bus=event_bus,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"data": decision.model_dump(mode="json")}
