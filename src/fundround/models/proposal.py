"""Proposal models — proposals, reviewer votes, reviewer groups, on-chain eligibility.

Also holds the snapshot and decision types of the consideration state machine,
which are plain data so the transition rule can be tested without a database.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class ProposalStatus(StrEnum):
    DRAFT = "DRAFT"
    SUBMISSION = "SUBMISSION"
    CONSIDERATION = "CONSIDERATION"
    DELIBERATION = "DELIBERATION"
    VOTING = "VOTING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class ReviewDecision(StrEnum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Proposal(BaseModel):
    """A funding request inside a round."""

    id: str
    funding_round_id: str | None = None
    owner_id: str = ""
    title: str = ""
    requested_budget: Decimal = Field(default=Decimal("0"), ge=0)
    status: ProposalStatus = ProposalStatus.DRAFT


class ReviewerVote(BaseModel):
    """A consideration vote. Unique per (proposal, voter); a re-vote overwrites."""

    proposal_id: str
    voter_id: str
    decision: ReviewDecision
    feedback: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("feedback")
    @classmethod
    def _feedback_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("feedback must not be empty")
        return value


class ReviewerGroup(BaseModel):
    """A named set of user ids attached to one or more round topics."""

    id: str
    name: str = ""
    member_ids: frozenset[str] = Field(default_factory=frozenset)


class EligibilitySignal(BaseModel):
    """Latest on-chain community eligibility for a proposal, stored by the poller."""

    proposal_id: str
    eligible: bool = False
    vote_data: dict = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# ---------------------------------------------------------------------------
# Consideration state machine inputs/outputs
# ---------------------------------------------------------------------------


class ConsiderationSnapshot(BaseModel):
    """Everything the transition rule reads, captured at one instant."""

    proposal_id: str
    status: ProposalStatus
    votes: list[ReviewerVote] = Field(default_factory=list)
    reviewer_ids: frozenset[str] = Field(default_factory=frozenset)
    onchain_eligible: bool = False


class TransitionDecision(BaseModel):
    """Outcome of evaluating one proposal.

    ``to_status`` is ``None`` when nothing should change. ``applied`` is set by
    the persistence layer once the status write actually happened.
    """

    proposal_id: str
    from_status: ProposalStatus
    to_status: ProposalStatus | None = None
    approval_count: int = 0
    required_approvals: int = 0
    onchain_eligible: bool = False
    applied: bool = False

    @property
    def changed(self) -> bool:
        return self.to_status is not None

    @property
    def should_advance(self) -> bool:
        return self.approval_count >= self.required_approvals or self.onchain_eligible


class VoteEligibility(BaseModel):
    eligible: bool
    message: str = ""


class ProposalVoteInfo(BaseModel):
    """Per-proposal vote status reported by an eligibility refresh."""

    onchain_eligible: bool
    reviewer_votes_given: int
    reviewer_votes_required: int


class EligibilityRefreshReport(BaseModel):
    """What one pass over the active proposals did."""

    moved_to_deliberation: dict[str, ProposalVoteInfo] = Field(default_factory=dict)
    moved_to_consideration: dict[str, ProposalVoteInfo] = Field(default_factory=dict)
    vote_status: dict[str, ProposalVoteInfo] = Field(default_factory=dict)
    failed: list[str] = Field(default_factory=list)


class ReviewerVoteCounts(BaseModel):
    yes_votes: int = 0
    no_votes: int = 0
    total: int = 0
    required_reviewer_approvals: int = 0
    reviewer_eligible: bool = False


class ConsiderationProposalSummary(BaseModel):
    id: str
    title: str
    owner_id: str
    requested_budget: Decimal
    status: ProposalStatus
    reviewer_votes: ReviewerVoteCounts
    onchain_eligible: bool = False
    positive_community_votes: int = 0
