"""Repository pattern for database access.

Wraps SQLAlchemy async sessions. Rows go in and out here; conversion to the
pydantic domain models happens in the ``*_model`` helpers at the bottom so
core logic never sees ORM objects.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fundround.core.phases import validate_phase_windows
from fundround.db.models import (
    EligibilitySignalRow,
    FundingRoundRow,
    ProposalRow,
    ReviewerGroupMemberRow,
    ReviewerGroupRow,
    ReviewerVoteRow,
    TopicReviewerGroupRow,
    TopicRow,
)
from fundround.models.funding_round import FundingRound, PhaseWindow, as_utc
from fundround.models.proposal import (
    EligibilitySignal,
    Proposal,
    ProposalStatus,
    ReviewDecision,
    ReviewerVote,
)


def _naive_utc(value: datetime) -> datetime:
    """SQLite DateTime drops tzinfo; store everything as naive UTC."""
    return as_utc(value).replace(tzinfo=None)


class Repository:
    """Async repository for all database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- Topics / Reviewer groups ---

    async def create_topic(self, name: str) -> TopicRow:
        row = TopicRow(name=name)
        self.session.add(row)
        await self.session.flush()
        return row

    async def create_reviewer_group(self, name: str) -> ReviewerGroupRow:
        row = ReviewerGroupRow(name=name)
        self.session.add(row)
        await self.session.flush()
        return row

    async def add_group_member(self, group_id: str, user_id: str) -> ReviewerGroupMemberRow:
        row = ReviewerGroupMemberRow(group_id=group_id, user_id=user_id)
        self.session.add(row)
        await self.session.flush()
        return row

    async def remove_group_member(self, group_id: str, user_id: str) -> bool:
        """Remove a member. Returns False when the user was not in the group."""
        stmt = select(ReviewerGroupMemberRow).where(
            ReviewerGroupMemberRow.group_id == group_id,
            ReviewerGroupMemberRow.user_id == user_id,
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return False
        await self.session.delete(row)
        await self.session.flush()
        return True

    async def attach_group_to_topic(self, topic_id: str, group_id: str) -> None:
        self.session.add(TopicReviewerGroupRow(topic_id=topic_id, group_id=group_id))
        await self.session.flush()

    async def get_reviewer_groups_for_topic(self, topic_id: str) -> list[ReviewerGroupRow]:
        """Groups attached to a topic, with members loaded."""
        stmt = (
            select(ReviewerGroupRow)
            .join(TopicReviewerGroupRow, TopicReviewerGroupRow.group_id == ReviewerGroupRow.id)
            .where(TopicReviewerGroupRow.topic_id == topic_id)
            .options(selectinload(ReviewerGroupRow.members))
            .order_by(ReviewerGroupRow.name)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # --- Funding rounds ---

    async def create_funding_round(self, funding_round: FundingRound) -> FundingRoundRow:
        """Persist a round. Malformed phase windows are rejected before any write."""
        validate_phase_windows(funding_round)
        row = FundingRoundRow(
            id=funding_round.id,
            name=funding_round.name,
            topic_id=funding_round.topic_id,
            total_budget=funding_round.total_budget,
            start_at=_naive_utc(funding_round.start),
            end_at=_naive_utc(funding_round.end),
            submission_start=_naive_utc(funding_round.submission.start),
            submission_end=_naive_utc(funding_round.submission.end),
            consideration_start=_naive_utc(funding_round.consideration.start),
            consideration_end=_naive_utc(funding_round.consideration.end),
            deliberation_start=_naive_utc(funding_round.deliberation.start),
            deliberation_end=_naive_utc(funding_round.deliberation.end),
            voting_start=_naive_utc(funding_round.voting.start),
            voting_end=_naive_utc(funding_round.voting.end),
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_funding_round(self, funding_round_id: str) -> FundingRoundRow | None:
        return await self.session.get(FundingRoundRow, funding_round_id)

    # --- Proposals ---

    async def create_proposal(
        self,
        funding_round_id: str | None,
        owner_id: str,
        title: str,
        requested_budget: Decimal,
        status: ProposalStatus = ProposalStatus.DRAFT,
    ) -> ProposalRow:
        row = ProposalRow(
            funding_round_id=funding_round_id,
            owner_id=owner_id,
            title=title,
            requested_budget=requested_budget,
            status=status.value,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_proposal(self, proposal_id: str) -> ProposalRow | None:
        return await self.session.get(ProposalRow, proposal_id)

    async def get_proposals_for_round(
        self,
        funding_round_id: str,
        statuses: Iterable[ProposalStatus] | None = None,
    ) -> list[ProposalRow]:
        """Proposals in a round, oldest first, optionally filtered by status."""
        stmt = select(ProposalRow).where(ProposalRow.funding_round_id == funding_round_id)
        if statuses is not None:
            stmt = stmt.where(ProposalRow.status.in_([s.value for s in statuses]))
        stmt = stmt.order_by(ProposalRow.created_at, ProposalRow.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_proposals_by_status(self, statuses: Iterable[ProposalStatus]) -> list[ProposalRow]:
        stmt = (
            select(ProposalRow)
            .where(ProposalRow.status.in_([s.value for s in statuses]))
            .order_by(ProposalRow.created_at, ProposalRow.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def compare_and_set_proposal_status(
        self,
        proposal_id: str,
        expected: ProposalStatus,
        new: ProposalStatus,
    ) -> bool:
        """Atomically move a proposal from ``expected`` to ``new``.

        Returns False (and writes nothing) when the stored status is no longer
        ``expected``, i.e. another writer got there first.
        """
        stmt = (
            update(ProposalRow)
            .where(ProposalRow.id == proposal_id, ProposalRow.status == expected.value)
            .values(status=new.value)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        # Capture rowcount before flush (cursor may be invalidated after)
        updated = result.rowcount > 0  # type: ignore[union-attr]
        await self.session.flush()
        return updated

    async def set_proposal_status(self, proposal_id: str, status: ProposalStatus) -> None:
        """Unconditional status write, for terminal outcomes and admin overrides."""
        row = await self.session.get(ProposalRow, proposal_id)
        if row is None:
            return
        row.status = status.value
        await self.session.flush()

    # --- Reviewer votes ---

    async def upsert_reviewer_vote(
        self,
        proposal_id: str,
        voter_id: str,
        decision: ReviewDecision,
        feedback: str,
    ) -> ReviewerVoteRow:
        """Create or overwrite the vote for (proposal, voter). Last write wins."""
        row = await self.get_reviewer_vote(proposal_id, voter_id)
        if row is None:
            row = ReviewerVoteRow(
                proposal_id=proposal_id,
                voter_id=voter_id,
                decision=decision.value,
                feedback=feedback,
            )
            self.session.add(row)
        else:
            row.decision = decision.value
            row.feedback = feedback
        await self.session.flush()
        return row

    async def get_reviewer_vote(self, proposal_id: str, voter_id: str) -> ReviewerVoteRow | None:
        stmt = select(ReviewerVoteRow).where(
            ReviewerVoteRow.proposal_id == proposal_id,
            ReviewerVoteRow.voter_id == voter_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_reviewer_votes(self, proposal_id: str) -> list[ReviewerVoteRow]:
        stmt = (
            select(ReviewerVoteRow)
            .where(ReviewerVoteRow.proposal_id == proposal_id)
            .order_by(ReviewerVoteRow.updated_at, ReviewerVoteRow.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # --- On-chain eligibility ---

    async def upsert_eligibility_signal(
        self,
        proposal_id: str,
        eligible: bool,
        vote_data: dict | None = None,
    ) -> EligibilitySignalRow:
        row = await self.get_eligibility_signal(proposal_id)
        if row is None:
            row = EligibilitySignalRow(
                proposal_id=proposal_id,
                eligible=eligible,
                vote_data=vote_data or {},
            )
            self.session.add(row)
        else:
            row.eligible = eligible
            row.vote_data = vote_data or {}
        await self.session.flush()
        return row

    async def get_eligibility_signal(self, proposal_id: str) -> EligibilitySignalRow | None:
        stmt = select(EligibilitySignalRow).where(EligibilitySignalRow.proposal_id == proposal_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Row -> domain model conversion
# ---------------------------------------------------------------------------


def funding_round_model(row: FundingRoundRow) -> FundingRound:
    """Rows written outside ``create_funding_round`` are validated on the way out."""
    funding_round = FundingRound(
        id=row.id,
        name=row.name,
        topic_id=row.topic_id,
        total_budget=row.total_budget,
        start=row.start_at,
        end=row.end_at,
        submission=PhaseWindow(start=row.submission_start, end=row.submission_end),
        consideration=PhaseWindow(start=row.consideration_start, end=row.consideration_end),
        deliberation=PhaseWindow(start=row.deliberation_start, end=row.deliberation_end),
        voting=PhaseWindow(start=row.voting_start, end=row.voting_end),
    )
    validate_phase_windows(funding_round)
    return funding_round


def proposal_model(row: ProposalRow) -> Proposal:
    return Proposal(
        id=row.id,
        funding_round_id=row.funding_round_id,
        owner_id=row.owner_id,
        title=row.title,
        requested_budget=row.requested_budget,
        status=ProposalStatus(row.status),
    )


def reviewer_vote_model(row: ReviewerVoteRow) -> ReviewerVote:
    return ReviewerVote(
        proposal_id=row.proposal_id,
        voter_id=row.voter_id,
        decision=ReviewDecision(row.decision),
        feedback=row.feedback,
        updated_at=as_utc(row.updated_at),
    )


def eligibility_signal_model(row: EligibilitySignalRow) -> EligibilitySignal:
    return EligibilitySignal(
        proposal_id=row.proposal_id,
        eligible=row.eligible,
        vote_data=row.vote_data or {},
        updated_at=as_utc(row.updated_at),
    )
