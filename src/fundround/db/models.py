"""SQLAlchemy ORM models for the funding round database.

Tables: topics, reviewer_groups, reviewer_group_members, topic_reviewer_groups,
funding_rounds, proposals, reviewer_votes, eligibility_signals.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class DecimalText(TypeDecorator[Decimal]):
    """Store Decimals as text. SQLite has no exact numeric type."""

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value: Decimal | None, dialect: object) -> str | None:
        if value is None:
            return None
        return str(Decimal(value))

    def process_result_value(self, value: str | None, dialect: object) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class TopicRow(Base):
    __tablename__ = "topics"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)


class ReviewerGroupRow(Base):
    __tablename__ = "reviewer_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    members: Mapped[list[ReviewerGroupMemberRow]] = relationship(back_populates="group")


class ReviewerGroupMemberRow(Base):
    __tablename__ = "reviewer_group_members"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    group_id: Mapped[str] = mapped_column(ForeignKey("reviewer_groups.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)

    group: Mapped[ReviewerGroupRow] = relationship(back_populates="members")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member"),
        Index("ix_reviewer_group_members_user_id", "user_id"),
    )


class TopicReviewerGroupRow(Base):
    __tablename__ = "topic_reviewer_groups"

    topic_id: Mapped[str] = mapped_column(ForeignKey("topics.id"), primary_key=True)
    group_id: Mapped[str] = mapped_column(ForeignKey("reviewer_groups.id"), primary_key=True)


class FundingRoundRow(Base):
    """A round and its phase windows. Windows are flat columns; one row per round."""

    __tablename__ = "funding_rounds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    topic_id: Mapped[str | None] = mapped_column(ForeignKey("topics.id"), nullable=True)
    total_budget: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    submission_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    submission_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    consideration_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    consideration_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    deliberation_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    deliberation_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    voting_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    voting_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    proposals: Mapped[list[ProposalRow]] = relationship(back_populates="funding_round")


class ProposalRow(Base):
    __tablename__ = "proposals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    funding_round_id: Mapped[str | None] = mapped_column(
        ForeignKey("funding_rounds.id"), nullable=True
    )
    owner_id: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    requested_budget: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="DRAFT")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    funding_round: Mapped[FundingRoundRow | None] = relationship(back_populates="proposals")

    __table_args__ = (Index("ix_proposals_round_status", "funding_round_id", "status"),)


class ReviewerVoteRow(Base):
    """Consideration vote. One row per (proposal, voter); re-votes update in place."""

    __tablename__ = "reviewer_votes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    proposal_id: Mapped[str] = mapped_column(ForeignKey("proposals.id"), nullable=False)
    voter_id: Mapped[str] = mapped_column(String(100), nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    feedback: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)

    __table_args__ = (
        UniqueConstraint("proposal_id", "voter_id", name="uq_reviewer_vote"),
        Index("ix_reviewer_votes_proposal_id", "proposal_id"),
    )


class EligibilitySignalRow(Base):
    """Latest on-chain eligibility per proposal, overwritten on every refresh."""

    __tablename__ = "eligibility_signals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    proposal_id: Mapped[str] = mapped_column(
        ForeignKey("proposals.id"), nullable=False, unique=True
    )
    eligible: Mapped[bool] = mapped_column(Boolean, default=False)
    vote_data: Mapped[dict] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)
