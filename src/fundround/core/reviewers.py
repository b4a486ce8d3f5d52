"""Reviewer eligibility — whose consideration votes count toward the approval threshold.

A reviewer is anyone in a reviewer group attached to the round's topic.
Membership can change between evaluations, so nothing here caches.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from fundround.core.errors import FundingRoundNotFoundError
from fundround.models.proposal import ReviewerGroup

if TYPE_CHECKING:
    from fundround.db.models import ReviewerGroupRow
    from fundround.db.repository import Repository


def reviewer_identities(groups: Iterable[ReviewerGroup]) -> frozenset[str]:
    """Union of member ids across every group. Empty is valid."""
    members: set[str] = set()
    for group in groups:
        members.update(group.member_ids)
    return frozenset(members)


def is_reviewer(user_id: str, groups: Iterable[ReviewerGroup]) -> bool:
    return any(user_id in group.member_ids for group in groups)


def reviewer_group_model(row: ReviewerGroupRow) -> ReviewerGroup:
    return ReviewerGroup(
        id=row.id,
        name=row.name,
        member_ids=frozenset(member.user_id for member in row.members),
    )


async def load_reviewer_groups(repo: Repository, funding_round_id: str) -> list[ReviewerGroup]:
    """Groups attached to the round's topic. A round without a topic has none.

    Raises:
        FundingRoundNotFoundError: If the round does not exist.
    """
    funding_round = await repo.get_funding_round(funding_round_id)
    if funding_round is None:
        raise FundingRoundNotFoundError(funding_round_id)
    if funding_round.topic_id is None:
        return []
    rows = await repo.get_reviewer_groups_for_topic(funding_round.topic_id)
    return [reviewer_group_model(row) for row in rows]


async def load_reviewer_identities(repo: Repository, funding_round_id: str) -> frozenset[str]:
    """Reviewer ids for a round, read fresh from the store."""
    return reviewer_identities(await load_reviewer_groups(repo, funding_round_id))
