"""Ranked fund allocation — distribute a round budget over the tally's winners.

The tally hands over winner ids in rank order. ``allocate`` walks that list
exactly once: a proposal is funded when its request fits in what is left,
otherwise it is skipped with a shortfall and the walk continues, so a smaller
lower-ranked request can still be funded after a larger one misses.

``allocate`` and the summaries are pure. ``finalize_round_allocation`` is the
only function here that writes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from fundround.core.errors import (
    FundingRoundNotFoundError,
    InvalidConfigurationError,
    VotingNotClosedError,
)
from fundround.db.repository import funding_round_model, proposal_model
from fundround.models.allocation import (
    Allocation,
    AllocationAnomaly,
    AllocationResult,
    BudgetBreakdown,
    DistributionEntry,
    FundsDistributionSummary,
)
from fundround.models.funding_round import FundingRound, as_utc
from fundround.models.proposal import Proposal, ProposalStatus

if TYPE_CHECKING:
    from fundround.core.event_bus import EventBus
    from fundround.db.repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_BREAKDOWN_LIMITS: tuple[Decimal, Decimal] = (Decimal("500"), Decimal("1000"))

# Proposals that made it past consideration and can appear in a tally.
CANDIDATE_STATUSES: frozenset[ProposalStatus] = frozenset(
    {
        ProposalStatus.DELIBERATION,
        ProposalStatus.VOTING,
        ProposalStatus.APPROVED,
        ProposalStatus.REJECTED,
    }
)


def allocate(
    total_budget: Decimal,
    ranked_winner_ids: Sequence[str | int],
    proposals_by_id: Mapping[str, Proposal],
) -> AllocationResult:
    """Greedy single pass over the ranked winners.

    Args:
        total_budget: The round budget. Must not be negative.
        ranked_winner_ids: Winner ids, best first. Integers are accepted and
            compared as strings.
        proposals_by_id: Known proposals keyed by id.

    Returns:
        AllocationResult with one ``Allocation`` per known id in the input
        order. Unknown and repeated ids are reported as anomalies; repeated
        ids are still processed again.

    Raises:
        InvalidConfigurationError: If ``total_budget`` is negative.
    """
    total = Decimal(total_budget)
    if total < 0:
        raise InvalidConfigurationError(f"Total budget must not be negative, got {total}")

    known = {str(key): proposal for key, proposal in proposals_by_id.items()}
    remaining = total
    allocations: list[Allocation] = []
    anomalies: list[AllocationAnomaly] = []
    seen: set[str] = set()

    for rank, raw_id in enumerate(ranked_winner_ids, start=1):
        proposal_id = str(raw_id)
        proposal = known.get(proposal_id)
        if proposal is None:
            logger.warning("allocation_unknown_proposal proposal=%s rank=%d", proposal_id, rank)
            anomalies.append(
                AllocationAnomaly(kind="unknown_proposal", proposal_id=proposal_id, rank=rank)
            )
            continue
        if proposal_id in seen:
            logger.warning("allocation_duplicate_proposal proposal=%s rank=%d", proposal_id, rank)
            anomalies.append(
                AllocationAnomaly(kind="duplicate_proposal", proposal_id=proposal_id, rank=rank)
            )
        seen.add(proposal_id)

        requested = proposal.requested_budget
        if requested <= remaining:
            remaining -= requested
            allocations.append(
                Allocation(
                    proposal_id=proposal_id,
                    rank=rank,
                    requested_budget=requested,
                    funded=True,
                )
            )
        else:
            allocations.append(
                Allocation(
                    proposal_id=proposal_id,
                    rank=rank,
                    requested_budget=requested,
                    funded=False,
                    shortfall=requested - remaining,
                )
            )

    funded_count = sum(1 for a in allocations if a.funded)
    return AllocationResult(
        total_budget=total,
        remaining_budget=remaining,
        allocations=allocations,
        funded_count=funded_count,
        not_funded_count=len(allocations) - funded_count,
        anomalies=anomalies,
    )


def budget_breakdown(
    proposals: Iterable[Proposal],
    limits: tuple[Decimal, Decimal] = DEFAULT_BREAKDOWN_LIMITS,
) -> BudgetBreakdown:
    """Count requests per size bucket. Both limits are inclusive upper bounds."""
    small_max, medium_max = limits
    breakdown = BudgetBreakdown()
    for proposal in proposals:
        if proposal.requested_budget <= small_max:
            breakdown.small += 1
        elif proposal.requested_budget <= medium_max:
            breakdown.medium += 1
        else:
            breakdown.large += 1
    return breakdown


def funds_distribution_summary(
    funding_round: FundingRound,
    proposals: Iterable[Proposal],
    ranked_winner_ids: Sequence[str | int],
    *,
    breakdown_limits: tuple[Decimal, Decimal] = DEFAULT_BREAKDOWN_LIMITS,
) -> FundsDistributionSummary:
    """Allocation for display, with every candidate listed.

    Candidates the tally never ranked come after the ranked entries, as not
    funded with their whole request as shortfall.
    """
    candidates = [p for p in proposals if p.status in CANDIDATE_STATUSES]
    by_id = {p.id: p for p in candidates}
    result = allocate(funding_round.total_budget, ranked_winner_ids, by_id)

    entries: list[DistributionEntry] = []
    for allocation in result.allocations:
        proposal = by_id[allocation.proposal_id]
        entries.append(
            DistributionEntry(
                id=proposal.id,
                title=proposal.title,
                owner_id=proposal.owner_id,
                status=proposal.status,
                requested_budget=proposal.requested_budget,
                rank=allocation.rank,
                funded=allocation.funded,
                shortfall=allocation.shortfall,
            )
        )

    ranked = {a.proposal_id for a in result.allocations}
    for proposal in candidates:
        if proposal.id in ranked:
            continue
        entries.append(
            DistributionEntry(
                id=proposal.id,
                title=proposal.title,
                owner_id=proposal.owner_id,
                status=proposal.status,
                requested_budget=proposal.requested_budget,
                shortfall=proposal.requested_budget,
            )
        )

    funded = len(set(result.funded_ids))
    return FundsDistributionSummary(
        funding_round_id=funding_round.id,
        funding_round_name=funding_round.name,
        total_budget=result.total_budget,
        remaining_budget=result.remaining_budget,
        total_proposals=len(candidates),
        funded_proposals=funded,
        not_funded_proposals=len(candidates) - funded,
        budget_breakdown=budget_breakdown(candidates, breakdown_limits),
        entries=entries,
        anomalies=result.anomalies,
    )


async def load_distribution_summary(
    repo: Repository,
    funding_round_id: str,
    ranked_winner_ids: Sequence[str | int],
    *,
    breakdown_limits: tuple[Decimal, Decimal] = DEFAULT_BREAKDOWN_LIMITS,
) -> FundsDistributionSummary:
    """Dry run of the allocation for a stored round. Writes nothing."""
    round_row = await repo.get_funding_round(funding_round_id)
    if round_row is None:
        raise FundingRoundNotFoundError(funding_round_id)
    rows = await repo.get_proposals_for_round(funding_round_id, CANDIDATE_STATUSES)
    return funds_distribution_summary(
        funding_round_model(round_row),
        [proposal_model(row) for row in rows],
        ranked_winner_ids,
        breakdown_limits=breakdown_limits,
    )


async def finalize_round_allocation(
    repo: Repository,
    funding_round_id: str,
    ranked_winner_ids: Sequence[str | int],
    *,
    now: datetime | None = None,
    event_bus: EventBus | None = None,
) -> AllocationResult:
    """Allocate and write the terminal status of every candidate.

    Funded proposals become APPROVED, every other candidate REJECTED.
    Running it again with the same ranking writes the same statuses.

    Raises:
        FundingRoundNotFoundError: If the round does not exist.
        VotingNotClosedError: If the voting window has not ended yet.
    """
    round_row = await repo.get_funding_round(funding_round_id)
    if round_row is None:
        raise FundingRoundNotFoundError(funding_round_id)
    funding_round = funding_round_model(round_row)

    instant = as_utc(now or datetime.now(UTC))
    if instant <= funding_round.voting.end:
        raise VotingNotClosedError(
            f"Funding round {funding_round_id}: voting ends at "
            f"{funding_round.voting.end.isoformat()}"
        )

    rows = await repo.get_proposals_for_round(funding_round_id, CANDIDATE_STATUSES)
    candidates = [proposal_model(row) for row in rows]
    result = allocate(funding_round.total_budget, ranked_winner_ids, {p.id: p for p in candidates})

    funded = set(result.funded_ids)
    for proposal in candidates:
        status = ProposalStatus.APPROVED if proposal.id in funded else ProposalStatus.REJECTED
        if proposal.status != status:
            await repo.set_proposal_status(proposal.id, status)

    logger.info(
        "round_allocation_finalized round=%s funded=%d not_funded=%d remaining=%s anomalies=%d",
        funding_round_id,
        len(funded),
        len(candidates) - len(funded),
        result.remaining_budget,
        len(result.anomalies),
    )
    if event_bus is not None:
        await event_bus.publish(
            "round.allocation_finalized",
            {
                "funding_round_id": funding_round_id,
                "funded_ids": sorted(funded),
                "remaining_budget": str(result.remaining_budget),
            },
        )
    return result
