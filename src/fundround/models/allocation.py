"""Allocation models — the output of distributing a round budget over ranked winners."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from fundround.models.proposal import ProposalStatus


class Allocation(BaseModel):
    """One step of the ranked walk. ``shortfall`` is set only when not funded."""

    proposal_id: str
    rank: int
    requested_budget: Decimal
    funded: bool
    shortfall: Decimal | None = None


class AllocationAnomaly(BaseModel):
    """Tally data the allocator tolerated but that points at an upstream bug."""

    kind: Literal["unknown_proposal", "duplicate_proposal"]
    proposal_id: str
    rank: int


class AllocationResult(BaseModel):
    total_budget: Decimal
    remaining_budget: Decimal
    allocations: list[Allocation] = Field(default_factory=list)
    funded_count: int = 0
    not_funded_count: int = 0
    anomalies: list[AllocationAnomaly] = Field(default_factory=list)

    @property
    def funded_ids(self) -> list[str]:
        return [a.proposal_id for a in self.allocations if a.funded]


class BudgetBreakdown(BaseModel):
    """How many requests fall in each size bucket."""

    small: int = 0
    medium: int = 0
    large: int = 0


class DistributionEntry(BaseModel):
    id: str
    title: str
    owner_id: str
    status: ProposalStatus
    requested_budget: Decimal
    rank: int | None = None
    funded: bool = False
    shortfall: Decimal | None = None


class FundsDistributionSummary(BaseModel):
    """Allocation plus candidates the tally never ranked, ready for display.

    Unranked candidates count as not funded with their full request as shortfall.
    """

    funding_round_id: str
    funding_round_name: str
    total_budget: Decimal
    remaining_budget: Decimal
    total_proposals: int
    funded_proposals: int
    not_funded_proposals: int
    budget_breakdown: BudgetBreakdown
    entries: list[DistributionEntry] = Field(default_factory=list)
    anomalies: list[AllocationAnomaly] = Field(default_factory=list)
