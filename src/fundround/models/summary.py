"""Round summary models shown to operators at the end of the consideration phase."""

from __future__ import annotations

from pydantic import BaseModel, Field

from fundround.models.allocation import BudgetBreakdown
from fundround.models.funding_round import PhaseWindow
from fundround.models.proposal import ConsiderationProposalSummary


class ConsiderationPhaseSummary(BaseModel):
    funding_round_id: str
    funding_round_name: str
    window: PhaseWindow
    total_proposals: int
    budget_breakdown: BudgetBreakdown
    moved_forward_proposals: int
    not_moved_forward_proposals: int
    proposals: list[ConsiderationProposalSummary] = Field(default_factory=list)
