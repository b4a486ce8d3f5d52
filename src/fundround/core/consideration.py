"""Consideration lifecycle — the CONSIDERATION <-> DELIBERATION state machine.

A proposal in consideration advances to deliberation when enough reviewers
approve it OR the community has signalled eligibility on-chain. It falls
back when neither holds any more (a reviewer edits their vote down, or stake
is withdrawn and the on-chain signal flips). The machine is re-run after
every vote write and every eligibility refresh; it is never scheduled on its
own.

The transition rule itself (``decide_transition``) is pure. The async
wrappers load a snapshot through the Repository, apply the decision with a
single compare-and-set status write, and serialize evaluations of the same
proposal so two racing triggers cannot both act on the same stale read.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from fundround.core.allocation import DEFAULT_BREAKDOWN_LIMITS, budget_breakdown
from fundround.core.errors import (
    FundingRoundNotFoundError,
    InvalidVoteError,
    ProposalNotFoundError,
    VoteNotAllowedError,
)
from fundround.core.phases import resolve_phase
from fundround.core.reviewers import load_reviewer_identities
from fundround.db.repository import (
    funding_round_model,
    proposal_model,
    reviewer_vote_model,
)
from fundround.models.funding_round import FundingRound, RoundPhase
from fundround.models.proposal import (
    ConsiderationProposalSummary,
    ConsiderationSnapshot,
    EligibilityRefreshReport,
    EligibilitySignal,
    Proposal,
    ProposalStatus,
    ProposalVoteInfo,
    ReviewDecision,
    ReviewerVote,
    ReviewerVoteCounts,
    TransitionDecision,
    VoteEligibility,
)
from fundround.models.summary import ConsiderationPhaseSummary

if TYPE_CHECKING:
    from fundround.core.event_bus import EventBus
    from fundround.db.models import EligibilitySignalRow
    from fundround.db.repository import Repository

logger = logging.getLogger(__name__)

# (current status, should_advance) -> next status. Anything not listed is a no-op.
TRANSITIONS: dict[tuple[ProposalStatus, bool], ProposalStatus] = {
    (ProposalStatus.CONSIDERATION, True): ProposalStatus.DELIBERATION,
    (ProposalStatus.DELIBERATION, False): ProposalStatus.CONSIDERATION,
}

# Statuses this machine has authority over.
MACHINE_STATUSES: frozenset[ProposalStatus] = frozenset(
    {ProposalStatus.CONSIDERATION, ProposalStatus.DELIBERATION}
)

# Statuses that count as "moved forward" out of consideration.
MOVED_FORWARD_STATUSES: frozenset[ProposalStatus] = frozenset(
    {
        ProposalStatus.DELIBERATION,
        ProposalStatus.VOTING,
        ProposalStatus.APPROVED,
        ProposalStatus.REJECTED,
    }
)

EligibilityFetcher = Callable[[Proposal, FundingRound], Awaitable[EligibilitySignal]]


# --- Pure transition rule ---


def latest_vote_per_voter(votes: Iterable[ReviewerVote]) -> list[ReviewerVote]:
    """Collapse votes to one per voter, keeping the most recent write."""
    latest: dict[str, ReviewerVote] = {}
    for vote in votes:
        current = latest.get(vote.voter_id)
        if current is None or vote.updated_at >= current.updated_at:
            latest[vote.voter_id] = vote
    return list(latest.values())


def count_valid_approvals(votes: Iterable[ReviewerVote], reviewer_ids: frozenset[str]) -> int:
    """Approvals from reviewers. Non-reviewer and REJECTED votes never count."""
    return sum(
        1
        for vote in latest_vote_per_voter(votes)
        if vote.voter_id in reviewer_ids and vote.decision == ReviewDecision.APPROVED
    )


def decide_transition(
    snapshot: ConsiderationSnapshot,
    min_reviewer_approvals: int,
) -> TransitionDecision:
    """Apply the transition table to one snapshot.

    Same snapshot, same answer: the result depends only on the snapshot and
    the threshold, never on how often or in what order it is called.
    """
    approvals = count_valid_approvals(snapshot.votes, snapshot.reviewer_ids)
    should_advance = approvals >= min_reviewer_approvals or snapshot.onchain_eligible
    return TransitionDecision(
        proposal_id=snapshot.proposal_id,
        from_status=snapshot.status,
        to_status=TRANSITIONS.get((snapshot.status, should_advance)),
        approval_count=approvals,
        required_approvals=min_reviewer_approvals,
        onchain_eligible=snapshot.onchain_eligible,
    )


# --- Per-proposal serialization ---

# One lock per proposal id, dropped once no evaluation holds or awaits it.
_proposal_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()


def _lock_for(proposal_id: str) -> asyncio.Lock:
    lock = _proposal_locks.get(proposal_id)
    if lock is None:
        lock = _proposal_locks[proposal_id] = asyncio.Lock()
    return lock


# --- Persistence-bound operations ---


async def load_snapshot(repo: Repository, proposal_id: str) -> ConsiderationSnapshot:
    """Read everything the transition rule needs for one proposal.

    Raises:
        ProposalNotFoundError: If the proposal does not exist.
        FundingRoundNotFoundError: If the proposal has no round or its round
            does not exist.
    """
    proposal = await repo.get_proposal(proposal_id)
    if proposal is None:
        raise ProposalNotFoundError(proposal_id)

    if proposal.funding_round_id is None:
        raise FundingRoundNotFoundError(None, proposal_id=proposal_id)
    reviewer_ids = await load_reviewer_identities(repo, proposal.funding_round_id)

    votes = [reviewer_vote_model(row) for row in await repo.get_reviewer_votes(proposal_id)]
    signal = await repo.get_eligibility_signal(proposal_id)

    return ConsiderationSnapshot(
        proposal_id=proposal_id,
        status=ProposalStatus(proposal.status),
        votes=votes,
        reviewer_ids=reviewer_ids,
        onchain_eligible=bool(signal and signal.eligible),
    )


async def evaluate_proposal(
    repo: Repository,
    proposal_id: str,
    *,
    min_reviewer_approvals: int,
    event_bus: EventBus | None = None,
) -> TransitionDecision:
    """Load, decide, and (maybe) write one status change.

    Writes at most one column (``status``) and only when the stored status is
    still the one that was read. Raises before writing anything if the
    proposal or its round cannot be loaded.
    """
    async with _lock_for(proposal_id):
        snapshot = await load_snapshot(repo, proposal_id)
        decision = decide_transition(snapshot, min_reviewer_approvals)

        if not decision.changed:
            logger.debug(
                "proposal_status_unchanged proposal=%s status=%s approvals=%d/%d eligible=%s",
                proposal_id,
                decision.from_status.value,
                decision.approval_count,
                decision.required_approvals,
                decision.onchain_eligible,
            )
            return decision

        applied = await repo.compare_and_set_proposal_status(
            proposal_id, decision.from_status, decision.to_status
        )
        decision.applied = applied
        if not applied:
            logger.warning(
                "proposal_status_conflict proposal=%s expected=%s",
                proposal_id,
                decision.from_status.value,
            )
            return decision

    logger.info(
        "proposal_status_changed proposal=%s from=%s to=%s approvals=%d/%d eligible=%s",
        proposal_id,
        decision.from_status.value,
        decision.to_status.value,
        decision.approval_count,
        decision.required_approvals,
        decision.onchain_eligible,
    )
    if event_bus is not None:
        await event_bus.publish("proposal.status_changed", decision.model_dump(mode="json"))
    return decision


async def check_voting_eligibility(
    repo: Repository,
    proposal_id: str,
    *,
    now: datetime | None = None,
) -> VoteEligibility:
    """Whether a consideration vote on this proposal would be accepted right now."""
    proposal = await repo.get_proposal(proposal_id)
    if proposal is None:
        return VoteEligibility(eligible=False, message="Proposal not found")
    if proposal.funding_round_id is None:
        return VoteEligibility(eligible=False, message="Proposal is not part of a funding round")

    round_row = await repo.get_funding_round(proposal.funding_round_id)
    if round_row is None:
        return VoteEligibility(eligible=False, message="Funding round not found")

    phase = resolve_phase(funding_round_model(round_row), now).phase
    if phase != RoundPhase.CONSIDERATION:
        return VoteEligibility(
            eligible=False,
            message="Voting is only allowed during the consideration phase",
        )
    if ProposalStatus(proposal.status) not in MACHINE_STATUSES:
        return VoteEligibility(
            eligible=False,
            message="Proposal is not eligible for consideration votes",
        )
    return VoteEligibility(eligible=True)


async def submit_consideration_vote(
    repo: Repository,
    proposal_id: str,
    voter_id: str,
    decision: ReviewDecision,
    feedback: str,
    *,
    min_reviewer_approvals: int,
    now: datetime | None = None,
    event_bus: EventBus | None = None,
) -> TransitionDecision:
    """Record (or overwrite) a reviewer's vote, then re-evaluate the proposal.

    Votes from users outside the reviewer groups are stored like any other
    but never count toward the threshold.

    Raises:
        InvalidVoteError: If the feedback is empty.
        ProposalNotFoundError: If the proposal does not exist.
        VoteNotAllowedError: If the round is not in its consideration phase
            or the proposal is outside CONSIDERATION/DELIBERATION.
    """
    if not feedback.strip():
        raise InvalidVoteError("Feedback is required with every consideration vote")

    eligibility = await check_voting_eligibility(repo, proposal_id, now=now)
    if not eligibility.eligible:
        if eligibility.message == "Proposal not found":
            raise ProposalNotFoundError(proposal_id)
        raise VoteNotAllowedError(eligibility.message)

    await repo.upsert_reviewer_vote(proposal_id, voter_id, decision, feedback.strip())
    logger.info(
        "consideration_vote_recorded proposal=%s voter=%s decision=%s",
        proposal_id,
        voter_id,
        decision.value,
    )
    return await evaluate_proposal(
        repo,
        proposal_id,
        min_reviewer_approvals=min_reviewer_approvals,
        event_bus=event_bus,
    )


async def record_eligibility_signal(
    repo: Repository,
    proposal_id: str,
    eligible: bool,
    *,
    min_reviewer_approvals: int,
    vote_data: dict | None = None,
    event_bus: EventBus | None = None,
) -> TransitionDecision:
    """Store the latest on-chain eligibility for a proposal, then re-evaluate it."""
    if await repo.get_proposal(proposal_id) is None:
        raise ProposalNotFoundError(proposal_id)
    await repo.upsert_eligibility_signal(proposal_id, eligible, vote_data)
    return await evaluate_proposal(
        repo,
        proposal_id,
        min_reviewer_approvals=min_reviewer_approvals,
        event_bus=event_bus,
    )


async def refresh_eligibility_signals(
    repo: Repository,
    fetch_signal: EligibilityFetcher,
    *,
    min_reviewer_approvals: int,
    event_bus: EventBus | None = None,
) -> EligibilityRefreshReport:
    """Pull a fresh signal for every active proposal and re-evaluate each one.

    ``fetch_signal`` talks to the on-chain vote indexer; it is supplied by the
    caller. A failure on one proposal is logged and recorded in the report;
    the rest of the batch still runs.
    """
    report = EligibilityRefreshReport()
    rounds: dict[str, FundingRound] = {}

    active = await repo.get_proposals_by_status(MACHINE_STATUSES)
    logger.info("eligibility_refresh_started proposals=%d", len(active))

    for row in active:
        proposal = proposal_model(row)
        if proposal.funding_round_id is None:
            logger.warning("eligibility_refresh_skip proposal=%s reason=no_round", proposal.id)
            continue
        try:
            if proposal.funding_round_id not in rounds:
                round_row = await repo.get_funding_round(proposal.funding_round_id)
                if round_row is None:
                    raise FundingRoundNotFoundError(proposal.funding_round_id)
                rounds[proposal.funding_round_id] = funding_round_model(round_row)

            signal = await fetch_signal(proposal, rounds[proposal.funding_round_id])
            decision = await record_eligibility_signal(
                repo,
                proposal.id,
                signal.eligible,
                vote_data=signal.vote_data,
                min_reviewer_approvals=min_reviewer_approvals,
                event_bus=event_bus,
            )
        except Exception:  # isolate per-proposal failures
            logger.exception("eligibility_refresh_failed proposal=%s", proposal.id)
            report.failed.append(proposal.id)
            continue

        info = ProposalVoteInfo(
            onchain_eligible=decision.onchain_eligible,
            reviewer_votes_given=decision.approval_count,
            reviewer_votes_required=decision.required_approvals,
        )
        report.vote_status[proposal.id] = info
        if decision.applied and decision.to_status == ProposalStatus.DELIBERATION:
            report.moved_to_deliberation[proposal.id] = info
        elif decision.applied and decision.to_status == ProposalStatus.CONSIDERATION:
            report.moved_to_consideration[proposal.id] = info

    logger.info(
        "eligibility_refresh_completed forward=%d back=%d failed=%d",
        len(report.moved_to_deliberation),
        len(report.moved_to_consideration),
        len(report.failed),
    )
    return report


def positive_community_votes(proposal_id: str, signal: EligibilitySignalRow | None) -> int:
    """Positive community vote count from the indexer payload, 0 when absent or unreadable."""
    if signal is None:
        return 0
    value = (signal.vote_data or {}).get("total_positive_community_votes", 0)
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("invalid_community_votes proposal=%s value=%r", proposal_id, value)
        return 0


async def consideration_phase_summary(
    repo: Repository,
    funding_round_id: str,
    *,
    min_reviewer_approvals: int,
    breakdown_limits: tuple[Decimal, Decimal] = DEFAULT_BREAKDOWN_LIMITS,
) -> ConsiderationPhaseSummary:
    """Per-proposal reviewer and community tallies for a round's consideration phase."""
    round_row = await repo.get_funding_round(funding_round_id)
    if round_row is None:
        raise FundingRoundNotFoundError(funding_round_id)
    funding_round = funding_round_model(round_row)

    reviewer_ids = await load_reviewer_identities(repo, funding_round_id)
    proposals = [proposal_model(row) for row in await repo.get_proposals_for_round(funding_round_id)]

    entries: list[ConsiderationProposalSummary] = []
    for proposal in proposals:
        votes = latest_vote_per_voter(
            reviewer_vote_model(row) for row in await repo.get_reviewer_votes(proposal.id)
        )
        signal = await repo.get_eligibility_signal(proposal.id)
        yes_votes = count_valid_approvals(votes, reviewer_ids)
        no_votes = sum(
            1
            for vote in votes
            if vote.voter_id in reviewer_ids and vote.decision == ReviewDecision.REJECTED
        )
        entries.append(
            ConsiderationProposalSummary(
                id=proposal.id,
                title=proposal.title,
                owner_id=proposal.owner_id,
                requested_budget=proposal.requested_budget,
                status=proposal.status,
                reviewer_votes=ReviewerVoteCounts(
                    yes_votes=yes_votes,
                    no_votes=no_votes,
                    total=yes_votes + no_votes,
                    required_reviewer_approvals=min_reviewer_approvals,
                    reviewer_eligible=yes_votes >= min_reviewer_approvals,
                ),
                onchain_eligible=bool(signal and signal.eligible),
                positive_community_votes=positive_community_votes(proposal.id, signal),
            )
        )

    moved_forward = sum(1 for p in proposals if p.status in MOVED_FORWARD_STATUSES)
    return ConsiderationPhaseSummary(
        funding_round_id=funding_round.id,
        funding_round_name=funding_round.name,
        window=funding_round.consideration,
        total_proposals=len(proposals),
        budget_breakdown=budget_breakdown(proposals, breakdown_limits),
        moved_forward_proposals=moved_forward,
        not_moved_forward_proposals=len(proposals) - moved_forward,
        proposals=entries,
    )
