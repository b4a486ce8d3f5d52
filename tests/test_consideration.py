"""Tests for the consideration state machine — the rule, the persistence path, and concurrency."""

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from fundround.core.consideration import (
    TRANSITIONS,
    check_voting_eligibility,
    consideration_phase_summary,
    count_valid_approvals,
    decide_transition,
    evaluate_proposal,
    record_eligibility_signal,
    refresh_eligibility_signals,
    submit_consideration_vote,
)
from fundround.core.errors import (
    FundingRoundNotFoundError,
    InvalidVoteError,
    ProposalNotFoundError,
    VoteNotAllowedError,
)
from fundround.core.event_bus import EventBus
from fundround.db.engine import create_engine, create_tables, get_session
from fundround.db.repository import Repository
from fundround.models.funding_round import FundingRound
from fundround.models.proposal import (
    ConsiderationSnapshot,
    EligibilitySignal,
    Proposal,
    ProposalStatus,
    ReviewDecision,
    ReviewerVote,
)

DURING_CONSIDERATION = datetime(2026, 1, 20, 12, tzinfo=UTC)
DURING_DELIBERATION = datetime(2026, 2, 5, 12, tzinfo=UTC)
REVIEWERS = frozenset({"r-1", "r-2", "r-3"})
THRESHOLD = 2

APPROVED = ReviewDecision.APPROVED
REJECTED = ReviewDecision.REJECTED


def _vote(voter_id: str, decision: ReviewDecision, minutes: int = 0) -> ReviewerVote:
    return ReviewerVote(
        proposal_id="p-1",
        voter_id=voter_id,
        decision=decision,
        feedback="looks reasonable",
        updated_at=DURING_CONSIDERATION + timedelta(minutes=minutes),
    )


def _snapshot(
    status: ProposalStatus = ProposalStatus.CONSIDERATION,
    votes: list[ReviewerVote] | None = None,
    eligible: bool = False,
) -> ConsiderationSnapshot:
    return ConsiderationSnapshot(
        proposal_id="p-1",
        status=status,
        votes=votes or [],
        reviewer_ids=REVIEWERS,
        onchain_eligible=eligible,
    )


async def _proposal(
    repo: Repository,
    funding_round: FundingRound,
    status: ProposalStatus = ProposalStatus.CONSIDERATION,
    budget: str = "100",
    title: str = "Node upgrades",
) -> str:
    row = await repo.create_proposal(
        funding_round.id, "owner-1", title, Decimal(budget), status=status
    )
    return row.id


async def _status(repo: Repository, proposal_id: str) -> ProposalStatus:
    row = await repo.get_proposal(proposal_id)
    return ProposalStatus(row.status)


async def _vote_on(
    repo: Repository,
    proposal_id: str,
    voter_id: str,
    decision: ReviewDecision,
    threshold: int = THRESHOLD,
    event_bus: EventBus | None = None,
):
    return await submit_consideration_vote(
        repo,
        proposal_id,
        voter_id,
        decision,
        "feedback",
        min_reviewer_approvals=threshold,
        now=DURING_CONSIDERATION,
        event_bus=event_bus,
    )


# --- Pure rule ---


class TestCountValidApprovals:
    def test_counts_reviewer_approvals(self):
        votes = [_vote("r-1", APPROVED), _vote("r-2", APPROVED), _vote("r-3", REJECTED)]
        assert count_valid_approvals(votes, REVIEWERS) == 2

    def test_non_reviewers_never_count(self):
        votes = [_vote("r-1", APPROVED), _vote("outsider", APPROVED), _vote("bot", APPROVED)]
        assert count_valid_approvals(votes, REVIEWERS) == 1

    def test_latest_vote_per_voter_wins(self):
        votes = [_vote("r-1", APPROVED, minutes=0), _vote("r-1", REJECTED, minutes=5)]
        assert count_valid_approvals(votes, REVIEWERS) == 0

    def test_order_of_input_does_not_matter(self):
        votes = [_vote("r-1", REJECTED, minutes=5), _vote("r-1", APPROVED, minutes=0)]
        assert count_valid_approvals(votes, REVIEWERS) == 0

    def test_duplicate_approvals_count_once(self):
        votes = [_vote("r-1", APPROVED, minutes=0), _vote("r-1", APPROVED, minutes=1)]
        assert count_valid_approvals(votes, REVIEWERS) == 1

    def test_empty_reviewer_set(self):
        assert count_valid_approvals([_vote("r-1", APPROVED)], frozenset()) == 0


class TestDecideTransition:
    def test_table_has_exactly_two_edges(self):
        assert TRANSITIONS == {
            (ProposalStatus.CONSIDERATION, True): ProposalStatus.DELIBERATION,
            (ProposalStatus.DELIBERATION, False): ProposalStatus.CONSIDERATION,
        }

    def test_one_below_threshold_stays(self):
        decision = decide_transition(_snapshot(votes=[_vote("r-1", APPROVED)]), THRESHOLD)
        assert decision.to_status is None
        assert decision.approval_count == 1
        assert not decision.should_advance

    def test_exactly_threshold_advances(self):
        votes = [_vote("r-1", APPROVED), _vote("r-2", APPROVED)]
        decision = decide_transition(_snapshot(votes=votes), THRESHOLD)
        assert decision.to_status == ProposalStatus.DELIBERATION
        assert decision.required_approvals == THRESHOLD

    def test_onchain_eligibility_alone_advances(self):
        decision = decide_transition(_snapshot(eligible=True), THRESHOLD)
        assert decision.approval_count == 0
        assert decision.to_status == ProposalStatus.DELIBERATION

    def test_deliberation_regresses_when_support_is_lost(self):
        decision = decide_transition(
            _snapshot(ProposalStatus.DELIBERATION, votes=[_vote("r-1", APPROVED)]),
            THRESHOLD,
        )
        assert decision.from_status == ProposalStatus.DELIBERATION
        assert decision.to_status == ProposalStatus.CONSIDERATION

    def test_deliberation_stays_while_eligible(self):
        decision = decide_transition(_snapshot(ProposalStatus.DELIBERATION, eligible=True), 5)
        assert decision.to_status is None

    def test_zero_threshold_advances_without_votes(self):
        decision = decide_transition(_snapshot(), 0)
        assert decision.to_status == ProposalStatus.DELIBERATION

    @pytest.mark.parametrize(
        "status",
        [
            ProposalStatus.DRAFT,
            ProposalStatus.SUBMISSION,
            ProposalStatus.VOTING,
            ProposalStatus.APPROVED,
            ProposalStatus.REJECTED,
            ProposalStatus.WITHDRAWN,
        ],
    )
    @pytest.mark.parametrize("eligible", [True, False])
    def test_other_statuses_never_change(self, status: ProposalStatus, eligible: bool):
        decision = decide_transition(_snapshot(status, eligible=eligible), THRESHOLD)
        assert decision.to_status is None

    def test_same_snapshot_same_decision(self):
        snapshot = _snapshot(votes=[_vote("r-1", APPROVED), _vote("r-2", APPROVED)])
        assert decide_transition(snapshot, THRESHOLD) == decide_transition(snapshot, THRESHOLD)

    def test_changed_only_when_there_is_a_target_status(self):
        stays = decide_transition(_snapshot(votes=[_vote("r-1", APPROVED)]), THRESHOLD)
        moves = decide_transition(_snapshot(eligible=True), THRESHOLD)
        assert not stays.changed
        assert moves.changed
        assert moves.should_advance


# --- Persistence path ---


class TestEvaluateProposal:
    async def test_no_votes_no_change(self, repo: Repository, stored_round: FundingRound):
        pid = await _proposal(repo, stored_round)
        decision = await evaluate_proposal(repo, pid, min_reviewer_approvals=THRESHOLD)
        assert decision.to_status is None
        assert not decision.applied
        assert await _status(repo, pid) == ProposalStatus.CONSIDERATION

    async def test_second_evaluation_writes_nothing(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round)
        await repo.upsert_eligibility_signal(pid, True)

        first = await evaluate_proposal(repo, pid, min_reviewer_approvals=THRESHOLD)
        second = await evaluate_proposal(repo, pid, min_reviewer_approvals=THRESHOLD)

        assert first.applied
        assert first.to_status == ProposalStatus.DELIBERATION
        assert second.to_status is None
        assert not second.changed
        assert not second.applied
        assert await _status(repo, pid) == ProposalStatus.DELIBERATION

    async def test_only_status_is_written(self, repo: Repository, stored_round: FundingRound):
        pid = await _proposal(repo, stored_round, budget="450", title="Indexer")
        await repo.upsert_eligibility_signal(pid, True)
        await evaluate_proposal(repo, pid, min_reviewer_approvals=THRESHOLD)

        row = await repo.get_proposal(pid)
        assert row.status == "DELIBERATION"
        assert row.title == "Indexer"
        assert row.requested_budget == Decimal("450")
        assert row.funding_round_id == stored_round.id

    async def test_missing_proposal(self, repo: Repository, stored_round: FundingRound):
        with pytest.raises(ProposalNotFoundError) as exc_info:
            await evaluate_proposal(repo, "no-such-proposal", min_reviewer_approvals=THRESHOLD)
        assert exc_info.value.proposal_id == "no-such-proposal"

    async def test_proposal_without_round(self, repo: Repository, stored_round: FundingRound):
        row = await repo.create_proposal(
            None, "owner-1", "Orphan", Decimal("10"), status=ProposalStatus.CONSIDERATION
        )
        await repo.upsert_eligibility_signal(row.id, True)

        with pytest.raises(FundingRoundNotFoundError) as exc_info:
            await evaluate_proposal(repo, row.id, min_reviewer_approvals=THRESHOLD)
        assert exc_info.value.proposal_id == row.id
        assert exc_info.value.funding_round_id is None
        assert await _status(repo, row.id) == ProposalStatus.CONSIDERATION

    async def test_missing_signal_counts_as_not_eligible(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round, status=ProposalStatus.DELIBERATION)
        decision = await evaluate_proposal(repo, pid, min_reviewer_approvals=THRESHOLD)
        assert not decision.onchain_eligible
        assert decision.to_status == ProposalStatus.CONSIDERATION

    async def test_threshold_is_read_at_evaluation_time(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round)
        await _vote_on(repo, pid, "r-1", APPROVED)
        await _vote_on(repo, pid, "r-2", APPROVED)
        assert await _status(repo, pid) == ProposalStatus.DELIBERATION

        decision = await evaluate_proposal(repo, pid, min_reviewer_approvals=3)
        assert decision.to_status == ProposalStatus.CONSIDERATION

    async def test_publishes_status_change(self, repo: Repository, stored_round: FundingRound):
        bus = EventBus()
        pid = await _proposal(repo, stored_round)
        await repo.upsert_eligibility_signal(pid, True)

        async with bus.subscribe("proposal.status_changed") as sub:
            await evaluate_proposal(repo, pid, min_reviewer_approvals=THRESHOLD, event_bus=bus)
            event = await sub.get(timeout=1.0)
            assert event is not None
            assert event["data"]["proposal_id"] == pid
            assert event["data"]["from_status"] == "CONSIDERATION"
            assert event["data"]["to_status"] == "DELIBERATION"

            # No change, no event
            await evaluate_proposal(repo, pid, min_reviewer_approvals=THRESHOLD, event_bus=bus)
            assert await sub.get(timeout=0.05) is None


@pytest.fixture
async def file_engine(tmp_path) -> AsyncEngine:
    """SQLite file database, so each session holds its own connection."""
    eng = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'rounds.db'}")
    await create_tables(eng)
    yield eng
    await eng.dispose()


async def _seed_file_round(engine: AsyncEngine, funding_round: FundingRound) -> str:
    """Committed round plus one eligible proposal still in consideration."""
    async with get_session(engine) as session:
        repo = Repository(session)
        await repo.create_funding_round(funding_round)
        pid = await _proposal(repo, funding_round)
        await repo.upsert_eligibility_signal(pid, True)
    return pid


class TestConcurrentEvaluation:
    async def test_racing_evaluations_write_once(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round)
        await repo.upsert_eligibility_signal(pid, True)

        decisions = await asyncio.gather(
            *(evaluate_proposal(repo, pid, min_reviewer_approvals=THRESHOLD) for _ in range(5))
        )

        assert sum(1 for d in decisions if d.applied) == 1
        assert await _status(repo, pid) == ProposalStatus.DELIBERATION

    async def test_racing_sessions_write_once(
        self, file_engine: AsyncEngine, funding_round: FundingRound
    ):
        pid = await _seed_file_round(file_engine, funding_round)

        async def evaluate_in_own_session():
            async with get_session(file_engine) as session:
                return await evaluate_proposal(
                    Repository(session), pid, min_reviewer_approvals=THRESHOLD
                )

        decisions = await asyncio.gather(*(evaluate_in_own_session() for _ in range(3)))

        assert sum(1 for d in decisions if d.applied) == 1
        async with get_session(file_engine) as session:
            assert await _status(Repository(session), pid) == ProposalStatus.DELIBERATION

    async def test_compare_and_set_waits_for_other_session(
        self, file_engine: AsyncEngine, funding_round: FundingRound
    ):
        pid = await _seed_file_round(file_engine, funding_round)
        first_written = asyncio.Event()

        async def first_writer() -> bool:
            async with get_session(file_engine) as session:
                applied = await Repository(session).compare_and_set_proposal_status(
                    pid, ProposalStatus.CONSIDERATION, ProposalStatus.DELIBERATION
                )
                first_written.set()
                # Still uncommitted while the second writer reads and writes
                await asyncio.sleep(0.05)
            return applied

        async def second_writer() -> bool:
            await first_written.wait()
            async with get_session(file_engine) as session:
                return await Repository(session).compare_and_set_proposal_status(
                    pid, ProposalStatus.CONSIDERATION, ProposalStatus.DELIBERATION
                )

        assert await asyncio.gather(first_writer(), second_writer()) == [True, False]

    async def test_stale_compare_and_set_is_rejected(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round)
        assert await repo.compare_and_set_proposal_status(
            pid, ProposalStatus.CONSIDERATION, ProposalStatus.DELIBERATION
        )
        assert not await repo.compare_and_set_proposal_status(
            pid, ProposalStatus.CONSIDERATION, ProposalStatus.DELIBERATION
        )
        assert await _status(repo, pid) == ProposalStatus.DELIBERATION


class TestConsiderationVotes:
    async def test_reviewer_approvals_promote(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round)

        first = await _vote_on(repo, pid, "r-1", APPROVED)
        assert first.to_status is None
        assert first.approval_count == 1

        second = await _vote_on(repo, pid, "r-2", APPROVED)
        assert second.to_status == ProposalStatus.DELIBERATION
        assert second.applied
        assert await _status(repo, pid) == ProposalStatus.DELIBERATION

    async def test_non_reviewer_votes_are_stored_but_ignored(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round)
        await _vote_on(repo, pid, "r-1", APPROVED)
        decision = await _vote_on(repo, pid, "outsider", APPROVED)

        assert decision.approval_count == 1
        assert await _status(repo, pid) == ProposalStatus.CONSIDERATION
        assert await repo.get_reviewer_vote(pid, "outsider") is not None

    async def test_revote_overwrites_and_regresses(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round)
        await _vote_on(repo, pid, "r-1", APPROVED)
        await _vote_on(repo, pid, "r-2", APPROVED)
        assert await _status(repo, pid) == ProposalStatus.DELIBERATION

        decision = await _vote_on(repo, pid, "r-2", REJECTED)
        assert decision.to_status == ProposalStatus.CONSIDERATION
        assert await _status(repo, pid) == ProposalStatus.CONSIDERATION
        assert len(await repo.get_reviewer_votes(pid)) == 2

    async def test_removed_reviewer_stops_counting(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round)
        await _vote_on(repo, pid, "r-1", APPROVED)
        await _vote_on(repo, pid, "r-2", APPROVED)

        groups = await repo.get_reviewer_groups_for_topic(stored_round.topic_id)
        await repo.remove_group_member(groups[0].id, "r-2")

        decision = await evaluate_proposal(repo, pid, min_reviewer_approvals=THRESHOLD)
        assert decision.approval_count == 1
        assert decision.to_status == ProposalStatus.CONSIDERATION

    async def test_empty_feedback_rejected(self, repo: Repository, stored_round: FundingRound):
        pid = await _proposal(repo, stored_round)
        with pytest.raises(InvalidVoteError):
            await submit_consideration_vote(
                repo,
                pid,
                "r-1",
                APPROVED,
                "   ",
                min_reviewer_approvals=THRESHOLD,
                now=DURING_CONSIDERATION,
            )
        assert await repo.get_reviewer_vote(pid, "r-1") is None

    async def test_vote_outside_consideration_phase(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round)
        with pytest.raises(VoteNotAllowedError, match="consideration phase"):
            await submit_consideration_vote(
                repo,
                pid,
                "r-1",
                APPROVED,
                "fine",
                min_reviewer_approvals=THRESHOLD,
                now=DURING_DELIBERATION,
            )

    async def test_vote_on_draft_proposal(self, repo: Repository, stored_round: FundingRound):
        pid = await _proposal(repo, stored_round, status=ProposalStatus.DRAFT)
        with pytest.raises(VoteNotAllowedError):
            await _vote_on(repo, pid, "r-1", APPROVED)

    async def test_vote_on_missing_proposal(self, repo: Repository, stored_round: FundingRound):
        with pytest.raises(ProposalNotFoundError):
            await _vote_on(repo, "no-such-proposal", "r-1", APPROVED)

    async def test_check_voting_eligibility(self, repo: Repository, stored_round: FundingRound):
        pid = await _proposal(repo, stored_round)
        ok = await check_voting_eligibility(repo, pid, now=DURING_CONSIDERATION)
        assert ok.eligible
        closed = await check_voting_eligibility(repo, pid, now=DURING_DELIBERATION)
        assert not closed.eligible
        assert closed.message


class TestEligibilitySignals:
    async def test_signal_promotes_and_flip_regresses(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round)

        up = await record_eligibility_signal(repo, pid, True, min_reviewer_approvals=THRESHOLD)
        assert up.to_status == ProposalStatus.DELIBERATION

        down = await record_eligibility_signal(repo, pid, False, min_reviewer_approvals=THRESHOLD)
        assert down.to_status == ProposalStatus.CONSIDERATION
        assert await _status(repo, pid) == ProposalStatus.CONSIDERATION

    async def test_reviewer_approvals_hold_after_flip(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round)
        await record_eligibility_signal(repo, pid, True, min_reviewer_approvals=THRESHOLD)
        await _vote_on(repo, pid, "r-1", APPROVED)
        await _vote_on(repo, pid, "r-3", APPROVED)

        down = await record_eligibility_signal(repo, pid, False, min_reviewer_approvals=THRESHOLD)
        assert down.to_status is None
        assert await _status(repo, pid) == ProposalStatus.DELIBERATION

    async def test_one_signal_row_per_proposal(
        self, repo: Repository, stored_round: FundingRound
    ):
        pid = await _proposal(repo, stored_round)
        await record_eligibility_signal(
            repo, pid, False, vote_data={"votes": 1}, min_reviewer_approvals=THRESHOLD
        )
        await record_eligibility_signal(
            repo, pid, True, vote_data={"votes": 9}, min_reviewer_approvals=THRESHOLD
        )
        row = await repo.get_eligibility_signal(pid)
        assert row.eligible is True
        assert row.vote_data == {"votes": 9}

    async def test_signal_for_missing_proposal(self, repo: Repository, stored_round: FundingRound):
        with pytest.raises(ProposalNotFoundError):
            await record_eligibility_signal(
                repo, "no-such-proposal", True, min_reviewer_approvals=THRESHOLD
            )


class TestRefreshEligibilitySignals:
    async def test_refresh_reports_moves_and_failures(
        self, repo: Repository, stored_round: FundingRound
    ):
        popular = await _proposal(repo, stored_round, title="popular")
        fading = await _proposal(
            repo, stored_round, status=ProposalStatus.DELIBERATION, title="fading"
        )
        broken = await _proposal(repo, stored_round, title="broken")
        await _proposal(repo, stored_round, status=ProposalStatus.DRAFT, title="draft")

        fetched: list[str] = []

        async def fetch(proposal: Proposal, funding_round: FundingRound) -> EligibilitySignal:
            fetched.append(proposal.title)
            assert funding_round.id == stored_round.id
            if proposal.title == "broken":
                raise RuntimeError("indexer unavailable")
            return EligibilitySignal(
                proposal_id=proposal.id,
                eligible=proposal.title == "popular",
                vote_data={"total_positive_community_votes": 12},
            )

        report = await refresh_eligibility_signals(
            repo, fetch, min_reviewer_approvals=THRESHOLD
        )

        assert sorted(fetched) == ["broken", "fading", "popular"]
        assert list(report.moved_to_deliberation) == [popular]
        assert list(report.moved_to_consideration) == [fading]
        assert report.failed == [broken]
        assert report.vote_status[popular].onchain_eligible
        assert report.vote_status[fading].reviewer_votes_required == THRESHOLD
        assert broken not in report.vote_status
        assert await _status(repo, broken) == ProposalStatus.CONSIDERATION


class TestConsiderationPhaseSummary:
    async def test_summary_counts(self, repo: Repository, stored_round: FundingRound):
        reviewed = await _proposal(repo, stored_round, budget="300", title="Small grant")
        await _proposal(
            repo, stored_round, status=ProposalStatus.DELIBERATION, budget="800", title="Medium"
        )
        await _proposal(
            repo, stored_round, status=ProposalStatus.VOTING, budget="1500", title="Large"
        )
        await repo.upsert_reviewer_vote(reviewed, "r-1", APPROVED, "yes")
        await repo.upsert_reviewer_vote(reviewed, "r-2", REJECTED, "no")
        await repo.upsert_reviewer_vote(reviewed, "outsider", APPROVED, "me too")
        await repo.upsert_eligibility_signal(
            reviewed, False, {"total_positive_community_votes": 7}
        )

        summary = await consideration_phase_summary(
            repo, stored_round.id, min_reviewer_approvals=THRESHOLD
        )

        assert summary.funding_round_name == "Q1 Grants"
        assert summary.window == stored_round.consideration
        assert summary.total_proposals == 3
        assert summary.moved_forward_proposals == 2
        assert summary.not_moved_forward_proposals == 1
        assert (summary.budget_breakdown.small, summary.budget_breakdown.medium) == (1, 1)
        assert summary.budget_breakdown.large == 1

        entry = next(p for p in summary.proposals if p.id == reviewed)
        assert entry.reviewer_votes.yes_votes == 1
        assert entry.reviewer_votes.no_votes == 1
        assert entry.reviewer_votes.total == 2
        assert not entry.reviewer_votes.reviewer_eligible
        assert entry.positive_community_votes == 7
        assert not entry.onchain_eligible

    async def test_unreadable_community_votes_count_as_zero(
        self, repo: Repository, stored_round: FundingRound, caplog
    ):
        garbled = await _proposal(repo, stored_round, title="Garbled")
        missing = await _proposal(repo, stored_round, title="Missing")
        numeric = await _proposal(repo, stored_round, title="Numeric text")
        await repo.upsert_eligibility_signal(
            garbled, False, {"total_positive_community_votes": "n/a"}
        )
        await repo.upsert_eligibility_signal(
            missing, False, {"total_positive_community_votes": None}
        )
        await repo.upsert_eligibility_signal(
            numeric, False, {"total_positive_community_votes": "12"}
        )

        with caplog.at_level(logging.WARNING, logger="fundround.core.consideration"):
            summary = await consideration_phase_summary(
                repo, stored_round.id, min_reviewer_approvals=THRESHOLD
            )

        counts = {p.id: p.positive_community_votes for p in summary.proposals}
        assert counts == {garbled: 0, missing: 0, numeric: 12}
        assert "invalid_community_votes" in caplog.text

    async def test_default_breakdown_limits_are_inclusive(
        self, repo: Repository, stored_round: FundingRound
    ):
        for budget in ("500", "1000", "1000.01"):
            await _proposal(repo, stored_round, budget=budget, title=f"Ask {budget}")

        summary = await consideration_phase_summary(
            repo, stored_round.id, min_reviewer_approvals=THRESHOLD
        )

        breakdown = summary.budget_breakdown
        assert (breakdown.small, breakdown.medium, breakdown.large) == (1, 1, 1)
