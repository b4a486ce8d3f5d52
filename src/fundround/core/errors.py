"""Error taxonomy for the funding round engine.

Missing records, malformed round configuration, and rejected votes each get
their own type so the API layer can map them to distinct responses.
Anomalous tally input is never raised; it travels on the allocation result.
"""

from __future__ import annotations


class FundRoundError(Exception):
    """Base class for all engine errors."""


class NotFoundError(FundRoundError, LookupError):
    """A referenced record does not exist. Nothing was written."""


class ProposalNotFoundError(NotFoundError):
    def __init__(self, proposal_id: str) -> None:
        super().__init__(f"Proposal {proposal_id} not found")
        self.proposal_id = proposal_id


class FundingRoundNotFoundError(NotFoundError):
    def __init__(self, funding_round_id: str | None, *, proposal_id: str | None = None) -> None:
        if funding_round_id is None:
            message = f"Proposal {proposal_id} is not part of a funding round"
        else:
            message = f"Funding round {funding_round_id} not found"
        super().__init__(message)
        self.funding_round_id = funding_round_id
        self.proposal_id = proposal_id


class InvalidConfigurationError(FundRoundError, ValueError):
    """Round configuration is malformed (e.g. phase windows out of order)."""


class InvalidVoteError(FundRoundError, ValueError):
    """A reviewer vote is malformed (e.g. empty feedback)."""


class VoteNotAllowedError(FundRoundError):
    """A well-formed vote arrived when the round or proposal does not accept it."""


class VotingNotClosedError(FundRoundError):
    """Allocation was finalized before the voting window ended."""
