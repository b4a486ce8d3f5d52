"""Application settings via pydantic-settings. Loads from environment and .env file."""

from __future__ import annotations

import logging
from decimal import Decimal

from pydantic import field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Reviewer approvals needed to move a proposal from consideration to deliberation.
DEFAULT_REVIEWER_APPROVAL_THRESHOLD = 2


class Settings(BaseSettings):
    """Funding round engine configuration.

    All values can be overridden via environment variables or .env file.
    """

    # Database
    database_url: str = "sqlite+aiosqlite:///fundround.db"

    # Environment
    fundround_env: str = "development"

    # Consideration phase
    consideration_reviewer_approval_threshold: int = DEFAULT_REVIEWER_APPROVAL_THRESHOLD

    # Budget breakdown buckets (inclusive upper bounds)
    budget_small_max: Decimal = Decimal("500")
    budget_medium_max: Decimal = Decimal("1000")

    # Logging
    fundround_log_level: str = "INFO"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @field_validator("consideration_reviewer_approval_threshold", mode="before")
    @classmethod
    def _fallback_threshold(cls, value: object) -> int:
        """Fall back to the default threshold on garbage instead of refusing to boot."""
        try:
            parsed = int(value)  # type: ignore[call-overload]
        except (TypeError, ValueError):
            parsed = -1
        if parsed < 0:
            logger.warning(
                "invalid_reviewer_approval_threshold value=%r using_default=%d",
                value,
                DEFAULT_REVIEWER_APPROVAL_THRESHOLD,
            )
            return DEFAULT_REVIEWER_APPROVAL_THRESHOLD
        return parsed

    @property
    def budget_limits(self) -> tuple[Decimal, Decimal]:
        """(small, medium) inclusive upper bounds for budget breakdowns."""
        return self.budget_small_max, self.budget_medium_max
