"""Re-run the consideration state machine for every active proposal.

Threshold changes only take effect the next time a proposal is evaluated
(a vote or an eligibility refresh). After changing
CONSIDERATION_REVIEWER_APPROVAL_THRESHOLD, run this to bring every proposal
in CONSIDERATION or DELIBERATION in line with the new value.

Safe to run multiple times (idempotent: unchanged proposals are not written).

Usage:
    # Dry run (default; shows what would change, changes nothing):
    python scripts/reevaluate_proposals.py

    # Apply changes:
    python scripts/reevaluate_proposals.py --apply
"""

from __future__ import annotations

import asyncio
import sys

from fundround.config import Settings
from fundround.core.consideration import (
    MACHINE_STATUSES,
    decide_transition,
    evaluate_proposal,
    load_snapshot,
)
from fundround.db.engine import create_engine, get_session
from fundround.db.repository import Repository


async def main(apply: bool = False) -> None:
    """Report (and optionally apply) pending consideration transitions."""
    settings = Settings()
    threshold = settings.consideration_reviewer_approval_threshold
    engine = create_engine(settings.database_url)

    async with get_session(engine) as session:
        repo = Repository(session)

        active = await repo.get_proposals_by_status(MACHINE_STATUSES)
        if not active:
            print("No proposals in consideration or deliberation.")
            await engine.dispose()
            return

        print(f"Reviewer approval threshold: {threshold}")
        total_changed = 0

        for row in active:
            if row.funding_round_id is None:
                print(f"  - [{row.id[:8]}] skipped: not part of a funding round")
                continue
            snapshot = await load_snapshot(repo, row.id)
            decision = decide_transition(snapshot, threshold)
            if not decision.changed:
                continue

            total_changed += 1
            print(
                f"  - [{row.id[:8]}] {row.title[:50]!r} "
                f"{decision.from_status.value} -> {decision.to_status.value} "
                f"approvals={decision.approval_count}/{threshold} "
                f"eligible={decision.onchain_eligible}"
            )
            if apply:
                applied = await evaluate_proposal(
                    repo, row.id, min_reviewer_approvals=threshold
                )
                print(f"    -> {'APPLIED' if applied.applied else 'SKIPPED (status changed)'}")

        print(f"\n{'=' * 50}")
        print(f"Active proposals: {len(active)}")
        print(f"Proposals that change status: {total_changed}")
        if not apply:
            print("DRY RUN. No changes made. Pass --apply to write.")

    await engine.dispose()


if __name__ == "__main__":
    apply = "--apply" in sys.argv
    asyncio.run(main(apply=apply))
