"""Seed the database with demo gigs covering each workflow stage.

Usage::

    python -m scripts.setup_gigs            # add demo gigs
    python -m scripts.setup_gigs --reset    # drop existing demo gigs first
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Ensure the project root is on ``sys.path`` so that ``gigflow.*`` imports
# work when the script is executed directly.
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from config.settings import settings  # noqa: E402
from gigflow.models.database import Database  # noqa: E402
from gigflow.models.schemas import (  # noqa: E402
    Gig,
    GigStatus,
    ProgressReport,
    ReviewStatus,
    Submission,
)
from gigflow.store.attachments import AttachmentStore  # noqa: E402
from gigflow.store.gig_store import GigStore  # noqa: E402
from gigflow.utils.logger import get_logger, setup_logging  # noqa: E402

log = get_logger(__name__, component="setup_gigs")


def demo_gigs(now: datetime) -> list[Gig]:
    """Return one gig per interesting workflow stage."""
    approved = ProgressReport(
        report_number=1,
        submission=Submission(text="Wireframes delivered", submitted_at=now - timedelta(days=3)),
        review_status=ReviewStatus.APPROVED,
        review_feedback="Great start",
        reviewed_at=now - timedelta(days=2),
    )
    return [
        Gig(
            id="demo-fresh",
            title="Landing page copy",
            client_id="client-1",
            worker_id="worker-1",
            deadline=now + timedelta(days=10),
            budget=4000,
            number_of_reports=2,
            reports=[ProgressReport(report_number=1, deadline=now + timedelta(days=3))],
        ),
        Gig(
            id="demo-review",
            title="Mobile app mockups",
            client_id="client-1",
            worker_id="worker-2",
            deadline=now + timedelta(days=7),
            budget=12000,
            number_of_reports=2,
            reports=[
                approved,
                ProgressReport(
                    report_number=2,
                    submission=Submission(text="High fidelity screens", submitted_at=now),
                    review_status=ReviewStatus.PENDING_REVIEW,
                ),
            ],
        ),
        Gig(
            id="demo-payout",
            title="Logo refresh",
            client_id="client-2",
            worker_id="worker-1",
            deadline=now + timedelta(days=1),
            budget=2500,
            number_of_reports=1,
            reports=[approved],
        ),
        Gig(
            id="demo-stalled",
            title="Data cleanup",
            client_id="client-2",
            worker_id="worker-3",
            status=GigStatus.AWAITING_PAYOUT,
            deadline=now - timedelta(days=5),
            updated_at=now - timedelta(days=4),
            budget=1500,
            payment_requests_count=1,
            last_payment_requested_at=now - timedelta(days=4),
            payment_request_pending=True,
        ),
    ]


async def main(reset: bool) -> None:
    setup_logging(settings.log_level)

    print("=" * 60)
    print("  gigflow - Demo Gig Setup")
    print("=" * 60)
    print()

    now = datetime.now(timezone.utc)
    async with Database(str(settings.abs_db_path)) as db:
        store = GigStore(db)
        attachments = AttachmentStore(str(settings.abs_attachments_dir))
        created = 0
        for gig in demo_gigs(now):
            if reset:
                await db.execute("DELETE FROM gigs WHERE id = ?", (gig.id,))
                attachments.purge_gig(gig.id)
            existing = await db.fetch_one("SELECT id FROM gigs WHERE id = ?", (gig.id,))
            if existing is not None:
                print(f"  [SKIP] {gig.id} already exists")
                continue
            await store.create(gig)
            created += 1
            print(f"  [OK]   {gig.id}: {gig.title}")
    log.info("demo_gigs_seeded", created=created, reset=reset)
    print()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo gigs")
    parser.add_argument("--reset", action="store_true", help="Replace existing demo gigs")
    asyncio.run(main(parser.parse_args().reset))
