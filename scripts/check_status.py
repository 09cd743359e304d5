"""Quick status check of every gig in the database.

Prints each gig's effective status, next deadline, payout eligibility and
escalation flag, followed by totals per effective status.

Usage::

    python -m scripts.check_status
"""

from __future__ import annotations

import asyncio
import sys
from collections import Counter
from pathlib import Path

# Ensure the project root is on ``sys.path`` so that ``gigflow.*`` imports
# work when the script is executed directly.
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from config.settings import settings  # noqa: E402
from gigflow.models.database import Database  # noqa: E402
from gigflow.store.gig_store import GigStore  # noqa: E402
from gigflow.utils.logger import setup_logging  # noqa: E402
from main import build_facade, print_snapshot  # noqa: E402


async def main() -> None:
    setup_logging(settings.log_level)

    print("=" * 60)
    print("  gigflow - Status Check")
    print("=" * 60)
    print()

    async with Database(str(settings.abs_db_path)) as db:
        facade = build_facade(settings, db)
        gigs = await GigStore(db).list_by_status()
        if not gigs:
            print("  No gigs found.")
            return

        totals: Counter[str] = Counter()
        for gig in gigs:
            snap = facade.annotate(gig)
            totals[snap.effective_status.value] += 1
            print_snapshot(snap)

        print("  Totals")
        print("  " + "-" * 40)
        for status, count in sorted(totals.items()):
            print(f"    {status:<16}: {count}")
        stalled = sum(1 for g in gigs if facade.is_stalled_payout(g))
        print(f"    {'stalled payouts':<16}: {stalled}")
        print()


if __name__ == "__main__":
    asyncio.run(main())
