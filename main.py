"""gigflow -- gig engagement and progress-reporting workflow.

Command-line front end over ``GigWorkflowFacade``.

Usage::

    python main.py show GIG_ID
    python main.py submit GIG_ID 1 --text "First milestone" --file plan.pdf
    python main.py unsubmit GIG_ID 1
    python main.py review GIG_ID 1 approved --feedback "Looks good"
    python main.py request-payment GIG_ID
    python main.py stalled
    python main.py watch GIG_ID
    python main.py sweep
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from datetime import timedelta
from pathlib import Path

# Ensure project root is on sys.path so that ``gigflow.*`` imports resolve.
_PROJECT_ROOT = Path(__file__).resolve().parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from config.settings import Settings
from gigflow.models.database import Database
from gigflow.models.schemas import AttachmentUpload, GigSnapshot, ReviewStatus
from gigflow.notifications.dispatcher import NotificationDispatcher
from gigflow.notifications.templates import NotificationTemplates
from gigflow.store.attachments import AttachmentStore
from gigflow.store.gig_store import GigStore
from gigflow.utils.logger import get_logger, setup_logging
from gigflow.utils.retry import retry
from gigflow.workflow.errors import ConflictError, GigNotFoundError, PreconditionError
from gigflow.workflow.escalation import EscalationSweeper
from gigflow.workflow.facade import GigWorkflowFacade
from gigflow.workflow.payments import PaymentRequestThrottle

log = get_logger(__name__, component="main")


def build_facade(settings: Settings, db: Database) -> GigWorkflowFacade:
    """Wire the workflow facade from *settings* over a connected *db*."""
    store = GigStore(db)
    attachments = AttachmentStore(str(settings.abs_attachments_dir))
    dispatcher = NotificationDispatcher(
        db, NotificationTemplates(str(settings.abs_notifications_path))
    )
    throttle = PaymentRequestThrottle(
        cap=settings.payment_request_cap,
        cooldown=timedelta(hours=settings.payment_cooldown_hours),
    )
    return GigWorkflowFacade(
        store=store,
        attachments=attachments,
        dispatcher=dispatcher,
        throttle=throttle,
        stalled_after_hours=settings.stalled_payout_hours,
        commission_rate=settings.commission_rate,
        dispatch_timeout=settings.dispatch_timeout_seconds,
    )


def print_snapshot(snap: GigSnapshot) -> None:
    """Render a gig snapshot for the terminal."""
    gig = snap.gig
    deadline = snap.next_deadline.strftime("%Y-%m-%d %H:%M UTC") if snap.next_deadline else "-"
    print(f"  {gig.title or gig.id}  [{snap.effective_status.value}]")
    print(f"    Gig id        : {gig.id}")
    print(f"    Next deadline : {deadline}")
    print(f"    Budget        : {gig.budget:.2f} {gig.currency} (net {snap.net_payout:.2f})")
    for report in gig.reports:
        state = report.review_status.value if report.review_status else (
            "submitted" if report.submission else "awaiting submission"
        )
        print(f"    Report #{report.report_number:<3}: {state}")
        if report.review_feedback:
            print(f"      Feedback: {report.review_feedback}")
    payment = "eligible" if snap.payment.eligible else snap.payment.message
    print(f"    Payment       : {payment}")
    print(f"    Requests made : {gig.payment_requests_count}")
    if snap.stalled_payout:
        print("    Payout is overdue -- contact support.")
    print()


async def run_command(args: argparse.Namespace, settings: Settings) -> int:
    """Execute one CLI sub-command and return the exit code."""
    async with Database(str(settings.abs_db_path)) as db:
        facade = build_facade(settings, db)

        @retry(max_attempts=3, exceptions=(ConflictError,))
        async def _with_retry(coro_factory):
            return await coro_factory()

        try:
            if args.command == "show":
                print_snapshot(await facade.snapshot(args.gig_id))

            elif args.command == "submit":
                files = [
                    AttachmentUpload(name=Path(p).name, data=Path(p).read_bytes())
                    for p in args.file
                ]
                snap = await _with_retry(
                    lambda: facade.submit_report(args.gig_id, args.report, args.text, files)
                )
                print_snapshot(snap)

            elif args.command == "unsubmit":
                snap = await _with_retry(
                    lambda: facade.unsubmit_report(args.gig_id, args.report)
                )
                print_snapshot(snap)

            elif args.command == "review":
                snap = await _with_retry(
                    lambda: facade.review_report(
                        args.gig_id, args.report, ReviewStatus(args.decision), args.feedback
                    )
                )
                print_snapshot(snap)

            elif args.command == "request-payment":
                receipt = await _with_retry(lambda: facade.request_payment(args.gig_id))
                print(
                    f"  Payment requested ({receipt.requests_made} made, "
                    f"{receipt.requests_remaining} left). Next request possible at "
                    f"{receipt.next_eligible_at:%Y-%m-%d %H:%M UTC}."
                )

            elif args.command == "stalled":
                stalled = await facade.stalled_payouts()
                if not stalled:
                    print("  No stalled payouts.")
                for gig in stalled:
                    print_snapshot(facade.annotate(gig))

            elif args.command == "watch":
                await watch(facade, args.gig_id)

            elif args.command == "sweep":
                await sweep(GigStore(db), settings)

        except PreconditionError as exc:
            print(f"  Not allowed: {exc.message}")
            return 2
        except ConflictError:
            print("  The gig changed while saving. Please try again.")
            return 3
        except GigNotFoundError as exc:
            print(f"  {exc}")
            return 4
    return 0


async def watch(facade: GigWorkflowFacade, gig_id: str) -> None:
    """Print the gig and then every change to it until interrupted."""
    print_snapshot(await facade.snapshot(gig_id))
    stop = asyncio.Event()

    async def on_change(snap: GigSnapshot) -> None:
        print_snapshot(snap)

    unsubscribe = facade.watch(gig_id, on_change)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    try:
        await stop.wait()
    finally:
        unsubscribe()


async def sweep(store: GigStore, settings: Settings) -> None:
    """Run the stalled-payout sweeper until interrupted."""
    sweeper = EscalationSweeper(
        store,
        threshold_hours=settings.stalled_payout_hours,
        interval_seconds=settings.sweep_interval_seconds,
    )
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, sweeper.stop)
    await sweeper.run()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="gigflow - gig engagement and progress-reporting workflow",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Show a gig with its derived status")
    show.add_argument("gig_id")

    submit = sub.add_parser("submit", help="Submit a progress report")
    submit.add_argument("gig_id")
    submit.add_argument("report", type=int)
    submit.add_argument("--text", default="", help="Report description")
    submit.add_argument("--file", action="append", default=[], help="Attachment path (repeatable)")

    unsubmit = sub.add_parser("unsubmit", help="Withdraw a progress report")
    unsubmit.add_argument("gig_id")
    unsubmit.add_argument("report", type=int)

    review = sub.add_parser("review", help="Approve or reject a progress report")
    review.add_argument("gig_id")
    review.add_argument("report", type=int)
    review.add_argument("decision", choices=[ReviewStatus.APPROVED.value, ReviewStatus.REJECTED.value])
    review.add_argument("--feedback", default="")

    pay = sub.add_parser("request-payment", help="Ask the client to release payment")
    pay.add_argument("gig_id")

    sub.add_parser("stalled", help="List payouts waiting longer than the threshold")

    watch_cmd = sub.add_parser("watch", help="Follow a gig live")
    watch_cmd.add_argument("gig_id")

    sub.add_parser("sweep", help="Periodically log stalled payouts")
    return parser


def cli() -> None:
    """Parse CLI arguments and run the event loop."""
    args = build_parser().parse_args()
    settings = Settings()
    setup_logging(settings.log_level)
    log.info("gigflow.command", command=args.command)
    sys.exit(asyncio.run(run_command(args, settings)))


if __name__ == "__main__":
    cli()
