"""Gig workflow facade -- the single entry point for presentation code.

Reads annotate a gig with its derived status, next deadline, payout
eligibility and escalation flag; nothing derived is cached.  Writes follow
one pattern:

1. Re-read the authoritative record from the store.
2. Check preconditions and apply the transition to that copy.
3. Persist with a compare-and-swap on the record version.
4. Run side effects (attachment cleanup, notification) best-effort.

Only ``PreconditionError`` and ``ConflictError`` leave this module as
failures; side-effect problems are logged.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from gigflow.models.schemas import (
    Attachment,
    AttachmentUpload,
    EffectiveStatus,
    Gig,
    GigSnapshot,
    GigStatus,
    NotificationKind,
    PaymentEligibility,
    PaymentRequestReceipt,
    ReviewStatus,
)
from gigflow.notifications.dispatcher import NotificationDispatcher
from gigflow.store.attachments import AttachmentStore
from gigflow.store.gig_store import GigStore
from gigflow.utils.logger import get_logger, gig_context
from gigflow.workflow.deadlines import resolve_deadline
from gigflow.workflow.errors import DispatchFailure
from gigflow.workflow.escalation import STALLED_PAYOUT_HOURS, is_stalled_payout
from gigflow.workflow.payments import COMMISSION_RATE, PaymentRequestThrottle, net_payout
from gigflow.workflow.reports import ReportChange, ReportSubmissionManager
from gigflow.workflow.status import derive_status

log = get_logger(__name__, component="facade")

SnapshotListener = Callable[[GigSnapshot], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GigWorkflowFacade:
    """Orchestrate the gig workflow against the document store.

    Parameters
    ----------
    store:
        Authoritative gig document store.
    attachments:
        Binary store for report files.
    dispatcher:
        Notification sink for the counterpart.
    throttle:
        Payout request limiter; defaults to 5 requests, 2 hour cooldown.
    stalled_after_hours:
        Escalation threshold for payouts awaiting processing.
    commission_rate:
        Platform commission used for the net payout figure.
    dispatch_timeout:
        Upper bound in seconds for a single notification dispatch.
    clock:
        Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        store: GigStore,
        attachments: AttachmentStore,
        dispatcher: NotificationDispatcher,
        throttle: PaymentRequestThrottle | None = None,
        stalled_after_hours: float = STALLED_PAYOUT_HOURS,
        commission_rate: float = COMMISSION_RATE,
        dispatch_timeout: float = 5.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._attachments = attachments
        self._dispatcher = dispatcher
        self._reports = ReportSubmissionManager(attachments)
        self._throttle = throttle or PaymentRequestThrottle()
        self._stalled_after_hours = stalled_after_hours
        self._commission_rate = commission_rate
        self._dispatch_timeout = dispatch_timeout
        self._clock = clock

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def derive_status(self, gig: Gig) -> EffectiveStatus:
        return derive_status(gig)

    def resolve_deadline(self, gig: Gig) -> datetime | None:
        return resolve_deadline(gig, self._clock())

    def can_request_payment(self, gig: Gig) -> PaymentEligibility:
        return self._throttle.can_request(gig, self._clock())

    def is_stalled_payout(self, gig: Gig) -> bool:
        return is_stalled_payout(gig, self._stalled_after_hours, self._clock())

    def annotate(self, gig: Gig) -> GigSnapshot:
        """Attach every derived field to *gig*."""
        now = self._clock()
        return GigSnapshot(
            gig=gig,
            effective_status=derive_status(gig),
            next_deadline=resolve_deadline(gig, now),
            payment=self._throttle.can_request(gig, now),
            stalled_payout=is_stalled_payout(gig, self._stalled_after_hours, now),
            net_payout=net_payout(gig.budget, self._commission_rate),
        )

    async def snapshot(self, gig_id: str) -> GigSnapshot:
        """Load *gig_id* fresh from the store and annotate it."""
        return self.annotate(await self._store.get(gig_id))

    async def stalled_payouts(self) -> list[Gig]:
        """Return every gig whose payout has been waiting too long."""
        now = self._clock()
        gigs = await self._store.list_by_status(GigStatus.AWAITING_PAYOUT)
        return [g for g in gigs if is_stalled_payout(g, self._stalled_after_hours, now)]

    def watch(self, gig_id: str, listener: SnapshotListener) -> Callable[[], None]:
        """Deliver a freshly annotated snapshot to *listener* on every change.

        Returns a callable that ends the subscription.
        """

        async def _on_change(gig: Gig) -> None:
            await listener(self.annotate(gig))

        return self._store.subscribe(gig_id, _on_change)

    # ------------------------------------------------------------------
    # Write path: reports
    # ------------------------------------------------------------------

    async def submit_report(
        self,
        gig_id: str,
        report_number: int,
        text: str,
        files: list[AttachmentUpload] | None = None,
    ) -> GigSnapshot:
        """Submit (or resubmit) progress report *report_number*.

        Raises
        ------
        PreconditionError
            If the submission is empty or the previous report is not approved.
        ConflictError
            If the gig changed while the submission was being written.
        """
        files = files or []
        with gig_context(gig_id, report_number=report_number):
            gig = await self._store.get(gig_id)
            self._reports.check_can_submit(gig, report_number, text, bool(files))

            uploaded = await self._upload_files(gig, report_number, files)
            try:
                change = self._reports.submit(gig, report_number, text, uploaded, now=self._clock())
                stored = await self._persist(change)
            except Exception:
                await self._reports.cleanup_attachments(uploaded)
                raise

            submission = change.report.submission
            log.info("report_submitted", attachments=len(submission.attachments) if submission else 0)
            await self._reports.cleanup_attachments(change.stale_attachments)
            await self._dispatch(
                stored.client_id,
                NotificationKind.REPORT_SUBMITTED,
                self._payload(stored, report_number=report_number),
            )
            return self.annotate(stored)

    async def unsubmit_report(self, gig_id: str, report_number: int) -> GigSnapshot:
        """Withdraw report *report_number* and delete its files.

        The logical reset is committed first; file deletion afterwards is
        best-effort and never fails the call.
        """
        with gig_context(gig_id, report_number=report_number):
            gig = await self._store.get(gig_id)
            change = self._reports.unsubmit(gig, report_number)
            stored = await self._persist(change)
            removed = await self._reports.cleanup_attachments(change.stale_attachments)
            log.info("report_unsubmitted", attachments_removed=removed)
            return self.annotate(stored)

    async def review_report(
        self,
        gig_id: str,
        report_number: int,
        decision: ReviewStatus,
        feedback: str = "",
    ) -> GigSnapshot:
        """Record the counterpart's approval or rejection of a report."""
        with gig_context(gig_id, report_number=report_number):
            gig = await self._store.get(gig_id)
            change = self._reports.review(gig, report_number, decision, feedback, now=self._clock())
            stored = await self._persist(change)
            log.info("report_reviewed", decision=decision.value)
            await self._dispatch(
                stored.worker_id,
                NotificationKind.REPORT_REVIEWED,
                self._payload(
                    stored,
                    report_number=report_number,
                    decision=decision.value,
                    feedback=change.report.review_feedback or "",
                ),
            )
            return self.annotate(stored)

    async def remove_report_attachment(
        self, gig_id: str, report_number: int, url: str
    ) -> GigSnapshot:
        """Detach and delete one file from a submitted report."""
        with gig_context(gig_id, report_number=report_number):
            gig = await self._store.get(gig_id)
            change = self._reports.remove_attachment(gig, report_number, url)
            stored = await self._persist(change)
            await self._reports.cleanup_attachments(change.stale_attachments)
            payload = self._payload(
                stored,
                report_number=report_number,
                attachment_name=change.stale_attachments[0].name,
            )
            for recipient in (stored.worker_id, stored.client_id):
                await self._dispatch(recipient, NotificationKind.REPORT_ATTACHMENT_DELETED, payload)
            return self.annotate(stored)

    # ------------------------------------------------------------------
    # Write path: payout requests
    # ------------------------------------------------------------------

    async def request_payment(self, gig: Gig | str) -> PaymentRequestReceipt:
        """Record a payout request.

        Eligibility is re-evaluated against a fresh read of the gig, never
        against the caller's copy.

        Raises
        ------
        PreconditionError
            If the gig is not eligible right now.
        ConflictError
            If another request or review landed concurrently.
        """
        gig_id = gig if isinstance(gig, str) else gig.id
        with gig_context(gig_id):
            fresh = await self._store.get(gig_id)
            updated, receipt = self._throttle.request(fresh, self._clock())
            stored = await self._store.update(
                gig_id,
                {
                    "payment_requests_count": updated.payment_requests_count,
                    "last_payment_requested_at": updated.last_payment_requested_at,
                    "payment_request_pending": updated.payment_request_pending,
                    "updated_at": self._clock(),
                },
                expected_version=fresh.version,
            )
            log.info(
                "payment_requested",
                requests_made=receipt.requests_made,
                next_eligible_at=receipt.next_eligible_at.isoformat(),
            )
            await self._dispatch(
                stored.client_id,
                NotificationKind.PAYMENT_REQUESTED,
                self._payload(
                    stored,
                    requests_made=receipt.requests_made,
                    cap=self._throttle.cap,
                    net_payout=net_payout(stored.budget, self._commission_rate),
                    currency=stored.currency,
                ),
            )
            return receipt

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _persist(self, change: ReportChange) -> Gig:
        return await self._store.update(
            change.gig.id,
            {"reports": change.gig.reports, "updated_at": self._clock()},
            expected_version=change.gig.version,
        )

    async def _upload_files(
        self, gig: Gig, report_number: int, files: list[AttachmentUpload]
    ) -> list[Attachment]:
        uploaded: list[Attachment] = []
        now = self._clock()
        try:
            for sequence, upload in enumerate(files):
                path = self._attachments.report_path(
                    gig.id, gig.worker_id, report_number, upload.name, now=now, sequence=sequence
                )
                url = await self._attachments.upload(path, upload.data)
                uploaded.append(Attachment(url=url, name=upload.name, size=len(upload.data)))
        except Exception:
            await self._reports.cleanup_attachments(uploaded)
            raise
        return uploaded

    @staticmethod
    def _payload(gig: Gig, **extra: Any) -> dict[str, Any]:
        return {"gig_id": gig.id, "gig_title": gig.title or gig.id, **extra}

    async def _dispatch(
        self, recipient_id: str, kind: NotificationKind, payload: dict[str, Any]
    ) -> None:
        try:
            await asyncio.wait_for(
                self._dispatcher.notify(recipient_id, kind, payload),
                timeout=self._dispatch_timeout,
            )
        except (DispatchFailure, asyncio.TimeoutError) as exc:
            log.warning(
                "dispatch_failed",
                recipient_id=recipient_id,
                kind=kind.value,
                gig_id=payload.get("gig_id"),
                error=str(exc) or type(exc).__name__,
            )
