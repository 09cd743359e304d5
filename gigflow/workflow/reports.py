"""Progress report submission, withdrawal and review.

``ReportSubmissionManager`` applies report transitions to a freshly read
``Gig`` and returns an updated copy; persisting it is the caller's job.
Report *k* only accepts a submission once report *k-1* is approved, and a
rejected or pending submission can be replaced at any time.  Binary files
are removed from the attachment store as a separate best-effort step once
the logical transition is committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from gigflow.models.schemas import (
    Attachment,
    Gig,
    GigStatus,
    ProgressReport,
    ReviewStatus,
    Submission,
)
from gigflow.store.attachments import AttachmentStore
from gigflow.utils.logger import get_logger
from gigflow.workflow.errors import AttachmentCleanupWarning, PreconditionError

log = get_logger(__name__, component="reports")

_REVIEW_DECISIONS = frozenset({ReviewStatus.APPROVED, ReviewStatus.REJECTED})


@dataclass
class ReportChange:
    """Result of a report transition.

    ``gig`` is the updated copy to persist; ``stale_attachments`` are files
    no longer referenced by the report and safe to delete after the write.
    """

    gig: Gig
    report: ProgressReport
    stale_attachments: list[Attachment] = field(default_factory=list)


class ReportSubmissionManager:
    """Apply submit / unsubmit / review transitions to a gig's reports.

    Parameters
    ----------
    attachments:
        Store used for best-effort removal of files that a transition
        orphaned.
    """

    def __init__(self, attachments: AttachmentStore) -> None:
        self._attachments = attachments

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    @staticmethod
    def _slot(gig: Gig, report_number: int) -> ProgressReport:
        report = gig.report(report_number)
        if report is None:
            raise PreconditionError(
                "unknown_report",
                f"Report #{report_number} does not exist; this gig has "
                f"{gig.number_of_reports} report(s)",
            )
        return report

    @staticmethod
    def _require_in_progress(gig: Gig) -> None:
        if gig.status is not GigStatus.IN_PROGRESS:
            raise PreconditionError(
                "gig_not_in_progress",
                f"Reports can only change while the gig is in progress (it is {gig.status.value})",
            )

    def check_can_submit(
        self, gig: Gig, report_number: int, text: str, has_attachments: bool
    ) -> ProgressReport:
        """Validate a submission for *report_number* and return its slot.

        Raises
        ------
        PreconditionError
            If the submission is empty, the gig is not in progress, the slot
            does not exist, the report is already approved, or the previous
            report is not approved yet.
        """
        if not text.strip() and not has_attachments:
            raise PreconditionError(
                "empty_submission",
                "A report needs a description or at least one attachment",
            )
        self._require_in_progress(gig)
        report = self._slot(gig, report_number)
        if report.is_approved:
            raise PreconditionError(
                "report_already_approved",
                f"Report #{report_number} is already approved",
            )
        if report_number > 1:
            previous = gig.report(report_number - 1)
            if previous is None or not previous.is_approved:
                raise PreconditionError(
                    "previous_report_not_approved",
                    f"Report #{report_number - 1} must be approved before "
                    f"report #{report_number} can be submitted",
                )
        return report

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(
        self,
        gig: Gig,
        report_number: int,
        text: str,
        attachments: list[Attachment],
        *,
        now: datetime,
    ) -> ReportChange:
        """Record a submission for *report_number* and reset its review.

        When *attachments* is empty the previous submission's files are kept,
        so a text-only resubmission never drops earlier uploads.  When new
        files are given, the old ones are returned as stale.
        """
        report = self.check_can_submit(gig, report_number, text, bool(attachments))
        text = text.strip()

        previous_files = report.submission.attachments if report.submission else []
        if attachments:
            kept = list(attachments)
            new_urls = {a.url for a in kept}
            stale = [a for a in previous_files if a.url not in new_urls]
        else:
            kept = list(previous_files)
            stale = []

        updated = report.model_copy(
            update={
                "submission": Submission(text=text, attachments=kept, submitted_at=now),
                "review_status": ReviewStatus.PENDING_REVIEW,
                "review_feedback": None,
                "reviewed_at": None,
            }
        )
        log.info(
            "report_submit_applied",
            gig_id=gig.id,
            report_number=report_number,
            attachment_count=len(kept),
            resubmission=report.submission is not None,
        )
        return ReportChange(gig=self._replace(gig, updated), report=updated, stale_attachments=stale)

    def unsubmit(self, gig: Gig, report_number: int) -> ReportChange:
        """Withdraw the submission of *report_number* and clear its review state."""
        self._require_in_progress(gig)
        report = self._slot(gig, report_number)
        if report.submission is None:
            raise PreconditionError(
                "nothing_to_unsubmit",
                f"Report #{report_number} has no submission to withdraw",
            )
        if report.is_approved:
            raise PreconditionError(
                "report_already_approved",
                f"Report #{report_number} is approved and can no longer be withdrawn",
            )

        updated = report.model_copy(
            update={
                "submission": None,
                "review_status": None,
                "review_feedback": None,
                "reviewed_at": None,
            }
        )
        log.info("report_unsubmit_applied", gig_id=gig.id, report_number=report_number)
        return ReportChange(
            gig=self._replace(gig, updated),
            report=updated,
            stale_attachments=list(report.submission.attachments),
        )

    def review(
        self,
        gig: Gig,
        report_number: int,
        decision: ReviewStatus,
        feedback: str = "",
        *,
        now: datetime,
    ) -> ReportChange:
        """Approve or reject a report that is waiting for review."""
        if decision not in _REVIEW_DECISIONS:
            raise ValueError(f"Review decision must be approved or rejected, got {decision!r}")
        self._require_in_progress(gig)
        report = self._slot(gig, report_number)
        if report.submission is None or not report.awaits_review:
            raise PreconditionError(
                "report_not_awaiting_review",
                f"Report #{report_number} is not waiting for review",
            )
        feedback = feedback.strip()
        if decision is ReviewStatus.REJECTED and not feedback:
            raise PreconditionError(
                "feedback_required",
                "Rejecting a report requires feedback for the worker",
            )

        updated = report.model_copy(
            update={
                "review_status": decision,
                "review_feedback": feedback or None,
                "reviewed_at": now,
            }
        )
        log.info(
            "report_review_applied",
            gig_id=gig.id,
            report_number=report_number,
            decision=decision.value,
        )
        return ReportChange(gig=self._replace(gig, updated), report=updated)

    def remove_attachment(self, gig: Gig, report_number: int, url: str) -> ReportChange:
        """Detach a single file from a submission (moderation action)."""
        report = self._slot(gig, report_number)
        submission = report.submission
        match = [a for a in (submission.attachments if submission else []) if a.url == url]
        if submission is None or not match:
            raise PreconditionError(
                "unknown_attachment",
                f"Report #{report_number} has no attachment {url}",
            )
        remaining = [a for a in submission.attachments if a.url != url]
        updated = report.model_copy(
            update={"submission": submission.model_copy(update={"attachments": remaining})}
        )
        log.info(
            "report_attachment_detached",
            gig_id=gig.id,
            report_number=report_number,
            url=url,
        )
        return ReportChange(gig=self._replace(gig, updated), report=updated, stale_attachments=match)

    # ------------------------------------------------------------------
    # Attachment cleanup
    # ------------------------------------------------------------------

    async def cleanup_attachments(self, attachments: list[Attachment]) -> int:
        """Delete *attachments* from the store, returning how many were removed.

        Missing files are ignored; other failures are logged and skipped.
        """
        removed = 0
        for attachment in attachments:
            try:
                if await self._attachments.delete(attachment.url):
                    removed += 1
            except AttachmentCleanupWarning as warning:
                log.warning(
                    "attachment_cleanup_failed",
                    url=warning.url,
                    reason=warning.reason,
                )
        return removed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _replace(gig: Gig, report: ProgressReport) -> Gig:
        reports = [report if r.report_number == report.report_number else r for r in gig.reports]
        return gig.model_copy(update={"reports": reports})
