"""Nearest actionable deadline of a gig."""

from __future__ import annotations

from datetime import datetime, timezone

from gigflow.models.schemas import TERMINAL_STATUSES, Gig, ProgressReport, ReviewStatus

_SETTLED = frozenset({ReviewStatus.APPROVED, ReviewStatus.REJECTED})


def _is_actionable(report: ProgressReport, now: datetime) -> bool:
    return (
        report.deadline is not None
        and report.deadline >= now
        and report.review_status not in _SETTLED
    )


def resolve_deadline(gig: Gig, now: datetime | None = None) -> datetime | None:
    """Return the earliest of the gig deadline and any actionable report deadline.

    A report deadline is actionable while it is set, not yet past, and the
    report is neither approved nor rejected.  Gigs awaiting payout or
    completed have nothing due and yield ``None``.
    """
    if gig.status in TERMINAL_STATUSES:
        return None

    now = now or datetime.now(timezone.utc)
    candidate = gig.deadline

    report_deadlines = [r.deadline for r in gig.reports if _is_actionable(r, now)]
    if report_deadlines:
        earliest = min(report_deadlines)
        if candidate is None or earliest < candidate:
            candidate = earliest

    return candidate
