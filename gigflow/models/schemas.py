"""Pydantic models and enums for the gig engagement workflow.

These schemas are the single source of truth for data shapes used across the
application -- from stored gig documents to notification payloads to the
annotated snapshots handed to presentation code.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Iterable
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, Field, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class GigStatus(str, Enum):
    """Coarse lifecycle state persisted on the gig document."""

    IN_PROGRESS = "in-progress"
    AWAITING_PAYOUT = "awaiting-payout"
    COMPLETED = "completed"


class EffectiveStatus(str, Enum):
    """Derived classification shown to users; never persisted."""

    AWAITING_PAYOUT = "awaiting-payout"
    COMPLETED = "completed"
    ACTION_REQUIRED = "action-required"
    PENDING_REVIEW = "pending-review"
    IN_PROGRESS = "in-progress"


class ReviewStatus(str, Enum):
    """Counterpart review outcome of a progress report."""

    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationKind(str, Enum):
    """Events emitted to the counterpart after a committed transition."""

    REPORT_SUBMITTED = "report_submitted"
    REPORT_REVIEWED = "report_reviewed"
    PAYMENT_REQUESTED = "payment_requested"
    REPORT_ATTACHMENT_DELETED = "report_attachment_deleted"


class IneligibilityReason(str, Enum):
    """Why a payout request is currently refused."""

    PROCESSING = "processing"
    CAP_REACHED = "cap_reached"
    COOLDOWN = "cooldown"
    ALREADY_PENDING = "already_pending"
    REPORTS_NOT_APPROVED = "reports_not_approved"


TERMINAL_STATUSES = frozenset({GigStatus.AWAITING_PAYOUT, GigStatus.COMPLETED})

# Lifetime limit on payout requests per gig.
MAX_PAYMENT_REQUESTS = 5


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    """Return the current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDateTime = Annotated[datetime, AfterValidator(_as_utc)]


class Attachment(BaseModel):
    """A file stored in the attachment store and referenced by a submission."""

    url: str
    name: str
    size: int = 0


class Submission(BaseModel):
    """A worker's delivery for one progress report."""

    text: str = ""
    attachments: list[Attachment] = Field(default_factory=list)
    submitted_at: UtcDateTime = Field(default_factory=_utcnow)


class ProgressReport(BaseModel):
    """One milestone slot of a gig."""

    report_number: int = Field(ge=1)
    deadline: UtcDateTime | None = None
    submission: Submission | None = None
    review_status: ReviewStatus | None = None
    review_feedback: str | None = None
    reviewed_at: UtcDateTime | None = None

    @property
    def is_approved(self) -> bool:
        return self.review_status is ReviewStatus.APPROVED

    @property
    def awaits_review(self) -> bool:
        """Submitted and not yet approved or rejected."""
        if self.review_status is ReviewStatus.PENDING_REVIEW:
            return True
        return self.submission is not None and self.review_status is None


def materialize_reports(
    number_of_reports: int, reports: Iterable[ProgressReport]
) -> list[ProgressReport]:
    """Return exactly *number_of_reports* slots ordered by report number.

    Existing entries are kept in their slot, missing slots are synthesised
    empty and entries numbered outside ``1..number_of_reports`` are dropped.
    """
    by_number = {r.report_number: r for r in reports}
    return [
        by_number.get(n) or ProgressReport(report_number=n)
        for n in range(1, number_of_reports + 1)
    ]


class Gig(BaseModel):
    """A unit of paid work with a fixed number of progress report slots."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    title: str = ""
    client_id: str
    worker_id: str
    status: GigStatus = GigStatus.IN_PROGRESS
    deadline: UtcDateTime | None = None
    created_at: UtcDateTime = Field(default_factory=_utcnow)
    updated_at: UtcDateTime = Field(default_factory=_utcnow)
    budget: float = Field(default=0.0, ge=0)
    currency: str = "INR"
    number_of_reports: int = Field(default=0, ge=0)
    reports: list[ProgressReport] = Field(default_factory=list)
    payment_requests_count: int = Field(default=0, ge=0, le=MAX_PAYMENT_REQUESTS)
    last_payment_requested_at: UtcDateTime | None = None
    payment_request_pending: bool = False
    version: int = 0

    @model_validator(mode="after")
    def _fill_report_slots(self) -> "Gig":
        self.reports = materialize_reports(self.number_of_reports, self.reports)
        return self

    def report(self, report_number: int) -> ProgressReport | None:
        """Return the slot for *report_number*, or ``None`` if out of range."""
        if 1 <= report_number <= len(self.reports):
            return self.reports[report_number - 1]
        return None


# ---------------------------------------------------------------------------
# Workflow payloads
# ---------------------------------------------------------------------------

class AttachmentUpload(BaseModel):
    """A raw file supplied with a report submission."""

    name: str
    data: bytes


class PaymentEligibility(BaseModel):
    """Outcome of a payout-request eligibility check."""

    eligible: bool
    reason: IneligibilityReason | None = None
    message: str = ""
    next_eligible_at: UtcDateTime | None = None


class PaymentRequestReceipt(BaseModel):
    """Returned to the caller after a payout request is recorded."""

    gig_id: str
    requests_made: int
    requests_remaining: int
    requested_at: UtcDateTime
    next_eligible_at: UtcDateTime


class GigSnapshot(BaseModel):
    """A gig annotated with every derived field presentation code needs."""

    gig: Gig
    effective_status: EffectiveStatus
    next_deadline: UtcDateTime | None = None
    payment: PaymentEligibility
    stalled_payout: bool = False
    net_payout: float = 0.0


class Notification(BaseModel):
    """A rendered notification as recorded by the dispatcher."""

    id: int | None = None
    recipient_id: str
    kind: NotificationKind
    message: str
    gig_id: str | None = None
    payload: dict = Field(default_factory=dict)
    created_at: UtcDateTime = Field(default_factory=_utcnow)
