"""Payout request rate limiting.

A worker may ask for payment once every report is approved.  Requests are
throttled per gig by a lifetime cap and a cooldown between requests, and
only one request may be outstanding at a time.  The limiter state lives on
the gig document and is re-hydrated into a ``PaymentRequestWindow`` on
every check, never cached.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from gigflow.models.schemas import (
    Gig,
    GigStatus,
    IneligibilityReason,
    MAX_PAYMENT_REQUESTS,
    PaymentEligibility,
    PaymentRequestReceipt,
)
from gigflow.utils.logger import get_logger
from gigflow.workflow.errors import PreconditionError

log = get_logger(__name__, component="payments")

PAYMENT_COOLDOWN = timedelta(hours=2)
COMMISSION_RATE = 0.02


@dataclass(frozen=True)
class PaymentRequestWindow:
    """Rate-limiter state of one gig."""

    count: int
    last_requested_at: datetime | None
    pending: bool
    cap: int = MAX_PAYMENT_REQUESTS
    cooldown: timedelta = PAYMENT_COOLDOWN

    @classmethod
    def from_gig(
        cls,
        gig: Gig,
        *,
        cap: int = MAX_PAYMENT_REQUESTS,
        cooldown: timedelta = PAYMENT_COOLDOWN,
    ) -> "PaymentRequestWindow":
        return cls(
            count=gig.payment_requests_count,
            last_requested_at=gig.last_payment_requested_at,
            pending=gig.payment_request_pending,
            cap=cap,
            cooldown=cooldown,
        )

    @property
    def cap_reached(self) -> bool:
        return self.count >= self.cap

    @property
    def remaining(self) -> int:
        return max(self.cap - self.count, 0)

    @property
    def cooldown_ends_at(self) -> datetime | None:
        if self.last_requested_at is None:
            return None
        return self.last_requested_at + self.cooldown

    def in_cooldown(self, now: datetime) -> bool:
        ends = self.cooldown_ends_at
        return ends is not None and now < ends

    def record(self, now: datetime) -> "PaymentRequestWindow":
        """Return the window after one more request made at *now*."""
        return PaymentRequestWindow(
            count=self.count + 1,
            last_requested_at=now,
            pending=True,
            cap=self.cap,
            cooldown=self.cooldown,
        )


def _format_remaining(delta: timedelta) -> str:
    minutes = max(int(delta.total_seconds() // 60), 1)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    return f"{minutes}m"


def net_payout(budget: float, commission_rate: float = COMMISSION_RATE) -> float:
    """Return what the worker receives from *budget* after platform commission."""
    return round(budget * (1 - commission_rate), 2)


class PaymentRequestThrottle:
    """Decide whether a gig may request payout and record new requests.

    Parameters
    ----------
    cap:
        Lifetime number of requests per gig, at most
        ``MAX_PAYMENT_REQUESTS``.
    cooldown:
        Minimum time between two requests.
    """

    def __init__(
        self,
        cap: int = MAX_PAYMENT_REQUESTS,
        cooldown: timedelta = PAYMENT_COOLDOWN,
    ) -> None:
        if not 1 <= cap <= MAX_PAYMENT_REQUESTS:
            raise ValueError(f"cap must be between 1 and {MAX_PAYMENT_REQUESTS}, got {cap}")
        self._cap = cap
        self._cooldown = cooldown

    @property
    def cap(self) -> int:
        return self._cap

    def window(self, gig: Gig) -> PaymentRequestWindow:
        return PaymentRequestWindow.from_gig(gig, cap=self._cap, cooldown=self._cooldown)

    def can_request(self, gig: Gig, now: datetime) -> PaymentEligibility:
        """Evaluate payout eligibility of *gig* at *now*.

        Checks run in a fixed order and the first failing one names the
        reason: processing, lifetime cap, cooldown, outstanding request,
        unapproved reports.
        """
        window = self.window(gig)

        if gig.status is not GigStatus.IN_PROGRESS:
            return PaymentEligibility(
                eligible=False,
                reason=IneligibilityReason.PROCESSING,
                message=f"Payment is already being processed (gig is {gig.status.value})",
            )

        if window.cap_reached:
            return PaymentEligibility(
                eligible=False,
                reason=IneligibilityReason.CAP_REACHED,
                message=(
                    f"The maximum of {window.cap} payment requests for this gig "
                    "has been reached; please contact support"
                ),
            )

        if window.in_cooldown(now):
            ends = window.cooldown_ends_at
            assert ends is not None
            return PaymentEligibility(
                eligible=False,
                reason=IneligibilityReason.COOLDOWN,
                message=f"You can request payment again in {_format_remaining(ends - now)}",
                next_eligible_at=ends,
            )

        if window.pending:
            return PaymentEligibility(
                eligible=False,
                reason=IneligibilityReason.ALREADY_PENDING,
                message="A payment request is already waiting for the client",
            )

        unapproved = [r.report_number for r in gig.reports if not r.is_approved]
        if unapproved:
            numbers = ", ".join(f"#{n}" for n in unapproved)
            return PaymentEligibility(
                eligible=False,
                reason=IneligibilityReason.REPORTS_NOT_APPROVED,
                message=f"All reports must be approved first (still open: {numbers})",
            )

        return PaymentEligibility(eligible=True, message="Payment can be requested")

    def request(self, gig: Gig, now: datetime) -> tuple[Gig, PaymentRequestReceipt]:
        """Record a payout request on *gig*.

        Returns the updated gig and a receipt carrying the next instant a
        request would be allowed again.

        Raises
        ------
        PreconditionError
            If *gig* is not eligible at *now*.
        """
        eligibility = self.can_request(gig, now)
        if not eligibility.eligible:
            assert eligibility.reason is not None
            raise PreconditionError(
                f"payment_{eligibility.reason.value}", eligibility.message
            )

        window = self.window(gig).record(now)
        updated = gig.model_copy(
            update={
                "payment_requests_count": window.count,
                "last_payment_requested_at": window.last_requested_at,
                "payment_request_pending": window.pending,
            }
        )
        next_eligible_at = window.cooldown_ends_at
        assert next_eligible_at is not None
        log.info(
            "payment_request_applied",
            gig_id=gig.id,
            requests_made=window.count,
            next_eligible_at=next_eligible_at.isoformat(),
        )
        receipt = PaymentRequestReceipt(
            gig_id=gig.id,
            requests_made=window.count,
            requests_remaining=window.remaining,
            requested_at=now,
            next_eligible_at=next_eligible_at,
        )
        return updated, receipt
