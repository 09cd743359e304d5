"""Tests for the payout request throttle (``gigflow.workflow.payments``)."""

from __future__ import annotations

from datetime import timedelta

import pytest

from gigflow.models.schemas import Gig, GigStatus, IneligibilityReason, ReviewStatus
from gigflow.workflow.errors import PreconditionError
from gigflow.workflow.payments import (
    MAX_PAYMENT_REQUESTS,
    PaymentRequestThrottle,
    PaymentRequestWindow,
    net_payout,
)

from conftest import NOW, approved, make_gig, submitted


@pytest.fixture
def throttle() -> PaymentRequestThrottle:
    return PaymentRequestThrottle()


def _ready(**overrides) -> Gig:
    """A gig whose every report is approved."""
    data = {"number_of_reports": 2, "reports": [approved(1), approved(2)]}
    data.update(overrides)
    return make_gig(**data)


def _settle(gig: Gig) -> Gig:
    """Simulate the client handling the outstanding request."""
    return gig.model_copy(update={"payment_request_pending": False})


# =========================================================================
# PaymentRequestWindow
# =========================================================================


class TestPaymentRequestWindow:

    def test_from_gig(self) -> None:
        gig = make_gig(
            payment_requests_count=2,
            last_payment_requested_at=NOW,
            payment_request_pending=True,
        )
        window = PaymentRequestWindow.from_gig(gig)
        assert window.count == 2
        assert window.remaining == MAX_PAYMENT_REQUESTS - 2
        assert window.cooldown_ends_at == NOW + timedelta(hours=2)
        assert window.pending is True

    def test_no_previous_request(self) -> None:
        window = PaymentRequestWindow.from_gig(make_gig())
        assert window.cooldown_ends_at is None
        assert window.in_cooldown(NOW) is False

    def test_cooldown_boundary(self) -> None:
        window = PaymentRequestWindow(count=1, last_requested_at=NOW, pending=False)
        assert window.in_cooldown(NOW + timedelta(hours=2) - timedelta(seconds=1))
        assert not window.in_cooldown(NOW + timedelta(hours=2))

    def test_record(self) -> None:
        window = PaymentRequestWindow(count=4, last_requested_at=None, pending=False)
        recorded = window.record(NOW)
        assert recorded.count == 5
        assert recorded.cap_reached
        assert recorded.pending
        assert window.count == 4


# =========================================================================
# can_request
# =========================================================================


class TestCanRequest:

    def test_eligible(self, throttle: PaymentRequestThrottle) -> None:
        result = throttle.can_request(_ready(), NOW)
        assert result.eligible is True
        assert result.reason is None

    @pytest.mark.parametrize("status", [GigStatus.AWAITING_PAYOUT, GigStatus.COMPLETED])
    def test_processing(self, throttle: PaymentRequestThrottle, status: GigStatus) -> None:
        result = throttle.can_request(_ready(status=status), NOW)
        assert result.eligible is False
        assert result.reason is IneligibilityReason.PROCESSING

    @pytest.mark.parametrize(
        "second",
        [None, ReviewStatus.PENDING_REVIEW, ReviewStatus.REJECTED],
    )
    def test_reports_not_approved(
        self, throttle: PaymentRequestThrottle, second: ReviewStatus | None
    ) -> None:
        reports = [approved(1)] + ([] if second is None else [submitted(2, second)])
        gig = make_gig(number_of_reports=2, reports=reports)
        result = throttle.can_request(gig, NOW)
        assert result.reason is IneligibilityReason.REPORTS_NOT_APPROVED
        assert "#2" in result.message

    def test_already_pending(self, throttle: PaymentRequestThrottle) -> None:
        gig = _ready(
            payment_requests_count=1,
            last_payment_requested_at=NOW - timedelta(hours=3),
            payment_request_pending=True,
        )
        assert throttle.can_request(gig, NOW).reason is IneligibilityReason.ALREADY_PENDING

    def test_cooldown_reports_remaining_time(self, throttle: PaymentRequestThrottle) -> None:
        last = NOW - timedelta(minutes=45)
        gig = _ready(payment_requests_count=1, last_payment_requested_at=last)
        result = throttle.can_request(gig, NOW)
        assert result.reason is IneligibilityReason.COOLDOWN
        assert result.next_eligible_at == last + timedelta(hours=2)
        assert "1h 15m" in result.message

    def test_cap_wins_over_every_other_gate(self, throttle: PaymentRequestThrottle) -> None:
        gig = make_gig(
            number_of_reports=1,
            payment_requests_count=MAX_PAYMENT_REQUESTS,
            last_payment_requested_at=NOW - timedelta(minutes=1),
            payment_request_pending=True,
        )
        result = throttle.can_request(gig, NOW)
        assert result.reason is IneligibilityReason.CAP_REACHED
        assert "contact support" in result.message

    def test_no_reports_ignores_approval(self, throttle: PaymentRequestThrottle) -> None:
        gig = make_gig(number_of_reports=0)
        assert throttle.can_request(gig, NOW).eligible is True

        cooling = make_gig(
            number_of_reports=0,
            payment_requests_count=1,
            last_payment_requested_at=NOW - timedelta(hours=1),
        )
        assert throttle.can_request(cooling, NOW).reason is IneligibilityReason.COOLDOWN

        pending = make_gig(
            number_of_reports=0,
            payment_requests_count=1,
            last_payment_requested_at=NOW - timedelta(hours=3),
            payment_request_pending=True,
        )
        assert throttle.can_request(pending, NOW).reason is IneligibilityReason.ALREADY_PENDING

    def test_custom_cap_and_cooldown(self) -> None:
        throttle = PaymentRequestThrottle(cap=1, cooldown=timedelta(minutes=10))
        gig, _ = throttle.request(_ready(), NOW)
        result = throttle.can_request(_settle(gig), NOW + timedelta(minutes=11))
        assert result.reason is IneligibilityReason.CAP_REACHED

    @pytest.mark.parametrize("cap", [0, MAX_PAYMENT_REQUESTS + 1])
    def test_invalid_cap(self, cap: int) -> None:
        with pytest.raises(ValueError, match="cap must be between"):
            PaymentRequestThrottle(cap=cap)


# =========================================================================
# request
# =========================================================================


class TestRequest:

    def test_records_request(self, throttle: PaymentRequestThrottle) -> None:
        gig, receipt = throttle.request(_ready(), NOW)
        assert gig.payment_requests_count == 1
        assert gig.last_payment_requested_at == NOW
        assert gig.payment_request_pending is True
        assert receipt.requests_made == 1
        assert receipt.requests_remaining == MAX_PAYMENT_REQUESTS - 1
        assert receipt.next_eligible_at == NOW + timedelta(hours=2)

    def test_followed_by_cooldown(self, throttle: PaymentRequestThrottle) -> None:
        gig, _ = throttle.request(_ready(), NOW)
        later = NOW + timedelta(hours=1, minutes=59)
        result = throttle.can_request(_settle(gig), later)
        assert result.eligible is False
        assert result.reason is IneligibilityReason.COOLDOWN

    def test_ineligible_raises_and_leaves_gig_alone(
        self, throttle: PaymentRequestThrottle
    ) -> None:
        gig = make_gig(number_of_reports=1)
        with pytest.raises(PreconditionError) as excinfo:
            throttle.request(gig, NOW)
        assert excinfo.value.rule == "payment_reports_not_approved"
        assert gig.payment_requests_count == 0

    def test_succeeds_iff_can_request(self, throttle: PaymentRequestThrottle) -> None:
        candidates = [
            _ready(),
            make_gig(number_of_reports=1),
            _ready(payment_request_pending=True),
            _ready(status=GigStatus.COMPLETED),
            _ready(payment_requests_count=1, last_payment_requested_at=NOW),
        ]
        for gig in candidates:
            eligible = throttle.can_request(gig, NOW).eligible
            try:
                throttle.request(gig, NOW)
                succeeded = True
            except PreconditionError:
                succeeded = False
            assert succeeded is eligible

    def test_cap_after_five_requests(self, throttle: PaymentRequestThrottle) -> None:
        gig = _ready()
        now = NOW
        for expected in range(1, MAX_PAYMENT_REQUESTS + 1):
            gig, receipt = throttle.request(gig, now)
            assert receipt.requests_made == expected
            gig = _settle(gig)
            now += timedelta(hours=3)

        result = throttle.can_request(gig, now)
        assert result.reason is IneligibilityReason.CAP_REACHED
        with pytest.raises(PreconditionError) as excinfo:
            throttle.request(gig, now)
        assert excinfo.value.rule == "payment_cap_reached"


class TestNetPayout:

    def test_default_commission(self) -> None:
        assert net_payout(1000.0) == 980.0

    def test_rounding(self) -> None:
        assert net_payout(33.33, 0.02) == 32.66

    def test_zero_commission(self) -> None:
        assert net_payout(50.0, 0.0) == 50.0
