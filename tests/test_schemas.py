"""Tests for Pydantic models and enums defined in ``gigflow.models.schemas``."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from gigflow.models.schemas import (
    EffectiveStatus,
    Gig,
    GigStatus,
    MAX_PAYMENT_REQUESTS,
    ProgressReport,
    ReviewStatus,
    Submission,
    materialize_reports,
)

from conftest import make_gig, submitted


# =========================================================================
# Enums
# =========================================================================


class TestEnums:
    """Validate enum members and their persisted string values."""

    @pytest.mark.parametrize(
        "member, value",
        [
            (GigStatus.IN_PROGRESS, "in-progress"),
            (GigStatus.AWAITING_PAYOUT, "awaiting-payout"),
            (GigStatus.COMPLETED, "completed"),
        ],
    )
    def test_gig_status_values(self, member: GigStatus, value: str) -> None:
        assert member.value == value

    def test_effective_status_has_five_members(self) -> None:
        assert len(EffectiveStatus) == 5

    def test_review_status_from_value(self) -> None:
        assert ReviewStatus("pending_review") is ReviewStatus.PENDING_REVIEW

    def test_invalid_value_raises(self) -> None:
        with pytest.raises(ValueError):
            GigStatus("cancelled")


# =========================================================================
# ProgressReport
# =========================================================================


class TestProgressReport:

    def test_report_number_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ProgressReport(report_number=0)

    def test_empty_slot_does_not_await_review(self) -> None:
        assert ProgressReport(report_number=1).awaits_review is False

    def test_submission_without_status_awaits_review(self) -> None:
        report = ProgressReport(report_number=1, submission=Submission(text="x"))
        assert report.awaits_review is True

    def test_rejected_does_not_await_review(self) -> None:
        assert submitted(1, ReviewStatus.REJECTED).awaits_review is False

    def test_is_approved(self) -> None:
        assert submitted(1, ReviewStatus.APPROVED).is_approved is True
        assert submitted(1).is_approved is False


# =========================================================================
# Report materialisation
# =========================================================================


class TestMaterializeReports:

    def test_fills_missing_slots(self) -> None:
        reports = materialize_reports(3, [submitted(2)])
        assert [r.report_number for r in reports] == [1, 2, 3]
        assert reports[0].submission is None
        assert reports[1].submission is not None

    def test_drops_out_of_range_entries(self) -> None:
        reports = materialize_reports(1, [submitted(1), submitted(4)])
        assert [r.report_number for r in reports] == [1]

    def test_orders_by_report_number(self) -> None:
        reports = materialize_reports(2, [submitted(2), submitted(1, text="first")])
        assert reports[0].submission.text == "first"

    def test_zero_reports(self) -> None:
        assert materialize_reports(0, [submitted(1)]) == []

    def test_gig_always_materialised(self) -> None:
        gig = make_gig(number_of_reports=3)
        assert len(gig.reports) == 3
        assert gig.report(3) is not None
        assert gig.report(4) is None
        assert gig.report(0) is None


# =========================================================================
# Gig
# =========================================================================


class TestGig:

    def test_defaults(self) -> None:
        gig = Gig(client_id="c", worker_id="w")
        assert gig.status is GigStatus.IN_PROGRESS
        assert gig.payment_requests_count == 0
        assert gig.payment_request_pending is False
        assert gig.version == 0
        assert gig.currency == "INR"
        assert gig.id

    def test_naive_datetimes_are_treated_as_utc(self) -> None:
        gig = make_gig(deadline=datetime(2024, 7, 1, 9, 0))
        assert gig.deadline == datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc)

    def test_aware_datetimes_are_normalised_to_utc(self) -> None:
        ist = timezone(timedelta(hours=5, minutes=30))
        gig = make_gig(deadline=datetime(2024, 7, 1, 15, 30, tzinfo=ist))
        assert gig.deadline == datetime(2024, 7, 1, 10, 0, tzinfo=timezone.utc)
        assert gig.deadline.utcoffset() == timedelta(0)

    def test_negative_request_count_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_gig(payment_requests_count=-1)

    def test_request_count_above_cap_rejected(self) -> None:
        make_gig(payment_requests_count=MAX_PAYMENT_REQUESTS)
        with pytest.raises(ValidationError):
            make_gig(payment_requests_count=MAX_PAYMENT_REQUESTS + 1)

    def test_round_trips_through_json(self) -> None:
        gig = make_gig(number_of_reports=2, reports=[submitted(1)])
        restored = Gig.model_validate_json(gig.model_dump_json())
        assert restored == gig
