"""Effective status derivation.

The persisted ``GigStatus`` only tracks the coarse payout lifecycle.  What a
user needs to see while work is ongoing depends on the report list, so the
effective status is recomputed from the full gig on every read.
"""

from __future__ import annotations

from gigflow.models.schemas import (
    EffectiveStatus,
    Gig,
    GigStatus,
    ReviewStatus,
)

_PASSTHROUGH: dict[GigStatus, EffectiveStatus] = {
    GigStatus.AWAITING_PAYOUT: EffectiveStatus.AWAITING_PAYOUT,
    GigStatus.COMPLETED: EffectiveStatus.COMPLETED,
}


def derive_status(gig: Gig) -> EffectiveStatus:
    """Return the effective status of *gig*.

    First matching rule wins:

    1. ``awaiting-payout`` / ``completed`` are returned as persisted.
    2. A gig without report slots is ``in-progress``.
    3. Any rejected report makes the gig ``action-required``, even when
       another report is still waiting for review.
    4. Any report waiting for review (explicitly pending, or submitted and
       never looked at) makes it ``pending-review``.
    5. Everything else is ``in-progress``.
    """
    if gig.status in _PASSTHROUGH:
        return _PASSTHROUGH[gig.status]

    if gig.number_of_reports == 0 or not gig.reports:
        return EffectiveStatus.IN_PROGRESS

    if any(r.review_status is ReviewStatus.REJECTED for r in gig.reports):
        return EffectiveStatus.ACTION_REQUIRED

    if any(r.awaits_review for r in gig.reports):
        return EffectiveStatus.PENDING_REVIEW

    return EffectiveStatus.IN_PROGRESS
