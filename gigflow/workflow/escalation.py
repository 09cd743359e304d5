"""Stalled payout detection.

A payout that sits in ``awaiting-payout`` for too long gets a "contact
support" affordance.  Detection is read-only; nothing here writes to the
gig.  ``EscalationSweeper`` runs the check periodically over every gig
awaiting payout and reports the stalled ones.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from gigflow.models.schemas import Gig, GigStatus
from gigflow.store.gig_store import GigStore
from gigflow.utils.logger import get_logger

log = get_logger(__name__, component="escalation")

STALLED_PAYOUT_HOURS = 72.0


def is_stalled_payout(
    gig: Gig,
    threshold_hours: float = STALLED_PAYOUT_HOURS,
    now: datetime | None = None,
) -> bool:
    """Return ``True`` when *gig* has awaited payout longer than the threshold."""
    if gig.status is not GigStatus.AWAITING_PAYOUT:
        return False
    now = now or datetime.now(timezone.utc)
    return now - gig.updated_at > timedelta(hours=threshold_hours)


class EscalationSweeper:
    """Periodically look for stalled payouts.

    Parameters
    ----------
    store:
        Gig store to scan.
    threshold_hours:
        Staleness threshold passed to :func:`is_stalled_payout`.
    interval_seconds:
        Pause between two sweeps.
    on_stalled:
        Optional coroutine invoked with each stalled gig.
    clock:
        Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        store: GigStore,
        threshold_hours: float = STALLED_PAYOUT_HOURS,
        interval_seconds: float = 900,
        on_stalled: Callable[[Gig], Awaitable[None]] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._threshold_hours = threshold_hours
        self._interval = interval_seconds
        self._on_stalled = on_stalled
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._running = False
        self._sweep_count = 0

    @property
    def sweep_count(self) -> int:
        return self._sweep_count

    async def sweep(self) -> list[Gig]:
        """Run one pass and return the stalled gigs found."""
        now = self._clock()
        candidates = await self._store.list_by_status(GigStatus.AWAITING_PAYOUT)
        stalled = [g for g in candidates if is_stalled_payout(g, self._threshold_hours, now)]
        self._sweep_count += 1
        for gig in stalled:
            log.warning(
                "payout_stalled",
                gig_id=gig.id,
                worker_id=gig.worker_id,
                hours_waiting=round((now - gig.updated_at).total_seconds() / 3600, 1),
            )
            if self._on_stalled is None:
                continue
            try:
                await self._on_stalled(gig)
            except Exception:
                log.exception("payout_stalled_hook_failed", gig_id=gig.id)
        log.info(
            "escalation_sweep_done",
            sweep=self._sweep_count,
            awaiting_payout=len(candidates),
            stalled=len(stalled),
        )
        return stalled

    async def run(self) -> None:
        """Sweep until :meth:`stop` is called."""
        self._running = True
        log.info("escalation_sweeper_started", interval_seconds=self._interval)
        while self._running:
            try:
                await self.sweep()
            except Exception:
                log.exception("escalation_sweep_failed")
            if self._running:
                await asyncio.sleep(self._interval)
        log.info("escalation_sweeper_stopped", sweeps=self._sweep_count)

    def stop(self) -> None:
        """Ask the loop to exit after the current sweep."""
        self._running = False
