"""Gig document store on top of ``Database``.

Each gig is one row; its report list is a JSON column.  Writes go through
:meth:`GigStore.update`, which applies a compare-and-swap on the ``version``
column so that two writers racing on a stale read cannot both succeed.
Committed writes are re-delivered to live subscribers as full ``Gig`` models.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from gigflow.models.database import Database
from gigflow.models.schemas import Gig, GigStatus, ProgressReport
from gigflow.utils.logger import get_logger
from gigflow.workflow.errors import ConflictError, GigNotFoundError

log = get_logger(__name__, component="gig_store")

GigListener = Callable[[Gig], Awaitable[None]]

# Columns a caller may write through update().  id, created_at and version
# are owned by the store.
_WRITABLE_COLUMNS = frozenset(
    {
        "title",
        "client_id",
        "worker_id",
        "status",
        "deadline",
        "updated_at",
        "budget",
        "currency",
        "number_of_reports",
        "reports",
        "payment_requests_count",
        "last_payment_requested_at",
        "payment_request_pending",
    }
)


def _encode(value: Any) -> Any:
    """Convert a model field value to its SQLite representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return json.dumps(
            [v.model_dump(mode="json") if isinstance(v, ProgressReport) else v for v in value]
        )
    return value


class GigStore:
    """Persist and observe gig documents.

    Parameters
    ----------
    db:
        A connected ``Database`` instance.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._listeners: dict[str, list[GigListener]] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, gig_id: str) -> Gig:
        """Return the authoritative record for *gig_id*.

        Raises
        ------
        GigNotFoundError
            If no such gig exists.
        """
        row = await self._db.fetch_one("SELECT * FROM gigs WHERE id = ?", (gig_id,))
        if row is None:
            raise GigNotFoundError(gig_id)
        return Gig.model_validate(row)

    async def list_by_status(self, *statuses: GigStatus) -> list[Gig]:
        """Return all gigs in any of *statuses* (all gigs when none given)."""
        if statuses:
            placeholders = ", ".join("?" for _ in statuses)
            rows = await self._db.fetch_all(
                f"SELECT * FROM gigs WHERE status IN ({placeholders}) ORDER BY created_at",
                tuple(s.value for s in statuses),
            )
        else:
            rows = await self._db.fetch_all("SELECT * FROM gigs ORDER BY created_at")
        return [Gig.model_validate(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, gig: Gig) -> Gig:
        """Insert a new gig document and return it as stored."""
        columns = ["id", "created_at", "version", *sorted(_WRITABLE_COLUMNS)]
        placeholders = ", ".join("?" for _ in columns)
        await self._db.execute(
            f"INSERT INTO gigs ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(_encode(getattr(gig, c)) for c in columns),
        )
        log.info(
            "gig_created",
            gig_id=gig.id,
            number_of_reports=gig.number_of_reports,
            status=gig.status.value,
        )
        stored = await self.get(gig.id)
        await self._publish(stored)
        return stored

    async def update(
        self,
        gig_id: str,
        fields: dict[str, Any],
        *,
        expected_version: int,
    ) -> Gig:
        """Apply *fields* only if the stored version is still *expected_version*.

        ``updated_at`` is stamped with the current time unless supplied.

        Raises
        ------
        ConflictError
            If the record was modified since it was read.
        GigNotFoundError
            If the gig does not exist.
        """
        unknown = set(fields) - _WRITABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update gig columns: {', '.join(sorted(unknown))}")

        values = dict(fields)
        values.setdefault("updated_at", datetime.now(timezone.utc))
        assignments = [f"{column} = ?" for column in values]
        assignments.append("version = version + 1")
        params = [_encode(v) for v in values.values()]
        params.extend([gig_id, expected_version])

        cursor = await self._db.execute(
            f"UPDATE gigs SET {', '.join(assignments)} WHERE id = ? AND version = ?",
            tuple(params),
        )
        if cursor.rowcount == 0:
            exists = await self._db.fetch_one("SELECT version FROM gigs WHERE id = ?", (gig_id,))
            if exists is None:
                raise GigNotFoundError(gig_id)
            log.warning(
                "gig_update_conflict",
                gig_id=gig_id,
                expected_version=expected_version,
                actual_version=exists["version"],
            )
            raise ConflictError(gig_id, expected_version)

        stored = await self.get(gig_id)
        log.debug(
            "gig_updated",
            gig_id=gig_id,
            fields=sorted(fields),
            version=stored.version,
        )
        await self._publish(stored)
        return stored

    # ------------------------------------------------------------------
    # Live subscription
    # ------------------------------------------------------------------

    def subscribe(self, gig_id: str, listener: GigListener) -> Callable[[], None]:
        """Deliver the full gig to *listener* after every committed write.

        Returns a callable that removes the subscription.
        """
        self._listeners.setdefault(gig_id, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(gig_id, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(gig_id, None)

        return unsubscribe

    async def _publish(self, gig: Gig) -> None:
        for listener in list(self._listeners.get(gig.id, [])):
            try:
                await listener(gig)
            except Exception:
                # The write is already committed.
                log.exception("gig_listener_failed", gig_id=gig.id)
