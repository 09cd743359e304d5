"""Notification dispatcher.

Renders an event into a user-facing message and records it in the
``notifications`` table, which is what the notification UI reads.  Delivery
is best-effort from the workflow's point of view: every failure surfaces as
``DispatchFailure`` and the caller only logs it.
"""

from __future__ import annotations

import json
from typing import Any

import aiosqlite

from gigflow.models.database import Database
from gigflow.models.schemas import Notification, NotificationKind
from gigflow.notifications.templates import NotificationTemplates
from gigflow.utils.logger import get_logger
from gigflow.workflow.errors import DispatchFailure

log = get_logger(__name__, component="notifications")


class NotificationDispatcher:
    """Render and record notifications for gig participants.

    Parameters
    ----------
    db:
        Connected ``Database`` that owns the ``notifications`` table.
    templates:
        Message templates keyed by ``NotificationKind``.
    """

    def __init__(self, db: Database, templates: NotificationTemplates) -> None:
        self._db = db
        self._templates = templates

    async def notify(
        self,
        recipient_id: str,
        kind: NotificationKind,
        payload: dict[str, Any],
    ) -> Notification:
        """Record a notification for *recipient_id*.

        Raises
        ------
        DispatchFailure
            If the message cannot be rendered or stored.
        """
        try:
            message = self._templates.render(kind, **payload)
        except (KeyError, IndexError, ValueError) as exc:
            raise DispatchFailure(f"Cannot render {kind.value} notification: {exc}") from exc

        notification = Notification(
            recipient_id=recipient_id,
            kind=kind,
            message=message,
            gig_id=payload.get("gig_id"),
            payload=payload,
        )
        try:
            cursor = await self._db.execute(
                "INSERT INTO notifications "
                "(recipient_id, kind, message, gig_id, payload, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    notification.recipient_id,
                    notification.kind.value,
                    notification.message,
                    notification.gig_id,
                    json.dumps(payload, default=str),
                    notification.created_at.isoformat(),
                ),
            )
        except (aiosqlite.Error, RuntimeError) as exc:
            raise DispatchFailure(f"Cannot store {kind.value} notification: {exc}") from exc

        notification.id = cursor.lastrowid
        log.info(
            "notification_sent",
            recipient_id=recipient_id,
            kind=kind.value,
            gig_id=notification.gig_id,
        )
        return notification

    async def list_for(self, recipient_id: str) -> list[Notification]:
        """Return every notification recorded for *recipient_id*, oldest first."""
        rows = await self._db.fetch_all(
            "SELECT * FROM notifications WHERE recipient_id = ? ORDER BY id",
            (recipient_id,),
        )
        return [Notification.model_validate(row) for row in rows]
