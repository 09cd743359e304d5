"""Tests for notification templates and the dispatcher (``gigflow.notifications``)."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import aiosqlite
import pytest

from gigflow.models.database import Database
from gigflow.models.schemas import NotificationKind
from gigflow.notifications.dispatcher import NotificationDispatcher
from gigflow.notifications.templates import NotificationTemplates
from gigflow.workflow.errors import DispatchFailure


class TestNotificationTemplates:

    def test_every_kind_has_a_template(self, templates: NotificationTemplates) -> None:
        assert templates.kinds == sorted(kind.value for kind in NotificationKind)

    def test_render(self, templates: NotificationTemplates) -> None:
        text = templates.render(
            NotificationKind.REPORT_REVIEWED,
            report_number=2,
            gig_title="Logo",
            decision="approved",
        )
        assert text == 'Your report #2 for "Logo" was approved.'

    def test_missing_placeholder(self, templates: NotificationTemplates) -> None:
        with pytest.raises(KeyError):
            templates.render(NotificationKind.REPORT_SUBMITTED, gig_title="Logo")

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            NotificationTemplates(str(tmp_path / "missing.yaml"))

    def test_missing_top_level_key(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("messages:\n  report_submitted: hi\n", encoding="utf-8")
        with pytest.raises(ValueError, match="notifications"):
            NotificationTemplates(str(path))

    def test_unknown_kind(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("notifications:\n  gig_exploded: boom\n", encoding="utf-8")
        with pytest.raises(ValueError, match="gig_exploded"):
            NotificationTemplates(str(path))

    def test_kind_without_template(self, tmp_path: Path) -> None:
        path = tmp_path / "partial.yaml"
        path.write_text("notifications:\n  report_submitted: hi\n", encoding="utf-8")
        templates = NotificationTemplates(str(path))
        with pytest.raises(KeyError, match="payment_requested"):
            templates.render(NotificationKind.PAYMENT_REQUESTED)


class TestNotificationDispatcher:

    async def test_notify_records_message(self, dispatcher: NotificationDispatcher) -> None:
        sent = await dispatcher.notify(
            "client-1",
            NotificationKind.REPORT_SUBMITTED,
            {"gig_id": "g1", "gig_title": "Logo", "report_number": 1},
        )
        assert sent.id is not None
        assert "Report #1" in sent.message

        stored = await dispatcher.list_for("client-1")
        assert len(stored) == 1
        assert stored[0].kind is NotificationKind.REPORT_SUBMITTED
        assert stored[0].gig_id == "g1"
        assert stored[0].payload["report_number"] == 1

    async def test_list_is_per_recipient(self, dispatcher: NotificationDispatcher) -> None:
        payload = {"gig_id": "g1", "gig_title": "Logo", "report_number": 1}
        await dispatcher.notify("client-1", NotificationKind.REPORT_SUBMITTED, payload)
        assert await dispatcher.list_for("someone-else") == []

    async def test_render_failure(self, dispatcher: NotificationDispatcher) -> None:
        with pytest.raises(DispatchFailure):
            await dispatcher.notify("client-1", NotificationKind.REPORT_SUBMITTED, {})

    async def test_store_failure(
        self, db: Database, templates: NotificationTemplates
    ) -> None:
        dispatcher = NotificationDispatcher(db, templates)
        db.execute = AsyncMock(side_effect=aiosqlite.OperationalError("disk full"))
        with pytest.raises(DispatchFailure, match="disk full"):
            await dispatcher.notify(
                "client-1",
                NotificationKind.PAYMENT_REQUESTED,
                {"gig_id": "g1", "gig_title": "Logo", "requests_made": 1, "cap": 5},
            )
