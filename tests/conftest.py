"""Shared pytest fixtures for the gigflow test suite.

Provides an in-memory database, a tmp-path attachment store, a controllable
clock and a fully wired workflow facade.  Every fixture runs without network
access or external services.
"""

from __future__ import annotations

import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncGenerator

import pytest

# ---------------------------------------------------------------------------
# Ensure the project root is on sys.path so that ``import gigflow.*``
# resolves correctly regardless of how pytest is invoked, and keep log files
# out of the working tree.
# ---------------------------------------------------------------------------
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))
os.environ.setdefault("GIGFLOW_LOG_DIR", tempfile.mkdtemp(prefix="gigflow-logs-"))

from gigflow.models.database import Database
from gigflow.models.schemas import (
    Gig,
    ProgressReport,
    ReviewStatus,
    Submission,
)
from gigflow.notifications.dispatcher import NotificationDispatcher
from gigflow.notifications.templates import NotificationTemplates
from gigflow.store.attachments import AttachmentStore
from gigflow.store.gig_store import GigStore
from gigflow.workflow.facade import GigWorkflowFacade

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# =========================================================================
# Model helpers
# =========================================================================

def make_gig(**overrides: Any) -> Gig:
    """Build an in-progress gig with sensible defaults."""
    data: dict[str, Any] = {
        "id": "gig-1",
        "title": "Landing page",
        "client_id": "client-1",
        "worker_id": "worker-1",
        "budget": 1000.0,
        "created_at": NOW - timedelta(days=1),
        "updated_at": NOW - timedelta(days=1),
    }
    data.update(overrides)
    return Gig(**data)


def submitted(
    report_number: int,
    review_status: ReviewStatus | None = ReviewStatus.PENDING_REVIEW,
    text: str = "progress",
    **extra: Any,
) -> ProgressReport:
    """Return a report slot carrying a submission in *review_status*."""
    return ProgressReport(
        report_number=report_number,
        submission=Submission(text=text, submitted_at=NOW - timedelta(hours=5)),
        review_status=review_status,
        **extra,
    )


def approved(report_number: int, **extra: Any) -> ProgressReport:
    return submitted(report_number, ReviewStatus.APPROVED, **extra)


# =========================================================================
# Infrastructure fixtures
# =========================================================================

@pytest.fixture
async def db() -> AsyncGenerator[Database, None]:
    """Yield a connected, migrated in-memory Database and close it after use."""
    database = Database(db_path=":memory:")
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def store(db: Database) -> GigStore:
    return GigStore(db)


@pytest.fixture
def attachment_store(tmp_path: Path) -> AttachmentStore:
    """Return an AttachmentStore rooted in a temporary directory."""
    return AttachmentStore(base_dir=str(tmp_path / "attachments"))


@pytest.fixture
def templates() -> NotificationTemplates:
    return NotificationTemplates(str(_PROJECT_ROOT / "config" / "notifications.yaml"))


@pytest.fixture
def dispatcher(db: Database, templates: NotificationTemplates) -> NotificationDispatcher:
    return NotificationDispatcher(db, templates)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def facade(
    store: GigStore,
    attachment_store: AttachmentStore,
    dispatcher: NotificationDispatcher,
    clock: FakeClock,
) -> GigWorkflowFacade:
    """Return a facade wired to the in-memory stores and the fake clock."""
    return GigWorkflowFacade(
        store=store,
        attachments=attachment_store,
        dispatcher=dispatcher,
        dispatch_timeout=1.0,
        clock=clock,
    )


@pytest.fixture
def seed(store: GigStore):
    """Return a coroutine that stores a gig built by :func:`make_gig`."""

    async def _seed(**overrides: Any) -> Gig:
        return await store.create(make_gig(**overrides))

    return _seed
