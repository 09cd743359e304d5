"""Error taxonomy of the gig workflow.

Only ``PreconditionError`` and ``ConflictError`` are meant to reach callers.
``AttachmentCleanupWarning`` and ``DispatchFailure`` are raised by the
collaborators and degraded to log entries by the workflow.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for workflow failures."""


class PreconditionError(WorkflowError):
    """A business-rule gate failed; nothing was written.

    ``rule`` is a stable machine-readable code, the message is user-facing.
    """

    def __init__(self, rule: str, message: str) -> None:
        super().__init__(message)
        self.rule = rule
        self.message = message


class ConflictError(WorkflowError):
    """The gig changed between read and write; re-read and try again."""

    def __init__(self, gig_id: str, expected_version: int | None = None) -> None:
        super().__init__(
            f"Gig {gig_id} was modified concurrently, please try again"
        )
        self.gig_id = gig_id
        self.expected_version = expected_version


class GigNotFoundError(WorkflowError, LookupError):
    """No gig document exists for the given id."""

    def __init__(self, gig_id: str) -> None:
        super().__init__(f"Gig not found: {gig_id}")
        self.gig_id = gig_id


class AttachmentCleanupWarning(UserWarning):
    """A stale attachment could not be deleted for a reason other than absence."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Could not delete attachment {url}: {reason}")
        self.url = url
        self.reason = reason


class DispatchFailure(WorkflowError):
    """A notification could not be delivered."""
