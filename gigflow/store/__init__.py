"""Storage -- gig document store and report attachment store."""

from gigflow.store.attachments import AttachmentStore
from gigflow.store.gig_store import GigStore

__all__ = [
    "AttachmentStore",
    "GigStore",
]
