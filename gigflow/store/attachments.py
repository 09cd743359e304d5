"""Filesystem-backed store for progress report attachments.

``AttachmentStore`` keeps uploaded files under a configurable root and hands
out ``attachment://`` URLs that map back to a relative path.  Report files
are laid out per gig, worker and report slot::

    gig_reports/<gig_id>/<worker_id>/report_<n>/<timestamp>_<filename>

Usage::

    from gigflow.store.attachments import AttachmentStore

    store = AttachmentStore("data/attachments")
    url = await store.upload(store.report_path("g1", "w1", 1, "plan.pdf"), b"...")
    await store.delete(url)
"""

from __future__ import annotations

import asyncio
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

import structlog

from gigflow.workflow.errors import AttachmentCleanupWarning

log = structlog.stdlib.get_logger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_URL_SCHEME = "attachment://"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class AttachmentStore:
    """Upload, delete, and list report attachments."""

    def __init__(self, base_dir: str = "data/attachments") -> None:
        # Relative paths are anchored to the project root.
        path = Path(base_dir)
        if not path.is_absolute():
            path = _PROJECT_ROOT / path
        self._base_dir = path
        self._base_dir.mkdir(parents=True, exist_ok=True)
        log.debug("attachment_store.init", base_dir=str(self._base_dir))

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    @staticmethod
    def report_path(
        gig_id: str,
        worker_id: str,
        report_number: int,
        filename: str,
        *,
        now: datetime | None = None,
        sequence: int = 0,
    ) -> str:
        """Return the storage path for a report attachment.

        *sequence* tells apart files uploaded in the same millisecond.
        """
        stamp = int((now or datetime.now(timezone.utc)).timestamp() * 1000)
        safe_name = _UNSAFE_CHARS.sub("_", Path(filename).name) or "file"
        prefix = f"{stamp}_{sequence}" if sequence else f"{stamp}"
        return f"gig_reports/{gig_id}/{worker_id}/report_{report_number}/{prefix}_{safe_name}"

    def _resolve(self, relative: str) -> Path:
        """Map a relative storage path onto the filesystem, refusing escapes."""
        pure = PurePosixPath(relative)
        if pure.is_absolute() or ".." in pure.parts:
            raise ValueError(f"Invalid attachment path: {relative}")
        return self._base_dir.joinpath(*pure.parts)

    def path_for_url(self, url: str) -> Path:
        """Return the filesystem path an ``attachment://`` URL points to."""
        if not url.startswith(_URL_SCHEME):
            raise ValueError(f"Not an attachment URL: {url}")
        return self._resolve(url[len(_URL_SCHEME):])

    # ------------------------------------------------------------------
    # Upload / delete
    # ------------------------------------------------------------------

    async def upload(self, path: str, data: bytes) -> str:
        """Write *data* under *path* and return its URL."""
        target = self._resolve(path)
        await asyncio.to_thread(self._write, target, data)
        log.info("attachment.uploaded", path=path, size=len(data))
        return f"{_URL_SCHEME}{path}"

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def delete(self, url: str) -> bool:
        """Delete the file behind *url*.

        Returns ``False`` when the file is already absent.

        Raises
        ------
        AttachmentCleanupWarning
            For any other failure (bad URL, permissions, I/O error).
        """
        try:
            target = self.path_for_url(url)
            await asyncio.to_thread(target.unlink)
        except FileNotFoundError:
            log.debug("attachment.delete.noop", url=url, reason="not found")
            return False
        except (OSError, ValueError) as exc:
            raise AttachmentCleanupWarning(url, str(exc)) from exc
        log.info("attachment.deleted", url=url)
        return True

    # ------------------------------------------------------------------
    # Query / cleanup
    # ------------------------------------------------------------------

    def list_report_files(self, gig_id: str) -> list[Path]:
        """Return a sorted list of every stored file belonging to *gig_id*."""
        gig_dir = self._base_dir / "gig_reports" / gig_id
        if not gig_dir.is_dir():
            return []
        return sorted(p for p in gig_dir.rglob("*") if p.is_file())

    def purge_gig(self, gig_id: str) -> None:
        """Recursively remove every attachment stored for *gig_id*."""
        gig_dir = self._base_dir / "gig_reports" / gig_id
        if gig_dir.is_dir():
            shutil.rmtree(gig_dir)
            log.info("attachment.purge", gig_id=gig_id)
        else:
            log.debug("attachment.purge.noop", gig_id=gig_id, reason="directory does not exist")
