"""YAML-backed notification message templates.

``NotificationTemplates`` reads one template per ``NotificationKind`` from
a YAML file with a top-level ``notifications`` key and renders it with the
event payload.

Usage::

    from gigflow.notifications.templates import NotificationTemplates

    templates = NotificationTemplates()
    text = templates.render(NotificationKind.REPORT_SUBMITTED, gig_title="Logo", report_number=1)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from gigflow.models.schemas import NotificationKind
from gigflow.utils.logger import get_logger

log = get_logger(__name__, component="notification_templates")

_PROJECT_ROOT = Path(__file__).resolve().parents[2]


class NotificationTemplates:
    """Load notification templates from a YAML file and render them.

    Parameters
    ----------
    templates_path:
        Path to the YAML file.  Relative paths are resolved against the
        project root.
    """

    def __init__(self, templates_path: str = "config/notifications.yaml") -> None:
        path = Path(templates_path)
        if not path.is_absolute():
            path = _PROJECT_ROOT / path
        self._path = path
        self._templates: dict[str, str] = self._load(path)
        log.info(
            "notification_templates.loaded",
            path=str(path),
            template_count=len(self._templates),
        )

    @staticmethod
    def _load(path: Path) -> dict[str, str]:
        """Read and parse the YAML file, returning the ``notifications`` mapping."""
        if not path.is_file():
            raise FileNotFoundError(f"Notification templates file not found: {path}")
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        if not isinstance(data, dict) or "notifications" not in data:
            raise ValueError(
                f"Templates file must contain a top-level 'notifications' key: {path}"
            )
        templates = data["notifications"]
        unknown = set(templates) - {kind.value for kind in NotificationKind}
        if unknown:
            raise ValueError(f"Unknown notification kinds in {path}: {', '.join(sorted(unknown))}")
        return {key: str(value).strip() for key, value in templates.items()}

    @property
    def kinds(self) -> list[str]:
        """Return the notification kinds that have a template."""
        return sorted(self._templates)

    def render(self, kind: NotificationKind, **kwargs: Any) -> str:
        """Fill the template for *kind* with *kwargs*.

        Raises
        ------
        KeyError
            If *kind* has no template or a placeholder is missing from
            *kwargs*.
        """
        if kind.value not in self._templates:
            available = ", ".join(self.kinds)
            raise KeyError(
                f"No template for notification kind '{kind.value}'. "
                f"Available: {available}"
            )
        return self._templates[kind.value].format(**kwargs)
