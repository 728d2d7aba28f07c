# tracker_client/view.py - UI-side state touched by mutations: detail panel, add dialog, toasts
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Toast:
    title: str
    description: str = ""
    variant: str = "default"    # "default" | "destructive"


class Notifier:
    """Collects user-visible notifications (and logs them)."""

    def __init__(self):
        self.toasts: List[Toast] = []

    def notify(self, title: str, description: str = "", variant: str = "default") -> Toast:
        toast = Toast(title, description, variant)
        self.toasts.append(toast)
        level = logging.WARNING if variant == "destructive" else logging.INFO
        logger.log(level, "%s: %s", title, description)
        return toast

    @property
    def last(self) -> Optional[Toast]:
        return self.toasts[-1] if self.toasts else None

    def failures(self) -> List[Toast]:
        return [t for t in self.toasts if t.variant == "destructive"]


@dataclass
class DetailView:
    """The detail sheet for one record plus the page's "add" dialog."""
    selected: Optional[Dict[str, Any]] = None
    is_open: bool = False
    dialog_open: bool = False
    mounted: bool = True

    def open(self, record: Dict[str, Any]) -> None:
        self.selected = dict(record)
        self.is_open = True

    def close(self) -> None:
        self.is_open = False
        self.selected = None

    def shows(self, record_id: Any) -> bool:
        return self.selected is not None and self.selected.get("id") == record_id

    def unmount(self) -> None:
        self.mounted = False
