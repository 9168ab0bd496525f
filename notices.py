from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Literal


@dataclass(frozen=True)
class Notice:
    """A short user-facing message about the outcome of an action."""

    title: str
    description: str = ""
    level: Literal["info", "error"] = "info"


@dataclass
class Notifier:
    """Collects notices and forwards them to an optional callback."""

    callback: Callable[[Notice], None] | None = None
    notices: List[Notice] = field(default_factory=list)

    def notify(self, notice: Notice) -> None:
        self.notices.append(notice)
        if self.callback is not None:
            self.callback(notice)

    def info(self, title: str, description: str = "") -> None:
        self.notify(Notice(title, description, "info"))

    def error(self, title: str, description: str = "") -> None:
        self.notify(Notice(title, description, "error"))

    @property
    def errors(self) -> List[Notice]:
        return [n for n in self.notices if n.level == "error"]
