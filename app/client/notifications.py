"""User-facing notifications emitted by the client controllers.

Controllers never print or raise to report outcomes; they hand a
Notification to a notifier callable. NotificationLog is the default
notifier: it keeps every notification in order and mirrors it to the
structured log.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from app.utils.logging import get_logger

log = get_logger(__name__)

Variant = Literal["default", "destructive"]


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: Variant = "default"

    @property
    def is_error(self) -> bool:
        return self.variant == "destructive"


Notifier = Callable[[Notification], None]


class NotificationLog:
    """Collects notifications in emission order."""

    def __init__(self) -> None:
        self.items: list[Notification] = []

    def __call__(self, notification: Notification) -> None:
        self.items.append(notification)
        log.info(
            "notification",
            title=notification.title,
            variant=notification.variant,
        )

    @property
    def last(self) -> Notification | None:
        return self.items[-1] if self.items else None

    def titles(self) -> list[str]:
        return [item.title for item in self.items]

    def clear(self) -> None:
        self.items.clear()
