"""Notification hook for application status changes."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol

from job_tracker.core.models import ApplicationStatus
from job_tracker.utils.logging import get_logger

logger = get_logger(__name__)


# Statuses an external dispatcher (email, push) cares about
NOTIFY_STATUSES = frozenset({
    ApplicationStatus.APPLIED,
    ApplicationStatus.INTERVIEW_SCHEDULED,
    ApplicationStatus.OFFER_RECEIVED,
    ApplicationStatus.REJECTED_BY_EMPLOYER,
})


@dataclass
class StatusChangeEvent:
    """Emitted after an application status change has been committed."""
    application_id: str
    user_id: str
    job_id: str
    previous_status: ApplicationStatus
    status: ApplicationStatus
    actor_id: str
    occurred_at: datetime
    note: Optional[str] = None


class NotificationHook(Protocol):
    def notify(self, event: StatusChangeEvent) -> None:
        ...


class LoggingNotificationHook:
    """Default hook: records the notification in the log stream."""

    def __init__(self):
        self.logger = logger.bind(component="notification_hook")

    def notify(self, event: StatusChangeEvent) -> None:
        self.logger.info(
            "Application notification",
            application_id=event.application_id,
            user_id=event.user_id,
            status=event.status.value,
        )


@dataclass
class NotificationDispatcher:
    """Fans events out to hooks. A failing hook never fails the caller."""
    hooks: List[NotificationHook] = field(default_factory=list)

    def register(self, hook: NotificationHook) -> None:
        self.hooks.append(hook)

    def dispatch(self, event: StatusChangeEvent) -> int:
        """Deliver an event of interest to every hook. Returns the number of hooks that succeeded."""
        if event.status not in NOTIFY_STATUSES:
            return 0

        delivered = 0
        for hook in self.hooks:
            try:
                hook.notify(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    "Notification hook failed",
                    hook=type(hook).__name__,
                    application_id=event.application_id,
                    status=event.status.value,
                    error=str(e),
                )
        return delivered
