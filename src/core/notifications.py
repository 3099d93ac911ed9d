"""
Transient Status Notifications.

Every StatusEvent the controller emits is published here. The notifier keeps
the notification currently shown to the member and clears it after a fixed
delay once the operation reaches a terminal status:

- pending: stays visible until replaced
- success: cleared after `success_clear_seconds` (default 2s)
- error:   cleared after `error_clear_seconds` (default 3s)

Subscribers (UI adapters, tests, the API) receive every event in order.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from src.core.transaction_status import StatusEvent, TransactionStatus

logger = structlog.get_logger(__name__)

Subscriber = Callable[[StatusEvent], None]


@dataclass(frozen=True)
class Notification:
    """What the member currently sees."""

    visible: bool
    status: TransactionStatus
    message: str

    @classmethod
    def hidden(cls) -> Notification:
        return cls(visible=False, status=TransactionStatus.PENDING, message="")


class StatusNotifier:
    """
    Holds the current transient notification and fans events out.

    Args:
        success_clear_seconds: Delay before a success notification hides
        error_clear_seconds: Delay before an error notification hides
        history_size: Number of recent events kept for inspection
    """

    def __init__(
        self,
        success_clear_seconds: float = 2.0,
        error_clear_seconds: float = 3.0,
        history_size: int = 100,
    ) -> None:
        self.success_clear_seconds = success_clear_seconds
        self.error_clear_seconds = error_clear_seconds
        self._current = Notification.hidden()
        self._subscribers: list[Subscriber] = []
        self._history: deque[StatusEvent] = deque(maxlen=history_size)
        self._clear_handle: asyncio.TimerHandle | None = None

    @property
    def current(self) -> Notification:
        return self._current

    @property
    def history(self) -> list[StatusEvent]:
        return list(self._history)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a subscriber. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: StatusEvent) -> None:
        """Show `event` and notify every subscriber."""
        self._history.append(event)
        self._cancel_pending_clear()
        self._current = Notification(visible=True, status=event.status, message=event.message)

        if event.status == TransactionStatus.SUCCESS:
            self._schedule_clear(self.success_clear_seconds)
        elif event.status == TransactionStatus.ERROR:
            self._schedule_clear(self.error_clear_seconds)

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                # One broken subscriber must not hide the event from the others
                logger.exception(
                    "status_subscriber_failed",
                    operation=event.operation.value,
                    status=event.status.value,
                )

    def clear(self) -> None:
        """Hide the current notification immediately."""
        self._cancel_pending_clear()
        self._current = Notification.hidden()

    def _schedule_clear(self, delay: float) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Published outside an event loop; nothing can fire the timer
            return
        self._clear_handle = loop.call_later(delay, self.clear)

    def _cancel_pending_clear(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None
