"""Notification sinks for the parking monitor.

A sink decides how state changes are surfaced: an ongoing status
notification for background monitoring and a one-off alert once
parking is confirmed.
"""

from __future__ import annotations

import logging
from typing import Protocol

from parkping.models.state import Notification, ParkedEvent


class NotificationSink(Protocol):
    def update_status(self, notification: Notification) -> None:
        """Replace the ongoing monitoring status with *notification*."""

    def send_parked(self, event: ParkedEvent) -> None:
        """Surface the confirmed-parking alert."""

    def clear(self) -> None:
        """Remove the ongoing status when monitoring stops."""


class LoggingNotificationSink:
    """Sink that writes everything to a logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def update_status(self, notification: Notification) -> None:
        self._logger.info("[%s] %s: %s", notification.state, notification.title, notification.body)

    def send_parked(self, event: ParkedEvent) -> None:
        self._logger.info("%s %s (stopped at %s)", event.title, event.body, event.stopped_at.isoformat())

    def clear(self) -> None:
        self._logger.debug("Monitoring status cleared")


class RecordingNotificationSink:
    """Sink that keeps every notification and event in memory."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []
        self.parked_events: list[ParkedEvent] = []
        self.cleared = 0

    @property
    def last_status(self) -> Notification | None:
        return self.notifications[-1] if self.notifications else None

    def update_status(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def send_parked(self, event: ParkedEvent) -> None:
        self.parked_events.append(event)

    def clear(self) -> None:
        self.cleared += 1
