# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

"""
Local mirrors of the appointment and notification collections.

A listener subscribes to a change stream through the `DbClient`, folds every
`DocumentChange` into its store and reports user-facing events through an
`on_toast` callback. Deriving notification documents from cancellations is
left to the `on_appointment_updated` trigger so it happens exactly once.
"""

import dataclasses
import logging
from typing import Callable, Dict, List, Optional

from backend.db import DbClient, Unsubscribe
from bookings.appointments import appointment_scope
from shared.constants import (
    NOTIFICATION_PAGE_SIZE,
    REMOVED_APPOINTMENT_REASON,
    TOAST_PREVIEW_LENGTH,
)
from shared.json_utils import from_document, now_millis, timestamp_millis
from shared.types import (
    Appointment,
    AppointmentStatus,
    CancelledBy,
    ChangeType,
    DocumentChange,
    Notification,
    UserProfile,
)

logger = logging.getLogger(__name__)

ToastCallback = Callable[[str], None]


def _newest_first(items) -> list:
    return sorted(
        items, key=lambda item: timestamp_millis(item.created_at, default=0), reverse=True
    )


class NotificationStore:
    """
    Notifications keyed by id with an unread counter.

    The counter only moves on read-state transitions, so a notification
    marked read locally and then echoed back by the change stream is only
    subtracted once. It never drops below zero.
    """

    def __init__(self):
        self._items: Dict[str, Notification] = {}
        self.unread_count = 0

    @property
    def notifications(self) -> List[Notification]:
        return _newest_first(self._items.values())

    def get(self, notification_id: str) -> Optional[Notification]:
        return self._items.get(notification_id)

    def load(self, notifications: List[Notification]) -> None:
        self._items = {n.id: n for n in notifications}
        self.unread_count = sum(1 for n in notifications if not n.read)

    def upsert(self, notification: Notification) -> Optional[Notification]:
        """Inserts or replaces a notification, returning the previous version."""
        previous = self._items.get(notification.id)
        self._items[notification.id] = notification
        was_unread = previous is not None and not previous.read
        if not notification.read and not was_unread:
            self.unread_count += 1
        elif notification.read and was_unread:
            self.unread_count = max(0, self.unread_count - 1)
        return previous

    def mark_read(self, notification_id: str) -> bool:
        notification = self._items.get(notification_id)
        if notification is None or notification.read:
            return False
        self._items[notification_id] = dataclasses.replace(notification, read=True)
        self.unread_count = max(0, self.unread_count - 1)
        return True

    def mark_all_read(self) -> None:
        for notification_id, notification in self._items.items():
            if not notification.read:
                self._items[notification_id] = dataclasses.replace(
                    notification, read=True
                )
        self.unread_count = 0

    def remove(self, notification_id: str) -> Optional[Notification]:
        removed = self._items.pop(notification_id, None)
        if removed is not None and not removed.read:
            self.unread_count = max(0, self.unread_count - 1)
        return removed

    def clear(self) -> None:
        self._items.clear()
        self.unread_count = 0


class AppointmentStore:
    """Appointments keyed by id. Removed documents stay as system cancellations."""

    def __init__(self):
        self._items: Dict[str, Appointment] = {}

    @property
    def appointments(self) -> List[Appointment]:
        return _newest_first(self._items.values())

    def get(self, appointment_id: str) -> Optional[Appointment]:
        return self._items.get(appointment_id)

    def upsert(self, appointment: Appointment) -> Optional[Appointment]:
        previous = self._items.get(appointment.id)
        self._items[appointment.id] = appointment
        return previous

    def mark_removed(
        self, appointment: Appointment, now_ms: Optional[int] = None
    ) -> Appointment:
        removed = dataclasses.replace(
            appointment,
            status=AppointmentStatus.CANCELLED,
            cancellation_reason=REMOVED_APPOINTMENT_REASON,
            cancelled_by=CancelledBy.SYSTEM,
            cancelled_at=now_ms if now_ms is not None else now_millis(),
        )
        self._items[appointment.id] = removed
        return removed


def notification_toast(notification: Notification) -> str:
    message = notification.message
    if len(message) > TOAST_PREVIEW_LENGTH:
        message = message[:TOAST_PREVIEW_LENGTH] + "..."
    return f"{notification.title}: {message}"


def cancellation_toast(appointment: Appointment, display_name: Optional[str]) -> str:
    reason = appointment.cancellation_reason
    suffix = f": {reason}" if reason else "."
    return (
        f"{display_name or 'Client'}, your appointment with {appointment.expert_name} "
        f"has been cancelled by the admin{suffix}"
    )


class _Listener:
    def __init__(self, on_toast: Optional[ToastCallback] = None):
        self.on_toast = on_toast
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def _subscribe(self) -> Unsubscribe:
        raise NotImplementedError

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._subscribe()

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _toast(self, message: str) -> None:
        if self.on_toast:
            self.on_toast(message)


class NotificationListener(_Listener):
    """Keeps a `NotificationStore` in sync with the user's notifications."""

    def __init__(
        self,
        db: DbClient,
        user_id: str,
        store: Optional[NotificationStore] = None,
        on_toast: Optional[ToastCallback] = None,
        limit: int = NOTIFICATION_PAGE_SIZE,
    ):
        super().__init__(on_toast)
        self.db = db
        self.user_id = user_id
        self.store = store if store is not None else NotificationStore()
        self.limit = limit

    def _subscribe(self) -> Unsubscribe:
        logger.debug("Listening to notifications for %s", self.user_id)
        return self.db.watch_notifications(
            self.handle_changes, self.user_id, limit=self.limit
        )

    def handle_changes(self, changes: List[DocumentChange]) -> None:
        for change in changes:
            if change.type == ChangeType.REMOVED:
                self.store.remove(change.doc_id)
                continue

            notification = from_document(Notification, change.data, change.doc_id)
            previous = self.store.upsert(notification)
            if (
                change.type == ChangeType.ADDED
                and previous is None
                and not notification.read
            ):
                self._toast(notification_toast(notification))


class AppointmentListener(_Listener):
    """
    Keeps an `AppointmentStore` in sync with the appointments a viewer may
    see: all of them for a superadmin, those they host for an admin, and
    their own otherwise.
    """

    def __init__(
        self,
        db: DbClient,
        viewer: UserProfile,
        store: Optional[AppointmentStore] = None,
        on_toast: Optional[ToastCallback] = None,
    ):
        super().__init__(on_toast)
        self.db = db
        self.viewer = viewer
        self.store = store if store is not None else AppointmentStore()

    def _subscribe(self) -> Unsubscribe:
        return self.db.watch_appointments(
            self.handle_changes, **appointment_scope(self.viewer)
        )

    def handle_changes(self, changes: List[DocumentChange]) -> None:
        for change in changes:
            appointment = from_document(Appointment, change.data, change.doc_id)

            if change.type == ChangeType.REMOVED:
                self.store.mark_removed(appointment)
                continue

            previous = self.store.upsert(appointment)
            newly_cancelled = (
                appointment.status == AppointmentStatus.CANCELLED
                and (previous is None or previous.status != AppointmentStatus.CANCELLED)
            )
            if (
                change.type == ChangeType.MODIFIED
                and newly_cancelled
                and appointment.cancelled_by == CancelledBy.ADMIN
                and appointment.user_id == self.viewer.uid
            ):
                self._toast(cancellation_toast(appointment, self.viewer.display_name))
