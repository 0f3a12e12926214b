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

import unittest

from backend.db import InMemoryDbClient
from bookings import appointments
from main_testing_utils import seed_appointment, seed_expert, seed_user
from notifications import notifications, realtime
from shared.constants import REMOVED_APPOINTMENT_REASON
from shared.types import (
    AppointmentStatus,
    CancelledBy,
    Notification,
    NotificationType,
    UserProfile,
)


def _notification(notification_id, read=False, created_at=0):
    return Notification(
        id=notification_id,
        user_id="user-1",
        title="Title",
        message="Message",
        type=NotificationType.SYSTEM,
        read=read,
        created_at=created_at,
    )


class NotificationStoreTest(unittest.TestCase):
    def test_load_counts_unread(self):
        store = realtime.NotificationStore()
        store.load([_notification("a"), _notification("b", read=True)])

        self.assertEqual(store.unread_count, 1)

    def test_notifications_newest_first(self):
        store = realtime.NotificationStore()
        store.upsert(_notification("old", created_at=1))
        store.upsert(_notification("new", created_at=2))

        self.assertEqual([n.id for n in store.notifications], ["new", "old"])

    def test_read_echo_is_counted_once(self):
        store = realtime.NotificationStore()
        store.upsert(_notification("a"))
        store.upsert(_notification("b"))

        self.assertTrue(store.mark_read("a"))
        # The change stream later reports the same read transition.
        store.upsert(_notification("a", read=True))

        self.assertEqual(store.unread_count, 1)

    def test_mark_read_twice(self):
        store = realtime.NotificationStore()
        store.upsert(_notification("a"))

        self.assertTrue(store.mark_read("a"))
        self.assertFalse(store.mark_read("a"))
        self.assertFalse(store.mark_read("missing"))
        self.assertEqual(store.unread_count, 0)

    def test_counter_never_negative(self):
        store = realtime.NotificationStore()
        store.upsert(_notification("a"))
        store.unread_count = 0

        store.upsert(_notification("a", read=True))
        store.remove("missing")

        self.assertEqual(store.unread_count, 0)

    def test_remove_unread(self):
        store = realtime.NotificationStore()
        store.upsert(_notification("a"))
        store.upsert(_notification("b", read=True))

        store.remove("a")
        store.remove("b")

        self.assertEqual(store.unread_count, 0)
        self.assertEqual(store.notifications, [])

    def test_mark_all_read_and_clear(self):
        store = realtime.NotificationStore()
        store.upsert(_notification("a"))
        store.upsert(_notification("b"))

        store.mark_all_read()
        self.assertEqual(store.unread_count, 0)
        self.assertTrue(all(n.read for n in store.notifications))

        store.clear()
        self.assertEqual(store.notifications, [])


class ToastTest(unittest.TestCase):
    def test_long_message_is_truncated(self):
        notification = _notification("a")
        notification.message = "x" * 60

        self.assertEqual(
            realtime.notification_toast(notification), "Title: " + "x" * 50 + "..."
        )

    def test_short_message(self):
        self.assertEqual(realtime.notification_toast(_notification("a")), "Title: Message")


class NotificationListenerTest(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.toasts = []
        self.listener = realtime.NotificationListener(
            self.db, "user-1", on_toast=self.toasts.append
        )

    def tearDown(self):
        self.listener.stop()

    def test_initial_snapshot_and_new_notifications(self):
        notifications.create_notification(self.db, "user-1", "First", "one", "system")

        self.listener.start()
        self.assertEqual(self.listener.store.unread_count, 1)
        self.assertEqual(self.toasts, ["First: one"])

        notifications.create_notification(self.db, "user-1", "Second", "two", "system")
        notifications.create_notification(self.db, "user-2", "Other", "three", "system")

        self.assertEqual(self.listener.store.unread_count, 2)
        self.assertEqual(self.toasts, ["First: one", "Second: two"])

    def test_read_and_delete_changes(self):
        self.listener.start()
        created = notifications.create_notification(
            self.db, "user-1", "Hello", "there", "system"
        )

        notifications.mark_read(self.db, "user-1", created.id)
        self.assertEqual(self.listener.store.unread_count, 0)
        self.assertTrue(self.listener.store.get(created.id).read)

        notifications.delete_notification(self.db, "user-1", created.id)
        self.assertIsNone(self.listener.store.get(created.id))
        self.assertEqual(self.toasts, ["Hello: there"])

    def test_already_read_notifications_do_not_toast(self):
        self.db.add_notification(
            {
                "userId": "user-1",
                "title": "Old",
                "message": "news",
                "type": "system",
                "read": True,
            }
        )

        self.listener.start()

        self.assertEqual(self.toasts, [])
        self.assertEqual(len(self.listener.store.notifications), 1)

    def test_stop_unsubscribes(self):
        self.listener.start()
        self.assertTrue(self.listener.active)
        self.listener.stop()
        self.assertFalse(self.listener.active)

        notifications.create_notification(self.db, "user-1", "Late", "msg", "system")

        self.assertEqual(self.listener.store.notifications, [])


class AppointmentListenerTest(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        seed_user(self.db, "user-1", displayName="Asha")
        seed_user(self.db, "admin-1", plan=None, role="admin")
        seed_expert(self.db, "expert-1")
        self.appointment_id = seed_appointment(self.db)
        self.toasts = []
        viewer = appointments.load_user(self.db, "user-1")
        self.listener = realtime.AppointmentListener(
            self.db, viewer, on_toast=self.toasts.append
        )
        self.listener.start()

    def tearDown(self):
        self.listener.stop()

    def test_admin_cancellation_toasts_owner(self):
        appointments.cancel_appointment(
            self.db, self.appointment_id, "admin-1", reason="Doctor unavailable"
        )

        self.assertEqual(
            self.toasts,
            [
                "Asha, your appointment with Dr. Sarah Johnson has been cancelled "
                "by the admin: Doctor unavailable"
            ],
        )
        stored = self.listener.store.get(self.appointment_id)
        self.assertEqual(stored.status, AppointmentStatus.CANCELLED)

    def test_user_cancellation_is_silent(self):
        appointments.cancel_appointment(self.db, self.appointment_id, "user-1")

        self.assertEqual(self.toasts, [])
        self.assertEqual(
            self.listener.store.get(self.appointment_id).cancelled_by, CancelledBy.USER
        )

    def test_removed_appointment_becomes_system_cancellation(self):
        self.db.delete_appointment(self.appointment_id)

        removed = self.listener.store.get(self.appointment_id)
        self.assertEqual(removed.status, AppointmentStatus.CANCELLED)
        self.assertEqual(removed.cancelled_by, CancelledBy.SYSTEM)
        self.assertEqual(removed.cancellation_reason, REMOVED_APPOINTMENT_REASON)
        self.assertEqual(self.toasts, [])

    def test_admin_viewer_sees_hosted_appointments(self):
        seed_appointment(self.db, expert_id="expert-2", time="11:00")
        admin = UserProfile(uid="expert-1", role="admin")
        listener = realtime.AppointmentListener(self.db, admin)
        listener.start()
        self.addCleanup(listener.stop)

        self.assertEqual(
            [a.id for a in listener.store.appointments], [self.appointment_id]
        )


if __name__ == "__main__":
    unittest.main()
