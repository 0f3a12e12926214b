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
from main_testing_utils import NOW_MS, seed_appointment, seed_expert, seed_user
from shared.constants import APPOINTMENT_RESET_DAYS, DAY_MS
from shared.errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from shared.plans import BASIC, PAY_PER_CALL
from shared.types import AppointmentStatus, CancelledBy


class ScheduleAppointmentTest(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        seed_user(self.db, "user-1")
        seed_expert(self.db, "expert-1")

    def _schedule(self, uid="user-1", time="10:00", **kwargs):
        return appointments.schedule_appointment(
            self.db, uid, "expert-1", "2026-01-02", time, now_ms=NOW_MS, **kwargs
        )

    def test_schedule_creates_appointment(self):
        appointment = self._schedule(notes="  Chest pain after running  ")

        self.assertEqual(appointment.status, AppointmentStatus.SCHEDULED)
        self.assertEqual(appointment.user_id, "user-1")
        self.assertEqual(appointment.expert_name, "Dr. Sarah Johnson")
        self.assertEqual(appointment.expert_specialization, "Cardiology")
        self.assertEqual(appointment.display_name, "User user-1")
        self.assertEqual(appointment.notes, "Chest pain after running")
        self.assertTrue(
            appointment.meeting_link.startswith("https://meet.google.com/abc-")
        )
        self.assertIsNotNone(appointment.created_at)

        expert = self.db.get_expert("expert-1")
        self.assertFalse(expert["availability"]["2026-01-02"]["10:00"])
        self.assertTrue(expert["availability"]["2026-01-02"]["14:00"])

    def test_slot_already_taken(self):
        seed_appointment(self.db, user_id="someone-else", time="14:00")

        with self.assertRaises(FailedPreconditionError) as cm:
            self._schedule(time="14:00")
        self.assertEqual(str(cm.exception), appointments.SLOT_TAKEN_MESSAGE)

    def test_cancelled_appointment_does_not_block_slot(self):
        seed_appointment(
            self.db, user_id="someone-else", time="14:00", status="cancelled"
        )

        appointment = self._schedule(time="14:00")

        self.assertEqual(appointment.time, "14:00")

    def test_slot_closed_in_availability(self):
        seed_expert(
            self.db, "expert-1", availability={"2026-01-02": {"10:00": False}}
        )

        with self.assertRaises(FailedPreconditionError):
            self._schedule()

    def test_plan_without_booking(self):
        seed_user(self.db, "user-1", plan=BASIC)

        with self.assertRaises(FailedPreconditionError) as cm:
            self._schedule()
        self.assertIn("doesn't include appointment booking", str(cm.exception))

    def test_no_plan(self):
        seed_user(self.db, "user-1", plan=None)

        with self.assertRaises(FailedPreconditionError) as cm:
            self._schedule()
        self.assertIn("You need a subscription", str(cm.exception))

    def test_pay_per_call_consumes_its_only_appointment(self):
        seed_user(self.db, "user-1", plan=PAY_PER_CALL)

        self._schedule()

        self.assertEqual(self.db.get_user("user-1")["appointmentsTotal"], 0)
        with self.assertRaises(FailedPreconditionError) as cm:
            self._schedule(time="14:00")
        self.assertEqual(str(cm.exception), appointments.NO_APPOINTMENTS_LEFT_MESSAGE)

    def test_unknown_expert(self):
        with self.assertRaises(NotFoundError):
            appointments.schedule_appointment(
                self.db, "user-1", "nobody", "2026-01-02", "10:00", now_ms=NOW_MS
            )

    def test_unknown_user(self):
        with self.assertRaises(NotFoundError):
            self._schedule(uid="ghost")

    def test_invalid_date(self):
        with self.assertRaises(InvalidArgumentError):
            appointments.schedule_appointment(
                self.db, "user-1", "expert-1", "02/01/2026", "10:00", now_ms=NOW_MS
            )

    def test_missing_time(self):
        with self.assertRaises(InvalidArgumentError):
            appointments.schedule_appointment(
                self.db, "user-1", "expert-1", "2026-01-02", "", now_ms=NOW_MS
            )

    def test_invalid_time(self):
        for time in ("banana", "25:00", "10"):
            with self.subTest(time=time):
                with self.assertRaises(InvalidArgumentError):
                    appointments.schedule_appointment(
                        self.db, "user-1", "expert-1", "2026-01-02", time, now_ms=NOW_MS
                    )
        self.assertEqual(self.db.query_appointments(), [])

    def test_notes_too_long(self):
        with self.assertRaises(InvalidArgumentError):
            self._schedule(notes="x" * 1001)


class ConsumeAppointmentQuotaTest(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    def _user(self, uid="user-1"):
        return appointments.load_user(self.db, uid)

    def test_premium_resets_after_reset_date(self):
        seed_user(
            self.db,
            appointmentsUsed=2,
            additionalAppointments=1,
            appointmentsTotal=3,
            appointmentsResetDate=NOW_MS - 1,
        )

        updates = appointments.consume_appointment_quota(self.db, self._user(), NOW_MS)

        self.assertEqual(updates["appointmentsUsed"], 0)
        self.assertEqual(
            updates["appointmentsResetDate"], NOW_MS + APPOINTMENT_RESET_DAYS * DAY_MS
        )
        self.assertNotIn("appointmentsTotal", updates)

    def test_premium_fixes_total(self):
        seed_user(self.db, additionalAppointments=2, appointmentsTotal=1)

        updates = appointments.consume_appointment_quota(self.db, self._user(), NOW_MS)

        self.assertEqual(updates, {"appointmentsTotal": 4})

    def test_premium_within_window_is_untouched(self):
        seed_user(self.db)

        self.assertEqual(
            appointments.consume_appointment_quota(self.db, self._user(), NOW_MS), {}
        )

    def test_additional_appointments_spent_first(self):
        seed_user(
            self.db, plan=PAY_PER_CALL, additionalAppointments=1, appointmentsTotal=2
        )

        appointments.consume_appointment_quota(self.db, self._user(), NOW_MS)

        user = self.db.get_user("user-1")
        self.assertEqual(user["additionalAppointments"], 0)
        self.assertEqual(user["appointmentsTotal"], 1)

    def test_total_never_negative(self):
        seed_user(self.db, plan=PAY_PER_CALL, appointmentsTotal=0)

        appointments.consume_appointment_quota(self.db, self._user(), NOW_MS)

        self.assertEqual(self.db.get_user("user-1")["appointmentsTotal"], 0)


class CancelAppointmentTest(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        seed_user(self.db, "user-1")
        seed_user(self.db, "admin-1", plan=None, role="admin")
        seed_user(self.db, "stranger", plan=None)
        seed_expert(self.db, "expert-1", availability={"2026-01-02": {"10:00": False}})
        self.appointment_id = seed_appointment(self.db)

    def test_owner_cancels(self):
        appointment = appointments.cancel_appointment(
            self.db, self.appointment_id, "user-1"
        )

        self.assertEqual(appointment.status, AppointmentStatus.CANCELLED)
        self.assertEqual(appointment.cancelled_by, CancelledBy.USER)
        self.assertEqual(
            appointment.cancellation_reason, appointments.USER_CANCELLATION_REASON
        )
        self.assertIsNotNone(appointment.cancelled_at)
        expert = self.db.get_expert("expert-1")
        self.assertTrue(expert["availability"]["2026-01-02"]["10:00"])

    def test_admin_cancels_with_reason(self):
        appointment = appointments.cancel_appointment(
            self.db, self.appointment_id, "admin-1", reason=" Doctor unavailable "
        )

        self.assertEqual(appointment.status, AppointmentStatus.CANCELLED)
        self.assertEqual(appointment.cancelled_by, CancelledBy.ADMIN)
        self.assertEqual(appointment.cancellation_reason, "Doctor unavailable")

    def test_expert_cancels_as_admin(self):
        appointment = appointments.cancel_appointment(
            self.db, self.appointment_id, "expert-1", reason="Emergency"
        )

        self.assertEqual(appointment.cancelled_by, CancelledBy.ADMIN)

    def test_admin_requires_reason(self):
        with self.assertRaises(InvalidArgumentError):
            appointments.cancel_appointment(self.db, self.appointment_id, "admin-1")
        self.assertEqual(
            self.db.get_appointment(self.appointment_id)["status"], "scheduled"
        )

    def test_stranger_cannot_cancel(self):
        with self.assertRaises(PermissionDeniedError):
            appointments.cancel_appointment(self.db, self.appointment_id, "stranger")

    def test_only_scheduled_can_be_cancelled(self):
        appointments.cancel_appointment(self.db, self.appointment_id, "user-1")

        with self.assertRaises(FailedPreconditionError):
            appointments.cancel_appointment(self.db, self.appointment_id, "user-1")

    def test_missing_appointment(self):
        with self.assertRaises(NotFoundError):
            appointments.cancel_appointment(self.db, "missing", "user-1")

    def test_missing_expert_still_cancels(self):
        appointment_id = seed_appointment(self.db, expert_id="gone", time="11:00")

        appointment = appointments.cancel_appointment(self.db, appointment_id, "user-1")

        self.assertEqual(appointment.status, AppointmentStatus.CANCELLED)


class CompleteAppointmentTest(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        seed_user(self.db, "user-1", appointmentsUsed=1)
        self.appointment_id = seed_appointment(self.db)

    def test_expert_completes(self):
        appointment = appointments.complete_appointment(
            self.db, self.appointment_id, "expert-1"
        )

        self.assertEqual(appointment.status, AppointmentStatus.COMPLETED)
        self.assertIsNotNone(appointment.completed_at)
        self.assertEqual(self.db.get_user("user-1")["appointmentsUsed"], 2)

    def test_user_cannot_complete(self):
        with self.assertRaises(PermissionDeniedError):
            appointments.complete_appointment(self.db, self.appointment_id, "user-1")

    def test_cancelled_cannot_complete(self):
        appointments.cancel_appointment(self.db, self.appointment_id, "user-1")

        with self.assertRaises(FailedPreconditionError):
            appointments.complete_appointment(self.db, self.appointment_id, "expert-1")


class ListAppointmentsTest(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        seed_user(self.db, "user-1")
        seed_user(self.db, "user-2")
        seed_user(self.db, "expert-1", plan=None, role="admin")
        seed_user(self.db, "root", plan=None, role="superadmin")
        seed_appointment(self.db, user_id="user-1", expert_id="expert-1")
        seed_appointment(self.db, user_id="user-2", expert_id="expert-1", time="11:00")
        seed_appointment(self.db, user_id="user-2", expert_id="expert-2", time="12:00")

    def test_user_sees_own(self):
        items = appointments.list_appointments(self.db, "user-2")
        self.assertEqual({a.user_id for a in items}, {"user-2"})
        self.assertEqual(len(items), 2)

    def test_admin_sees_hosted(self):
        items = appointments.list_appointments(self.db, "expert-1")
        self.assertEqual({a.expert_id for a in items}, {"expert-1"})
        self.assertEqual(len(items), 2)

    def test_superadmin_sees_all(self):
        self.assertEqual(len(appointments.list_appointments(self.db, "root")), 3)


class RemindersTest(unittest.TestCase):
    def test_appointments_due_for_reminder(self):
        db = InMemoryDbClient()
        due_id = seed_appointment(db, date="2026-01-01", time="10:00")
        seed_appointment(db, date="2026-01-03", time="10:00")
        seed_appointment(db, date="2026-01-01", time="11:00", reminderSent=True)
        seed_appointment(db, date="2026-01-01", time="12:00", status="cancelled")
        seed_appointment(db, date="2025-12-31", time="10:00")

        due = appointments.appointments_due_for_reminder(db, NOW_MS)

        self.assertEqual([a.id for a in due], [due_id])

    def test_slot_start_millis(self):
        self.assertEqual(appointments.slot_start_millis("2026-01-01", "00:00"), NOW_MS)
        self.assertIsNone(appointments.slot_start_millis("2026-01-01", "noon"))


if __name__ == "__main__":
    unittest.main()
