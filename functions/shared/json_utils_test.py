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
from datetime import datetime, timezone

from shared import json_utils
from shared.types import Appointment, AppointmentStatus, Expert, Notification


class DocumentConversionTest(unittest.TestCase):
    def test_from_document(self):
        appointment = json_utils.from_document(
            Appointment,
            {
                "userId": "user-1",
                "expertId": "expert-1",
                "date": "2026-01-02",
                "time": "10:00",
                "status": "cancelled",
                "cancelledBy": "admin",
                "unknownField": 1,
            },
            "appt-1",
        )

        self.assertEqual(appointment.id, "appt-1")
        self.assertEqual(appointment.status, AppointmentStatus.CANCELLED)
        self.assertEqual(appointment.cancelled_by, "admin")
        self.assertEqual(appointment.expert_name, "Unknown Expert")

    def test_availability_keys_are_kept(self):
        expert = json_utils.from_document(
            Expert,
            {"name": "Dr. Lee", "availability": {"2026-01-02": {"10:00": True}}},
            "expert-1",
        )

        self.assertEqual(expert.availability, {"2026-01-02": {"10:00": True}})
        self.assertEqual(
            json_utils.to_document(expert)["availability"],
            {"2026-01-02": {"10:00": True}},
        )

    def test_nested_action(self):
        notification = json_utils.from_document(
            Notification,
            {
                "userId": "user-1",
                "title": "t",
                "message": "m",
                "type": "payment",
                "relatedId": "pay-1",
                "action": {"type": "link", "label": "Open", "url": "/x"},
            },
            "n-1",
        )

        document = json_utils.to_document(notification)
        self.assertNotIn("id", document)
        self.assertEqual(document["relatedId"], "pay-1")
        self.assertEqual(document["type"], "payment")
        self.assertEqual(document["action"]["label"], "Open")

    def test_convert_keys(self):
        self.assertEqual(
            json_utils.convert_keys({"planId": [{"timeStamp": 1}]}, "camel_to_snake"),
            {"plan_id": [{"time_stamp": 1}]},
        )
        with self.assertRaises(ValueError):
            json_utils.convert_keys({}, "sideways")


class TimestampTest(unittest.TestCase):
    def test_timestamp_millis(self):
        moment = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self.assertEqual(json_utils.timestamp_millis(moment), 1_767_225_600_000)
        self.assertEqual(json_utils.timestamp_millis({"seconds": 10}), 10_000)
        self.assertEqual(json_utils.timestamp_millis(1234), 1234)
        self.assertEqual(json_utils.timestamp_millis(None, default=7), 7)

    def test_json_safe(self):
        moment = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self.assertEqual(
            json_utils.json_safe(
                {"status": AppointmentStatus.SCHEDULED, "at": [moment], "n": 1}
            ),
            {"status": "scheduled", "at": [1_767_225_600_000], "n": 1},
        )


if __name__ == "__main__":
    unittest.main()
