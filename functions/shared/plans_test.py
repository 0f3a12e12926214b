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

from main_testing_utils import NOW_MS
from shared import plans
from shared.constants import DAY_MS, MINUTE_MS
from shared.types import UserProfile


def _user(**kwargs):
    return UserProfile(uid="user-1", **kwargs)


class SubscriptionExpiryTest(unittest.TestCase):
    def test_never_subscribed(self):
        self.assertFalse(plans.is_subscription_expired(_user(), NOW_MS))

    def test_plan_removed(self):
        self.assertTrue(
            plans.is_subscription_expired(_user(had_subscription_before=True), NOW_MS)
        )

    def test_missing_update_time(self):
        self.assertTrue(plans.is_subscription_expired(_user(plan=plans.BASIC), NOW_MS))

    def test_grace_period_after_purchase(self):
        user = _user(
            plan=plans.BASIC,
            plan_updated_at=NOW_MS - MINUTE_MS,
            plan_expiry_date=NOW_MS - 1,
        )
        self.assertFalse(plans.is_subscription_expired(user, NOW_MS))

    def test_explicit_expiry(self):
        user = _user(
            plan=plans.BASIC,
            plan_updated_at=NOW_MS - 10 * DAY_MS,
            plan_expiry_date=NOW_MS + DAY_MS,
        )
        self.assertFalse(plans.is_subscription_expired(user, NOW_MS))
        self.assertTrue(plans.is_subscription_expired(user, NOW_MS + 2 * DAY_MS))

    def test_expiry_from_duration(self):
        user = _user(plan=plans.PAY_PER_CALL, plan_updated_at=NOW_MS - 8 * DAY_MS)

        self.assertEqual(plans.subscription_expiry(user), NOW_MS - DAY_MS)
        self.assertTrue(plans.is_subscription_expired(user, NOW_MS))


class FeatureAccessTest(unittest.TestCase):
    def _active(self, plan, **kwargs):
        return _user(
            plan=plan,
            plan_updated_at=NOW_MS - DAY_MS,
            plan_expiry_date=NOW_MS + DAY_MS,
            **kwargs,
        )

    def test_features_per_plan(self):
        cases = {
            None: (True, False, False),
            plans.BASIC: (True, False, False),
            plans.PREMIUM: (True, True, True),
            plans.PAY_PER_CALL: (True, False, True),
        }
        for plan, expected in cases.items():
            with self.subTest(plan=plan):
                user = self._active(plan) if plan else _user()
                self.assertEqual(
                    tuple(
                        plans.can_access_feature(f, user, NOW_MS) for f in plans.FEATURES
                    ),
                    expected,
                )

    def test_expired_plan_loses_features(self):
        user = _user(
            plan=plans.PREMIUM,
            plan_updated_at=NOW_MS - 40 * DAY_MS,
            plan_expiry_date=NOW_MS - DAY_MS,
        )
        self.assertFalse(plans.can_access_feature("can_book_appointments", user, NOW_MS))

    def test_unknown_feature(self):
        with self.assertRaises(ValueError):
            plans.can_access_feature("can_fly", _user(), NOW_MS)

    def test_remaining_appointments(self):
        user = self._active(plans.PREMIUM, appointments_total=3, appointments_used=1)
        self.assertEqual(plans.remaining_appointments(user, NOW_MS), 2)
        self.assertTrue(plans.can_book_more_appointments(user, NOW_MS))

        user = self._active(plans.PREMIUM, appointments_used=2)
        self.assertEqual(plans.remaining_appointments(user, NOW_MS), 0)
        self.assertFalse(plans.can_book_more_appointments(user, NOW_MS))

    def test_upgrade_messages(self):
        self.assertIn(
            "You need a subscription to access voice calls",
            plans.upgrade_message("can_use_voice", _user()),
        )
        self.assertIn(
            "Your current plan (Basic Plan)",
            plans.upgrade_message(
                "can_book_appointments", _user(plan=plans.BASIC, plan_name="Basic Plan")
            ),
        )

    def test_allowances(self):
        self.assertEqual(plans.base_appointments(plans.PREMIUM), 2)
        self.assertEqual(plans.base_appointments("gold"), 0)
        self.assertEqual(plans.token_limit(plans.PAY_PER_CALL), 20_000)
        self.assertEqual(plans.token_limit(None), 0)


if __name__ == "__main__":
    unittest.main()
