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
from unittest import mock

from firebase_admin import auth

from accounts import accounts
from backend.db import InMemoryDbClient
from main_testing_utils import NOW_MS, seed_user
from shared.errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from shared.types import Role

STRONG_PASSWORD = "Str0ng!pass"


@mock.patch("accounts.accounts.auth.create_user")
class RegisterUserTest(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    def test_creates_account_and_profile(self, mock_create_user):
        mock_create_user.return_value = mock.MagicMock(uid="new-user")

        profile = accounts.register_user(
            self.db, " new@example.com ", STRONG_PASSWORD, "New User", now_ms=NOW_MS
        )

        mock_create_user.assert_called_once_with(
            email="new@example.com", password=STRONG_PASSWORD, display_name="New User"
        )
        self.assertEqual(profile.uid, "new-user")
        self.assertEqual(profile.role, Role.USER)
        self.assertFalse(profile.email_verified)
        self.assertEqual(profile.created_at, NOW_MS)
        notifications = self.db.query_notifications("new-user")
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0]["title"], "Verify Your Email")

    def test_invalid_email(self, mock_create_user):
        with self.assertRaises(InvalidArgumentError) as cm:
            accounts.register_user(self.db, "not-an-email", STRONG_PASSWORD, "Name")
        self.assertEqual(str(cm.exception), accounts.INVALID_EMAIL_MESSAGE)
        mock_create_user.assert_not_called()

    def test_weak_password_reports_feedback(self, mock_create_user):
        with self.assertRaises(InvalidArgumentError) as cm:
            accounts.register_user(self.db, "a@example.com", "short", "Name")
        self.assertIn("at least 8 characters", str(cm.exception))
        mock_create_user.assert_not_called()

    def test_display_name_required(self, mock_create_user):
        with self.assertRaises(InvalidArgumentError):
            accounts.register_user(self.db, "a@example.com", STRONG_PASSWORD, "  ")
        mock_create_user.assert_not_called()

    def test_email_in_use(self, mock_create_user):
        mock_create_user.side_effect = auth.EmailAlreadyExistsError(
            "exists", None, None
        )

        with self.assertRaises(FailedPreconditionError) as cm:
            accounts.register_user(self.db, "a@example.com", STRONG_PASSWORD, "Name")
        self.assertEqual(str(cm.exception), accounts.EMAIL_IN_USE_MESSAGE)
        self.assertEqual(self.db.list_users(), [])


class RecordLoginTest(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    def test_existing_user(self):
        seed_user(self.db, "user-1", emailVerified=False)

        profile = accounts.record_login(
            self.db, "user-1", "user-1@example.com", "User", True, now_ms=NOW_MS
        )

        self.assertTrue(profile.email_verified)
        self.assertEqual(profile.last_login, NOW_MS)
        self.assertEqual(profile.plan, "premium")
        self.assertEqual(self.db.query_notifications("user-1"), [])

    def test_first_login_creates_document(self):
        profile = accounts.record_login(
            self.db, "user-2", "two@example.com", "Two", False, now_ms=NOW_MS
        )

        self.assertEqual(profile.role, Role.USER)
        self.assertEqual(profile.email, "two@example.com")
        self.assertEqual(profile.created_at, NOW_MS)
        self.assertEqual(len(self.db.query_notifications("user-2")), 1)


class ListUsersTest(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        seed_user(self.db, "admin", plan=None, role="admin", createdAt=1)
        seed_user(self.db, "user-1", createdAt=3)
        seed_user(self.db, "user-2", createdAt=2)

    def test_newest_first(self):
        users = accounts.list_users(self.db, "admin")
        self.assertEqual([u.uid for u in users], ["user-1", "user-2", "admin"])

    def test_requires_admin(self):
        with self.assertRaises(PermissionDeniedError):
            accounts.list_users(self.db, "user-1")


class UpdateUserRoleTest(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        seed_user(self.db, "root", plan=None, role="superadmin")
        seed_user(self.db, "admin", plan=None, role="admin")
        seed_user(self.db, "user-1")

    def test_promote_to_admin(self):
        profile = accounts.update_user_role(self.db, "root", "user-1", "admin")

        self.assertEqual(profile.role, Role.ADMIN)
        self.assertEqual(self.db.get_user("user-1")["role"], "admin")

    def test_only_superadmin_changes_roles(self):
        with self.assertRaises(PermissionDeniedError) as cm:
            accounts.update_user_role(self.db, "admin", "user-1", "admin")
        self.assertEqual(str(cm.exception), "Only super admins can change user roles")
        self.assertEqual(self.db.get_user("user-1")["role"], "user")

    def test_superadmin_cannot_be_granted(self):
        with self.assertRaises(PermissionDeniedError):
            accounts.update_user_role(self.db, "root", "admin", "superadmin")
        self.assertEqual(self.db.get_user("admin")["role"], "admin")

    def test_unknown_role(self):
        with self.assertRaises(InvalidArgumentError):
            accounts.update_user_role(self.db, "root", "user-1", "owner")

    def test_unknown_user(self):
        with self.assertRaises(NotFoundError):
            accounts.update_user_role(self.db, "root", "ghost", "admin")

    def test_demotion_deactivates_consultant_profile(self):
        self.db.set_consultant_profile(
            "admin", {"uid": "admin", "fullName": "Dr. Admin", "isActive": True}
        )

        accounts.update_user_role(self.db, "root", "admin", "user")

        profile = self.db.get_consultant_profile("admin")
        self.assertFalse(profile["isActive"])
        self.assertIn("updatedAt", profile)


if __name__ == "__main__":
    unittest.main()
