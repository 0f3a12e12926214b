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
Account registration, login bookkeeping and role management.

Every account has a `users` document keyed by its Firebase Auth uid. New
accounts start with the `user` role; only a superadmin may change roles and
the superadmin role itself is never granted to somebody else.
"""

import logging
from typing import Optional

from firebase_admin import auth

from admin.stats import require_admin
from backend.db import DbClient, newest_first
from notifications import notifications
from shared.errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from shared.json_utils import from_document, now_millis
from shared.types import Role, UserProfile
from shared.validation import (
    is_strong_password,
    is_valid_email,
    password_strength_feedback,
)

logger = logging.getLogger(__name__)

INVALID_EMAIL_MESSAGE = "The email address is not valid. Please check and try again."
EMAIL_IN_USE_MESSAGE = (
    "This email is already registered. Please use a different email or try "
    "logging in."
)


def _load_user(db: DbClient, uid: str) -> UserProfile:
    data = db.get_user(uid)
    if not data:
        raise NotFoundError("User not found")
    return from_document(UserProfile, data, uid)


def _new_profile(
    uid: str,
    email: Optional[str],
    display_name: Optional[str],
    email_verified: bool,
    now_ms: int,
) -> dict:
    return {
        "uid": uid,
        "email": email,
        "displayName": display_name,
        "role": Role.USER.value,
        "createdAt": now_ms,
        "emailVerified": email_verified,
        "lastLogin": now_ms,
    }


def register_user(
    db: DbClient,
    email: str,
    password: str,
    display_name: str,
    now_ms: Optional[int] = None,
) -> UserProfile:
    """
    Creates a Firebase Auth account together with its user document.

    The email is unverified at first, so the new user also gets a
    notification asking them to verify it.
    """
    email = (email or "").strip()
    display_name = (display_name or "").strip()
    if not is_valid_email(email):
        raise InvalidArgumentError(INVALID_EMAIL_MESSAGE)
    if not is_strong_password(password):
        raise InvalidArgumentError(password_strength_feedback(password))
    if not display_name:
        raise InvalidArgumentError("Display name is required")

    try:
        record = auth.create_user(
            email=email, password=password, display_name=display_name
        )
    except auth.EmailAlreadyExistsError as e:
        raise FailedPreconditionError(EMAIL_IN_USE_MESSAGE) from e

    now_ms = now_ms if now_ms is not None else now_millis()
    db.set_user(
        record.uid,
        _new_profile(record.uid, email, display_name, False, now_ms),
        merge=False,
    )
    notifications.notify_email_verification(db, record.uid)
    logger.info("Registered user %s", record.uid)
    return _load_user(db, record.uid)


def record_login(
    db: DbClient,
    uid: str,
    email: Optional[str],
    display_name: Optional[str],
    email_verified: bool,
    now_ms: Optional[int] = None,
) -> UserProfile:
    """
    Updates the login time and verification flag, creating the user
    document for accounts that signed in without registering here.
    """
    now_ms = now_ms if now_ms is not None else now_millis()
    if db.get_user(uid):
        db.update_user(uid, {"lastLogin": now_ms, "emailVerified": email_verified})
    else:
        db.set_user(
            uid,
            _new_profile(uid, email, display_name, email_verified, now_ms),
            merge=False,
        )
        logger.info("Created user document for %s on first login", uid)
    if not email_verified:
        notifications.notify_email_verification(db, uid)
    return _load_user(db, uid)


def list_users(db: DbClient, viewer_id: str) -> list[UserProfile]:
    require_admin(db, viewer_id)
    return [
        from_document(UserProfile, doc, doc["id"])
        for doc in newest_first(db.list_users())
    ]


def update_user_role(
    db: DbClient, actor_id: str, uid: str, role: str
) -> UserProfile:
    """
    Changes a user's role on behalf of a superadmin.

    Demoting somebody to `user` also hides their consultant profile.
    """
    actor = _load_user(db, actor_id)
    if actor.role != Role.SUPERADMIN:
        raise PermissionDeniedError("Only super admins can change user roles")
    try:
        role = Role(role)
    except ValueError as e:
        raise InvalidArgumentError(f"Unknown role: {role}") from e
    if role == Role.SUPERADMIN and uid != actor_id:
        raise PermissionDeniedError(
            "Superadmin role can only be set directly in Firebase"
        )
    _load_user(db, uid)

    db.update_user(uid, {"role": role.value})
    if role == Role.USER and db.get_consultant_profile(uid):
        db.update_consultant_profile(
            uid, {"isActive": False, "updatedAt": now_millis()}
        )
    logger.info("User %s set role of %s to %s", actor_id, uid, role.value)
    return _load_user(db, uid)
