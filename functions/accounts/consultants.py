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

"""Consultant profiles and the expert catalogue shown when booking."""

import logging
from typing import Optional

from admin.stats import require_admin
from backend.db import DbClient
from shared.errors import InvalidArgumentError, NotFoundError, PermissionDeniedError
from shared.json_utils import from_document, now_millis
from shared.types import ConsultantProfile, Expert, Role

logger = logging.getLogger(__name__)

REQUIRED_PROFILE_FIELDS = ("fullName", "title")


def list_experts(db: DbClient) -> list[Expert]:
    """Experts that can be booked, by name."""
    experts = [from_document(Expert, doc, doc["id"]) for doc in db.list_experts()]
    return sorted(experts, key=lambda expert: expert.name.lower())


def get_consultant_profile(db: DbClient, uid: str) -> Optional[ConsultantProfile]:
    data = db.get_consultant_profile(uid)
    return from_document(ConsultantProfile, data, uid) if data else None


def _years_of_experience(value) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgumentError("Years of experience must be a whole number")
    return value


def save_consultant_profile(
    db: DbClient, actor_id: str, profile: dict, now_ms: Optional[int] = None
) -> ConsultantProfile:
    """
    Creates or replaces a consultant profile.

    Admins edit their own profile; a superadmin may edit anyone's. The
    original creation time survives updates.
    """
    actor = require_admin(db, actor_id)
    uid = profile.get("uid") or actor_id
    if uid != actor_id and actor.role != Role.SUPERADMIN:
        raise PermissionDeniedError("You can only edit your own consultant profile")
    if uid != actor_id and not db.get_user(uid):
        raise NotFoundError("User not found")

    missing = [
        name
        for name in REQUIRED_PROFILE_FIELDS
        if not str(profile.get(name) or "").strip()
    ]
    if missing:
        raise InvalidArgumentError(f"Missing required fields: {', '.join(missing)}")
    specializations = profile.get("specializations") or []
    if not isinstance(specializations, list) or not all(
        isinstance(item, str) for item in specializations
    ):
        raise InvalidArgumentError("Specializations must be a list of names")
    availability = profile.get("availability") or {}
    if not isinstance(availability, dict):
        raise InvalidArgumentError("Availability must be an object")

    now_ms = now_ms if now_ms is not None else now_millis()
    existing = db.get_consultant_profile(uid) or {}
    data = {
        "uid": uid,
        "fullName": profile["fullName"].strip(),
        "title": profile["title"].strip(),
        "phoneNumber": profile.get("phoneNumber") or "",
        "specializations": specializations,
        "yearsOfExperience": _years_of_experience(profile.get("yearsOfExperience")),
        "bio": profile.get("bio") or "",
        "availability": availability,
        "isActive": bool(profile.get("isActive", True)),
        "createdAt": existing.get("createdAt") or now_ms,
        "updatedAt": now_ms,
    }
    db.set_consultant_profile(uid, data)
    logger.info("Saved consultant profile %s (by %s)", uid, actor_id)
    return from_document(ConsultantProfile, data, uid)


def list_consultant_profiles(db: DbClient, viewer_id: str) -> list[ConsultantProfile]:
    viewer = require_admin(db, viewer_id)
    if viewer.role != Role.SUPERADMIN:
        raise PermissionDeniedError(
            "Only super admins can view all consultant profiles"
        )
    profiles = [
        from_document(ConsultantProfile, doc, doc["id"])
        for doc in db.list_consultant_profiles()
    ]
    return sorted(profiles, key=lambda profile: profile.full_name.lower())
