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

"""Fixtures shared by the Cloud Functions and service tests."""

from types import SimpleNamespace
from typing import Optional

from backend.db import InMemoryDbClient
from shared.constants import DAY_MS
from shared.plans import PREMIUM, base_appointments, token_limit

NOW_MS = 1_767_225_600_000  # 2026-01-01T00:00:00Z


def callable_request(data: dict, uid: Optional[str] = "user-1"):
    """Stands in for an `https_fn.CallableRequest` with the given auth."""
    auth = SimpleNamespace(uid=uid, token={}) if uid else None
    return SimpleNamespace(data=data, auth=auth, raw_request=None)


def seed_user(
    db: InMemoryDbClient,
    uid: str = "user-1",
    plan: Optional[str] = PREMIUM,
    now_ms: int = NOW_MS,
    **fields,
) -> dict:
    doc = {
        "email": f"{uid}@example.com",
        "displayName": f"User {uid}",
        "role": "user",
        "appointmentsUsed": 0,
        "additionalAppointments": 0,
    }
    if plan:
        doc.update(
            {
                "plan": plan,
                "planName": plan.title(),
                "planUpdatedAt": now_ms - DAY_MS,
                "planPurchasedAt": now_ms - DAY_MS,
                "planExpiryDate": now_ms + 29 * DAY_MS,
                "hadSubscriptionBefore": True,
                "appointmentsTotal": base_appointments(plan),
                "appointmentsResetDate": now_ms + 29 * DAY_MS,
                "tokenLimit": token_limit(plan),
                "tokensUsed": 0,
            }
        )
    doc.update(fields)
    db.set_user(uid, doc, merge=False)
    return doc


def seed_expert(
    db: InMemoryDbClient, expert_id: str = "expert-1", availability=None
) -> dict:
    doc = {
        "name": "Dr. Sarah Johnson",
        "specialization": "Cardiology",
        "experience": 12,
        "rating": 4.8,
        "availability": availability
        if availability is not None
        else {"2026-01-02": {"10:00": True, "14:00": True}},
    }
    db.set_expert(expert_id, doc)
    return doc


def seed_appointment(
    db: InMemoryDbClient,
    user_id: str = "user-1",
    expert_id: str = "expert-1",
    status: str = "scheduled",
    date: str = "2026-01-02",
    time: str = "10:00",
    **fields,
) -> str:
    doc = {
        "userId": user_id,
        "expertId": expert_id,
        "expertName": "Dr. Sarah Johnson",
        "expertSpecialization": "Cardiology",
        "displayName": f"User {user_id}",
        "date": date,
        "time": time,
        "status": status,
        "meetingLink": "https://meet.google.com/abc-test1",
        "notes": "",
    }
    doc.update(fields)
    return db.add_appointment(doc)
