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
Per-user action counters stored in the `rateLimits` collection.

Counters are incremented read-then-write and zeroed by the hourly
housekeeping job, so a ceiling applies to actions within one reset window.
"""

import logging

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from backend.config import get_settings
from backend.db import DbClient
from shared.errors import InvalidArgumentError, ResourceExhaustedError

logger = logging.getLogger(__name__)

APPOINTMENTS = "appointments"
CHAT_SESSIONS = "chatSessions"
COUNTERS = (APPOINTMENTS, CHAT_SESSIONS)


def _check_counter(counter: str):
    if counter not in COUNTERS:
        raise InvalidArgumentError(f"Unknown rate limit counter: {counter}")


def get_count(db: DbClient, user_id: str, counter: str) -> int:
    _check_counter(counter)
    doc = db.get_rate_limit(user_id)
    if not doc:
        return 0
    return int((doc.get("counts") or {}).get(counter, 0))


def record_action(db: DbClient, user_id: str, counter: str) -> int:
    """Increments `counter` for the user and returns the new value."""
    _check_counter(counter)
    doc = db.get_rate_limit(user_id)
    if not doc:
        db.set_rate_limit(
            user_id,
            {
                "userId": user_id,
                "counts": {counter: 1},
                "lastReset": SERVER_TIMESTAMP,
            },
        )
        return 1

    counts = dict(doc.get("counts") or {})
    counts[counter] = int(counts.get(counter, 0)) + 1
    db.update_rate_limit(user_id, {"counts": counts, "updatedAt": SERVER_TIMESTAMP})
    return counts[counter]


def limit_for(counter: str) -> int:
    settings = get_settings()
    if counter == APPOINTMENTS:
        return settings.max_appointments_per_window
    return settings.max_chat_sessions_per_window


def check_limit(db: DbClient, user_id: str, counter: str) -> None:
    """Raises ResourceExhaustedError once the user has hit the ceiling."""
    limit = limit_for(counter)
    count = get_count(db, user_id, counter)
    if count >= limit:
        logger.warning(
            "Rate limit reached for %s: %s=%d (limit %d)", user_id, counter, count, limit
        )
        raise ResourceExhaustedError(
            "Too many requests. Please wait a while before trying again."
        )


def reset_all(db: DbClient) -> int:
    """Zeroes every user's counters, returning the number of documents reset."""
    return db.reset_rate_limits(
        {
            "counts": {counter: 0 for counter in COUNTERS},
            "lastReset": SERVER_TIMESTAMP,
        }
    )
