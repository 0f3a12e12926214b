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
Appointment lifecycle: scheduling, cancellation, completion and listing.

Status moves from `scheduled` to either `completed` or `cancelled`; both are
terminal. Appointment quota lives on the user document (see `shared.plans`).
"""

import logging
import random
import string
from datetime import datetime, timezone
from typing import Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from backend.db import DbClient
from bookings import rate_limits
from shared.constants import (
    APPOINTMENT_RESET_DAYS,
    DAY_MS,
    MAX_CANCELLATION_REASON_LENGTH,
    MAX_NOTES_LENGTH,
    MEETING_LINK_PREFIX,
    REMINDER_WINDOW_MS,
)
from shared.errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from shared.json_utils import from_document, now_millis
from shared.plans import (
    PREMIUM,
    base_appointments,
    can_access_feature,
    can_book_more_appointments,
    upgrade_message,
)
from shared.types import (
    Appointment,
    AppointmentStatus,
    CancelledBy,
    Expert,
    Role,
    UserProfile,
)

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = (
    "This time slot is no longer available. Please select another time."
)
NO_APPOINTMENTS_LEFT_MESSAGE = (
    "You have no appointments remaining. Purchase an additional appointment "
    "to book more."
)
USER_CANCELLATION_REASON = "Cancelled by user"

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"


def load_user(db: DbClient, uid: str) -> UserProfile:
    data = db.get_user(uid)
    if not data:
        raise NotFoundError("User not found")
    return from_document(UserProfile, data, uid)


def load_appointment(db: DbClient, appointment_id: str) -> Appointment:
    data = db.get_appointment(appointment_id)
    if not data:
        raise NotFoundError("Appointment not found")
    return from_document(Appointment, data, appointment_id)


def _meeting_link() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=5))
    return MEETING_LINK_PREFIX + suffix


def slot_start_millis(date: str, time: str) -> Optional[int]:
    """Start of an appointment slot in epoch millis (UTC), None if unparsable."""
    try:
        start = datetime.strptime(f"{date} {time}", f"{DATE_FORMAT} {TIME_FORMAT}")
    except (TypeError, ValueError):
        return None
    return int(start.replace(tzinfo=timezone.utc).timestamp() * 1000)


def _validate_slot(date: str, time: str):
    if not date or not time:
        raise InvalidArgumentError("Date and time are required")
    try:
        datetime.strptime(date, DATE_FORMAT)
    except ValueError as e:
        raise InvalidArgumentError("Date must use the YYYY-MM-DD format") from e
    try:
        datetime.strptime(time, TIME_FORMAT)
    except ValueError as e:
        raise InvalidArgumentError("Time must use the HH:MM format") from e


def consume_appointment_quota(
    db: DbClient, user: UserProfile, now_ms: Optional[int] = None
) -> dict:
    """
    Updates the user's appointment counters for one new booking.

    Premium plans roll their monthly allowance over once the reset date has
    passed and keep `appointmentsTotal` at base plus additional; their usage
    is counted when an appointment completes. Other plans spend an
    additional appointment first and always shrink the total.

    Returns:
        The fields written to the user document.
    """
    now_ms = now_ms if now_ms is not None else now_millis()
    additional = user.additional_appointments or 0
    updates = {}

    if user.plan == PREMIUM:
        if now_ms > (user.appointments_reset_date or 0):
            updates["appointmentsUsed"] = 0
            updates["appointmentsResetDate"] = now_ms + APPOINTMENT_RESET_DAYS * DAY_MS
        expected_total = base_appointments(user.plan) + additional
        if user.appointments_total != expected_total:
            updates["appointmentsTotal"] = expected_total
    else:
        if additional > 0:
            updates["additionalAppointments"] = additional - 1
        updates["appointmentsTotal"] = max(0, (user.appointments_total or 0) - 1)

    if updates:
        db.update_user(user.uid, updates)
        logger.info("Appointment quota updated for %s: %s", user.uid, updates)
    return updates


def schedule_appointment(
    db: DbClient,
    user_id: str,
    expert_id: str,
    date: str,
    time: str,
    notes: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> Appointment:
    """Books an open expert slot for the user."""
    if not expert_id:
        raise InvalidArgumentError("Expert is required")
    _validate_slot(date, time)
    notes = (notes or "").strip()
    if len(notes) > MAX_NOTES_LENGTH:
        raise InvalidArgumentError(
            f"Notes must be at most {MAX_NOTES_LENGTH} characters"
        )

    user = load_user(db, user_id)
    if not can_access_feature("can_book_appointments", user, now_ms):
        raise FailedPreconditionError(upgrade_message("can_book_appointments", user))
    if not can_book_more_appointments(user, now_ms):
        raise FailedPreconditionError(NO_APPOINTMENTS_LEFT_MESSAGE)
    rate_limits.check_limit(db, user_id, rate_limits.APPOINTMENTS)

    expert_data = db.get_expert(expert_id)
    if not expert_data:
        raise NotFoundError("Expert not found")
    expert = from_document(Expert, expert_data, expert_id)

    slot_open = expert.availability.get(date, {}).get(time, True)
    taken = db.query_appointments(
        expert_id=expert_id,
        date=date,
        time=time,
        status=AppointmentStatus.SCHEDULED.value,
    )
    if not slot_open or taken:
        raise FailedPreconditionError(SLOT_TAKEN_MESSAGE)

    appointment_id = db.add_appointment(
        {
            "userId": user_id,
            "expertId": expert_id,
            "expertName": expert.name,
            "expertSpecialization": expert.specialization,
            "displayName": user.display_name or user.email or "",
            "date": date,
            "time": time,
            "status": AppointmentStatus.SCHEDULED.value,
            "meetingLink": _meeting_link(),
            "notes": notes,
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
    )
    db.set_expert_slot(expert_id, date, time, False)
    consume_appointment_quota(db, user, now_ms)

    logger.info(
        "Scheduled appointment %s for %s with %s at %s %s",
        appointment_id,
        user_id,
        expert_id,
        date,
        time,
    )
    return load_appointment(db, appointment_id)


def cancel_appointment(
    db: DbClient,
    appointment_id: str,
    actor_id: str,
    reason: Optional[str] = None,
) -> Appointment:
    """
    Cancels a scheduled appointment.

    The owning user cancels as `user`; the expert or an admin cancels as
    `admin` and must give a reason.
    """
    appointment = load_appointment(db, appointment_id)
    actor_data = db.get_user(actor_id)
    actor = from_document(UserProfile, actor_data, actor_id) if actor_data else None

    if actor_id == appointment.user_id:
        cancelled_by = CancelledBy.USER
    elif actor_id == appointment.expert_id or (actor and actor.is_admin):
        cancelled_by = CancelledBy.ADMIN
    else:
        raise PermissionDeniedError("You are not allowed to cancel this appointment")

    if appointment.status != AppointmentStatus.SCHEDULED:
        raise FailedPreconditionError(
            f"Only scheduled appointments can be cancelled (status: {appointment.status})"
        )

    reason = (reason or "").strip()
    if cancelled_by == CancelledBy.ADMIN and not reason:
        raise InvalidArgumentError("A cancellation reason is required")
    if len(reason) > MAX_CANCELLATION_REASON_LENGTH:
        raise InvalidArgumentError(
            f"Reason must be at most {MAX_CANCELLATION_REASON_LENGTH} characters"
        )

    db.update_appointment(
        appointment_id,
        {
            "status": AppointmentStatus.CANCELLED.value,
            "cancellationReason": reason or USER_CANCELLATION_REASON,
            "cancelledBy": cancelled_by.value,
            "cancelledAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        },
    )

    try:
        db.set_expert_slot(appointment.expert_id, appointment.date, appointment.time, True)
    except NotFoundError:
        logger.warning(
            "Expert %s missing, slot not reopened for appointment %s",
            appointment.expert_id,
            appointment_id,
        )

    logger.info(
        "Appointment %s cancelled by %s (%s)", appointment_id, actor_id, cancelled_by
    )
    return load_appointment(db, appointment_id)


def complete_appointment(
    db: DbClient, appointment_id: str, actor_id: str
) -> Appointment:
    """Marks a scheduled appointment completed and counts it against the user."""
    appointment = load_appointment(db, appointment_id)
    actor_data = db.get_user(actor_id)
    actor = from_document(UserProfile, actor_data, actor_id) if actor_data else None
    if actor_id != appointment.expert_id and not (actor and actor.is_admin):
        raise PermissionDeniedError("Only the expert or an admin can complete appointments")
    if appointment.status != AppointmentStatus.SCHEDULED:
        raise FailedPreconditionError(
            f"Only scheduled appointments can be completed (status: {appointment.status})"
        )

    db.update_appointment(
        appointment_id,
        {
            "status": AppointmentStatus.COMPLETED.value,
            "completedAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        },
    )

    user_data = db.get_user(appointment.user_id)
    if user_data:
        used = int(user_data.get("appointmentsUsed") or 0)
        db.update_user(appointment.user_id, {"appointmentsUsed": used + 1})
    else:
        logger.warning(
            "User %s missing while completing appointment %s",
            appointment.user_id,
            appointment_id,
        )
    return load_appointment(db, appointment_id)


def appointment_scope(viewer: UserProfile) -> dict:
    """Query filters for the appointments a viewer may see."""
    if viewer.role == Role.SUPERADMIN:
        return {}
    if viewer.role == Role.ADMIN:
        return {"expert_id": viewer.uid}
    return {"user_id": viewer.uid}


def list_appointments(db: DbClient, viewer_id: str) -> list[Appointment]:
    viewer = load_user(db, viewer_id)
    return [
        from_document(Appointment, doc, doc["id"])
        for doc in db.query_appointments(**appointment_scope(viewer))
    ]


def appointments_due_for_reminder(
    db: DbClient, now_ms: Optional[int] = None
) -> list[Appointment]:
    """Scheduled appointments starting within the reminder window."""
    now_ms = now_ms if now_ms is not None else now_millis()
    due = []
    for doc in db.query_appointments(status=AppointmentStatus.SCHEDULED.value):
        if doc.get("reminderSent"):
            continue
        start = slot_start_millis(doc.get("date"), doc.get("time"))
        if start is None:
            logger.warning("Appointment %s has an unparsable slot", doc["id"])
            continue
        if now_ms <= start <= now_ms + REMINDER_WINDOW_MS:
            due.append(from_document(Appointment, doc, doc["id"]))
    return due
