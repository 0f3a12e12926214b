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
Notification documents: creation, listing, read state and the messages the
backend derives from appointment, payment and account events.
"""

import logging
from dataclasses import asdict
from typing import Iterable, Optional, Union

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from backend.db import DbClient
from bookings.appointments import appointments_due_for_reminder
from shared.constants import APPOINTMENT_HISTORY_URL, NOTIFICATION_PAGE_SIZE
from shared.errors import InvalidArgumentError, NotFoundError, PermissionDeniedError
from shared.json_utils import from_document
from shared.types import (
    Appointment,
    AppointmentStatus,
    CancelledBy,
    Notification,
    NotificationAction,
    NotificationType,
)

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "Client"


def _action_document(
    action: Union[NotificationAction, dict, None]
) -> Optional[dict]:
    if action is None:
        return None
    if isinstance(action, NotificationAction):
        action = asdict(action)
    if not action.get("type") or not action.get("label"):
        raise InvalidArgumentError("Notification actions need a type and a label")
    return {k: v for k, v in action.items() if v is not None}


def create_notification(
    db: DbClient,
    user_id: str,
    title: str,
    message: str,
    type: Union[NotificationType, str],
    related_id: Optional[str] = None,
    action: Union[NotificationAction, dict, None] = None,
) -> Notification:
    if not user_id or not title or not message or not type:
        raise InvalidArgumentError("Missing required fields for notification")
    try:
        notification_type = NotificationType(type)
    except ValueError as e:
        raise InvalidArgumentError(f"Unknown notification type: {type}") from e

    data = {
        "userId": user_id,
        "title": title,
        "message": message,
        "type": notification_type.value,
        "read": False,
        "createdAt": SERVER_TIMESTAMP,
    }
    if related_id:
        data["relatedId"] = related_id
    action_doc = _action_document(action)
    if action_doc:
        data["action"] = action_doc

    notification_id = db.add_notification(data)
    logger.info(
        "Created %s notification %s for %s", notification_type, notification_id, user_id
    )
    return from_document(Notification, db.get_notification(notification_id), notification_id)


def list_notifications(
    db: DbClient, user_id: str, limit: int = NOTIFICATION_PAGE_SIZE
) -> list[Notification]:
    """The user's most recent notifications, newest first."""
    return [
        from_document(Notification, doc, doc["id"])
        for doc in db.query_notifications(user_id, limit=limit)
    ]


def unread_count(notifications: list[Notification]) -> int:
    return sum(1 for n in notifications if not n.read)


def _load_owned(db: DbClient, user_id: str, notification_id: str) -> dict:
    doc = db.get_notification(notification_id)
    if not doc:
        raise NotFoundError("Notification not found")
    if doc.get("userId") != user_id:
        raise PermissionDeniedError("You cannot modify this notification")
    return doc


def mark_read(db: DbClient, user_id: str, notification_id: str) -> bool:
    """Marks one notification read. Returns False if it already was."""
    doc = _load_owned(db, user_id, notification_id)
    if doc.get("read"):
        return False
    db.update_notification(notification_id, {"read": True})
    return True


def mark_all_read(db: DbClient, user_id: str) -> list[str]:
    """Marks every unread notification read and returns their ids."""
    updated = []
    for doc in db.query_notifications(user_id):
        if not doc.get("read"):
            db.update_notification(doc["id"], {"read": True})
            updated.append(doc["id"])
    return updated


def delete_notification(db: DbClient, user_id: str, notification_id: str) -> None:
    _load_owned(db, user_id, notification_id)
    db.delete_notification(notification_id)


def clear_notifications(db: DbClient, user_id: str) -> int:
    docs = db.query_notifications(user_id)
    for doc in docs:
        db.delete_notification(doc["id"])
    logger.info("Cleared %d notifications for %s", len(docs), user_id)
    return len(docs)


def appointment_cancelled_message(
    appointment: Appointment, display_name: Optional[str] = None
) -> str:
    name = display_name or DEFAULT_DISPLAY_NAME
    reason = appointment.cancellation_reason or "No reason provided"
    return (
        f"{name}, your appointment with {appointment.expert_name} on "
        f"{appointment.date} at {appointment.time} has been cancelled.\n\n"
        f"Reason: {reason}"
    )


def notify_appointment_cancelled(
    db: DbClient, appointment: Appointment, display_name: Optional[str] = None
) -> Notification:
    return create_notification(
        db,
        user_id=appointment.user_id,
        title="Appointment Cancelled",
        message=appointment_cancelled_message(appointment, display_name),
        type=NotificationType.APPOINTMENT,
        related_id=appointment.id,
        action=NotificationAction(
            type="link", label="View Details", url=APPOINTMENT_HISTORY_URL
        ),
    )


def notify_appointment_reminder(db: DbClient, appointment: Appointment) -> Notification:
    return create_notification(
        db,
        user_id=appointment.user_id,
        title="Upcoming Appointment",
        message=(
            f"Reminder: your appointment with {appointment.expert_name} is on "
            f"{appointment.date} at {appointment.time}."
        ),
        type=NotificationType.APPOINTMENT,
        related_id=appointment.id,
        action=NotificationAction(
            type="link", label="Join Meeting", url=appointment.meeting_link
        )
        if appointment.meeting_link
        else None,
    )


def notify_payment_success(
    db: DbClient, user_id: str, payment_id: str, plan_name: Optional[str]
) -> Notification:
    return create_notification(
        db,
        user_id=user_id,
        title="Payment Successful",
        message=f"Your payment for {plan_name} plan was successful.",
        type=NotificationType.PAYMENT,
        related_id=payment_id,
    )


def notify_email_verification(db: DbClient, user_id: str) -> Notification:
    return create_notification(
        db,
        user_id=user_id,
        title="Verify Your Email",
        message=(
            "Please verify your email address to ensure the security of your account."
        ),
        type=NotificationType.SECURITY,
    )


def propagate_cancellation(
    db: DbClient, appointment_id: str, before: dict, after: dict
) -> Optional[Notification]:
    """
    Notifies the user when an admin cancels their appointment.

    Runs on every appointment update; only the transition into `cancelled`
    by an admin produces a notification.
    """
    if after.get("status") != AppointmentStatus.CANCELLED.value:
        return None
    if before.get("status") == AppointmentStatus.CANCELLED.value:
        return None
    if after.get("cancelledBy") != CancelledBy.ADMIN.value:
        return None

    appointment = from_document(Appointment, after, appointment_id)
    user = db.get_user(appointment.user_id) or {}
    logger.info(
        "Notifying %s about admin cancellation of %s", appointment.user_id, appointment_id
    )
    return notify_appointment_cancelled(db, appointment, user.get("displayName"))


def send_email_verification_reminders(db: DbClient, users: Iterable) -> int:
    """
    Adds a verification reminder for every unverified account.

    Args:
        users: Auth user records with `uid`, `email` and `email_verified`.

    Returns:
        The number of reminders created.
    """
    sent = 0
    for user in users:
        if user.email_verified:
            continue
        logger.info("Sending email verification reminder to %s", user.email)
        notify_email_verification(db, user.uid)
        sent += 1
    return sent


def send_appointment_reminders(db: DbClient, now_ms: Optional[int] = None) -> int:
    """Reminds users of appointments starting within the next day, once each."""
    sent = 0
    for appointment in appointments_due_for_reminder(db, now_ms):
        notify_appointment_reminder(db, appointment)
        db.update_appointment(appointment.id, {"reminderSent": True})
        sent += 1
    return sent
