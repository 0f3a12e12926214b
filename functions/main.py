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

# Cloud functions for the consultation backend: payments, bookings, chat,
# notifications and scheduled housekeeping.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
import json
from contextlib import contextmanager
from typing import Optional

# Third-party library imports
from firebase_admin import auth, initialize_app
from firebase_admin.exceptions import FirebaseError
from firebase_functions import https_fn, logger, options, scheduler_fn
from firebase_functions.firestore_fn import (
    Change,
    DocumentSnapshot,
    Event,
    on_document_created,
    on_document_updated,
)
from google.api_core import exceptions

# Local application imports
from accounts import accounts, consultants
from admin import stats
from backend import config, dependencies
from bookings import appointments, rate_limits
from chat import chat
from models.gemini import ConsultationResponder, GeminiInvalidResponseException
from notifications import notifications
from payments import payments, phonepe
from shared.constants import ALLOWED_PROXY_ENDPOINTS
from shared.errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    ResourceExhaustedError,
    ServiceError,
    UnauthenticatedError,
)
from shared.firebase_constants import APPOINTMENTS_COLLECTION
from shared.json_utils import now_millis, to_response

initialize_app()

HTTP_CORS = options.CorsOptions(cors_origins="*", cors_methods=["get", "post"])

_ERROR_CODES = {
    InvalidArgumentError: https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
    UnauthenticatedError: https_fn.FunctionsErrorCode.UNAUTHENTICATED,
    NotFoundError: https_fn.FunctionsErrorCode.NOT_FOUND,
    PermissionDeniedError: https_fn.FunctionsErrorCode.PERMISSION_DENIED,
    FailedPreconditionError: https_fn.FunctionsErrorCode.FAILED_PRECONDITION,
    ResourceExhaustedError: https_fn.FunctionsErrorCode.RESOURCE_EXHAUSTED,
}


def _require_auth(req: https_fn.CallableRequest, message: str) -> str:
    if req.auth is None:
        raise https_fn.HttpsError(https_fn.FunctionsErrorCode.UNAUTHENTICATED, message)
    return req.auth.uid


def _error_code(error: ServiceError) -> https_fn.FunctionsErrorCode:
    for error_type in type(error).__mro__:
        if error_type in _ERROR_CODES:
            return _ERROR_CODES[error_type]
    return https_fn.FunctionsErrorCode.INTERNAL


@contextmanager
def _service_errors(action: str, internal_message: str):
    """
    Maps service errors onto callable error codes.

    Anything unexpected is logged and reported as INTERNAL with
    `internal_message` so no implementation details reach the client.
    """
    try:
        yield
    except https_fn.HttpsError:
        raise
    except ServiceError as e:
        raise https_fn.HttpsError(_error_code(e), str(e)) from e
    except Exception as e:
        logger.error(f"Error {action}: {e}")
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INTERNAL, internal_message
        ) from e


def _json_response(body: dict, status: int = 200) -> https_fn.Response:
    return https_fn.Response(
        json.dumps(body), status=status, mimetype="application/json"
    )


# Payments


@https_fn.on_call()
def create_payment_intent(req: https_fn.CallableRequest) -> dict:
    """
    Records a pending payment for a plan or an appointment top-up.

    Args:
        req (https_fn.CallableRequest): Data holds `amount`, `planId` and `planName`,
            plus an optional `purpose` and `appointmentCount` for top-ups.

    Returns:
        The payment id, order id, amount, currency and public gateway key.
    """
    uid = _require_auth(req, "You must be logged in to create a payment")
    settings = config.get_settings()
    with _service_errors(
        "creating payment intent", "An error occurred while processing your payment"
    ):
        return payments.create_payment_intent(
            dependencies.get_db_client(),
            uid,
            req.data.get("amount"),
            req.data.get("planId"),
            req.data.get("planName"),
            key_id=settings.razorpay_key_id,
            purpose=req.data.get("purpose"),
            appointment_count=req.data.get("appointmentCount", 1),
        )


@https_fn.on_call()
def verify_payment(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to verify a payment")
    settings = config.get_settings()
    with _service_errors(
        "verifying payment", "An error occurred while verifying your payment"
    ):
        return payments.verify_payment(
            dependencies.get_db_client(),
            uid,
            req.data.get("paymentId"),
            req.data.get("razorpayPaymentId"),
            req.data.get("razorpayOrderId"),
            req.data.get("razorpaySignature"),
            key_secret=settings.razorpay_key_secret,
        )


@https_fn.on_call()
def list_payments(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to view payments")
    with _service_errors(
        "listing payments", "An error occurred while loading your payments"
    ):
        items = payments.list_user_payments(dependencies.get_db_client(), uid)
        return {"payments": [to_response(p) for p in items]}


@https_fn.on_call()
def secure_api_proxy(req: https_fn.CallableRequest) -> dict:
    """Relays whitelisted API calls so keys never reach the browser."""
    uid = _require_auth(req, "You must be logged in to use this API")
    endpoint = req.data.get("endpoint")
    if not endpoint:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT, "Missing API endpoint"
        )
    if not any(endpoint.startswith(allowed) for allowed in ALLOWED_PROXY_ENDPOINTS):
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.PERMISSION_DENIED,
            "This API endpoint is not allowed",
        )

    logger.info(f"API call to {endpoint} by user {uid}")
    # Whitelisted calls are acknowledged without reaching an upstream service.
    return {
        "success": True,
        "data": {"message": "API call successful", "timestamp": now_millis()},
    }


@https_fn.on_request(cors=HTTP_CORS)
def initiate_phonepe_payment(req: https_fn.Request) -> https_fn.Response:
    """Starts a PhonePe checkout and returns the gateway redirect URL."""
    if req.method != "POST":
        return _json_response({"success": False, "error": "Method Not Allowed"}, 405)

    body = req.get_json(silent=True) or {}
    settings = config.get_settings()
    try:
        result = phonepe.initiate_checkout(
            dependencies.get_db_client(),
            dependencies.get_phonepe_client(),
            user_id=body.get("userId"),
            plan_id=body.get("planId"),
            plan_name=body.get("planName"),
            price=body.get("price"),
            origin=req.headers.get("Origin") or settings.default_origin,
            expire_after=settings.phonepe_order_expiry_seconds,
        )
    except InvalidArgumentError as e:
        return _json_response({"success": False, "error": str(e)}, 400)
    except phonepe.PhonePeError as e:
        logger.error(f"PhonePe payment initiation failed: {e} {e.details}")
        return _json_response(
            {
                "success": False,
                "error": "Payment initiation failed",
                "details": e.details,
            },
            500,
        )
    except Exception as e:
        logger.error(f"initiate_phonepe_payment error: {e}")
        return _json_response({"success": False, "error": "Internal server error"}, 500)
    return _json_response(result)


@https_fn.on_request(cors=HTTP_CORS)
def verify_payment_status(req: https_fn.Request) -> https_fn.Response:
    """Settles a PhonePe session after the redirect back to the web app."""
    session_id = req.args.get("session_id")
    client = dependencies.get_phonepe_client()
    try:
        result = phonepe.verify_checkout_status(
            dependencies.get_db_client(),
            session_id,
            client=client if client.configured else None,
        )
    except InvalidArgumentError as e:
        return _json_response({"success": False, "error": str(e)}, 400)
    except NotFoundError as e:
        return _json_response({"success": False, "error": str(e)}, 404)
    except Exception as e:
        logger.error(f"verify_payment_status error for {session_id}: {e}")
        return _json_response({"success": False, "error": "Internal server error"}, 500)
    return _json_response(result)


# Accounts


@https_fn.on_call()
def register_user(req: https_fn.CallableRequest) -> dict:
    """Creates an account; callable before the caller has signed in."""
    with _service_errors(
        "registering user", "An error occurred while creating your account"
    ):
        profile = accounts.register_user(
            dependencies.get_db_client(),
            req.data.get("email"),
            req.data.get("password"),
            req.data.get("displayName"),
        )
        return to_response(profile)


@https_fn.on_call()
def record_login(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in")
    claims = req.auth.token or {}
    with _service_errors("recording login", "An error occurred while signing in"):
        profile = accounts.record_login(
            dependencies.get_db_client(),
            uid,
            claims.get("email"),
            claims.get("name"),
            bool(claims.get("email_verified")),
        )
        return to_response(profile)


@https_fn.on_call()
def list_experts(req: https_fn.CallableRequest) -> dict:
    _require_auth(req, "You must be logged in to view experts")
    with _service_errors("listing experts", "An error occurred while loading experts"):
        items = consultants.list_experts(dependencies.get_db_client())
        return {"experts": [to_response(e) for e in items]}


@https_fn.on_call()
def get_consultant_profile(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to view consultant profiles")
    with _service_errors(
        "loading consultant profile", "An error occurred while loading the profile"
    ):
        profile = consultants.get_consultant_profile(
            dependencies.get_db_client(), req.data.get("uid") or uid
        )
        return {"profile": to_response(profile) if profile else None}


@https_fn.on_call()
def save_consultant_profile(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to edit consultant profiles")
    with _service_errors(
        "saving consultant profile", "An error occurred while saving the profile"
    ):
        profile = consultants.save_consultant_profile(
            dependencies.get_db_client(), uid, req.data.get("profile") or {}
        )
        return to_response(profile)


# Appointments


@https_fn.on_call()
def schedule_appointment(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to book an appointment")
    with _service_errors(
        "scheduling appointment", "An error occurred while booking your appointment"
    ):
        appointment = appointments.schedule_appointment(
            dependencies.get_db_client(),
            uid,
            req.data.get("expertId"),
            req.data.get("date"),
            req.data.get("time"),
            notes=req.data.get("notes"),
        )
        return to_response(appointment)


@https_fn.on_call()
def cancel_appointment(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to cancel an appointment")
    appointment_id = req.data.get("appointmentId")
    if not appointment_id:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Must specify 'appointmentId'.",
        )
    with _service_errors(
        "cancelling appointment", "An error occurred while cancelling the appointment"
    ):
        appointment = appointments.cancel_appointment(
            dependencies.get_db_client(),
            appointment_id,
            uid,
            reason=req.data.get("reason"),
        )
        return to_response(appointment)


@https_fn.on_call()
def complete_appointment(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to update an appointment")
    appointment_id = req.data.get("appointmentId")
    if not appointment_id:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Must specify 'appointmentId'.",
        )
    with _service_errors(
        "completing appointment", "An error occurred while updating the appointment"
    ):
        appointment = appointments.complete_appointment(
            dependencies.get_db_client(), appointment_id, uid
        )
        return to_response(appointment)


@https_fn.on_call()
def list_appointments(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to view appointments")
    with _service_errors(
        "listing appointments", "An error occurred while loading appointments"
    ):
        items = appointments.list_appointments(dependencies.get_db_client(), uid)
        return {"appointments": [to_response(a) for a in items]}


# Notifications


@https_fn.on_call()
def list_notifications(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to view notifications")
    with _service_errors(
        "listing notifications", "An error occurred while loading notifications"
    ):
        items = notifications.list_notifications(dependencies.get_db_client(), uid)
        return {
            "notifications": [to_response(n) for n in items],
            "unreadCount": notifications.unread_count(items),
        }


def _notification_id(req: https_fn.CallableRequest) -> str:
    notification_id = req.data.get("notificationId")
    if not notification_id:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Must specify 'notificationId'.",
        )
    return notification_id


@https_fn.on_call()
def mark_notification_read(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to update notifications")
    notification_id = _notification_id(req)
    with _service_errors(
        "marking notification read", "An error occurred while updating notifications"
    ):
        updated = notifications.mark_read(
            dependencies.get_db_client(), uid, notification_id
        )
        return {"updated": updated}


@https_fn.on_call()
def mark_all_notifications_read(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to update notifications")
    with _service_errors(
        "marking notifications read", "An error occurred while updating notifications"
    ):
        return {"ids": notifications.mark_all_read(dependencies.get_db_client(), uid)}


@https_fn.on_call()
def delete_notification(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to delete notifications")
    notification_id = _notification_id(req)
    with _service_errors(
        "deleting notification", "An error occurred while deleting the notification"
    ):
        notifications.delete_notification(
            dependencies.get_db_client(), uid, notification_id
        )
        return {"success": True}


@https_fn.on_call()
def clear_notifications(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to delete notifications")
    with _service_errors(
        "clearing notifications", "An error occurred while deleting notifications"
    ):
        count = notifications.clear_notifications(dependencies.get_db_client(), uid)
        return {"deleted": count}


# Chat


@https_fn.on_call()
def create_chat_session(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to chat")
    with _service_errors(
        "creating chat session", "An error occurred while starting the conversation"
    ):
        return to_response(chat.create_session(dependencies.get_db_client(), uid))


@https_fn.on_call(timeout_sec=120, memory=options.MemoryOption.MB_512)
def send_chat_message(req: https_fn.CallableRequest) -> dict:
    """
    Sends a message to the consultation assistant.

    Args:
        req (https_fn.CallableRequest): Data holds `message` and an optional `sessionId`.

    Returns:
        The session id, the assistant's reply and the session title.
    """
    uid = _require_auth(req, "You must be logged in to chat")
    responder = ConsultationResponder(api_key=config.get_settings().gemini_api_key)
    with _service_errors(
        "sending chat message", "An error occurred while sending your message"
    ):
        try:
            return chat.send_message(
                dependencies.get_db_client(),
                uid,
                req.data.get("sessionId"),
                req.data.get("message"),
                responder,
            )
        except exceptions.TooManyRequests as e:
            raise https_fn.HttpsError(
                https_fn.FunctionsErrorCode.RESOURCE_EXHAUSTED,
                f"Gemini quota exceeded: {e}",
            ) from e
        except GeminiInvalidResponseException as e:
            raise https_fn.HttpsError(
                https_fn.FunctionsErrorCode.UNAVAILABLE,
                "The assistant could not answer right now. Please try again.",
            ) from e


@https_fn.on_call()
def list_chat_sessions(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to chat")
    with _service_errors(
        "listing chat sessions", "An error occurred while loading conversations"
    ):
        sessions = chat.list_sessions(dependencies.get_db_client(), uid)
        return {"sessions": [to_response(s) for s in sessions]}


@https_fn.on_call()
def clear_chat_sessions(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to chat")
    with _service_errors(
        "clearing chat sessions", "An error occurred while deleting conversations"
    ):
        return {"deleted": chat.clear_sessions(dependencies.get_db_client(), uid)}


# Admin


@https_fn.on_call()
def get_admin_stats(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to view the dashboard")
    with _service_errors(
        "computing admin stats", "An error occurred while loading the dashboard"
    ):
        db = dependencies.get_db_client()
        stats.require_admin(db, uid)
        return to_response(stats.compute_admin_stats(db))


@https_fn.on_call()
def list_users(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to view users")
    with _service_errors("listing users", "An error occurred while loading users"):
        items = accounts.list_users(dependencies.get_db_client(), uid)
        return {"users": [to_response(u) for u in items]}


@https_fn.on_call()
def update_user_role(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to change roles")
    target = req.data.get("uid")
    role = req.data.get("role")
    if not target or not role:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Must specify 'uid' and 'role'.",
        )
    with _service_errors(
        "updating user role", "An error occurred while updating the role"
    ):
        profile = accounts.update_user_role(
            dependencies.get_db_client(), uid, target, role
        )
        return to_response(profile)


@https_fn.on_call()
def list_consultant_profiles(req: https_fn.CallableRequest) -> dict:
    uid = _require_auth(req, "You must be logged in to view consultant profiles")
    with _service_errors(
        "listing consultant profiles", "An error occurred while loading profiles"
    ):
        items = consultants.list_consultant_profiles(dependencies.get_db_client(), uid)
        return {"profiles": [to_response(p) for p in items]}


@https_fn.on_call()
def add_additional_appointments(req: https_fn.CallableRequest) -> dict:
    """Lets an admin grant pay-per-service appointments paid for offline."""
    uid = _require_auth(req, "You must be logged in to grant appointments")
    target = req.data.get("uid")
    if not target:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT, "Must specify 'uid'."
        )
    with _service_errors(
        "adding appointments", "An error occurred while adding appointments"
    ):
        db = dependencies.get_db_client()
        stats.require_admin(db, uid)
        return payments.add_additional_appointments(
            db, target, req.data.get("count", 1)
        )


# Firestore triggers


@on_document_created(document=APPOINTMENTS_COLLECTION + "/{appointmentId}")
def update_rate_limits(event: Event[Optional[DocumentSnapshot]]) -> None:
    """Counts a new booking against its user's rate limit."""
    if event.data is None:
        return
    user_id = (event.data.to_dict() or {}).get("userId")
    if not user_id:
        return
    count = rate_limits.record_action(
        dependencies.get_db_client(), user_id, rate_limits.APPOINTMENTS
    )
    logger.info(f"User {user_id} has booked {count} appointments this window")


@on_document_updated(document=APPOINTMENTS_COLLECTION + "/{appointmentId}")
def on_appointment_updated(event: Event[Change[DocumentSnapshot]]) -> None:
    """Turns admin cancellations into user notifications."""
    before = event.data.before.to_dict() if event.data.before else {}
    after = event.data.after.to_dict() if event.data.after else {}
    appointment_id = event.params["appointmentId"]
    try:
        notifications.propagate_cancellation(
            dependencies.get_db_client(), appointment_id, before or {}, after or {}
        )
    except ServiceError as e:
        logger.error(f"Could not notify about cancellation of {appointment_id}: {e}")


# Scheduled housekeeping


@scheduler_fn.on_schedule(schedule="every 60 minutes")
def reset_rate_limits(event: scheduler_fn.ScheduledEvent) -> None:
    count = rate_limits.reset_all(dependencies.get_db_client())
    logger.info(f"Reset rate limits for {count} users")


@scheduler_fn.on_schedule(schedule="every 24 hours")
def send_email_verification_reminders(event: scheduler_fn.ScheduledEvent) -> None:
    try:
        sent = notifications.send_email_verification_reminders(
            dependencies.get_db_client(), auth.list_users().iterate_all()
        )
    except (FirebaseError, exceptions.GoogleAPICallError) as e:
        logger.error(f"Error sending email verification reminders: {e}")
        return
    logger.info(f"Sent {sent} email verification reminders")


@scheduler_fn.on_schedule(schedule="every 60 minutes")
def send_appointment_reminders(event: scheduler_fn.ScheduledEvent) -> None:
    sent = notifications.send_appointment_reminders(dependencies.get_db_client())
    logger.info(f"Sent {sent} appointment reminders")


@scheduler_fn.on_schedule(schedule="every 24 hours")
def expire_subscriptions(event: scheduler_fn.ScheduledEvent) -> None:
    expired = payments.expire_subscriptions(dependencies.get_db_client())
    logger.info(f"Expired {len(expired)} subscriptions")
