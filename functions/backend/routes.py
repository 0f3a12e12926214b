"""
HTTP routes for the consultation backend API.

Every route except the health check and registration acts on behalf of the
user identified by the Firebase ID token in the `Authorization` header.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from accounts import accounts, consultants
from admin import stats
from backend.config import Settings, get_settings
from backend.db import DbClient
from backend.dependencies import get_current_uid, get_db_client, get_responder
from backend.schemas import (
    AddAppointmentsRequest,
    AddAppointmentsResponse,
    AdminStatsResponse,
    AppointmentListResponse,
    AppointmentResponse,
    CancelAppointmentRequest,
    ChatMessageRequest,
    ChatMessageResponse,
    ChatSessionListResponse,
    ChatSessionResponse,
    ConsultantProfileListResponse,
    ConsultantProfileRequest,
    ConsultantProfileResponse,
    DeletedResponse,
    ExpertListResponse,
    HealthResponse,
    MarkAllReadResponse,
    MarkReadResponse,
    NotificationListResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentListResponse,
    RegisterRequest,
    ScheduleAppointmentRequest,
    UpdateRoleRequest,
    UserListResponse,
    UserResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from bookings import appointments
from chat import chat
from chat.chat import Responder
from models.gemini import GeminiInvalidResponseException
from notifications import notifications
from payments import payments
from shared.constants import NOTIFICATION_PAGE_SIZE
from shared.errors import NotFoundError
from shared.json_utils import to_response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


# Accounts and experts


@router.post("/accounts", response_model=UserResponse, status_code=201)
def register_user(payload: RegisterRequest, db: DbClient = Depends(get_db_client)):
    profile = accounts.register_user(
        db, payload.email, payload.password, payload.display_name
    )
    return UserResponse(user=to_response(profile))


@router.get("/experts", response_model=ExpertListResponse)
def list_experts(
    uid: str = Depends(get_current_uid), db: DbClient = Depends(get_db_client)
):
    return ExpertListResponse(
        experts=[to_response(e) for e in consultants.list_experts(db)]
    )


@router.get("/consultants", response_model=ConsultantProfileListResponse)
def list_consultant_profiles(
    uid: str = Depends(get_current_uid), db: DbClient = Depends(get_db_client)
):
    profiles = consultants.list_consultant_profiles(db, uid)
    return ConsultantProfileListResponse(profiles=[to_response(p) for p in profiles])


@router.get("/consultants/{consultant_uid}", response_model=ConsultantProfileResponse)
def get_consultant_profile(
    consultant_uid: str,
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
):
    profile = consultants.get_consultant_profile(db, consultant_uid)
    if profile is None:
        raise NotFoundError("Consultant profile not found")
    return ConsultantProfileResponse(profile=to_response(profile))


@router.put("/consultants/{consultant_uid}", response_model=ConsultantProfileResponse)
def save_consultant_profile(
    consultant_uid: str,
    payload: ConsultantProfileRequest,
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
):
    profile = consultants.save_consultant_profile(
        db,
        uid,
        {
            "uid": consultant_uid,
            "fullName": payload.full_name,
            "title": payload.title,
            "phoneNumber": payload.phone_number,
            "specializations": payload.specializations,
            "yearsOfExperience": payload.years_of_experience,
            "bio": payload.bio,
            "availability": payload.availability,
            "isActive": payload.is_active,
        },
    )
    return ConsultantProfileResponse(profile=to_response(profile))


# Appointments


@router.get("/appointments", response_model=AppointmentListResponse)
def list_appointments(
    uid: str = Depends(get_current_uid), db: DbClient = Depends(get_db_client)
):
    items = appointments.list_appointments(db, uid)
    return AppointmentListResponse(appointments=[to_response(a) for a in items])


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
def schedule_appointment(
    payload: ScheduleAppointmentRequest,
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
):
    appointment = appointments.schedule_appointment(
        db, uid, payload.expert_id, payload.date, payload.time, notes=payload.notes
    )
    return AppointmentResponse(appointment=to_response(appointment))


@router.post(
    "/appointments/{appointment_id}/cancel", response_model=AppointmentResponse
)
def cancel_appointment(
    appointment_id: str,
    payload: CancelAppointmentRequest,
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
):
    appointment = appointments.cancel_appointment(
        db, appointment_id, uid, reason=payload.reason
    )
    return AppointmentResponse(appointment=to_response(appointment))


@router.post(
    "/appointments/{appointment_id}/complete", response_model=AppointmentResponse
)
def complete_appointment(
    appointment_id: str,
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
):
    appointment = appointments.complete_appointment(db, appointment_id, uid)
    return AppointmentResponse(appointment=to_response(appointment))


# Notifications


@router.get("/notifications", response_model=NotificationListResponse)
def list_notifications(
    limit: int = Query(NOTIFICATION_PAGE_SIZE, ge=1, le=200),
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
):
    items = notifications.list_notifications(db, uid, limit=limit)
    return NotificationListResponse(
        notifications=[to_response(n) for n in items],
        unread_count=notifications.unread_count(items),
    )


@router.post("/notifications/read-all", response_model=MarkAllReadResponse)
def mark_all_notifications_read(
    uid: str = Depends(get_current_uid), db: DbClient = Depends(get_db_client)
):
    return MarkAllReadResponse(ids=notifications.mark_all_read(db, uid))


@router.post("/notifications/{notification_id}/read", response_model=MarkReadResponse)
def mark_notification_read(
    notification_id: str,
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
):
    return MarkReadResponse(updated=notifications.mark_read(db, uid, notification_id))


@router.delete("/notifications/{notification_id}", status_code=204)
def delete_notification(
    notification_id: str,
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
):
    notifications.delete_notification(db, uid, notification_id)


@router.delete("/notifications", response_model=DeletedResponse)
def clear_notifications(
    uid: str = Depends(get_current_uid), db: DbClient = Depends(get_db_client)
):
    return DeletedResponse(deleted=notifications.clear_notifications(db, uid))


# Payments


@router.get("/payments", response_model=PaymentListResponse)
def list_payments(
    uid: str = Depends(get_current_uid), db: DbClient = Depends(get_db_client)
):
    items = payments.list_user_payments(db, uid)
    return PaymentListResponse(payments=[to_response(p) for p in items])


@router.post("/payments/intent", response_model=PaymentIntentResponse)
def create_payment_intent(
    payload: PaymentIntentRequest,
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    result = payments.create_payment_intent(
        db,
        uid,
        payload.amount,
        payload.plan_id,
        payload.plan_name,
        key_id=settings.razorpay_key_id,
        purpose=payload.purpose,
        appointment_count=payload.appointment_count,
    )
    return PaymentIntentResponse(
        payment_id=result["paymentId"],
        order_id=result["orderId"],
        amount=result["amount"],
        currency=result["currency"],
        key_id=result["keyId"],
    )


@router.post("/payments/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    payload: VerifyPaymentRequest,
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    result = payments.verify_payment(
        db,
        uid,
        payload.payment_id,
        payload.razorpay_payment_id,
        payload.razorpay_order_id,
        payload.razorpay_signature,
        key_secret=settings.razorpay_key_secret,
    )
    return VerifyPaymentResponse(
        success=result["success"],
        already_completed=result.get("alreadyCompleted", False),
    )


# Chat


@router.get("/chat/sessions", response_model=ChatSessionListResponse)
def list_chat_sessions(
    uid: str = Depends(get_current_uid), db: DbClient = Depends(get_db_client)
):
    sessions = chat.list_sessions(db, uid)
    return ChatSessionListResponse(sessions=[to_response(s) for s in sessions])


@router.post("/chat/sessions", response_model=ChatSessionResponse, status_code=201)
def create_chat_session(
    uid: str = Depends(get_current_uid), db: DbClient = Depends(get_db_client)
):
    return ChatSessionResponse(session=to_response(chat.create_session(db, uid)))


@router.delete("/chat/sessions", response_model=DeletedResponse)
def clear_chat_sessions(
    uid: str = Depends(get_current_uid), db: DbClient = Depends(get_db_client)
):
    return DeletedResponse(deleted=chat.clear_sessions(db, uid))


@router.post("/chat/messages", response_model=ChatMessageResponse)
def send_chat_message(
    payload: ChatMessageRequest,
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
    responder: Responder = Depends(get_responder),
):
    try:
        result = chat.send_message(
            db, uid, payload.session_id, payload.message, responder
        )
    except GeminiInvalidResponseException as e:
        raise HTTPException(
            status_code=503,
            detail="The assistant could not answer right now. Please try again.",
        ) from e
    return ChatMessageResponse(
        session_id=result["sessionId"], reply=result["reply"], title=result["title"]
    )


# Admin


@router.get("/admin/stats", response_model=AdminStatsResponse)
def get_admin_stats(
    uid: str = Depends(get_current_uid), db: DbClient = Depends(get_db_client)
):
    stats.require_admin(db, uid)
    return AdminStatsResponse(stats=to_response(stats.compute_admin_stats(db)))


@router.get("/admin/users", response_model=UserListResponse)
def list_users(
    uid: str = Depends(get_current_uid), db: DbClient = Depends(get_db_client)
):
    users = accounts.list_users(db, uid)
    return UserListResponse(users=[to_response(u) for u in users])


@router.put("/admin/users/{target_uid}/role", response_model=UserResponse)
def update_user_role(
    target_uid: str,
    payload: UpdateRoleRequest,
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
):
    profile = accounts.update_user_role(db, uid, target_uid, payload.role)
    return UserResponse(user=to_response(profile))


@router.post(
    "/admin/users/{target_uid}/appointments", response_model=AddAppointmentsResponse
)
def add_additional_appointments(
    target_uid: str,
    payload: AddAppointmentsRequest,
    uid: str = Depends(get_current_uid),
    db: DbClient = Depends(get_db_client),
):
    stats.require_admin(db, uid)
    updates = payments.add_additional_appointments(db, target_uid, payload.count)
    return AddAppointmentsResponse(
        additional_appointments=updates["additionalAppointments"],
        appointments_total=updates["appointmentsTotal"],
    )
