"""
Pydantic schemas for the consultation FastAPI backend.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from shared.constants import (
    MAX_CANCELLATION_REASON_LENGTH,
    MAX_CHAT_MESSAGE_LENGTH,
    MAX_NOTES_LENGTH,
)


class HealthResponse(BaseModel):
    status: Literal["ok"]


class ScheduleAppointmentRequest(BaseModel):
    expert_id: str = Field(..., min_length=1)
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)


class CancelAppointmentRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=MAX_CANCELLATION_REASON_LENGTH)


class AppointmentResponse(BaseModel):
    appointment: dict


class AppointmentListResponse(BaseModel):
    appointments: list[dict]


class NotificationListResponse(BaseModel):
    notifications: list[dict]
    unread_count: int


class MarkReadResponse(BaseModel):
    updated: bool


class MarkAllReadResponse(BaseModel):
    ids: list[str]


class DeletedResponse(BaseModel):
    deleted: int


class PaymentIntentRequest(BaseModel):
    amount: float = Field(..., gt=0)
    plan_id: str
    plan_name: str
    purpose: Literal["plan", "additional-appointments"] = "plan"
    appointment_count: int = Field(1, ge=1)


class PaymentIntentResponse(BaseModel):
    payment_id: str
    order_id: str
    amount: float
    currency: str
    key_id: str


class VerifyPaymentRequest(BaseModel):
    payment_id: str
    razorpay_payment_id: str
    razorpay_order_id: str
    razorpay_signature: str


class VerifyPaymentResponse(BaseModel):
    success: bool
    already_completed: bool = False


class ChatSessionResponse(BaseModel):
    session: dict


class ChatSessionListResponse(BaseModel):
    sessions: list[dict]


class ChatMessageRequest(BaseModel):
    message: str = Field(..., max_length=MAX_CHAT_MESSAGE_LENGTH)
    session_id: Optional[str] = None


class ChatMessageResponse(BaseModel):
    session_id: str
    reply: dict
    title: str


class AdminStatsResponse(BaseModel):
    stats: dict


class PaymentListResponse(BaseModel):
    payments: list[dict]


class ExpertListResponse(BaseModel):
    experts: list[dict]


class RegisterRequest(BaseModel):
    email: str
    password: str
    display_name: str


class UserResponse(BaseModel):
    user: dict


class UserListResponse(BaseModel):
    users: list[dict]


class UpdateRoleRequest(BaseModel):
    role: Literal["user", "admin", "superadmin"]


class AddAppointmentsRequest(BaseModel):
    count: int = Field(1, ge=1)


class AddAppointmentsResponse(BaseModel):
    additional_appointments: int
    appointments_total: int


class ConsultantProfileRequest(BaseModel):
    full_name: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    phone_number: str = ""
    specializations: list[str] = []
    years_of_experience: int = Field(0, ge=0)
    bio: str = ""
    availability: dict = {}
    is_active: bool = True


class ConsultantProfileResponse(BaseModel):
    profile: dict


class ConsultantProfileListResponse(BaseModel):
    profiles: list[dict]
