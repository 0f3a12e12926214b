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

from enum import StrEnum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class Role(StrEnum):
    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class AppointmentStatus(StrEnum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CancelledBy(StrEnum):
    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentPurpose(StrEnum):
    PLAN = "plan"
    ADDITIONAL_APPOINTMENTS = "additional-appointments"


class NotificationType(StrEnum):
    APPOINTMENT = "appointment"
    PAYMENT = "payment"
    SYSTEM = "system"
    ADMIN = "admin"
    SECURITY = "security"


class ChangeType(StrEnum):
    """Kind of change reported by a document change stream."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass
class UserProfile:
    """A user document in the `users` collection."""

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    role: Role = Role.USER
    created_at: Any = None
    email_verified: bool = False
    last_login: Optional[int] = None
    plan: Optional[str] = None
    plan_name: Optional[str] = None
    # Epoch millis, as written by the web client and the payment handlers.
    plan_updated_at: Optional[int] = None
    plan_purchased_at: Optional[int] = None
    plan_expiry_date: Optional[int] = None
    appointments_used: int = 0
    appointments_total: Optional[int] = None
    additional_appointments: int = 0
    appointments_reset_date: Optional[int] = None
    had_subscription_before: bool = False
    tokens_used: int = 0
    token_limit: int = 0

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.SUPERADMIN)


@dataclass
class Expert:
    id: str
    name: str
    specialization: str = "Not specified"
    experience: int = 0
    rating: float = 0.0
    # date -> time slot -> open
    availability: Dict[str, Dict[str, bool]] = field(default_factory=dict)


@dataclass
class ConsultantProfile:
    """Public profile of an admin acting as consultant, keyed by uid."""

    uid: str
    full_name: str
    title: str = ""
    phone_number: str = ""
    specializations: List[str] = field(default_factory=list)
    years_of_experience: int = 0
    bio: str = ""
    # days, hours {from, to} and slot duration in minutes
    availability: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    created_at: Optional[int] = None
    updated_at: Optional[int] = None


@dataclass
class Appointment:
    id: str
    user_id: str
    expert_id: str
    date: str
    time: str
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    meeting_link: Optional[str] = None
    notes: str = ""
    expert_name: str = "Unknown Expert"
    expert_specialization: str = "Not specified"
    display_name: str = "Unknown User"
    created_at: Any = None
    updated_at: Any = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None
    cancelled_at: Any = None
    completed_at: Any = None
    reminder_sent: bool = False


@dataclass
class Payment:
    id: str
    user_id: Optional[str]
    plan_id: str
    plan_name: Optional[str] = None
    amount: float = 0
    currency: str = "INR"
    status: PaymentStatus = PaymentStatus.PENDING
    provider: str = "razorpay"
    purpose: PaymentPurpose = PaymentPurpose.PLAN
    # Appointments credited by an additional-appointments payment.
    appointment_count: int = 0
    order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    created_at: Any = None
    updated_at: Any = None


@dataclass
class NotificationAction:
    type: str
    label: str
    url: Optional[str] = None
    handler: Optional[str] = None


@dataclass
class Notification:
    id: str
    user_id: str
    title: str
    message: str
    type: NotificationType
    read: bool = False
    related_id: Optional[str] = None
    created_at: Any = None
    action: Optional[NotificationAction] = None


@dataclass
class RateLimit:
    """Per-user action counters, reset by the scheduled housekeeping job."""

    user_id: str
    counts: Dict[str, int] = field(default_factory=dict)
    last_reset: Any = None
    updated_at: Any = None


@dataclass
class ChatMessage:
    id: str
    sender: str
    text: str
    time_stamp: int


@dataclass
class ChatSession:
    id: str
    user_id: str
    title: str = "New Conversation"
    messages: List[ChatMessage] = field(default_factory=list)
    created_at: Any = None
    updated_at: Any = None


@dataclass
class DocumentChange:
    """A single entry of a change stream, independent of the store backend."""

    type: ChangeType
    doc_id: str
    data: Dict[str, Any]
