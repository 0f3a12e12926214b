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

"""Aggregates shown on the admin dashboard."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List

from backend.db import DbClient, newest_first
from shared.constants import RECENT_ITEMS_COUNT
from shared.errors import NotFoundError, PermissionDeniedError
from shared.json_utils import from_document, timestamp_millis
from shared.plans import BASIC, PAY_PER_CALL, PREMIUM
from shared.types import AppointmentStatus, PaymentStatus, UserProfile

PLAN_LABELS = (
    ("Free", None),
    ("Basic", BASIC),
    ("Premium", PREMIUM),
    ("Pay-per-call", PAY_PER_CALL),
)


@dataclass
class RecentUser:
    id: str
    name: str
    email: str
    plan: str


@dataclass
class RecentAppointment:
    id: str
    display_name: str
    notes: str
    expert_name: str
    expert_specialization: str
    date: str
    time: str
    status: str


@dataclass
class RecentPayment:
    id: str
    user: str
    plan: str
    amount: float
    date: str
    status: str


@dataclass
class PlanShare:
    name: str
    value: int


@dataclass
class AdminStats:
    total_users: int = 0
    total_appointments: int = 0
    total_revenue: float = 0
    recent_users: List[RecentUser] = field(default_factory=list)
    recent_appointments: List[RecentAppointment] = field(default_factory=list)
    recent_payments: List[RecentPayment] = field(default_factory=list)
    appointment_status: Dict[str, int] = field(default_factory=dict)
    plan_distribution: List[PlanShare] = field(default_factory=list)


def require_admin(db: DbClient, uid: str) -> UserProfile:
    data = db.get_user(uid)
    if not data:
        raise NotFoundError("User not found")
    user = from_document(UserProfile, data, uid)
    if not user.is_admin:
        raise PermissionDeniedError("Admin access required")
    return user


def _amount(value) -> float:
    """Payment amounts may have been written as strings by older checkouts."""
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _iso_date(value) -> str:
    millis = timestamp_millis(value)
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def compute_admin_stats(db: DbClient) -> AdminStats:
    users = newest_first(db.list_users())
    appointments = db.query_appointments()
    payments = db.query_payments()
    names = {user["id"]: user.get("displayName") for user in users}

    status_counts = {status.value: 0 for status in AppointmentStatus}
    for appointment in appointments:
        status = appointment.get("status") or AppointmentStatus.SCHEDULED.value
        if status in status_counts:
            status_counts[status] += 1

    revenue = sum(
        _amount(payment.get("amount"))
        for payment in payments
        if payment.get("status") == PaymentStatus.COMPLETED.value
    )

    return AdminStats(
        total_users=len(users),
        total_appointments=len(appointments),
        total_revenue=revenue,
        recent_users=[
            RecentUser(
                id=user["id"],
                name=user.get("displayName") or "Unknown",
                email=user.get("email") or "No email",
                plan=user.get("plan") or "Free",
            )
            for user in users[:RECENT_ITEMS_COUNT]
        ],
        recent_appointments=[
            RecentAppointment(
                id=appointment["id"],
                display_name=appointment.get("displayName") or "Unknown User",
                notes=appointment.get("notes") or "No notes",
                expert_name=appointment.get("expertName") or "Unknown Expert",
                expert_specialization=appointment.get("expertSpecialization")
                or "Not specified",
                date=appointment.get("date") or "Not available",
                time=appointment.get("time") or "Not available",
                status=appointment.get("status") or AppointmentStatus.SCHEDULED.value,
            )
            for appointment in appointments[:RECENT_ITEMS_COUNT]
        ],
        recent_payments=[
            RecentPayment(
                id=payment["id"],
                user=names.get(payment.get("userId")) or "Unknown",
                plan=payment.get("planId") or "",
                amount=_amount(payment.get("amount")),
                date=_iso_date(payment.get("createdAt")),
                status=payment.get("status") or PaymentStatus.PENDING.value,
            )
            for payment in payments[:RECENT_ITEMS_COUNT]
        ],
        appointment_status=status_counts,
        plan_distribution=[
            PlanShare(
                name=label,
                value=sum(1 for user in users if (user.get("plan") or None) == plan_id),
            )
            for label, plan_id in PLAN_LABELS
        ],
    )
