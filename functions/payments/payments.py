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
Payment bookkeeping and subscription plan updates.

Payments start `pending` and become `completed` once verified; completing a
payment applies its plan to the paying user exactly once.
"""

import hashlib
import hmac
import logging
from numbers import Number
from typing import Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from backend.db import DbClient
from notifications import notifications
from shared.constants import APPOINTMENT_RESET_DAYS, DAY_MS, DEFAULT_CURRENCY
from shared.errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from shared.json_utils import from_document, now_millis
from shared.plans import (
    base_appointments,
    get_plan,
    is_subscription_expired,
    plan_duration_days,
    token_limit,
)
from shared.types import Payment, PaymentPurpose, PaymentStatus, UserProfile

logger = logging.getLogger(__name__)


def _require_user(db: DbClient, uid: str) -> dict:
    user = db.get_user(uid)
    if not user:
        raise NotFoundError("User not found")
    return user


def _check_count(count) -> None:
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise InvalidArgumentError("Count must be a whole number of at least 1")


def make_order_id(uid: str, now_ms: Optional[int] = None) -> str:
    now_ms = now_ms if now_ms is not None else now_millis()
    return f"order_{now_ms}_{uid[:8]}"


def create_payment_intent(
    db: DbClient,
    uid: str,
    amount,
    plan_id: str,
    plan_name: str,
    key_id: str = "",
    purpose: str = PaymentPurpose.PLAN,
    appointment_count: int = 1,
) -> dict:
    """
    Records a pending payment and returns what the checkout widget needs.

    A payment either buys `plan_id` or, with the additional-appointments
    purpose, tops up `appointment_count` pay-per-service appointments.
    """
    if not amount or not plan_id or not plan_name:
        raise InvalidArgumentError("Missing required payment information")
    if isinstance(amount, bool) or not isinstance(amount, Number) or amount <= 0:
        raise InvalidArgumentError("Amount must be a positive number")
    if get_plan(plan_id) is None:
        raise InvalidArgumentError(f"Unknown plan: {plan_id}")
    try:
        purpose = PaymentPurpose(purpose or PaymentPurpose.PLAN)
    except ValueError as e:
        raise InvalidArgumentError(f"Unknown payment purpose: {purpose}") from e
    _check_count(appointment_count)
    _require_user(db, uid)

    order_id = make_order_id(uid)
    payment_id = db.add_payment(
        {
            "orderId": order_id,
            "userId": uid,
            "planId": plan_id,
            "planName": plan_name,
            "amount": amount,
            "currency": DEFAULT_CURRENCY,
            "status": PaymentStatus.PENDING.value,
            "provider": "razorpay",
            "purpose": purpose.value,
            "appointmentCount": appointment_count
            if purpose == PaymentPurpose.ADDITIONAL_APPOINTMENTS
            else 0,
            "createdAt": SERVER_TIMESTAMP,
        }
    )
    logger.info("Created payment intent %s (%s) for %s", payment_id, order_id, uid)
    return {
        "paymentId": payment_id,
        "orderId": order_id,
        "amount": amount,
        "currency": DEFAULT_CURRENCY,
        "keyId": key_id,
    }


def expected_signature(order_id: str, gateway_payment_id: str, key_secret: str) -> str:
    message = f"{order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment(
    db: DbClient,
    uid: str,
    payment_id: str,
    gateway_payment_id: str,
    order_id: str,
    signature: str,
    key_secret: str = "",
) -> dict:
    """
    Completes a pending payment after checking the gateway signature.

    The signature is only checked when a key secret is configured. Verifying
    an already completed payment is a no-op.
    """
    if not payment_id or not gateway_payment_id or not order_id or not signature:
        raise InvalidArgumentError("Missing payment verification details")

    payment = db.get_payment(payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    if payment.get("userId") != uid:
        raise PermissionDeniedError(
            "You do not have permission to verify this payment"
        )
    if payment.get("orderId") and payment["orderId"] != order_id:
        raise InvalidArgumentError("Order does not match this payment")

    if key_secret:
        expected = expected_signature(order_id, gateway_payment_id, key_secret)
        if not hmac.compare_digest(expected, signature):
            logger.warning("Invalid payment signature for %s by %s", payment_id, uid)
            raise InvalidArgumentError("Invalid payment signature")

    status = payment.get("status", PaymentStatus.PENDING.value)
    if status == PaymentStatus.COMPLETED.value:
        logger.info("Payment %s already completed", payment_id)
        return {"success": True, "alreadyCompleted": True}
    if status != PaymentStatus.PENDING.value:
        raise FailedPreconditionError(f"Payment cannot be verified (status: {status})")

    # The payment stays pending until the purchase is credited.
    fulfil_payment(db, uid, payment)
    db.update_payment(
        payment_id,
        {
            "status": PaymentStatus.COMPLETED.value,
            "razorpayPaymentId": gateway_payment_id,
            "updatedAt": SERVER_TIMESTAMP,
        },
    )
    notifications.notify_payment_success(db, uid, payment_id, payment.get("planName"))
    logger.info("Payment %s verified for %s", payment_id, uid)
    return {"success": True}


def fulfil_payment(db: DbClient, user_id: str, payment: dict) -> dict:
    """Credits what a payment bought: a plan or additional appointments."""
    if payment.get("purpose") == PaymentPurpose.ADDITIONAL_APPOINTMENTS.value:
        return add_additional_appointments(
            db, user_id, payment.get("appointmentCount") or 1
        )
    return apply_plan(db, user_id, payment.get("planId"), payment.get("planName"))


def list_user_payments(db: DbClient, uid: str) -> list[Payment]:
    """The user's payment history, newest first."""
    return [
        from_document(Payment, doc, doc["id"])
        for doc in db.query_payments(user_id=uid)
    ]


def apply_plan(
    db: DbClient,
    user_id: str,
    plan_id: str,
    plan_name: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> dict:
    """
    Activates or renews a plan on the user document.

    Renewing the current plan before it expires extends the existing expiry
    by one plan duration; otherwise the plan runs for one duration from now.
    Appointment counters restart with the plan's base allowance plus any
    additional appointments already bought.

    Returns:
        The fields written to the user document.
    """
    if not user_id or not plan_id:
        raise InvalidArgumentError("Missing userId or planId")
    current = _require_user(db, user_id)
    now_ms = now_ms if now_ms is not None else now_millis()

    duration_ms = plan_duration_days(plan_id) * DAY_MS
    is_renewal = current.get("plan") == plan_id
    expiry = now_ms + duration_ms
    current_expiry = current.get("planExpiryDate")
    if is_renewal and current_expiry and current_expiry > now_ms:
        expiry = current_expiry + duration_ms

    additional = current.get("additionalAppointments") or 0
    plan = get_plan(plan_id)
    updates = {
        "plan": plan_id,
        "planName": plan_name or (plan.name if plan else plan_id),
        "planUpdatedAt": now_ms,
        "planPurchasedAt": (current.get("planPurchasedAt") or now_ms)
        if is_renewal
        else now_ms,
        "planExpiryDate": expiry,
        "hadSubscriptionBefore": True,
        "appointmentsTotal": base_appointments(plan_id) + additional,
        "appointmentsResetDate": now_ms + APPOINTMENT_RESET_DAYS * DAY_MS,
        "appointmentsUsed": 0,
        "tokenLimit": token_limit(plan_id),
        "tokensUsed": 0,
    }
    db.update_user(user_id, updates)
    logger.info("User %s plan set to %s until %d", user_id, plan_id, expiry)
    return updates


def add_additional_appointments(db: DbClient, user_id: str, count: int = 1) -> dict:
    """
    Adds pay-per-service appointments on top of the plan allowance.

    Appointments already used stay counted.
    """
    _check_count(count)
    current = _require_user(db, user_id)
    additional = (current.get("additionalAppointments") or 0) + count
    updates = {
        "additionalAppointments": additional,
        "appointmentsTotal": base_appointments(current.get("plan")) + additional,
    }
    db.update_user(user_id, updates)
    logger.info("Added %d appointment(s) for %s", count, user_id)
    return updates


def remove_plan(db: DbClient, user_id: str) -> dict:
    """Drops the user's plan, keeping appointments bought separately."""
    current = _require_user(db, user_id)
    updates = {
        "plan": None,
        "planName": None,
        "planUpdatedAt": None,
        "planExpiryDate": None,
        "hadSubscriptionBefore": True,
        "appointmentsTotal": current.get("additionalAppointments") or 0,
        "appointmentsResetDate": None,
    }
    db.update_user(user_id, updates)
    logger.info("Removed plan %s from %s", current.get("plan"), user_id)
    return updates


def expire_subscriptions(db: DbClient, now_ms: Optional[int] = None) -> list[str]:
    """Removes expired plans from every user. Returns the affected user ids."""
    now_ms = now_ms if now_ms is not None else now_millis()
    expired = []
    for doc in db.list_users():
        if not doc.get("plan"):
            continue
        user = from_document(UserProfile, doc, doc["id"])
        if is_subscription_expired(user, now_ms):
            remove_plan(db, user.uid)
            expired.append(user.uid)
    return expired
