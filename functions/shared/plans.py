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
Subscription plans and the feature access rules derived from them.

The user document is the source of truth: `plan` names the active plan and
`planExpiryDate` (or, for older records, `planUpdatedAt` plus the plan
duration) decides whether it is still active.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from shared.constants import DAY_MS, DEFAULT_CURRENCY, MINUTE_MS
from shared.json_utils import now_millis
from shared.types import UserProfile

PREMIUM = "premium"
BASIC = "basic"
PAY_PER_CALL = "pay-per-call"

# Freshly purchased plans are never reported expired within this window.
PURCHASE_GRACE_PERIOD_MS = 5 * MINUTE_MS


@dataclass
class Plan:
    id: str
    name: str
    description: str
    price: int
    duration_days: int
    currency: str = DEFAULT_CURRENCY
    features: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PlanFeatures:
    can_use_chat: bool
    can_use_voice: bool
    can_book_appointments: bool
    max_appointments: int
    description: str


PLANS: Dict[str, Plan] = {
    BASIC: Plan(
        id=BASIC,
        name="Basic Plan",
        description="Access to AI consultation with limited features",
        price=499,
        duration_days=30,
        features=[
            "Unlimited text consultations",
            "Basic voice responses",
            "Chat history for 30 days",
        ],
    ),
    PREMIUM: Plan(
        id=PREMIUM,
        name="Premium Plan",
        description="Full access to AI consultation with premium features",
        price=999,
        duration_days=30,
        features=[
            "Unlimited text consultations",
            "Advanced voice responses",
            "Chat history for 90 days",
            "2 expert calls per month",
            "Priority support",
        ],
    ),
    PAY_PER_CALL: Plan(
        id=PAY_PER_CALL,
        name="Pay Per Call",
        description="Pay only for expert calls when you need them",
        price=299,
        duration_days=7,
        features=[
            "1 expert call (30 minutes)",
            "Access to specialist network",
            "Call recording and summary",
        ],
    ),
}

NO_ACCESS = PlanFeatures(
    can_use_chat=True,
    can_use_voice=False,
    can_book_appointments=False,
    max_appointments=0,
    description="No subscription - No access",
)

PLAN_FEATURES: Dict[str, PlanFeatures] = {
    "none": NO_ACCESS,
    "trial": NO_ACCESS,
    BASIC: PlanFeatures(
        can_use_chat=True,
        can_use_voice=False,
        can_book_appointments=False,
        max_appointments=0,
        description="Chat with AI",
    ),
    PREMIUM: PlanFeatures(
        can_use_chat=True,
        can_use_voice=True,
        can_book_appointments=True,
        max_appointments=2,
        description="Chat with AI, Voice calls, and 2 appointments per month",
    ),
    PAY_PER_CALL: PlanFeatures(
        can_use_chat=True,
        can_use_voice=False,
        can_book_appointments=True,
        max_appointments=1,
        description="1 appointment only",
    ),
}

FEATURES = ("can_use_chat", "can_use_voice", "can_book_appointments")


def get_plan(plan_id: str) -> Optional[Plan]:
    return PLANS.get(plan_id)


def plan_duration_days(plan_id: Optional[str]) -> int:
    plan = PLANS.get(plan_id or "")
    return plan.duration_days if plan else 30


def base_appointments(plan_id: Optional[str]) -> int:
    """Appointments included with a plan before any pay-per-service top ups."""
    return PLAN_FEATURES[plan_id].max_appointments if plan_id in PLANS else 0


def subscription_expiry(user: Optional[UserProfile]) -> Optional[int]:
    """Returns the subscription expiry in epoch millis, if it can be determined."""
    if not user or not user.plan:
        return None
    if user.plan_expiry_date:
        return user.plan_expiry_date
    if user.plan_updated_at:
        return user.plan_updated_at + plan_duration_days(user.plan) * DAY_MS
    return None


def is_subscription_expired(
    user: Optional[UserProfile],
    now_ms: Optional[int] = None,
    grace_period_ms: int = PURCHASE_GRACE_PERIOD_MS,
) -> bool:
    if not user:
        return False
    now_ms = now_ms if now_ms is not None else now_millis()

    # A removed plan counts as expired, a plan that never existed does not.
    if not user.plan:
        return user.had_subscription_before

    if not user.plan_updated_at:
        return True

    if now_ms - user.plan_updated_at < grace_period_ms:
        return False

    expiry = subscription_expiry(user)
    if expiry is None:
        return True
    return now_ms > expiry


def plan_features(
    user: Optional[UserProfile], now_ms: Optional[int] = None
) -> PlanFeatures:
    if not user or not user.plan:
        return NO_ACCESS
    if is_subscription_expired(user, now_ms):
        return NO_ACCESS
    return PLAN_FEATURES.get(user.plan, NO_ACCESS)


def can_access_feature(
    feature: str, user: Optional[UserProfile], now_ms: Optional[int] = None
) -> bool:
    if feature not in FEATURES:
        raise ValueError(f"Unknown feature: {feature}")
    return bool(getattr(plan_features(user, now_ms), feature))


def remaining_appointments(
    user: Optional[UserProfile], now_ms: Optional[int] = None
) -> int:
    if not user or not user.plan:
        return 0
    used = user.appointments_used or 0
    if user.appointments_total is not None:
        return max(0, user.appointments_total - used)
    return max(0, plan_features(user, now_ms).max_appointments - used)


def can_book_more_appointments(
    user: Optional[UserProfile], now_ms: Optional[int] = None
) -> bool:
    if not can_access_feature("can_book_appointments", user, now_ms):
        return False
    return remaining_appointments(user, now_ms) > 0


def upgrade_message(feature: str, user: Optional[UserProfile]) -> str:
    if not user or not user.plan:
        return {
            "can_use_chat": "You need a subscription to access AI chat. Please purchase a Basic or Premium plan.",
            "can_use_voice": "You need a subscription to access voice calls. Please purchase a Premium plan.",
            "can_book_appointments": "You need a subscription to book appointments. Please purchase a Premium or Pay-Per-Call plan.",
        }.get(
            feature,
            "You need a subscription to access this feature. Please purchase a plan to continue.",
        )

    plan_name = user.plan_name or user.plan
    return {
        "can_use_chat": f"Your current plan ({plan_name}) doesn't include AI chat access. Please upgrade to Basic or Premium plan.",
        "can_use_voice": f"Your current plan ({plan_name}) doesn't include voice call features. Please upgrade to Premium plan.",
        "can_book_appointments": f"Your current plan ({plan_name}) doesn't include appointment booking. Please upgrade to Premium plan or purchase a Pay-Per-Call plan.",
    }.get(
        feature,
        f"Your current plan ({plan_name}) doesn't include this feature. Please upgrade to access more features.",
    )


# Chat token allowance granted with each purchase of a plan.
PLAN_TOKEN_LIMITS: Dict[str, int] = {
    BASIC: 200_000,
    PREMIUM: 500_000,
    PAY_PER_CALL: 20_000,
}


def token_limit(plan_id: Optional[str]) -> int:
    return PLAN_TOKEN_LIMITS.get(plan_id or "", 0)
