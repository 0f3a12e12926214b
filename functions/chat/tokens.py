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
Chat token accounting on the user document.

Tokens are estimated at four characters each. A message reserves its input
tokens plus a capped estimate of the reply before the reply is generated;
the reservation is settled against the actual reply afterwards.
"""

import logging
import math
from typing import Optional

from backend.db import DbClient
from shared.constants import CHARS_PER_TOKEN, MAX_ESTIMATED_OUTPUT_TOKENS
from shared.errors import FailedPreconditionError, NotFoundError, ResourceExhaustedError
from shared.json_utils import from_document, now_millis
from shared.plans import is_subscription_expired
from shared.types import UserProfile

logger = logging.getLogger(__name__)


class PlanExpiredError(FailedPreconditionError):
    def __init__(self):
        super().__init__("Your subscription has expired. Please renew to continue.")


class TokenLimitExceededError(ResourceExhaustedError):
    def __init__(self, remaining: int):
        super().__init__(
            f"Token limit reached! You have {remaining} tokens remaining. "
            "Upgrade your plan to continue."
        )
        self.remaining = remaining


def estimate_tokens(text: Optional[str]) -> int:
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)


def estimate_exchange_tokens(text: str) -> int:
    """Input tokens plus the expected reply size, capped."""
    input_tokens = estimate_tokens(text)
    return input_tokens + min(input_tokens * 2, MAX_ESTIMATED_OUTPUT_TOKENS)


def reserve_tokens(
    db: DbClient, uid: str, text: str, now_ms: Optional[int] = None
) -> int:
    """Reserves tokens for one exchange and returns the amount reserved."""
    now_ms = now_ms if now_ms is not None else now_millis()
    data = db.get_user(uid)
    if not data:
        raise NotFoundError("User not found")
    user = from_document(UserProfile, data, uid)

    if not user.plan or is_subscription_expired(user, now_ms):
        raise PlanExpiredError()

    reserved = estimate_exchange_tokens(text)
    used = user.tokens_used or 0
    limit = user.token_limit or 0
    if used + reserved > limit:
        raise TokenLimitExceededError(max(0, limit - used))

    db.update_user(uid, {"tokensUsed": used + reserved, "lastTokenUpdate": now_ms})
    return reserved


def settle_tokens(
    db: DbClient, uid: str, text: str, reply: str, reserved: int
) -> int:
    """Replaces a reservation with the actual usage. Returns the adjustment."""
    actual = estimate_tokens(text) + estimate_tokens(reply)
    adjustment = actual - reserved
    data = db.get_user(uid)
    if not data:
        logger.warning("User %s missing while settling %d tokens", uid, reserved)
        return 0
    used = data.get("tokensUsed") or 0
    db.update_user(
        uid,
        {"tokensUsed": max(0, used + adjustment), "lastTokenUpdate": now_millis()},
    )
    return adjustment
