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
PhonePe redirect checkout.

A checkout order is created with the gateway first; the pending payment
document (keyed by the merchant order id) is only written once the gateway
has returned a redirect URL.
"""

import logging
import uuid
from typing import Optional
from urllib.parse import quote

import requests
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from backend.db import DbClient
from payments.payments import fulfil_payment
from shared.constants import DEFAULT_CURRENCY
from shared.errors import InvalidArgumentError, NotFoundError
from shared.json_utils import json_safe
from shared.types import PaymentStatus

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds
DEFAULT_ORDER_EXPIRY_SECONDS = 1200

# Order states reported by the gateway's status endpoint.
ORDER_COMPLETED = "COMPLETED"
ORDER_FAILED = "FAILED"


class PhonePeError(Exception):
    """Raised when the gateway rejects a request or answers unexpectedly."""

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.details = details


class PhonePeClient:
    """Minimal client for the PhonePe standard checkout v2 API."""

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        client_version: int = 1,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.client_version = client_version
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _post(self, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(url, timeout=REQUEST_TIMEOUT, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            details = e.response.text if e.response is not None else str(e)
            raise PhonePeError(f"PhonePe request to {path} failed", details) from e
        except requests.exceptions.RequestException as e:
            raise PhonePeError(f"PhonePe request to {path} failed", str(e)) from e

    def get_access_token(self) -> str:
        """Fetches an OAuth token with the client credentials grant."""
        data = self._post(
            "/v1/oauth/token",
            data={
                "client_id": self.client_id,
                "client_version": self.client_version,
                "client_secret": self.client_secret,
                "grant_type": "client_credentials",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        token = data.get("access_token")
        if not token:
            raise PhonePeError("No access token returned from PhonePe", data)
        return token

    def _auth_headers(self) -> dict:
        return {
            "Authorization": f"O-Bearer {self.get_access_token()}",
            "Content-Type": "application/json",
        }

    def create_checkout_order(
        self,
        merchant_order_id: str,
        amount_paise: int,
        redirect_url: str,
        message: str,
        expire_after: int = DEFAULT_ORDER_EXPIRY_SECONDS,
    ) -> dict:
        body = {
            "merchantOrderId": merchant_order_id,
            "amount": amount_paise,
            "expireAfter": expire_after,
            "paymentFlow": {
                "type": "PG_CHECKOUT",
                "message": message,
                "merchantUrls": {"redirectUrl": redirect_url},
            },
        }
        return self._post("/checkout/v2/pay", json=body, headers=self._auth_headers())

    def get_order_status(self, merchant_order_id: str) -> dict:
        url = f"{self.base_url}/checkout/v2/order/{quote(merchant_order_id)}/status"
        try:
            response = self.session.get(
                url, headers=self._auth_headers(), timeout=REQUEST_TIMEOUT
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            raise PhonePeError("PhonePe order status request failed", str(e)) from e


def initiate_checkout(
    db: DbClient,
    client: PhonePeClient,
    user_id: Optional[str],
    plan_id: str,
    plan_name: Optional[str],
    price,
    origin: str,
    expire_after: int = DEFAULT_ORDER_EXPIRY_SECONDS,
) -> dict:
    """Creates a gateway order and returns the redirect URL and session id."""
    if not price or not plan_id:
        raise InvalidArgumentError("Missing price or planId")
    try:
        amount = float(price)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError("Price must be a number") from e
    if amount <= 0:
        raise InvalidArgumentError("Price must be a positive number")

    merchant_order_id = f"TXN_{uuid.uuid4()}"
    redirect_url = (
        f"{origin.rstrip('/')}/payment/success"
        f"?plan_id={quote(plan_id)}&session_id={merchant_order_id}"
    )
    logger.info(
        "Initiating PhonePe checkout %s for %s (%s, %s)",
        merchant_order_id,
        user_id,
        plan_id,
        amount,
    )

    response = client.create_checkout_order(
        merchant_order_id,
        amount_paise=round(amount * 100),
        redirect_url=redirect_url,
        message=f"Payment for plan: {plan_name}",
        expire_after=expire_after,
    )
    gateway_redirect = response.get("redirectUrl")
    if not gateway_redirect:
        raise PhonePeError("No redirect URL returned from PhonePe", response)

    db.add_payment(
        {
            "userId": user_id or None,
            "planId": plan_id,
            "planName": plan_name,
            "amount": amount,
            "currency": DEFAULT_CURRENCY,
            "status": PaymentStatus.PENDING.value,
            "provider": "phonepe",
            "orderId": merchant_order_id,
            "createdAt": SERVER_TIMESTAMP,
        },
        payment_id=merchant_order_id,
    )
    return {
        "success": True,
        "redirectUrl": gateway_redirect,
        "sessionId": merchant_order_id,
    }


def verify_checkout_status(
    db: DbClient, session_id: str, client: Optional[PhonePeClient] = None
) -> dict:
    """
    Settles a checkout session and returns the payment status with fresh
    user data.

    With a configured client the gateway's order state decides the outcome;
    without one a pending session is completed on return from the redirect.
    """
    if not session_id:
        raise InvalidArgumentError("Missing session_id")
    payment = db.get_payment(session_id)
    if not payment:
        logger.warning("Payment document not found for session %s", session_id)
        raise NotFoundError("Payment session not found")

    status = payment.get("status") or PaymentStatus.PENDING.value
    if status == PaymentStatus.PENDING.value:
        gateway_state = ORDER_COMPLETED
        if client is not None and client.configured:
            gateway_state = client.get_order_status(session_id).get("state")

        if gateway_state == ORDER_COMPLETED:
            fulfil_payment(db, payment.get("userId"), payment)
            db.update_payment(
                session_id,
                {"status": PaymentStatus.COMPLETED.value, "updatedAt": SERVER_TIMESTAMP},
            )
            status = PaymentStatus.COMPLETED.value
            logger.info("Payment session %s completed", session_id)
        elif gateway_state == ORDER_FAILED:
            db.update_payment(
                session_id,
                {"status": PaymentStatus.FAILED.value, "updatedAt": SERVER_TIMESTAMP},
            )
            status = PaymentStatus.FAILED.value
            logger.info("Payment session %s failed at the gateway", session_id)

    user = db.get_user(payment.get("userId")) if payment.get("userId") else None
    if not user:
        raise NotFoundError("User not found")
    return {"success": True, "paymentStatus": status, "user": json_safe(user)}
