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

import unittest
from unittest import mock

import requests

from admin import stats
from backend.db import InMemoryDbClient
from main_testing_utils import seed_user
from payments import phonepe
from shared.errors import InvalidArgumentError, NotFoundError
from shared.plans import PREMIUM


def _response(json_data=None, status_code=200, text=""):
    response = mock.MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data or {}
    response.text = text
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            response=response
        )
    return response


class PhonePeClientTest(unittest.TestCase):
    def setUp(self):
        self.session = mock.MagicMock()
        self.client = phonepe.PhonePeClient(
            base_url="https://pg.example.com/",
            client_id="client",
            client_secret="secret",
            session=self.session,
        )

    def test_configured(self):
        self.assertTrue(self.client.configured)
        self.assertFalse(phonepe.PhonePeClient("https://x", "", "").configured)

    def test_get_access_token(self):
        self.session.post.return_value = _response({"access_token": "tok"})

        self.assertEqual(self.client.get_access_token(), "tok")

        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://pg.example.com/v1/oauth/token")
        self.assertEqual(kwargs["data"]["grant_type"], "client_credentials")
        self.assertEqual(kwargs["timeout"], phonepe.REQUEST_TIMEOUT)

    def test_missing_access_token(self):
        self.session.post.return_value = _response({"error": "nope"})

        with self.assertRaises(phonepe.PhonePeError):
            self.client.get_access_token()

    def test_create_checkout_order(self):
        self.session.post.side_effect = [
            _response({"access_token": "tok"}),
            _response({"orderId": "OMO1", "redirectUrl": "https://pay.example.com/r"}),
        ]

        result = self.client.create_checkout_order(
            "TXN_1", 99900, "https://app/return", "Payment for plan: Premium"
        )

        self.assertEqual(result["redirectUrl"], "https://pay.example.com/r")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://pg.example.com/checkout/v2/pay")
        self.assertEqual(kwargs["headers"]["Authorization"], "O-Bearer tok")
        self.assertEqual(kwargs["json"]["amount"], 99900)
        self.assertEqual(
            kwargs["json"]["paymentFlow"]["merchantUrls"]["redirectUrl"],
            "https://app/return",
        )

    def test_http_error_carries_details(self):
        self.session.post.return_value = _response(status_code=401, text="bad creds")

        with self.assertRaises(phonepe.PhonePeError) as cm:
            self.client.get_access_token()
        self.assertEqual(cm.exception.details, "bad creds")

    def test_connection_error(self):
        self.session.post.side_effect = requests.exceptions.ConnectionError("down")

        with self.assertRaises(phonepe.PhonePeError):
            self.client.get_access_token()

    def test_get_order_status(self):
        self.session.post.return_value = _response({"access_token": "tok"})
        self.session.get.return_value = _response({"state": "COMPLETED"})

        self.assertEqual(self.client.get_order_status("TXN_1"), {"state": "COMPLETED"})
        self.assertEqual(
            self.session.get.call_args[0][0],
            "https://pg.example.com/checkout/v2/order/TXN_1/status",
        )


class CheckoutTest(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        seed_user(self.db, "user-1", plan=None)
        self.client = mock.create_autospec(phonepe.PhonePeClient, instance=True)
        self.client.configured = True
        self.client.create_checkout_order.return_value = {
            "redirectUrl": "https://pay.example.com/r"
        }

    def _initiate(self, **kwargs):
        params = {
            "user_id": "user-1",
            "plan_id": PREMIUM,
            "plan_name": "Premium Plan",
            "price": 999,
            "origin": "https://app.example.com/",
        }
        params.update(kwargs)
        return phonepe.initiate_checkout(self.db, self.client, **params)

    def test_initiate_checkout(self):
        result = self._initiate()

        self.assertTrue(result["success"])
        self.assertEqual(result["redirectUrl"], "https://pay.example.com/r")
        session_id = result["sessionId"]
        self.assertTrue(session_id.startswith("TXN_"))

        _, kwargs = self.client.create_checkout_order.call_args
        self.assertEqual(kwargs["amount_paise"], 99900)
        self.assertEqual(
            kwargs["redirect_url"],
            f"https://app.example.com/payment/success?plan_id=premium&session_id={session_id}",
        )

        payment = self.db.get_payment(session_id)
        self.assertEqual(payment["status"], "pending")
        self.assertEqual(payment["provider"], "phonepe")
        self.assertEqual(payment["userId"], "user-1")

    def test_string_price_is_stored_as_number(self):
        session_id = self._initiate(price="499")["sessionId"]
        phonepe.verify_checkout_status(self.db, session_id)

        self.assertEqual(self.db.get_payment(session_id)["amount"], 499.0)
        self.assertEqual(stats.compute_admin_stats(self.db).total_revenue, 499.0)

    def test_no_payment_without_redirect(self):
        self.client.create_checkout_order.return_value = {"code": "BAD_REQUEST"}

        with self.assertRaises(phonepe.PhonePeError):
            self._initiate()
        self.assertEqual(self.db.query_payments(), [])

    def test_invalid_price(self):
        for price in (None, "abc", -10):
            with self.subTest(price=price):
                with self.assertRaises(InvalidArgumentError):
                    self._initiate(price=price)
        self.client.create_checkout_order.assert_not_called()

    def test_verify_completed_at_gateway(self):
        session_id = self._initiate()["sessionId"]
        self.client.get_order_status.return_value = {"state": "COMPLETED"}

        result = phonepe.verify_checkout_status(self.db, session_id, self.client)

        self.assertEqual(result["paymentStatus"], "completed")
        self.assertEqual(result["user"]["plan"], PREMIUM)
        self.assertEqual(self.db.get_payment(session_id)["status"], "completed")

    def test_verify_twice_applies_plan_once(self):
        session_id = self._initiate()["sessionId"]
        self.client.get_order_status.return_value = {"state": "COMPLETED"}
        phonepe.verify_checkout_status(self.db, session_id, self.client)
        expiry = self.db.get_user("user-1")["planExpiryDate"]

        result = phonepe.verify_checkout_status(self.db, session_id, self.client)

        self.assertEqual(result["paymentStatus"], "completed")
        self.assertEqual(self.db.get_user("user-1")["planExpiryDate"], expiry)
        self.client.get_order_status.assert_called_once()

    def test_verify_failed_at_gateway(self):
        session_id = self._initiate()["sessionId"]
        self.client.get_order_status.return_value = {"state": "FAILED"}

        result = phonepe.verify_checkout_status(self.db, session_id, self.client)

        self.assertEqual(result["paymentStatus"], "failed")
        self.assertNotIn("plan", result["user"])

    def test_verify_still_pending(self):
        session_id = self._initiate()["sessionId"]
        self.client.get_order_status.return_value = {"state": "PENDING"}

        result = phonepe.verify_checkout_status(self.db, session_id, self.client)

        self.assertEqual(result["paymentStatus"], "pending")

    def test_verify_without_gateway_credentials(self):
        session_id = self._initiate()["sessionId"]

        result = phonepe.verify_checkout_status(self.db, session_id)

        self.assertEqual(result["paymentStatus"], "completed")

    def test_verify_unknown_session(self):
        with self.assertRaises(NotFoundError):
            phonepe.verify_checkout_status(self.db, "TXN_missing")

    def test_verify_missing_session_id(self):
        with self.assertRaises(InvalidArgumentError):
            phonepe.verify_checkout_status(self.db, "")


if __name__ == "__main__":
    unittest.main()
