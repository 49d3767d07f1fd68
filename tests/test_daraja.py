"""
Daraja client: password/timestamp derivation, push payload shape, error mapping.
"""
import base64
import unittest
from datetime import datetime, timezone

import httpx

from exceptions import ConfigurationError, CredentialError, GatewayRejected, GatewayUnreachable
from services.daraja import (
    DarajaClient,
    build_stk_payload,
    friendly_error_message,
    make_password,
    make_timestamp,
)
from tests.support import FakeDaraja, make_settings


class TestPayload(unittest.TestCase):
    def test_timestamp_is_east_africa_time(self):
        now = datetime(2024, 3, 1, 21, 30, 5, tzinfo=timezone.utc)
        self.assertEqual(make_timestamp(now), "20240302003005")

    def test_password_derivation(self):
        password = make_password("174379", "passkey", "20240302003005")
        self.assertEqual(base64.b64decode(password).decode(), "174379passkey20240302003005")

    def test_payload_shape(self):
        payload = build_stk_payload(
            shortcode="174379",
            passkey="passkey",
            callback_url="https://example.test/cb",
            phone_number="254712345678",
            amount=229.6,
            account_reference="A1",
            transaction_desc="Loan Application Fee",
            timestamp="20240101120000",
        )
        self.assertEqual(payload["TransactionType"], "CustomerPayBillOnline")
        self.assertEqual(payload["Amount"], 230)
        self.assertEqual(payload["PartyA"], "254712345678")
        self.assertEqual(payload["PhoneNumber"], "254712345678")
        self.assertEqual(payload["PartyB"], "174379")
        self.assertEqual(payload["BusinessShortCode"], "174379")
        self.assertEqual(payload["AccountReference"], "A1")
        self.assertEqual(payload["CallBackURL"], "https://example.test/cb")
        self.assertEqual(payload["Timestamp"], "20240101120000")
        self.assertEqual(payload["Password"], make_password("174379", "passkey", "20240101120000"))
        self.assertEqual(
            set(payload),
            {"BusinessShortCode", "Password", "Timestamp", "TransactionType", "Amount", "PartyA",
             "PartyB", "PhoneNumber", "CallBackURL", "AccountReference", "TransactionDesc"},
        )

    def test_friendly_messages(self):
        self.assertIn("Invalid M-Pesa credentials", friendly_error_message("404.001.03", "raw"))
        self.assertEqual(friendly_error_message("999", "raw"), "raw")
        self.assertEqual(friendly_error_message(None, "raw"), "raw")


class TestDarajaClient(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.fake = FakeDaraja()
        self.http = self.fake.client()
        self.client = DarajaClient(make_settings(), self.http)

    async def asyncTearDown(self):
        await self.http.aclose()

    async def test_fetch_token_uses_basic_auth(self):
        captured = {}

        def handler(request: httpx.Request):
            captured["auth"] = request.headers["Authorization"]
            captured["grant"] = request.url.params["grant_type"]
            return httpx.Response(200, json={"access_token": "abc", "expires_in": "3599"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            token, expires_in = await DarajaClient(make_settings(), http).fetch_token()
        self.assertEqual(token, "abc")
        self.assertEqual(expires_in, 3599.0)
        expected = base64.b64encode(b"consumer-key:consumer-secret").decode()
        self.assertEqual(captured["auth"], f"Basic {expected}")
        self.assertEqual(captured["grant"], "client_credentials")

    async def test_fetch_token_missing_config(self):
        client = DarajaClient(make_settings(mpesa_consumer_secret=""), self.http)
        with self.assertRaises(ConfigurationError) as ctx:
            await client.fetch_token()
        self.assertIn("MPESA_CONSUMER_SECRET", ctx.exception.message)
        self.assertEqual(self.fake.token_calls, 0)

    async def test_fetch_token_http_error(self):
        self.fake.token_response = lambda: httpx.Response(400, text="Bad Request - Invalid Credentials")
        with self.assertRaises(CredentialError):
            await self.client.fetch_token()

    async def test_fetch_token_without_token_in_body(self):
        self.fake.token_response = lambda: httpx.Response(200, json={"expires_in": "3599"})
        with self.assertRaises(CredentialError):
            await self.client.fetch_token()

    async def test_stk_push_success(self):
        data = await self.client.stk_push("tok", {"Amount": 230})
        self.assertEqual(data["CheckoutRequestID"], "ws_1")
        self.assertEqual(self.fake.push_headers[0]["Authorization"], "Bearer tok")

    async def test_stk_push_error_code_in_body(self):
        self.fake.push_response = lambda payload: httpx.Response(
            200, json={"requestId": "x", "errorCode": "404.001.03", "errorMessage": "Invalid Access Token"}
        )
        with self.assertRaises(GatewayRejected) as ctx:
            await self.client.stk_push("tok", {})
        self.assertEqual(ctx.exception.code, "404.001.03")
        self.assertIn("Invalid M-Pesa credentials", ctx.exception.message)

    async def test_stk_push_http_error(self):
        self.fake.push_response = lambda payload: httpx.Response(
            500, json={"errorCode": "500.001.1001", "errorMessage": "Unable to lock subscriber"}
        )
        with self.assertRaises(GatewayRejected) as ctx:
            await self.client.stk_push("tok", {})
        self.assertEqual(ctx.exception.http_status, 500)
        self.assertIn("already in progress", ctx.exception.message)

    async def test_stk_push_nonzero_response_code(self):
        self.fake.push_response = lambda payload: httpx.Response(
            200, json={"ResponseCode": "1", "ResponseDescription": "Rejected", "CheckoutRequestID": "ws_9"}
        )
        with self.assertRaises(GatewayRejected) as ctx:
            await self.client.stk_push("tok", {})
        self.assertEqual(ctx.exception.code, "1")
        self.assertEqual(ctx.exception.message, "Rejected")

    async def test_stk_push_transport_failure(self):
        def boom(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(boom)) as http:
            with self.assertRaises(GatewayUnreachable):
                await DarajaClient(make_settings(), http).stk_push("tok", {})


if __name__ == "__main__":
    unittest.main()
