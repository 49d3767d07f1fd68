"""
Thin client for the Safaricom Daraja endpoints used here: OAuth token
generation and Lipa Na M-Pesa Online (STK push) process request.
"""
from __future__ import annotations

import base64
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from config import Settings
from exceptions import CredentialError, GatewayRejected, GatewayUnreachable

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
TRANSACTION_TYPE = "CustomerPayBillOnline"
DEFAULT_TOKEN_TTL = 3599

# Daraja timestamps are East Africa Time
EAT = timezone(timedelta(hours=3))

FRIENDLY_ERRORS = {
    "404.001.03": (
        "Invalid M-Pesa credentials. Please verify your Consumer Key, Consumer Secret, "
        "and Shortcode match and are for the same app."
    ),
    "400.002.02": "The payment request was invalid. Please check the phone number and amount.",
    "401.002.01": "M-Pesa access token is invalid or expired. Please try again.",
    "500.001.1001": "A payment request is already in progress for this phone number. Please wait and try again.",
}


def make_timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(EAT)
    return now.astimezone(EAT).strftime("%Y%m%d%H%M%S")


def make_password(shortcode: str, passkey: str, timestamp: str) -> str:
    """Daraja password: base64(shortcode + passkey + timestamp)."""
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode()


def friendly_error_message(code: Optional[str], default: str) -> str:
    return FRIENDLY_ERRORS.get(code or "", default)


def build_stk_payload(
    *,
    shortcode: str,
    passkey: str,
    callback_url: str,
    phone_number: str,
    amount: float,
    account_reference: str,
    transaction_desc: str,
    timestamp: Optional[str] = None,
) -> dict[str, Any]:
    timestamp = timestamp or make_timestamp()
    return {
        "BusinessShortCode": shortcode,
        "Password": make_password(shortcode, passkey, timestamp),
        "Timestamp": timestamp,
        "TransactionType": TRANSACTION_TYPE,
        "Amount": int(round(amount)),
        "PartyA": phone_number,
        "PartyB": shortcode,
        "PhoneNumber": phone_number,
        "CallBackURL": callback_url,
        "AccountReference": account_reference,
        "TransactionDesc": transaction_desc,
    }


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class DarajaClient:
    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        self.settings = settings
        self._client = client

    def _url(self, path: str) -> str:
        return self.settings.mpesa_base_url.rstrip("/") + path

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.settings.mpesa_http_timeout_seconds) as client:
            return await client.request(method, url, **kwargs)

    async def fetch_token(self) -> tuple[str, float]:
        """Client-credentials grant. Returns (access_token, expires_in)."""
        self.settings.require_mpesa("MPESA_BASE_URL", "MPESA_CONSUMER_KEY", "MPESA_CONSUMER_SECRET")
        key = self.settings.mpesa_consumer_key
        auth = base64.b64encode(f"{key}:{self.settings.mpesa_consumer_secret}".encode()).decode()
        logger.debug("Using consumer key %s...", key[:6])

        try:
            response = await self._send(
                "GET",
                self._url(TOKEN_PATH),
                params={"grant_type": "client_credentials"},
                headers={"Authorization": f"Basic {auth}"},
            )
        except httpx.HTTPError as e:
            logger.warning("OAuth token request failed: %s", e)
            raise CredentialError(f"Could not reach M-Pesa OAuth endpoint: {e}") from e

        if response.status_code >= 400:
            logger.error("OAuth token error, status %s: %s", response.status_code, response.text[:500])
            raise CredentialError(f"Failed to get M-Pesa token (HTTP {response.status_code})")

        data = _json_or_empty(response)
        token = data.get("access_token")
        if not token:
            raise CredentialError("No access token in M-Pesa OAuth response")
        try:
            expires_in = float(data.get("expires_in") or DEFAULT_TOKEN_TTL)
        except (TypeError, ValueError):
            expires_in = float(DEFAULT_TOKEN_TTL)
        return token, expires_in

    async def stk_push(self, token: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Submit one STK push. Returns the gateway body on acceptance."""
        try:
            response = await self._send(
                "POST",
                self._url(STK_PUSH_PATH),
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            logger.warning("STK push transport failure: %s", e)
            raise GatewayUnreachable(f"Payment gateway could not be reached: {e}") from e

        data = _json_or_empty(response)
        logger.info("STK push response status %s: %s", response.status_code, data)

        error_code = data.get("errorCode")
        response_code = data.get("ResponseCode")
        accepted = (
            response.status_code < 400
            and not error_code
            and (response_code is None or str(response_code) == "0")
            and data.get("CheckoutRequestID")
        )
        if not accepted:
            code = error_code or (str(response_code) if response_code is not None else None)
            raw = (
                data.get("errorMessage")
                or data.get("ResponseDescription")
                or "Failed to initiate payment"
            )
            logger.error("STK push rejected: code=%s message=%s", code, raw)
            raise GatewayRejected(code, friendly_error_message(code, raw), http_status=response.status_code)
        return data
