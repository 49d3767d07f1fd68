"""Shared test fixtures: settings, an in-memory database and a fake Daraja gateway."""
from __future__ import annotations

import json
from typing import Any, Callable, Optional

import httpx
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import models  # noqa: F401  (registers tables on Base.metadata)
from config import Settings
from database import init_db, make_engine, make_sessionmaker

BASE_URL = "https://daraja.test"


class LockedCommitSession(AsyncSession):
    """Session whose commit always fails, as when another writer holds the database lock."""

    async def commit(self) -> None:
        raise OperationalError("COMMIT", None, Exception("database is locked"))


def make_locked_sessionmaker(bind) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=LockedCommitSession, expire_on_commit=False, autoflush=False)


def make_settings(**overrides) -> Settings:
    values = dict(
        mpesa_base_url=BASE_URL,
        mpesa_consumer_key="consumer-key",
        mpesa_consumer_secret="consumer-secret",
        mpesa_shortcode="174379",
        mpesa_passkey="passkey",
        mpesa_callback_url="https://example.test/api/payments/callback",
        database_url="sqlite+aiosqlite:///:memory:",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


async def make_database(path: Optional[str] = None):
    """In-memory by default; pass a file path when sessions must run concurrently."""
    engine = make_engine(f"sqlite+aiosqlite:///{path or ':memory:'}")
    await init_db(engine)
    return engine, make_sessionmaker(engine)


def stk_callback(
    checkout_id: str,
    result_code: int = 0,
    result_desc: str = "The service request is processed successfully.",
    receipt: Optional[str] = "QCE123",
    amount: int = 230,
) -> dict[str, Any]:
    callback: dict[str, Any] = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_id,
        "ResultCode": result_code,
        "ResultDesc": result_desc,
    }
    if result_code == 0:
        callback["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": amount},
                {"Name": "MpesaReceiptNumber", "Value": receipt},
                {"Name": "TransactionDate", "Value": 20191219102115},
                {"Name": "PhoneNumber", "Value": 254712345678},
            ]
        }
    return {"Body": {"stkCallback": callback}}


class FakeDaraja:
    """httpx MockTransport handler standing in for the Daraja sandbox."""

    def __init__(self) -> None:
        self.token_calls = 0
        self.push_requests: list[dict[str, Any]] = []
        self.push_headers: list[httpx.Headers] = []
        self.checkout_ids = iter(f"ws_{i}" for i in range(1, 1000))
        self.token_response: Callable[[], httpx.Response] = lambda: httpx.Response(
            200, json={"access_token": f"token-{self.token_calls}", "expires_in": "3599"}
        )
        self.push_response: Optional[Callable[[dict], httpx.Response]] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/v1/generate":
            self.token_calls += 1
            return self.token_response()
        if request.url.path == "/mpesa/stkpush/v1/processrequest":
            payload = json.loads(request.content)
            self.push_requests.append(payload)
            self.push_headers.append(request.headers)
            if self.push_response is not None:
                return self.push_response(payload)
            return httpx.Response(200, json={
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": next(self.checkout_ids),
                "ResponseCode": "0",
                "ResponseDescription": "Success. Request accepted for processing",
                "CustomerMessage": "Success. Request accepted for processing",
            })
        return httpx.Response(404, json={"errorMessage": "unknown path"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))
