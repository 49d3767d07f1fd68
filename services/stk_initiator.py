"""
Initiates the application-fee STK push for one loan application and records
the gateway's checkout reference on it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from exceptions import (
    AlreadyInitiated,
    AmountMismatch,
    ApplicationNotFound,
    GatewayRejected,
    PersistenceError,
)
from models import ApplicationStatus
from services.application_store import ApplicationStore
from services.daraja import DarajaClient, build_stk_payload
from services.phone import mask_phone_number, normalize_phone_number
from services.token_manager import TokenManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StkPushResult:
    checkout_reference: str
    provider_request_id: str | None


class StkInitiator:
    def __init__(self, settings: Settings, gateway: DarajaClient, tokens: TokenManager) -> None:
        self.settings = settings
        self.gateway = gateway
        self.tokens = tokens

    async def initiate(
        self,
        session: AsyncSession,
        application_id: str,
        phone_number: str,
        amount: float,
    ) -> StkPushResult:
        """
        Send the STK push and move the application to pending_payment.
        Nothing is written unless the gateway accepted the request.
        """
        self.settings.require_mpesa()
        store = ApplicationStore(session)

        app = await store.get(application_id)
        if app is None:
            raise ApplicationNotFound(f"Loan application {application_id} not found")
        _check_can_initiate(app.status, application_id)
        if int(round(amount)) != app.amount:
            raise AmountMismatch(f"Amount must be the application fee of KES {app.amount}")

        msisdn = normalize_phone_number(phone_number)
        credential = await self.tokens.get_token()

        payload = build_stk_payload(
            shortcode=self.settings.mpesa_shortcode,
            passkey=self.settings.mpesa_passkey,
            callback_url=self.settings.mpesa_callback_url,
            phone_number=msisdn,
            amount=amount,
            account_reference=application_id,
            transaction_desc=self.settings.mpesa_transaction_desc,
        )
        logger.info(
            "Initiating STK push for %s: phone=%s amount=%s",
            application_id, mask_phone_number(msisdn), payload["Amount"],
        )
        try:
            data = await self.gateway.stk_push(credential.value, payload)
        except GatewayRejected as e:
            if e.http_status == 401:
                self.tokens.invalidate()
            raise

        checkout_reference = data["CheckoutRequestID"]
        merchant_request_id = data.get("MerchantRequestID")

        try:
            applied = await store.mark_pending(
                application_id,
                checkout_reference=checkout_reference,
                merchant_request_id=merchant_request_id,
                phone_number=msisdn,
            )
            if applied:
                # the reference must be durable before the push is reported as accepted
                await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(
                "Reconciliation risk: push %s sent for %s but the record write failed: %s",
                checkout_reference, application_id, e, exc_info=True,
            )
            raise PersistenceError("Failed to update loan application", checkout_reference) from e
        if not applied:
            logger.error(
                "Reconciliation risk: push %s sent for %s but another initiation won the race; "
                "reference is orphaned",
                checkout_reference, application_id,
            )
            raise PersistenceError("Failed to update loan application", checkout_reference)

        logger.info("STK push accepted for %s: checkout=%s", application_id, checkout_reference)
        return StkPushResult(checkout_reference=checkout_reference, provider_request_id=merchant_request_id)


def _check_can_initiate(status: str, application_id: str) -> None:
    if status == ApplicationStatus.CREATED.value:
        return
    if status == ApplicationStatus.PENDING_PAYMENT.value:
        raise AlreadyInitiated(
            f"A payment request for {application_id} is already pending. Check your phone."
        )
    raise AlreadyInitiated(f"Payment for {application_id} has already been resolved ({status}).")
