"""
Reconciles Daraja STK callbacks into loan application status.

The gateway only ever sees an acknowledgement. What actually happened to a
delivery (applied, duplicate, unknown reference, unreadable payload, internal
error) is logged and stored as a CallbackEvent for operators.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database import session_scope
from exceptions import ReconciliationMiss
from models import ApplicationStatus, CallbackOutcome
from schemas.payment import StkCallback, StkCallbackEnvelope
from services.application_store import ApplicationStore

logger = logging.getLogger(__name__)

SUCCESS_RESULT_CODE = 0


@dataclass
class CallbackResult:
    outcome: CallbackOutcome
    checkout_reference: Optional[str] = None
    application_id: Optional[str] = None
    status: Optional[str] = None
    detail: Optional[str] = None


class CallbackReceiver:
    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None) -> None:
        self.session_factory = session_factory

    async def handle(self, payload: Any) -> CallbackResult:
        """Process one delivery. Never raises."""
        try:
            callback = StkCallbackEnvelope.model_validate(payload).body.stk_callback
        except ValidationError as e:
            logger.warning("Unreadable M-Pesa callback payload: %s", e.errors(include_url=False))
            result = CallbackResult(CallbackOutcome.INVALID_PAYLOAD, detail=str(e))
            await self._record(result, None, payload)
            return result

        logger.info(
            "M-Pesa callback received: checkout=%s code=%s desc=%s",
            callback.checkout_request_id, callback.result_code, callback.result_desc,
        )
        try:
            result = await self._reconcile(callback)
        except ReconciliationMiss as e:
            logger.warning("Reconciliation miss: %s", e.message)
            result = CallbackResult(
                CallbackOutcome.RECONCILIATION_MISS,
                checkout_reference=callback.checkout_request_id,
                detail=e.message,
            )
        except Exception as e:
            logger.exception("Failed to process M-Pesa callback %s", callback.checkout_request_id)
            result = CallbackResult(
                CallbackOutcome.ERROR,
                checkout_reference=callback.checkout_request_id,
                detail=f"{type(e).__name__}: {e}",
            )
        await self._record(result, callback, payload)
        return result

    async def _reconcile(self, callback: StkCallback) -> CallbackResult:
        reference = callback.checkout_request_id
        async with session_scope(self.session_factory) as session:
            store = ApplicationStore(session)
            app = await store.get_by_checkout_reference(reference)
            if app is None:
                raise ReconciliationMiss(reference)

            if app.status != ApplicationStatus.PENDING_PAYMENT.value:
                return self._duplicate(app.id, app.status, reference)

            if callback.result_code == SUCCESS_RESULT_CODE:
                target = ApplicationStatus.PAID
                receipt = callback.receipt_number
                if not receipt:
                    logger.warning("Successful callback %s carries no MpesaReceiptNumber", reference)
            else:
                target = ApplicationStatus.REJECTED
                receipt = None

            applied = await store.resolve(
                app.id,
                checkout_reference=reference,
                status=target,
                result_code=callback.result_code,
                result_description=callback.result_desc,
                transaction_reference=receipt,
            )
            if not applied:
                # a concurrent delivery resolved it first
                current = await store.get_status(app.id)
                return self._duplicate(app.id, current, reference)

        logger.info("Application %s is now %s (receipt=%s)", app.id, target.value, receipt)
        return CallbackResult(
            CallbackOutcome.APPLIED,
            checkout_reference=reference,
            application_id=app.id,
            status=target.value,
        )

    def _duplicate(self, application_id: str, status: Optional[str], reference: str) -> CallbackResult:
        logger.info(
            "Duplicate or stale callback %s for %s ignored (status %s)",
            reference, application_id, status,
        )
        return CallbackResult(
            CallbackOutcome.DUPLICATE,
            checkout_reference=reference,
            application_id=application_id,
            status=status,
            detail=f"Application already {status}",
        )

    async def _record(self, result: CallbackResult, callback: Optional[StkCallback], payload: Any) -> None:
        try:
            async with session_scope(self.session_factory) as session:
                await ApplicationStore(session).record_callback(
                    checkout_reference=result.checkout_reference,
                    application_id=result.application_id,
                    result_code=callback.result_code if callback else None,
                    result_description=callback.result_desc if callback else None,
                    outcome=result.outcome.value,
                    detail=result.detail,
                    payload=payload if isinstance(payload, (dict, list)) else None,
                )
        except Exception:
            logger.exception("Could not store callback event for %s", result.checkout_reference)
