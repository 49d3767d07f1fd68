from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_callback_receiver, get_initiator, get_session
from models import ApplicationStatus
from schemas.payment import CallbackAck, PaymentStatusResponse, StkPushRequest, StkPushResponse, WaitResponse
from services.application_store import ApplicationStore
from services.callback_receiver import CallbackReceiver
from services.status_poller import StatusPoller, store_status_reader
from services.stk_initiator import StkInitiator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("/stk-push")
async def initiate_payment(
    body: StkPushRequest,
    db: AsyncSession = Depends(get_session),
    initiator: StkInitiator = Depends(get_initiator),
):
    logger.info("Processing payment request for loan %s", body.loan_application_id)
    result = await initiator.initiate(db, body.loan_application_id, body.phone_number, body.amount)
    return StkPushResponse(
        message="Payment request sent. Please check your phone.",
        checkout_request_id=result.checkout_reference,
        merchant_request_id=result.provider_request_id,
    ).model_dump(by_alias=True)


@router.post("/callback")
async def mpesa_callback(request: Request, receiver: CallbackReceiver = Depends(get_callback_receiver)):
    """Daraja webhook. Always acknowledged so the gateway does not redeliver."""
    try:
        payload: Any = await request.json()
    except ValueError:
        payload = None
    result = await receiver.handle(payload)
    logger.debug("Callback outcome %s for %s", result.outcome.value, result.checkout_reference)
    return CallbackAck().model_dump()


@router.get("/{application_id}/status")
async def payment_status(application_id: str, db: AsyncSession = Depends(get_session)):
    app = await ApplicationStore(db).get(application_id)
    if not app:
        raise HTTPException(status_code=404, detail="Application not found")
    return PaymentStatusResponse(
        loan_application_id=app.id,
        status=app.status,
        checkout_request_id=app.checkout_reference,
        transaction_id=app.transaction_reference,
        terminal=ApplicationStatus(app.status).is_terminal,
    ).model_dump(by_alias=True)


@router.get("/{application_id}/wait")
async def wait_for_payment(
    application_id: str,
    request: Request,
    interval: float | None = Query(None, gt=0, le=30),
    timeout: float | None = Query(None, gt=0, le=300),
):
    """Long poll until the payment is paid or rejected; 'timed_out' means still pending."""
    settings = request.app.state.settings
    poller = StatusPoller(store_status_reader(request.app.state.session_factory))
    result = await poller.wait_for_outcome(
        application_id,
        interval=interval or settings.poll_interval_seconds,
        max_duration=timeout or settings.poll_max_duration_seconds,
    )
    return WaitResponse(
        loan_application_id=application_id,
        outcome=result.outcome.value,
        status=result.status,
        reads=result.reads,
    ).model_dump(by_alias=True)
