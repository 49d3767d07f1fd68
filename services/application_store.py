"""
Record store for loan applications.

Every write that can race with another actor (a second initiation, a duplicate
callback) is a single UPDATE ... WHERE on the expected current values; the
affected row count tells the caller whether its precondition still held.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import ApplicationStatus, CallbackEvent, LoanApplication


def new_application_id() -> str:
    return f"app-{uuid.uuid4().hex[:12]}"


class ApplicationStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, *, phone_number: str, amount: int, application_id: str | None = None, **details) -> LoanApplication:
        now = datetime.now(timezone.utc)
        app = LoanApplication(
            id=application_id or new_application_id(),
            status=ApplicationStatus.CREATED.value,
            phone_number=phone_number,
            amount=amount,
            created_at=now,
            updated_at=now,
            **details,
        )
        self.session.add(app)
        await self.session.flush()
        return app

    async def get(self, application_id: str) -> LoanApplication | None:
        result = await self.session.execute(
            select(LoanApplication).where(LoanApplication.id == application_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_checkout_reference(self, checkout_reference: str) -> LoanApplication | None:
        result = await self.session.execute(
            select(LoanApplication).where(LoanApplication.checkout_reference == checkout_reference)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> list[LoanApplication]:
        result = await self.session.execute(
            select(LoanApplication).order_by(LoanApplication.updated_at.desc())
        )
        return list(result.scalars().all())

    async def get_status(self, application_id: str) -> str | None:
        """Plain read of the status column; never locks or mutates."""
        result = await self.session.execute(
            select(LoanApplication.status).where(LoanApplication.id == application_id)
        )
        return result.scalar_one_or_none()

    async def mark_pending(
        self,
        application_id: str,
        *,
        checkout_reference: str,
        merchant_request_id: str | None,
        phone_number: str,
    ) -> bool:
        """created -> pending_payment, recording the new checkout reference."""
        result = await self.session.execute(
            update(LoanApplication)
            .where(
                LoanApplication.id == application_id,
                LoanApplication.status == ApplicationStatus.CREATED.value,
                LoanApplication.checkout_reference.is_(None),
            )
            .values(
                status=ApplicationStatus.PENDING_PAYMENT.value,
                checkout_reference=checkout_reference,
                merchant_request_id=merchant_request_id,
                phone_number=phone_number,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        return result.rowcount == 1

    async def resolve(
        self,
        application_id: str,
        *,
        checkout_reference: str,
        status: ApplicationStatus,
        result_code: int,
        result_description: str | None,
        transaction_reference: str | None = None,
    ) -> bool:
        """pending_payment -> paid | rejected, only for the live checkout reference."""
        if not status.is_terminal:
            raise ValueError(f"resolve() needs a terminal status, got {status.value}")
        values = {
            "status": status.value,
            "result_code": result_code,
            "result_description": result_description,
            "updated_at": datetime.now(timezone.utc),
        }
        if status is ApplicationStatus.PAID:
            values["transaction_reference"] = transaction_reference
        result = await self.session.execute(
            update(LoanApplication)
            .where(
                LoanApplication.id == application_id,
                LoanApplication.checkout_reference == checkout_reference,
                LoanApplication.status == ApplicationStatus.PENDING_PAYMENT.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        return result.rowcount == 1

    async def record_callback(self, **fields) -> CallbackEvent:
        event = CallbackEvent(**fields)
        self.session.add(event)
        await self.session.flush()
        return event
