from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_session
from schemas.application import ApplicationCreate, ApplicationResponse
from services.application_store import ApplicationStore

router = APIRouter(prefix="/api/applications", tags=["applications"])


def _app_to_response(app) -> dict:
    return ApplicationResponse.from_model(app).model_dump(by_alias=True, mode="json")


@router.get("")
async def list_applications(db: AsyncSession = Depends(get_session)):
    apps = await ApplicationStore(db).list_all()
    return [_app_to_response(a) for a in apps]


@router.get("/{application_id}")
async def get_application(application_id: str, db: AsyncSession = Depends(get_session)):
    app = await ApplicationStore(db).get(application_id)
    if not app:
        raise HTTPException(status_code=404, detail="Application not found")
    return _app_to_response(app)


@router.post("", status_code=201)
async def create_application(body: ApplicationCreate, request: Request, db: AsyncSession = Depends(get_session)):
    """Eligibility is a simulated approval: every complete application may proceed to payment."""
    app = await ApplicationStore(db).create(
        phone_number=body.phone_number.strip(),
        amount=request.app.state.settings.application_fee,
        first_name=body.first_name,
        second_name=body.second_name,
        id_number=body.id_number,
        monthly_earnings=body.monthly_earnings,
        loan_type=body.loan_type,
        loan_amount=body.loan_amount,
    )
    return _app_to_response(app)
