from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class ApplicationCreate(BaseModel):
    first_name: str = Field(..., alias="firstName", min_length=1)
    second_name: str = Field(..., alias="secondName", min_length=1)
    id_number: str = Field(..., alias="idNumber", pattern=r"^\d{7,8}$")
    phone_number: str = Field(..., alias="phoneNumber", min_length=1)
    monthly_earnings: str = Field(..., alias="monthlyEarnings", min_length=1)
    loan_type: Literal["quick", "emergency", "business"] = Field("quick", alias="loanType")
    loan_amount: int = Field(10_000, alias="loanAmount", ge=1_000, le=50_000)

    model_config = {"populate_by_name": True}


class ApplicationResponse(BaseModel):
    id: str
    status: Literal["created", "pending_payment", "paid", "rejected"]
    first_name: Optional[str] = Field(None, alias="firstName")
    second_name: Optional[str] = Field(None, alias="secondName")
    phone_number: str = Field(..., alias="phoneNumber")
    loan_type: Optional[str] = Field(None, alias="loanType")
    loan_amount: Optional[int] = Field(None, alias="loanAmount")
    application_fee: int = Field(..., alias="applicationFee")
    checkout_request_id: Optional[str] = Field(None, alias="checkoutRequestId")
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_model(cls, obj: Any) -> "ApplicationResponse":
        return cls(
            id=obj.id,
            status=obj.status,
            first_name=obj.first_name,
            second_name=obj.second_name,
            phone_number=obj.phone_number,
            loan_type=obj.loan_type,
            loan_amount=obj.loan_amount,
            application_fee=obj.amount,
            checkout_request_id=obj.checkout_reference,
            transaction_id=obj.transaction_reference,
            created_at=obj.created_at,
            updated_at=obj.updated_at,
        )
