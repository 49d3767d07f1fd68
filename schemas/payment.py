from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class StkPushRequest(BaseModel):
    phone_number: str = Field(..., alias="phoneNumber", min_length=1)
    amount: int = Field(..., gt=0)
    loan_application_id: str = Field(..., alias="loanApplicationId", min_length=1)

    model_config = {"populate_by_name": True}


class StkPushResponse(BaseModel):
    success: bool = True
    message: str
    checkout_request_id: Optional[str] = Field(None, alias="checkoutRequestId")
    merchant_request_id: Optional[str] = Field(None, alias="merchantRequestId")

    model_config = {"populate_by_name": True}


class PaymentStatusResponse(BaseModel):
    loan_application_id: str = Field(..., alias="loanApplicationId")
    status: Literal["created", "pending_payment", "paid", "rejected"]
    checkout_request_id: Optional[str] = Field(None, alias="checkoutRequestId")
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    terminal: bool

    model_config = {"populate_by_name": True}


class WaitResponse(BaseModel):
    loan_application_id: str = Field(..., alias="loanApplicationId")
    outcome: Literal["paid", "rejected", "timed_out", "cancelled"]
    status: Optional[str] = None
    reads: int

    model_config = {"populate_by_name": True}


# --- Daraja STK callback envelope (shape dictated by the gateway) ---


class CallbackMetadataItem(BaseModel):
    name: str = Field(..., alias="Name")
    value: Any = Field(None, alias="Value")

    model_config = {"populate_by_name": True}


class CallbackMetadata(BaseModel):
    item: list[CallbackMetadataItem] = Field(default_factory=list, alias="Item")

    model_config = {"populate_by_name": True}


class StkCallback(BaseModel):
    merchant_request_id: Optional[str] = Field(None, alias="MerchantRequestID")
    checkout_request_id: str = Field(..., alias="CheckoutRequestID")
    result_code: int = Field(..., alias="ResultCode")
    result_desc: str = Field("", alias="ResultDesc")
    callback_metadata: Optional[CallbackMetadata] = Field(None, alias="CallbackMetadata")

    model_config = {"populate_by_name": True}

    def metadata_value(self, name: str) -> Any:
        if not self.callback_metadata:
            return None
        for item in self.callback_metadata.item:
            if item.name == name:
                return item.value
        return None

    @property
    def receipt_number(self) -> Optional[str]:
        value = self.metadata_value("MpesaReceiptNumber")
        return str(value) if value is not None else None


class StkCallbackBody(BaseModel):
    stk_callback: StkCallback = Field(..., alias="stkCallback")

    model_config = {"populate_by_name": True}


class StkCallbackEnvelope(BaseModel):
    body: StkCallbackBody = Field(..., alias="Body")

    model_config = {"populate_by_name": True}


class CallbackAck(BaseModel):
    ResultCode: int = 0
    ResultDesc: str = "Callback processed successfully"
