import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy import JSON

from database import Base


class CallbackOutcome(str, enum.Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    RECONCILIATION_MISS = "reconciliation_miss"
    INVALID_PAYLOAD = "invalid_payload"
    ERROR = "error"


class CallbackEvent(Base):
    """One row per webhook delivery, whatever the outcome."""

    __tablename__ = "callback_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    checkout_reference = Column(String(64), nullable=True, index=True)
    application_id = Column(String(64), ForeignKey("loan_applications.id", ondelete="SET NULL"), nullable=True, index=True)
    result_code = Column(Integer, nullable=True)
    result_description = Column(Text, nullable=True)
    outcome = Column(String(32), nullable=False, index=True)
    detail = Column(Text, nullable=True)
    # Raw webhook body as delivered
    payload = Column(JSON, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
