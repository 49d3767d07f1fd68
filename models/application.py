import enum

from sqlalchemy import Column, DateTime, Integer, String, Text, func

from database import Base


class ApplicationStatus(str, enum.Enum):
    CREATED = "created"
    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (ApplicationStatus.PAID, ApplicationStatus.REJECTED)


class LoanApplication(Base):
    __tablename__ = "loan_applications"

    id = Column(String(64), primary_key=True, index=True)
    status = Column(String(32), nullable=False, default=ApplicationStatus.CREATED.value, index=True)
    # Applicant details captured by the intake form
    first_name = Column(String(100), nullable=True)
    second_name = Column(String(100), nullable=True)
    id_number = Column(String(16), nullable=True)
    monthly_earnings = Column(String(32), nullable=True)
    loan_type = Column(String(16), nullable=True)
    loan_amount = Column(Integer, nullable=True)
    # Payment
    phone_number = Column(String(20), nullable=False)
    amount = Column(Integer, nullable=False)
    checkout_reference = Column(String(64), nullable=True, unique=True, index=True)
    merchant_request_id = Column(String(64), nullable=True)
    transaction_reference = Column(String(64), nullable=True)
    result_code = Column(Integer, nullable=True)
    result_description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
