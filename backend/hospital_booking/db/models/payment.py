# hospital_booking/db/models/payment.py
from sqlalchemy import (
    Column,
    Integer,
    DateTime,
    String,
    Numeric,
    JSON,
    ForeignKey,
)
from sqlalchemy.orm import relationship
from hospital_booking.db.base import Base
from sqlalchemy.sql import func


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    # Payment rows are never deleted; a deleted appointment leaves the audit row orphaned
    appointment_id = Column(
        Integer,
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    patient_id = Column(Integer, nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    method = Column(String(20), nullable=False)  # govt_coverage | insurance | cash | card
    status = Column(String(20), nullable=False, default="pending")  # pending | paid | failed | refunded | covered
    transaction_id = Column(String(64), nullable=False, unique=True, index=True)

    card_details = Column(JSON, nullable=True)  # brand, last4, expiry_month, expiry_year
    insurance_details = Column(JSON, nullable=True)  # provider, policy_number, coverage_amount
    govt_coverage_details = Column(JSON, nullable=True)  # scheme, reference_number
    gateway_response = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    appointment = relationship("AppointmentModel", back_populates="payment")

    def __repr__(self):
        return (
            f"<Payment(id={self.id}, appointment_id={self.appointment_id}, "
            f"method='{self.method}', status='{self.status}', "
            f"transaction_id='{self.transaction_id}')>"
        )
