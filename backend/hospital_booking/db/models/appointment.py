# hospital_booking/db/models/appointment.py
from sqlalchemy import (
    Column,
    Integer,
    DateTime,
    String,
    Text,
    Numeric,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from hospital_booking.db.base import Base
from sqlalchemy.sql import func


class AppointmentModel(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, nullable=False, index=True)
    provider_id = Column(Integer, nullable=False, index=True)
    department = Column(String(100), nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=False)  # UTC
    ends_at = Column(DateTime(timezone=True), nullable=False)  # UTC
    duration_minutes = Column(Integer, nullable=False, default=30)
    reason = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)

    status = Column(
        String(20), default="scheduled", nullable=False
    )  # scheduled, confirmed, completed, cancelled, no-show
    payment_status = Column(
        String(20), default="pending", nullable=False
    )  # pending, paid, failed, refunded, covered
    payment_method = Column(String(20), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # One active booking per provider start instant; cancelled rows release the slot
    __table_args__ = (
        Index(
            "uq_appointments_provider_slot_active",
            "provider_id",
            "starts_at",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )

    payment = relationship(
        "PaymentModel",
        back_populates="appointment",
        uselist=False,
        passive_deletes=True,
    )

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, provider_id={self.provider_id}, "
            f"starts_at={self.starts_at}, status='{self.status}', "
            f"payment_status='{self.payment_status}')>"
        )
