"""Customer model (messaging-relevant columns)."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from backoffice.persistence.database import Base

SMS_STATUS_ACTIVE = "active"
SMS_STATUS_DEACTIVATED = "sms_deactivated"
SMS_STATUS_OPTED_OUT = "opted_out"


class Customer(Base):
    """Venue customer.

    SMS eligibility is tracked by sms_opt_in and sms_status. The delivery
    failure counter is reset on any confirmed delivery and triggers
    deactivation once it passes the configured threshold.
    """

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)

    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    mobile_number = Column(String(50), nullable=False)
    mobile_e164 = Column(String(20), nullable=True, index=True)

    # SMS eligibility
    sms_opt_in = Column(Boolean, default=False, nullable=False)
    sms_status = Column(String(50), default=SMS_STATUS_ACTIVE, nullable=False)  # active, sms_deactivated, opted_out
    sms_delivery_failures = Column(Integer, default=0, nullable=False)
    last_sms_failure_reason = Column(String(500), nullable=True)
    last_successful_sms_at = Column(DateTime, nullable=True)
    sms_deactivated_at = Column(DateTime, nullable=True)
    sms_deactivation_reason = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    messages = relationship("Message", back_populates="customer")

    @property
    def can_receive_sms(self) -> bool:
        return bool(self.sms_opt_in) and self.sms_status not in (
            SMS_STATUS_DEACTIVATED,
            SMS_STATUS_OPTED_OUT,
        )

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, name={self.first_name}, sms_status={self.sms_status})>"
