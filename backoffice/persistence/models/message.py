"""SMS message and delivery-status audit models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from backoffice.persistence.database import Base


class Message(Base):
    """Inbound or outbound SMS message.

    status is the local coarse projection of carrier_status, the raw
    string reported by the carrier.
    """

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)

    direction = Column(String(20), nullable=False)  # inbound, outbound, outbound-api
    body = Column(Text, nullable=False, default="")
    from_number = Column(String(50), nullable=True)
    to_number = Column(String(50), nullable=True, index=True)
    segments = Column(Integer, nullable=True)

    # Delivery state
    status = Column(String(20), nullable=False, index=True)  # queued, sent, delivered, failed, undelivered, cancelled
    carrier_status = Column(String(30), nullable=True)
    carrier_message_id = Column(String(64), nullable=True, unique=True)
    error_code = Column(String(20), nullable=True)
    error_message = Column(Text, nullable=True)

    # Reconciliation backoff
    reconcile_attempts = Column(Integer, default=0, nullable=False)
    next_reconcile_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    sent_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_messages_direction_status_created", "direction", "status", "created_at"),
    )

    customer = relationship("Customer", back_populates="messages")
    delivery_statuses = relationship(
        "MessageDeliveryStatus",
        back_populates="message",
        order_by="MessageDeliveryStatus.id",
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, direction={self.direction}, status={self.status}, sid={self.carrier_message_id})>"


class MessageDeliveryStatus(Base):
    """Append-only audit trail of message status transitions."""

    __tablename__ = "message_delivery_status"

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(Integer, ForeignKey("messages.id"), nullable=False, index=True)
    status = Column(String(30), nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    message = relationship("Message", back_populates="delivery_statuses")

    def __repr__(self) -> str:
        return f"<MessageDeliveryStatus(message_id={self.message_id}, status={self.status})>"
