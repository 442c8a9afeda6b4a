"""
Async Webhook Event and Audit Models
"""

from datetime import datetime

from sqlalchemy import JSON, BigInteger, Column, DateTime, String

from livestockway.db import Base, BigIntPK


class WebhookEventRecord(Base):
    __tablename__ = "stripe_webhook_events"

    id = Column(BigIntPK, primary_key=True, index=True)
    stripe_event_id = Column(String, unique=True, nullable=False)
    event_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=True)
    processed_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(BigIntPK, primary_key=True, index=True)
    user_id = Column(BigInteger, nullable=True)
    user_role = Column(String, nullable=True)
    action = Column(String, nullable=False)
    event_type = Column(String, nullable=True)
    resource = Column(String, nullable=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
