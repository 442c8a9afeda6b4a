"""
Async User Model

The user directory is owned by the auth service; payments only reads email and
name and caches the Stripe customer id here.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, String

from livestockway.db import Base, BigIntPK


class User(Base):
    __tablename__ = "app_users"

    id = Column(BigIntPK, primary_key=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    user_type = Column(String, nullable=True)  # shipper, hauler, hauler-individual, super-admin
    stripe_customer_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def role(self) -> str:
        return (self.user_type or "").strip().lower().replace("_", "-")
