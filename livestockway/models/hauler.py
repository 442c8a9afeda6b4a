"""
Async Hauler Model
"""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from livestockway.db import Base, BigIntPK


class Hauler(Base):
    __tablename__ = "haulers"

    id = Column(BigIntPK, primary_key=True, index=True)
    user_id = Column(BigInteger, ForeignKey("app_users.id"), unique=True, nullable=False)
    hauler_type = Column(String, nullable=False, default="COMPANY")  # INDIVIDUAL or COMPANY

    # Mirror of the latest non-pending hauler_subscriptions row; written only in
    # the same transaction as that row.
    subscription_status = Column(String, nullable=True)
    subscription_current_period_end = Column(DateTime, nullable=True)

    # Stripe fields
    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_connected_account_id = Column(String(255), nullable=True, unique=True)
    stripe_charges_enabled = Column(Boolean, default=False, nullable=False)
    stripe_payouts_enabled = Column(Boolean, default=False, nullable=False)
    stripe_details_submitted = Column(Boolean, default=False, nullable=False)
    stripe_onboarding_complete = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User")


# Ensure dependent models are imported so SQLAlchemy can resolve string relationships
from livestockway.models import user as _user  # noqa: E402,F401
