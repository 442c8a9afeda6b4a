"""
Async Subscription Models
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from livestockway.db import Base, BigIntPK


class PricingConfig(Base):
    __tablename__ = "pricing_configs"

    id = Column(BigIntPK, primary_key=True, index=True)
    target_user_type = Column(String, nullable=False)  # HAULER_INDIVIDUAL, ...
    monthly_price = Column(Numeric(10, 2), nullable=True)
    stripe_product_id = Column(String, nullable=True)
    stripe_price_id_monthly = Column(String, nullable=True)
    stripe_price_id_yearly = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Subscription(Base):
    __tablename__ = "hauler_subscriptions"

    id = Column(BigIntPK, primary_key=True, index=True)
    hauler_id = Column(BigInteger, ForeignKey("haulers.id"), nullable=False, index=True)
    plan_type = Column(String, nullable=False, default="INDIVIDUAL")
    billing_cycle = Column(String, nullable=False)  # MONTHLY or YEARLY
    status = Column(String, nullable=False)  # PENDING, ACTIVE, PAST_DUE, CANCELED
    monthly_price = Column(Numeric(10, 2), nullable=False)
    charged_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String, nullable=False, default="USD")
    stripe_subscription_id = Column(String, nullable=True, unique=True)
    stripe_checkout_session_id = Column(String, nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    current_period_end = Column(DateTime, nullable=True)
    # created timestamp of the newest Stripe event applied to this row
    provider_event_at = Column(DateTime, nullable=True)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    # Relationships
    payments = relationship("SubscriptionPayment", back_populates="subscription")


class SubscriptionPayment(Base):
    __tablename__ = "hauler_subscription_payments"

    id = Column(BigIntPK, primary_key=True, index=True)
    subscription_id = Column(
        BigInteger, ForeignKey("hauler_subscriptions.id"), nullable=False, index=True
    )
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String, nullable=False)
    provider = Column(String, nullable=False)  # MANUAL or STRIPE
    provider_ref = Column(String, nullable=True, unique=True)  # Stripe invoice id
    billing_cycle = Column(String, nullable=True)
    status = Column(String, nullable=False, default="PAID")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    subscription = relationship("Subscription", back_populates="payments")
