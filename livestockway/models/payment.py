"""
Async Escrow Payment Model
"""

from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String

from livestockway.db import Base, BigIntPK


class EscrowPayment(Base):
    __tablename__ = "payments"

    id = Column(BigIntPK, primary_key=True, index=True)
    trip_id = Column(BigInteger, nullable=True, index=True)
    load_id = Column(BigInteger, nullable=True)
    payer_user_id = Column(BigInteger, ForeignKey("app_users.id"), nullable=False)
    payee_user_id = Column(BigInteger, ForeignKey("app_users.id"), nullable=False)

    # Amount the hauler receives; fee columns are filled when funding starts
    amount_minor = Column(BigInteger, nullable=False)
    platform_fee_minor = Column(BigInteger, nullable=True)
    processor_fee_minor = Column(BigInteger, nullable=True)
    total_charged_minor = Column(BigInteger, nullable=True)
    currency = Column(String, nullable=False, default="usd")

    status = Column(
        String, nullable=False, default="pending"
    )  # pending, pending_funding, in_escrow, funding_failed, released
    stripe_payment_intent_id = Column(String, nullable=True, index=True)
    stripe_charge_id = Column(String, nullable=True)
    stripe_transfer_id = Column(String, nullable=True)
    payout_status = Column(String, nullable=True)  # pending, completed

    funded_at = Column(DateTime, nullable=True)
    released_at = Column(DateTime, nullable=True)
    payout_completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
