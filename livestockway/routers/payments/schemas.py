"""Payments/Subscription/Connect schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class StripeConfigResponse(BaseModel):
    publishable_key: str
    currency: str


class AccountLinkResponse(BaseModel):
    url: str
    account_id: str


class ConnectStatusResponse(BaseModel):
    connected: bool
    account_id: Optional[str] = None
    onboarding_complete: bool = False
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False


class SubscriptionRequest(BaseModel):
    # Validated by the service so unknown cycles get a 400 with a readable message
    billing_cycle: Optional[str] = Field(None, description="MONTHLY (default) or YEARLY")


class CheckoutResponse(BaseModel):
    session_id: str
    url: str
    subscription_id: int


class SubscriptionSummaryResponse(BaseModel):
    hauler_type: Optional[str] = None
    status: str
    current_period_end: Optional[datetime] = None
    billing_cycle: Optional[str] = None
    monthly_price: Optional[float] = None
    yearly_price: Optional[float] = None
    has_access: bool


class SubscribeResponse(BaseModel):
    subscription_id: int
    hauler_type: str
    status: str
    billing_cycle: str
    charged_amount: float
    monthly_price: float
    yearly_price: float
    currency: str
    current_period_end: Optional[datetime] = None


class FeeBreakdownResponse(BaseModel):
    base_amount_cents: int
    platform_fee_cents: int
    stripe_fee_cents: int
    total_charged_cents: int


class FundingIntentResponse(BaseModel):
    payment_id: int
    status: str
    payment_intent_id: str
    client_secret: str
    breakdown: FeeBreakdownResponse


class ReleasePayoutResponse(BaseModel):
    payment_id: int
    status: str
    payout_status: Optional[str] = None
    transfer_id: str


class CreatePaymentRequest(BaseModel):
    trip_id: int
    payee_user_id: int
    amount_cents: int = Field(..., gt=0, description="Amount the payee receives, in cents")
    load_id: Optional[int] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3, description="Defaults to usd")


class PaymentResponse(BaseModel):
    id: int
    trip_id: Optional[int] = None
    load_id: Optional[int] = None
    payer_user_id: int
    payee_user_id: int
    amount_minor: int
    platform_fee_minor: Optional[int] = None
    processor_fee_minor: Optional[int] = None
    total_charged_minor: Optional[int] = None
    currency: str
    status: str
    payout_status: Optional[str] = None
    funded_at: Optional[datetime] = None
    released_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
