"""
Stripe Service - the single configured Stripe client used by the payments domain.

``StripeGateway`` is constructed once at process start (see ``create_app``) and
handed to services explicitly, so tests can substitute a fake without touching
module-level Stripe state. Every call passes its own ``api_key`` and runs in the
threadpool because stripe-python is synchronous.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe
from starlette.concurrency import run_in_threadpool

import livestockway.core.config as config
from livestockway.services.errors import InvalidSignature, ProviderError

logger = logging.getLogger(__name__)


@dataclass
class StripeEvent:
    id: str
    type: str
    created: Optional[datetime]
    data_object: Dict[str, Any]


@dataclass
class ProviderSubscription:
    id: str
    status: str
    customer: Optional[str] = None
    current_period_end: Optional[datetime] = None
    interval: Optional[str] = None
    unit_amount: Optional[int] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class ConnectedAccountStatus:
    account_id: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool

    @property
    def onboarding_complete(self) -> bool:
        return self.charges_enabled and self.payouts_enabled and self.details_submitted


def from_unix(ts) -> Optional[datetime]:
    """Convert a Stripe unix timestamp to a naive UTC datetime."""
    if ts is None:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).replace(tzinfo=None)


def as_dict(obj) -> Dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None) or getattr(obj, "to_dict_recursive", None)
    if to_dict is None:
        raise TypeError(f"Cannot read Stripe object of type {type(obj).__name__}")
    return to_dict()


def subscription_period_end(sub: Dict[str, Any]) -> Optional[datetime]:
    """
    Billing period end of a subscription payload.

    Newer API versions only carry it on the subscription item; older ones keep
    it on the subscription itself.
    """
    items = (sub.get("items") or {}).get("data") or []
    if items and items[0].get("current_period_end"):
        return from_unix(items[0]["current_period_end"])
    return from_unix(sub.get("current_period_end"))


def normalize_subscription(obj) -> ProviderSubscription:
    sub = as_dict(obj)
    items = (sub.get("items") or {}).get("data") or []
    price = (items[0].get("price") or {}) if items else {}
    recurring = price.get("recurring") or {}
    customer = sub.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")
    return ProviderSubscription(
        id=sub["id"],
        status=sub.get("status") or "",
        customer=customer,
        current_period_end=subscription_period_end(sub),
        interval=recurring.get("interval"),
        unit_amount=price.get("unit_amount"),
        metadata=dict(sub.get("metadata") or {}),
    )


def normalize_account(obj) -> ConnectedAccountStatus:
    account = as_dict(obj)
    return ConnectedAccountStatus(
        account_id=account["id"],
        charges_enabled=bool(account.get("charges_enabled")),
        payouts_enabled=bool(account.get("payouts_enabled")),
        details_submitted=bool(account.get("details_submitted")),
    )


class StripeGateway:
    def __init__(
        self,
        *,
        secret_key: str,
        webhook_secret: str = "",
        publishable_key: str = "",
        webhook_tolerance: int = 300,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.publishable_key = publishable_key
        self.webhook_tolerance = webhook_tolerance

    @classmethod
    def from_config(cls) -> "StripeGateway":
        if not config.STRIPE_SECRET_KEY:
            logger.warning("STRIPE_SECRET_KEY not set - Stripe operations will fail")
        if not config.STRIPE_WEBHOOK_SECRET:
            logger.warning("STRIPE_WEBHOOK_SECRET not set - Webhook verification will fail")
        return cls(
            secret_key=config.STRIPE_SECRET_KEY,
            webhook_secret=config.STRIPE_WEBHOOK_SECRET,
            publishable_key=config.STRIPE_PUBLISHABLE_KEY,
            webhook_tolerance=config.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )

    def construct_event(self, payload: bytes, signature: Optional[str]) -> StripeEvent:
        """
        Verify a webhook signature against the raw request body and decode the event.

        Raises:
            InvalidSignature: If the header is missing, the secret is unset, or
                the signature does not match the exact bytes received
        """
        if not signature:
            raise InvalidSignature("Missing Stripe-Signature header")
        if not self.webhook_secret:
            logger.error("Webhook received but STRIPE_WEBHOOK_SECRET is not configured")
            raise InvalidSignature("Webhook secret not configured")

        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, self.webhook_tolerance
            )
            data = json.loads(body)
        except stripe.SignatureVerificationError as exc:
            logger.warning("Webhook signature verification failed: %s", exc)
            raise InvalidSignature("Invalid webhook signature")
        except ValueError:
            raise InvalidSignature("Invalid webhook payload")

        if not isinstance(data, dict) or not data.get("id") or not data.get("type"):
            raise InvalidSignature("Invalid webhook payload")

        return StripeEvent(
            id=data["id"],
            type=data["type"],
            created=from_unix(data.get("created")),
            data_object=(data.get("data") or {}).get("object") or {},
        )

    async def _call(self, fn, *args, **kwargs):
        if not self.secret_key:
            raise ProviderError("Stripe is not configured")
        try:
            return await run_in_threadpool(fn, *args, api_key=self.secret_key, **kwargs)
        except stripe.StripeError as exc:
            logger.error("Stripe request %s failed: %s", getattr(fn, "__qualname__", fn), exc)
            raise ProviderError(f"Stripe request failed: {exc.user_message or str(exc)}")

    async def retrieve_subscription(self, subscription_id: str) -> ProviderSubscription:
        sub = await self._call(stripe.Subscription.retrieve, subscription_id)
        return normalize_subscription(sub)

    async def create_customer(self, *, email: str, name: Optional[str], metadata: Dict[str, str]) -> str:
        customer = await self._call(
            stripe.Customer.create, email=email, name=name or None, metadata=metadata
        )
        logger.info("Created Stripe customer %s for %s", customer["id"], metadata)
        return customer["id"]

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> Dict[str, str]:
        session = await self._call(
            stripe.checkout.Session.create,
            mode="subscription",
            payment_method_types=["card"],
            customer=customer_id,
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
        return {"id": session["id"], "url": session["url"]}

    async def create_payment_intent(
        self,
        *,
        amount_minor: int,
        currency: str,
        metadata: Dict[str, str],
        customer_id: Optional[str] = None,
        transfer_group: Optional[str] = None,
    ) -> Dict[str, str]:
        params: Dict[str, Any] = {
            "amount": amount_minor,
            "currency": currency,
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if customer_id:
            params["customer"] = customer_id
        if transfer_group:
            params["transfer_group"] = transfer_group
        intent = await self._call(stripe.PaymentIntent.create, **params)
        return {"id": intent["id"], "client_secret": intent["client_secret"]}

    async def create_transfer(
        self,
        *,
        amount_minor: int,
        currency: str,
        destination: str,
        metadata: Dict[str, str],
        transfer_group: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        params: Dict[str, Any] = {
            "amount": amount_minor,
            "currency": currency,
            "destination": destination,
            "metadata": metadata,
        }
        if transfer_group:
            params["transfer_group"] = transfer_group
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        transfer = await self._call(stripe.Transfer.create, **params)
        return transfer["id"]

    async def create_express_account(self, *, email: str) -> str:
        account = await self._call(
            stripe.Account.create,
            type="express",
            email=email,
            capabilities={"transfers": {"requested": True}},
            metadata={"source": "livestockway"},
        )
        return account["id"]

    async def create_account_link(self, account_id: str, *, refresh_url: str, return_url: str) -> str:
        link = await self._call(
            stripe.AccountLink.create,
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type="account_onboarding",
        )
        return link["url"]

    async def retrieve_account(self, account_id: str) -> ConnectedAccountStatus:
        account = await self._call(stripe.Account.retrieve, account_id)
        return normalize_account(account)
