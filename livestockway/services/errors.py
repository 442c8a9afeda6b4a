"""
Billing exceptions shared by the subscription, escrow and webhook services.

The HTTP layer maps ``status_code`` onto the response and surfaces the message
verbatim.
"""


class BillingError(Exception):
    """Base exception for billing operations"""

    status_code = 500
    code = "BILLING_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self.args[0])


class InvalidSignature(BillingError):
    """Webhook signature could not be verified"""

    status_code = 400
    code = "INVALID_SIGNATURE"


class UnknownEventType(BillingError):
    """Webhook event type has no handler"""

    status_code = 200
    code = "UNKNOWN_EVENT_TYPE"


class HandlerFailure(BillingError):
    """Webhook handler failed; the event was not recorded"""

    status_code = 500
    code = "HANDLER_FAILURE"


class PricingUnavailable(BillingError):
    """Individual pricing configuration is missing. Please contact support."""

    status_code = 400
    code = "PRICING_UNAVAILABLE"


class InvalidBillingCycle(BillingError):
    """billing_cycle must be MONTHLY or YEARLY"""

    status_code = 400
    code = "INVALID_BILLING_CYCLE"


class AlreadySubscribed(BillingError):
    """Already subscribed"""

    status_code = 409
    code = "ALREADY_SUBSCRIBED"


class WrongAccountType(BillingError):
    """Only individual haulers can subscribe."""

    status_code = 400
    code = "WRONG_ACCOUNT_TYPE"


class PaymentNotFound(BillingError):
    """Payment not found"""

    status_code = 404
    code = "PAYMENT_NOT_FOUND"


class PayeeNotFound(BillingError):
    """Payee not found"""

    status_code = 404
    code = "PAYEE_NOT_FOUND"


class InvalidPaymentRequest(BillingError):
    """Payment request is invalid"""

    status_code = 400
    code = "INVALID_PAYMENT_REQUEST"


class InvalidPaymentState(BillingError):
    """Payment is not in a state that allows this operation"""

    status_code = 409
    code = "INVALID_PAYMENT_STATE"


class ProviderError(BillingError):
    """Stripe request failed"""

    status_code = 502
    code = "PROVIDER_ERROR"


class InvalidAmount(ValueError):
    """Raised when a monetary input is not a finite, non-negative amount"""


class OnboardingUnavailable(BillingError):
    """Stripe onboarding cannot be started for this account"""

    status_code = 400
    code = "ONBOARDING_UNAVAILABLE"
