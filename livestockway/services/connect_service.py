"""Stripe Connect account sync for haulers."""

import logging
from typing import Any, Dict

from sqlalchemy import select

import livestockway.core.config as config
from livestockway.models.hauler import Hauler
from livestockway.services.errors import OnboardingUnavailable
from livestockway.services.stripe_service import normalize_account

logger = logging.getLogger(__name__)


async def get_hauler_by_connected_account(db, account_id: str):
    stmt = select(Hauler).where(Hauler.stripe_connected_account_id == account_id).with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def _apply_status(hauler: Hauler, status) -> None:
    hauler.stripe_charges_enabled = status.charges_enabled
    hauler.stripe_payouts_enabled = status.payouts_enabled
    hauler.stripe_details_submitted = status.details_submitted
    hauler.stripe_onboarding_complete = status.onboarding_complete


async def handle_account_updated(db, account: Dict[str, Any], *, audit) -> bool:
    status = normalize_account(account)
    hauler = await get_hauler_by_connected_account(db, status.account_id)
    if hauler is None:
        logger.info("account.updated for unknown connected account %s", status.account_id)
        return False

    was_complete = bool(hauler.stripe_onboarding_complete)
    _apply_status(hauler, status)
    if was_complete != status.onboarding_complete:
        audit.record(
            "STRIPE_ONBOARDING_CHANGED",
            event_type="account.updated",
            resource=f"hauler:{hauler.id}",
            user_id=hauler.user_id,
            account_id=status.account_id,
            onboarding_complete=status.onboarding_complete,
        )
    return True


def _status_payload(hauler: Hauler) -> Dict[str, Any]:
    return {
        "connected": bool(hauler.stripe_connected_account_id),
        "account_id": hauler.stripe_connected_account_id,
        "onboarding_complete": bool(hauler.stripe_onboarding_complete),
        "charges_enabled": bool(hauler.stripe_charges_enabled),
        "payouts_enabled": bool(hauler.stripe_payouts_enabled),
        "details_submitted": bool(hauler.stripe_details_submitted),
    }


async def get_connected_account_status(db, *, hauler: Hauler, gateway) -> Dict[str, Any]:
    """Pull the account state from Stripe; only writes when onboarding completeness changed."""
    if not hauler.stripe_connected_account_id:
        return _status_payload(hauler)

    status = await gateway.retrieve_account(hauler.stripe_connected_account_id)
    if bool(hauler.stripe_onboarding_complete) != status.onboarding_complete:
        _apply_status(hauler, status)
        await db.commit()
        logger.info(
            "Hauler %s onboarding_complete -> %s", hauler.id, status.onboarding_complete
        )

    payload = _status_payload(hauler)
    payload.update(
        onboarding_complete=status.onboarding_complete,
        charges_enabled=status.charges_enabled,
        payouts_enabled=status.payouts_enabled,
        details_submitted=status.details_submitted,
    )
    return payload


async def create_onboarding_link(db, *, hauler: Hauler, user, gateway) -> Dict[str, str]:
    account_id = hauler.stripe_connected_account_id
    if not account_id:
        if not user.email:
            raise OnboardingUnavailable("User email is required for Stripe onboarding")
        account_id = await gateway.create_express_account(email=user.email)
        hauler.stripe_connected_account_id = account_id
        hauler.stripe_onboarding_complete = False
        await db.commit()
        logger.info("Created Stripe Connect account %s for hauler %s", account_id, hauler.id)

    url = await gateway.create_account_link(
        account_id,
        refresh_url=f"{config.FRONTEND_URL}/hauler/stripe-refresh",
        return_url=f"{config.FRONTEND_URL}/hauler/stripe-return",
    )
    return {"url": url, "account_id": account_id}
