"""
Escrow payment lifecycle: funding intents, webhook-driven status changes and
payout release.
"""

import pytest

from livestockway.models.payment import EscrowPayment
from livestockway.services.audit_service import AuditTrail
from livestockway.services.errors import (
    InvalidAmount,
    InvalidPaymentRequest,
    InvalidPaymentState,
    PayeeNotFound,
    PaymentNotFound,
    ProviderError,
)
from livestockway.services.escrow_service import (
    create_funding_intent,
    create_payment_for_trip,
    get_payment_for_trip,
    list_payments_for_user,
    release_payout,
)

from billing_helpers import seed_payment, seed_user


@pytest.fixture
def parties(session_maker):
    async def _seed(**payment_fields):
        async with session_maker() as session:
            shipper = await seed_user(session, user_id=1, user_type="shipper", stripe_customer_id="cus_shipper")
            hauler = await seed_user(session, user_id=2, user_type="hauler")
            payment = await seed_payment(session, payer=shipper, payee=hauler, **payment_fields)
        return shipper, hauler, payment

    return _seed


def intent(payment_id, *, intent_id="pi_1", **extra):
    return {"id": intent_id, "amount": 10639, "metadata": {"payment_id": str(payment_id)}, **extra}


@pytest.mark.asyncio
async def test_funding_intent_grosses_up_and_marks_pending_funding(parties, db, gateway):
    shipper, _hauler, seeded = await parties()
    payment = await db.get(EscrowPayment, seeded.id)
    audit = AuditTrail()

    result = await create_funding_intent(db, payment=payment, user=shipper, gateway=gateway, audit=audit)

    assert result["status"] == "pending_funding"
    assert result["payment_intent_id"] == "pi_test_1"
    assert result["client_secret"] == "pi_test_1_secret_abc"
    assert result["breakdown"] == {
        "base_amount_cents": 10000,
        "platform_fee_cents": 300,
        "stripe_fee_cents": 339,
        "total_charged_cents": 10639,
    }
    (call,) = gateway.calls_named("create_payment_intent")
    assert call["amount_minor"] == 10639
    assert call["customer_id"] == "cus_shipper"
    assert call["transfer_group"] == f"payment_{seeded.id}"
    assert call["metadata"]["payment_id"] == str(seeded.id)

    assert payment.total_charged_minor == 10639
    assert payment.platform_fee_minor == 300
    assert payment.processor_fee_minor == 339
    assert [event.action for event in audit.events] == ["PAYMENT_FUNDING_STARTED"]


@pytest.mark.asyncio
async def test_only_the_payer_can_fund(parties, db, gateway):
    _shipper, hauler, seeded = await parties()
    payment = await db.get(EscrowPayment, seeded.id)

    with pytest.raises(PaymentNotFound):
        await create_funding_intent(db, payment=payment, user=hauler, gateway=gateway)
    with pytest.raises(PaymentNotFound):
        await create_funding_intent(db, payment=None, user=hauler, gateway=gateway)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_funded_payment_cannot_be_funded_again(parties, db, gateway):
    shipper, _hauler, seeded = await parties(status="in_escrow")
    payment = await db.get(EscrowPayment, seeded.id)

    with pytest.raises(InvalidPaymentState) as exc_info:
        await create_funding_intent(db, payment=payment, user=shipper, gateway=gateway)
    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_provider_error_leaves_payment_untouched(parties, db, gateway, fetch):
    shipper, _hauler, seeded = await parties()
    payment = await db.get(EscrowPayment, seeded.id)
    gateway.fail_with = ProviderError("card_declined")

    with pytest.raises(ProviderError):
        await create_funding_intent(db, payment=payment, user=shipper, gateway=gateway)

    assert (await fetch(EscrowPayment, seeded.id)).status == "pending"


@pytest.mark.asyncio
async def test_intent_succeeded_moves_payment_into_escrow(parties, deliver, fetch, task_queue):
    _shipper, _hauler, payment = await parties(status="pending_funding")

    await deliver("payment_intent.succeeded", intent(payment.id, latest_charge="ch_1"))

    stored = await fetch(EscrowPayment, payment.id)
    assert stored.status == "in_escrow"
    assert stored.stripe_payment_intent_id == "pi_1"
    assert stored.stripe_charge_id == "ch_1"
    assert stored.funded_at is not None
    assert [task["payload"]["action"] for task in task_queue.tasks] == ["PAYMENT_FUNDED"]


@pytest.mark.asyncio
async def test_failed_event_after_success_does_not_regress(parties, deliver, fetch):
    _shipper, _hauler, payment = await parties(status="pending_funding")

    await deliver("payment_intent.succeeded", intent(payment.id))
    await deliver(
        "payment_intent.payment_failed",
        intent(payment.id, last_payment_error={"message": "Your card was declined."}),
    )

    assert (await fetch(EscrowPayment, payment.id)).status == "in_escrow"


@pytest.mark.asyncio
async def test_funding_failure_can_be_retried(parties, deliver, fetch, db, gateway):
    shipper, _hauler, seeded = await parties(status="pending_funding")

    await deliver(
        "payment_intent.payment_failed",
        intent(seeded.id, last_payment_error={"message": "Your card was declined."}),
    )
    assert (await fetch(EscrowPayment, seeded.id)).status == "funding_failed"

    payment = await db.get(EscrowPayment, seeded.id)
    result = await create_funding_intent(db, payment=payment, user=shipper, gateway=gateway)
    assert result["status"] == "pending_funding"


@pytest.mark.asyncio
async def test_late_success_for_released_payment_is_ignored(parties, deliver, fetch, task_queue):
    _shipper, _hauler, payment = await parties(status="released")

    result = await deliver("payment_intent.succeeded", intent(payment.id))

    assert result == {"received": True}
    assert (await fetch(EscrowPayment, payment.id)).status == "released"
    assert task_queue.tasks == []


@pytest.mark.asyncio
async def test_intent_without_payment_metadata_is_ignored(deliver, count_rows):
    result = await deliver("payment_intent.succeeded", {"id": "pi_other", "metadata": {}})

    assert result == {"received": True}
    assert await count_rows(EscrowPayment) == 0


@pytest.mark.asyncio
async def test_release_transfers_payee_amount(parties, db, gateway):
    shipper, _hauler, seeded = await parties(status="in_escrow")
    payment = await db.get(EscrowPayment, seeded.id)

    result = await release_payout(
        db, payment=payment, user=shipper, payee_account_id="acct_hauler", gateway=gateway
    )

    assert result == {
        "payment_id": seeded.id,
        "status": "released",
        "payout_status": "pending",
        "transfer_id": "tr_test_1",
    }
    (call,) = gateway.calls_named("create_transfer")
    assert call["amount_minor"] == 10000
    assert call["destination"] == "acct_hauler"
    assert call["idempotency_key"] == f"payout_{seeded.id}"
    assert payment.released_at is not None
    assert payment.stripe_transfer_id == "tr_test_1"


@pytest.mark.asyncio
async def test_release_requires_escrowed_funds_and_connected_payee(parties, db, gateway):
    shipper, _hauler, seeded = await parties(status="pending_funding")
    payment = await db.get(EscrowPayment, seeded.id)

    with pytest.raises(InvalidPaymentState):
        await release_payout(db, payment=payment, user=shipper, payee_account_id="acct_hauler", gateway=gateway)

    payment.status = "in_escrow"
    await db.commit()
    with pytest.raises(InvalidPaymentState):
        await release_payout(db, payment=payment, user=shipper, payee_account_id=None, gateway=gateway)
    assert gateway.calls_named("create_transfer") == []


@pytest.mark.asyncio
async def test_failed_transfer_rolls_back_release(parties, db, gateway, fetch):
    shipper, _hauler, seeded = await parties(status="in_escrow")
    payment = await db.get(EscrowPayment, seeded.id)
    gateway.fail_with = ProviderError("insufficient platform balance")

    with pytest.raises(ProviderError):
        await release_payout(db, payment=payment, user=shipper, payee_account_id="acct_hauler", gateway=gateway)

    stored = await fetch(EscrowPayment, seeded.id)
    assert stored.status == "in_escrow"
    assert stored.released_at is None


@pytest.mark.asyncio
async def test_transfer_created_completes_payout(parties, deliver, fetch):
    _shipper, _hauler, payment = await parties(status="released", payout_status="pending")

    await deliver("transfer.created", {"id": "tr_9", "amount": 10000, "metadata": {"payment_id": str(payment.id)}})

    stored = await fetch(EscrowPayment, payment.id)
    assert stored.payout_status == "completed"
    assert stored.stripe_transfer_id == "tr_9"
    assert stored.payout_completed_at is not None


@pytest.mark.asyncio
async def test_second_success_event_does_not_restamp_funding(parties, deliver, fetch):
    _shipper, _hauler, payment = await parties(status="pending_funding")

    await deliver("payment_intent.succeeded", intent(payment.id, latest_charge="ch_1"))
    first = await fetch(EscrowPayment, payment.id)
    await deliver("payment_intent.succeeded", intent(payment.id, latest_charge="ch_2"))
    second = await fetch(EscrowPayment, payment.id)

    assert second.status == "in_escrow"
    assert second.funded_at == first.funded_at
    assert second.stripe_charge_id == "ch_1"


@pytest.mark.asyncio
async def test_lost_transfer_response_never_pays_twice(parties, session_maker, deliver, fetch, gateway):
    shipper, _hauler, seeded = await parties(status="in_escrow")
    gateway.lose_transfer_response = True

    async with session_maker() as session:
        payment = await session.get(EscrowPayment, seeded.id)
        with pytest.raises(ProviderError):
            await release_payout(
                session, payment=payment, user=shipper, payee_account_id="acct_hauler", gateway=gateway
            )
    assert (await fetch(EscrowPayment, seeded.id)).status == "in_escrow"

    # Stripe reports the transfer that did go out
    await deliver("transfer.created", {"id": "tr_1", "amount": 10000, "metadata": {"payment_id": str(seeded.id)}})
    stored = await fetch(EscrowPayment, seeded.id)
    assert stored.status == "released"
    assert stored.released_at is not None
    assert stored.stripe_transfer_id == "tr_1"
    assert stored.payout_status == "completed"

    async with session_maker() as session:
        payment = await session.get(EscrowPayment, seeded.id)
        with pytest.raises(InvalidPaymentState):
            await release_payout(
                session, payment=payment, user=shipper, payee_account_id="acct_hauler", gateway=gateway
            )
    assert len(gateway.calls_named("create_transfer")) == 1


@pytest.mark.asyncio
async def test_release_refused_once_a_transfer_is_recorded(parties, db, gateway):
    shipper, _hauler, seeded = await parties(status="in_escrow", stripe_transfer_id="tr_earlier")
    payment = await db.get(EscrowPayment, seeded.id)

    with pytest.raises(InvalidPaymentState) as exc_info:
        await release_payout(db, payment=payment, user=shipper, payee_account_id="acct_hauler", gateway=gateway)

    assert exc_info.value.message == "A transfer is already recorded for this payment"
    assert gateway.calls_named("create_transfer") == []


@pytest.mark.asyncio
async def test_retried_release_reuses_the_idempotency_key(parties, session_maker, gateway):
    shipper, _hauler, seeded = await parties(status="in_escrow")
    gateway.fail_with = ProviderError("Stripe request failed: connection reset")

    async with session_maker() as session:
        payment = await session.get(EscrowPayment, seeded.id)
        with pytest.raises(ProviderError):
            await release_payout(
                session, payment=payment, user=shipper, payee_account_id="acct_hauler", gateway=gateway
            )

    gateway.fail_with = None
    async with session_maker() as session:
        payment = await session.get(EscrowPayment, seeded.id)
        result = await release_payout(
            session, payment=payment, user=shipper, payee_account_id="acct_hauler", gateway=gateway
        )

    assert result["status"] == "released"
    keys = [call["idempotency_key"] for call in gateway.calls_named("create_transfer")]
    assert keys == [f"payout_{seeded.id}", f"payout_{seeded.id}"]


# --- trip payments ---


@pytest.fixture
def shipper_and_hauler(session_maker):
    async def _seed():
        async with session_maker() as session:
            shipper = await seed_user(session, user_id=1, user_type="shipper", stripe_customer_id="cus_shipper")
            hauler = await seed_user(session, user_id=2, user_type="hauler")
        return shipper, hauler

    return _seed


@pytest.mark.asyncio
async def test_trip_payment_opens_pending_and_can_be_funded(shipper_and_hauler, db, gateway):
    shipper, hauler = await shipper_and_hauler()
    audit = AuditTrail()

    payment = await create_payment_for_trip(
        db,
        trip_id=501,
        load_id=9,
        payer=shipper,
        payee_user_id=hauler.id,
        amount_minor=25000,
        currency="USD",
        audit=audit,
    )

    assert payment.id is not None
    assert payment.status == "pending"
    assert payment.currency == "usd"
    assert payment.payer_user_id == shipper.id
    assert payment.payee_user_id == hauler.id
    (event,) = audit.events
    assert event.action == "PAYMENT_CREATED"
    assert event.metadata["trip_id"] == 501

    result = await create_funding_intent(db, payment=payment, user=shipper, gateway=gateway)
    assert result["status"] == "pending_funding"
    assert result["breakdown"]["base_amount_cents"] == 25000


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -100, 10.5])
async def test_trip_payment_needs_a_positive_whole_amount(shipper_and_hauler, db, count_rows, amount):
    shipper, hauler = await shipper_and_hauler()

    with pytest.raises(InvalidAmount):
        await create_payment_for_trip(db, trip_id=1, payer=shipper, payee_user_id=hauler.id, amount_minor=amount)
    assert await count_rows(EscrowPayment) == 0


@pytest.mark.asyncio
async def test_trip_payment_parties_are_validated(shipper_and_hauler, db, count_rows):
    shipper, _hauler = await shipper_and_hauler()

    with pytest.raises(InvalidPaymentRequest):
        await create_payment_for_trip(db, trip_id=1, payer=shipper, payee_user_id=shipper.id, amount_minor=100)
    with pytest.raises(PayeeNotFound) as exc_info:
        await create_payment_for_trip(db, trip_id=1, payer=shipper, payee_user_id=404, amount_minor=100)
    assert exc_info.value.status_code == 404
    assert await count_rows(EscrowPayment) == 0


@pytest.mark.asyncio
async def test_trip_lookup_returns_latest_payment_for_parties_only(shipper_and_hauler, session_maker, db):
    shipper, hauler = await shipper_and_hauler()
    async with session_maker() as session:
        outsider = await seed_user(session, user_id=3, user_type="shipper")
        await seed_payment(session, payer=shipper, payee=hauler, status="released")
        latest = await seed_payment(session, payer=shipper, payee=hauler)

    assert (await get_payment_for_trip(db, trip_id=77, user=shipper)).id == latest.id
    assert (await get_payment_for_trip(db, trip_id=77, user=hauler)).id == latest.id
    with pytest.raises(PaymentNotFound):
        await get_payment_for_trip(db, trip_id=77, user=outsider)
    with pytest.raises(PaymentNotFound):
        await get_payment_for_trip(db, trip_id=78, user=shipper)


@pytest.mark.asyncio
async def test_payments_listed_by_role(shipper_and_hauler, session_maker, db):
    shipper, hauler = await shipper_and_hauler()
    async with session_maker() as session:
        owed = await seed_payment(session, payer=shipper, payee=hauler)
        paid_back = await seed_payment(session, payer=hauler, payee=shipper, trip_id=78)

    as_either = await list_payments_for_user(db, user=hauler)
    as_payer = await list_payments_for_user(db, user=hauler, role="payer")
    as_payee = await list_payments_for_user(db, user=hauler, role="payee")

    assert [p.id for p in as_either] == [paid_back.id, owed.id]
    assert [p.id for p in as_payer] == [paid_back.id]
    assert [p.id for p in as_payee] == [owed.id]
    with pytest.raises(InvalidPaymentRequest):
        await list_payments_for_user(db, user=hauler, role="driver")
