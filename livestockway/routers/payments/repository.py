"""Payments/Subscription repository layer."""

from sqlalchemy import select

from livestockway.db import dialect_insert


async def get_hauler_by_user_id(db, *, user_id: int):
    from livestockway.models.hauler import Hauler

    stmt = select(Hauler).where(Hauler.user_id == user_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_or_create_hauler(db, *, user):
    """Haulers get a profile row lazily on their first payments request.

    Concurrent first requests for one user insert at most one row; the losing
    insert is ignored and both read the same profile back.
    """
    from livestockway.models.hauler import Hauler

    hauler = await get_hauler_by_user_id(db, user_id=user.id)
    if hauler:
        return hauler

    insert = dialect_insert(db)
    await db.execute(
        insert(Hauler)
        .values(
            user_id=user.id,
            hauler_type="INDIVIDUAL" if user.role == "hauler-individual" else "COMPANY",
        )
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    await db.commit()
    return await get_hauler_by_user_id(db, user_id=user.id)


async def lock_payment(db, *, payment_id: int):
    from livestockway.models.payment import EscrowPayment

    stmt = (
        select(EscrowPayment)
        .where(EscrowPayment.id == payment_id)
        .with_for_update()
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_payee_connected_account_id(db, *, payee_user_id: int):
    from livestockway.models.hauler import Hauler

    stmt = select(Hauler.stripe_connected_account_id).where(Hauler.user_id == payee_user_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()
