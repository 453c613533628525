import asyncio
import uuid

import pytest

from storefront.db.session_async import AsyncSessionLocal
from storefront.domain.context import ActorContext
from storefront.domain.enums import MovementStatus, MovementType
from storefront.services import catalog_service
from storefront.services.exceptions import (
    DomainValidationError,
    InsufficientReservationError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
)


@pytest.mark.asyncio
async def test_reserve_moves_units_from_available_to_reserved(async_db_session, make_product, read_stock):
    product = make_product(stock=10)

    row = await catalog_service.reserve_stock(async_db_session, product.id, 4)
    await async_db_session.commit()

    assert (row.stock_quantity, row.reserved_quantity, row.available_quantity) == (10, 4, 6)
    assert await read_stock(product.id) == (10, 4, 6)


@pytest.mark.asyncio
async def test_counters_stay_balanced_through_every_operation(async_db_session, make_product, read_stock):
    product = make_product(stock=10)
    db = async_db_session

    await catalog_service.reserve_stock(db, product.id, 4)
    await catalog_service.deduct_stock(db, product.id, 3)
    await catalog_service.release_stock(db, product.id, 1)
    await catalog_service.add_stock(db, product.id, 5)
    row = await catalog_service.remove_stock(db, product.id, 2)
    await db.commit()

    assert row.available_quantity == row.stock_quantity - row.reserved_quantity
    assert await read_stock(product.id) == (10, 0, 10)


@pytest.mark.asyncio
async def test_reserve_more_than_available_is_rejected(async_db_session, make_product, read_stock):
    product = make_product(stock=3)

    with pytest.raises(InsufficientStockError) as exc_info:
        await catalog_service.reserve_stock(async_db_session, product.id, 4)

    assert exc_info.value.context["available"] == 3
    await async_db_session.rollback()
    assert await read_stock(product.id) == (3, 0, 3)


@pytest.mark.asyncio
async def test_deduct_beyond_reservation_is_rejected(async_db_session, make_product):
    product = make_product(stock=10)
    await catalog_service.reserve_stock(async_db_session, product.id, 2)

    with pytest.raises(InsufficientReservationError):
        await catalog_service.deduct_stock(async_db_session, product.id, 3)
    with pytest.raises(InsufficientReservationError):
        await catalog_service.release_stock(async_db_session, product.id, 3)


def test_insufficient_reservation_is_a_state_conflict():
    assert issubclass(InsufficientReservationError, InvalidStateTransitionError)


@pytest.mark.asyncio
@pytest.mark.parametrize("qty", [0, -2])
async def test_non_positive_quantities_are_rejected(async_db_session, make_product, qty):
    product = make_product(stock=10)
    with pytest.raises(InvalidQuantityError):
        await catalog_service.reserve_stock(async_db_session, product.id, qty)


@pytest.mark.asyncio
async def test_unknown_product_is_not_found(async_db_session):
    with pytest.raises(ResourceNotFoundError):
        await catalog_service.reserve_stock(async_db_session, uuid.uuid4(), 1)


@pytest.mark.asyncio
async def test_variant_counters_are_independent_of_the_product(
    async_db_session, make_product, make_variant, read_stock
):
    product = make_product(stock=10)
    variant = make_variant(product, stock=4)

    await catalog_service.reserve_stock(async_db_session, product.id, 3, variant.id)
    await async_db_session.commit()

    assert await read_stock(product.id, variant.id) == (4, 3, 1)
    assert await read_stock(product.id) == (10, 0, 10)


@pytest.mark.asyncio
async def test_variant_of_another_product_is_not_found(async_db_session, make_product, make_variant):
    product = make_product()
    other = make_product()
    variant = make_variant(other)

    with pytest.raises(ResourceNotFoundError):
        await catalog_service.reserve_stock(async_db_session, product.id, 1, variant.id)


@pytest.mark.asyncio
async def test_stock_operations_write_approved_ledger_entries(async_db_session, make_product):
    product = make_product(stock=10)
    actor = ActorContext(session_id="sess-1")

    await catalog_service.reserve_stock(async_db_session, product.id, 2, reference="cart:abc", actor=actor)
    await catalog_service.deduct_stock(async_db_session, product.id, 2, reference="order:xyz", actor=actor)

    movements = await catalog_service.list_movements(async_db_session, product_id=product.id)
    kinds = {movement.movement_type for movement in movements}
    assert kinds == {MovementType.reserve, MovementType.sale}
    assert all(movement.status == MovementStatus.approved for movement in movements)
    assert {movement.reference for movement in movements} == {"cart:abc", "order:xyz"}
    assert all(movement.performed_by == "session:sess-1" for movement in movements)


@pytest.mark.asyncio
async def test_concurrent_reservations_never_oversell(make_product, read_stock):
    product = make_product(stock=7)

    async def _reserve() -> bool:
        async with AsyncSessionLocal() as session:
            try:
                await catalog_service.reserve_stock(session, product.id, 5)
                await session.commit()
                return True
            except InsufficientStockError:
                await session.rollback()
                return False

    results = await asyncio.gather(_reserve(), _reserve())

    assert sorted(results) == [False, True]
    assert await read_stock(product.id) == (7, 5, 2)


# --- Manual movements ---

@pytest.mark.asyncio
async def test_manual_movement_only_applies_once_approved(async_db_session, make_product, read_stock):
    product = make_product(stock=10)
    actor = ActorContext(user_id=uuid.uuid4())

    movement = await catalog_service.record_movement(
        async_db_session,
        product_id=product.id,
        movement_type=MovementType.damaged,
        quantity=3,
        reason="water damage",
        actor=actor,
    )
    await async_db_session.commit()
    assert movement.status == MovementStatus.pending
    assert await read_stock(product.id) == (10, 0, 10)

    approved = await catalog_service.approve_movement(async_db_session, movement.id, actor)
    await async_db_session.commit()

    assert approved.status == MovementStatus.approved
    assert approved.approved_by == str(actor.user_id)
    assert await read_stock(product.id) == (7, 0, 7)


@pytest.mark.asyncio
async def test_negative_adjustment_removes_stock(async_db_session, make_product, read_stock):
    product = make_product(stock=10)

    movement = await catalog_service.record_movement(
        async_db_session, product_id=product.id, movement_type=MovementType.adjustment, quantity=-4
    )
    await catalog_service.approve_movement(async_db_session, movement.id)
    await async_db_session.commit()

    assert await read_stock(product.id) == (6, 0, 6)


@pytest.mark.asyncio
async def test_outbound_movement_cannot_spend_reserved_units(async_db_session, make_product):
    product = make_product(stock=5)
    await catalog_service.reserve_stock(async_db_session, product.id, 4)
    movement = await catalog_service.record_movement(
        async_db_session, product_id=product.id, movement_type=MovementType.lost, quantity=2
    )

    with pytest.raises(InsufficientStockError):
        await catalog_service.approve_movement(async_db_session, movement.id)


@pytest.mark.asyncio
async def test_system_movement_types_cannot_be_recorded_by_hand(async_db_session, make_product):
    product = make_product()
    with pytest.raises(DomainValidationError):
        await catalog_service.record_movement(
            async_db_session, product_id=product.id, movement_type=MovementType.reserve, quantity=1
        )


@pytest.mark.asyncio
async def test_rejected_movement_cannot_be_approved(async_db_session, make_product, read_stock):
    product = make_product(stock=10)
    movement = await catalog_service.record_movement(
        async_db_session, product_id=product.id, movement_type=MovementType.stock_in, quantity=5
    )
    await catalog_service.reject_movement(async_db_session, movement.id, reason="duplicate delivery note")

    with pytest.raises(InvalidStateTransitionError):
        await catalog_service.approve_movement(async_db_session, movement.id)
    await async_db_session.commit()
    assert await read_stock(product.id) == (10, 0, 10)


@pytest.mark.asyncio
async def test_list_movements_filters_by_status(async_db_session, make_product):
    product = make_product(stock=10)
    await catalog_service.reserve_stock(async_db_session, product.id, 1)
    await catalog_service.record_movement(
        async_db_session, product_id=product.id, movement_type=MovementType.found, quantity=2
    )

    pending = await catalog_service.list_movements(
        async_db_session, product_id=product.id, status=MovementStatus.pending
    )
    assert [movement.movement_type for movement in pending] == [MovementType.found]
