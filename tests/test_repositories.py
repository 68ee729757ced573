from datetime import datetime, timezone
from decimal import Decimal

import pytest

from thriftverse.domain.exceptions import DuplicateTransactionError, InventoryUpdateError
from thriftverse.domain.models import MetadataState, OrderStatus, PaymentMethod, ProductStatus, ShippingOption
from thriftverse.application.materialize_order import build_order

from conftest import PRODUCT_ID, SELLER_ID


async def test_decrement_inventory_takes_stock(uow, add_product):
    await add_product(availability_count=5)
    async with uow() as u:
        level = await u.products.decrement_inventory(PRODUCT_ID, 2)
        await u.commit()
    assert level.availability_count == 3
    assert level.status == ProductStatus.AVAILABLE


async def test_decrement_inventory_floors_at_zero(uow, add_product):
    await add_product(availability_count=2)
    async with uow() as u:
        level = await u.products.decrement_inventory(PRODUCT_ID, 5)
        await u.commit()
    assert level.availability_count == 0
    assert level.status == ProductStatus.OUT_OF_STOCK

    async with uow() as u:
        product = await u.products.get_by_id(PRODUCT_ID)
    assert product.availability_count == 0
    assert product.status == ProductStatus.OUT_OF_STOCK
    assert not product.can_be_bought(1)


async def test_decrement_inventory_of_last_item_marks_out_of_stock(uow, add_product):
    await add_product(availability_count=1)
    async with uow() as u:
        level = await u.products.decrement_inventory(PRODUCT_ID, 1)
    assert level.availability_count == 0
    assert level.status == ProductStatus.OUT_OF_STOCK


async def test_decrement_inventory_of_unknown_product(uow):
    async with uow() as u:
        with pytest.raises(InventoryUpdateError):
            await u.products.decrement_inventory("missing", 1)


async def test_staging_the_same_transaction_twice(stage_payment):
    await stage_payment(state=MetadataState.STAGED)
    with pytest.raises(DuplicateTransactionError):
        await stage_payment(state=MetadataState.STAGED)


async def test_gateway_reference_is_attached_once(uow, stage_payment):
    tx = await stage_payment(state=MetadataState.STAGED)
    async with uow() as u:
        assert await u.payment_metadata.attach_gateway_reference(tx, "000AWEO")
        assert not await u.payment_metadata.attach_gateway_reference(tx, "OTHER")
        await u.commit()

    async with uow() as u:
        metadata = await u.payment_metadata.get(tx)
    assert metadata.state == MetadataState.VERIFIED
    assert metadata.transaction_code == "000AWEO"
    assert metadata.shipping_option == ShippingOption.HOME
    assert metadata.amount == Decimal("1170")


async def test_mark_processed_keeps_the_first_order(uow, stage_payment):
    tx = await stage_payment()
    async with uow() as u:
        await u.payment_metadata.mark_processed(tx, "order-1")
        await u.payment_metadata.mark_processed(tx, "order-2")
        await u.commit()

    async with uow() as u:
        metadata = await u.payment_metadata.get(tx)
    assert metadata.is_processed
    assert metadata.order_id == "order-1"


async def test_uncommitted_work_is_discarded(uow, stage_payment):
    tx = await stage_payment(state=MetadataState.STAGED)
    async with uow() as u:
        await u.payment_metadata.attach_gateway_reference(tx, "000AWEO")

    async with uow() as u:
        metadata = await u.payment_metadata.get(tx)
    assert metadata.state == MetadataState.STAGED


async def test_second_order_for_a_transaction_is_rejected(uow, stage_payment):
    tx = await stage_payment()
    async with uow() as u:
        metadata = await u.payment_metadata.get(tx)
    now = datetime.now(timezone.utc)

    async with uow() as u:
        await u.orders.create(build_order(metadata, "TV-251101-2GQ", OrderStatus.COMPLETED, now))
        await u.commit()

    async with uow() as u:
        with pytest.raises(DuplicateTransactionError):
            await u.orders.create(build_order(metadata, "TV-251101-2GQ", OrderStatus.COMPLETED, now))


async def test_list_orders_filters_and_counts(uow, stage_payment):
    now = datetime.now(timezone.utc)
    for i, tx in enumerate(["aaaaaa01", "bbbbbb02", "cccccc03"]):
        await stage_payment(transaction_id=tx)
        async with uow() as u:
            metadata = await u.payment_metadata.get(tx)
            status = OrderStatus.PENDING if i == 0 else OrderStatus.COMPLETED
            await u.orders.create(build_order(metadata, f"TV-251101-00{i}", status, now))
            await u.commit()

    async with uow() as u:
        orders, total = await u.orders.list(seller_id=SELLER_ID, status=OrderStatus.COMPLETED, limit=1)
        others, none = await u.orders.list(seller_id="someone-else")
    assert total == 2
    assert len(orders) == 1
    assert orders[0].status == OrderStatus.COMPLETED
    assert orders[0].payment_method == PaymentMethod.ESEWA
    assert others == [] and none == 0


async def test_outbox_event_fails_after_max_attempts(uow):
    async with uow() as u:
        event_id = await u.outbox.create("notification.buyer_email", {"order_id": "o-1"}, "o-1")
        await u.commit()

    for expected in ("pending", "pending", "failed"):
        async with uow() as u:
            assert await u.outbox.mark_attempt_failed(event_id, max_attempts=3) == expected
            await u.commit()

    async with uow() as u:
        assert await u.outbox.get_pending() == []


async def test_seller_profile_reads_mute_setting(uow, add_seller):
    await add_seller(muted=True)
    async with uow() as u:
        seller = await u.profiles.get_by_id(SELLER_ID)
        missing = await u.profiles.get_by_id("nobody")
    assert seller.notifications_muted
    assert seller.expo_push_tokens == ["ExponentPushToken[abc]"]
    assert missing is None


async def test_status_update_requires_the_expected_status(uow, stage_payment):
    tx = await stage_payment()
    async with uow() as u:
        metadata = await u.payment_metadata.get(tx)
        order = build_order(metadata, "TV-251101-2GQ", OrderStatus.PENDING, datetime.now(timezone.utc))
        await u.orders.create(order)
        await u.commit()

    async with uow() as u:
        assert not await u.orders.update_status(order.id, OrderStatus.CANCELLED, expected=OrderStatus.COMPLETED)
        assert await u.orders.update_status(order.id, OrderStatus.COMPLETED, expected=OrderStatus.PENDING)
        await u.commit()

    async with uow() as u:
        assert (await u.orders.get_by_id(order.id)).status == OrderStatus.COMPLETED
