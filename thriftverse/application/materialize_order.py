import hashlib
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from thriftverse.domain.models import (
    MetadataState,
    Order,
    OrderStatus,
    PaymentMetadata,
    PaymentMethod,
    ShippingAddress,
    ShippingOption,
)
from thriftverse.domain.exceptions import (
    DuplicateTransactionError,
    MetadataNotFoundError,
    OrderCreationError,
    OrderNotFoundError,
    PaymentNotVerifiedError,
    ProductNotFoundError,
    ProductUnavailableError,
)
from thriftverse.domain.pricing import compute_earnings, generate_order_code, money, shipping_fee_for
from thriftverse.application.notifications import enqueue_order_events

logger = logging.getLogger(__name__)

COD_KEY_PREFIX = "cod:"


def build_order(
    metadata: PaymentMetadata,
    order_code: str,
    status: OrderStatus,
    now: datetime,
) -> Order:
    """Order as charged: amount = product cost + shipping fee, earnings fixed at creation"""
    shipping_fee = shipping_fee_for(metadata.shipping_option)
    product_cost = metadata.amount - shipping_fee
    sellers_earning, platform_earnings = compute_earnings(product_cost, metadata.payment_method)
    return Order(
        id=str(uuid.uuid4()),
        order_code=order_code,
        seller_id=metadata.seller_id,
        product_id=metadata.product_id,
        quantity=metadata.quantity,
        buyer_email=metadata.buyer_email,
        buyer_name=metadata.buyer_name,
        shipping_address=metadata.shipping_address,
        transaction_code=metadata.transaction_code,
        transaction_uuid=metadata.transaction_id,
        amount=metadata.amount,
        shipping_fee=shipping_fee,
        shipping_option=metadata.shipping_option,
        payment_method=metadata.payment_method,
        status=status,
        sellers_earning=sellers_earning,
        platform_earnings=platform_earnings,
        buyer_notes=metadata.buyer_notes,
        created_at=now,
        updated_at=now
    )


async def materialize(uow, order: Order, product_title: str) -> None:
    """Insert the order, take the stock and queue notifications in the caller's transaction"""
    await uow.orders.create(order)
    inventory = await uow.products.decrement_inventory(order.product_id, order.quantity)
    logger.info(
        f"Inventory for product {order.product_id}: {inventory.availability_count} left ({inventory.status.value})"
    )
    await uow.payment_metadata.mark_processed(order.transaction_uuid, order.id)
    await enqueue_order_events(uow.outbox, order, product_title)


async def commit_order(uow, transaction_id: str) -> None:
    try:
        await uow.commit()
    except SQLAlchemyError as e:
        raise OrderCreationError(transaction_id, e)


class CreateOrderFromPaymentUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, transaction_id: str) -> Order:
        logger.info(f"Materializing order for transaction {transaction_id}")
        try:
            return await self._create(transaction_id)
        except DuplicateTransactionError:
            # lost the race against a concurrent call for the same payment
            logger.info(f"Order for transaction {transaction_id} was created concurrently")
            return await self._existing(transaction_id)

    async def _create(self, transaction_id: str) -> Order:
        async with self._uow() as uow:
            metadata = await uow.payment_metadata.get(transaction_id)
            if not metadata:
                raise MetadataNotFoundError(transaction_id)

            # Idempotency
            if metadata.is_processed:
                existing = await uow.orders.get_by_transaction_uuid(transaction_id)
                if existing:
                    logger.info(f"Order already exists for transaction {transaction_id}: {existing.id}")
                    return existing
                raise OrderNotFoundError(
                    f"Transaction {transaction_id} is processed but order {metadata.order_id} is missing"
                )

            if metadata.state != MetadataState.VERIFIED:
                raise PaymentNotVerifiedError(transaction_id)

            product = await uow.products.get_by_id(metadata.product_id)
            product_title = product.title if product else metadata.product_id

            order = build_order(
                metadata,
                order_code=generate_order_code(transaction_id, metadata.created_at.date()),
                status=OrderStatus.COMPLETED,
                now=datetime.now(timezone.utc),
            )
            await materialize(uow, order, product_title)
            await commit_order(uow, transaction_id)

        logger.info(f"Order created: {order.id} ({order.order_code}) for transaction {transaction_id}")
        return order

    async def _existing(self, transaction_id: str) -> Order:
        async with self._uow() as uow:
            existing = await uow.orders.get_by_transaction_uuid(transaction_id)
        if not existing:
            raise OrderNotFoundError(f"No order for transaction {transaction_id}")
        return existing


class CodOrderDTO(BaseModel):
    product_id: str
    quantity: int = Field(default=1, gt=0)
    buyer_name: str
    buyer_email: str
    shipping_address: ShippingAddress
    shipping_option: ShippingOption = ShippingOption.NONE
    buyer_notes: Optional[str] = None
    idempotency_key: Optional[str] = None


class CreateCodOrderUseCase:
    """Cash on delivery: no gateway, no signature, straight to a pending order"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_data: CodOrderDTO) -> Order:
        # keys live in their own namespace so they never meet a gateway transaction id
        if order_data.idempotency_key:
            transaction_id = f"{COD_KEY_PREFIX}{order_data.idempotency_key}"
        else:
            transaction_id = str(uuid.uuid4())
        logger.info(f"Creating COD order {transaction_id} for product {order_data.product_id}")
        try:
            return await self._create(transaction_id, order_data)
        except DuplicateTransactionError:
            logger.info(f"COD order for {transaction_id} was created concurrently")
            async with self._uow() as uow:
                existing = await uow.orders.get_by_transaction_uuid(transaction_id)
            if not existing:
                raise
            return existing

    async def _create(self, transaction_id: str, order_data: CodOrderDTO) -> Order:
        async with self._uow() as uow:
            existing = await uow.orders.get_by_transaction_uuid(transaction_id)
            if existing:
                logger.info(f"COD order already exists: {existing.id}")
                return existing

            product = await uow.products.get_by_id(order_data.product_id)
            if not product:
                raise ProductNotFoundError(f"Product {order_data.product_id} not found")
            if not product.can_be_bought(order_data.quantity):
                raise ProductUnavailableError(product.id, product.availability_count, order_data.quantity)

            now = datetime.now(timezone.utc)
            shipping_fee = shipping_fee_for(order_data.shipping_option)
            order_id = str(uuid.uuid4())
            transaction_code = f"COD-{hashlib.sha256(transaction_id.encode()).hexdigest()[:12].upper()}"
            # audit row in the same shape a gateway payment leaves behind
            metadata = PaymentMetadata(
                transaction_id=transaction_id,
                product_id=product.id,
                seller_id=product.store_id,
                buyer_email=order_data.buyer_email,
                buyer_name=order_data.buyer_name,
                shipping_address=order_data.shipping_address,
                amount=money(product.price * order_data.quantity + shipping_fee),
                quantity=order_data.quantity,
                shipping_option=order_data.shipping_option,
                shipping_fee=shipping_fee,
                payment_method=PaymentMethod.COD,
                buyer_notes=order_data.buyer_notes,
                state=MetadataState.PROCESSED,
                transaction_code=transaction_code,
                order_id=order_id,
                created_at=now,
                updated_at=now
            )
            await uow.payment_metadata.create(metadata)

            order = build_order(
                metadata,
                order_code=generate_order_code(transaction_id, now.date()),
                status=OrderStatus.PENDING,
                now=now,
            ).model_copy(update={"id": order_id})
            await materialize(uow, order, product.title)
            await commit_order(uow, transaction_id)

        logger.info(f"COD order created: {order.id} ({order.order_code})")
        return order
