import uuid
from typing import Optional, List, Tuple
from datetime import datetime, timezone
from sqlalchemy import select, insert, update, func, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from thriftverse.domain.exceptions import (
    DuplicateTransactionError, InventoryUpdateError, OrderCreationError
)
from thriftverse.domain.models import (
    InventoryLevel,
    MetadataState,
    Order,
    OrderStatus,
    PaymentMetadata,
    Product,
    ProductStatus,
    SellerProfile,
    ShippingAddress,
)
from thriftverse.infrastructure.db_schema import (
    notifications_tbl,
    orders_tbl,
    outbox_events_tbl,
    payment_metadata_tbl,
    products_tbl,
    profiles_tbl,
)
from thriftverse.application.interfaces import (
    NotificationRepository,
    OrderRepository,
    OutboxRepository,
    PaymentMetadataRepository,
    ProductRepository,
    ProfileRepository,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SQLAlchemyProductRepository(ProductRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id == product_id)
        )
        row = result.fetchone()
        if not row:
            return None
        return Product(
            id=row.id,
            store_id=row.store_id,
            title=row.title,
            price=row.price,
            availability_count=row.availability_count,
            status=ProductStatus(row.status),
        )

    async def decrement_inventory(self, product_id: str, quantity: int) -> InventoryLevel:
        # both CASEs see the pre-update count
        remaining = products_tbl.c.availability_count > quantity
        stmt = (
            update(products_tbl)
            .where(products_tbl.c.id == product_id)
            .values(
                availability_count=case(
                    (remaining, products_tbl.c.availability_count - quantity), else_=0
                ),
                status=case(
                    (remaining, products_tbl.c.status), else_=ProductStatus.OUT_OF_STOCK
                ),
                updated_at=_now()
            )
            .returning(products_tbl.c.availability_count, products_tbl.c.status)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise InventoryUpdateError(f"Failed to update inventory for product {product_id}: {e}")
        row = result.fetchone()
        if not row:
            raise InventoryUpdateError(f"Product {product_id} not found while updating inventory")
        return InventoryLevel(
            product_id=product_id,
            availability_count=row.availability_count,
            status=ProductStatus(row.status),
        )


class SQLAlchemyPaymentMetadataRepository(PaymentMetadataRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, metadata: PaymentMetadata) -> None:
        stmt = insert(payment_metadata_tbl).values(
            transaction_uuid=metadata.transaction_id,
            product_id=metadata.product_id,
            seller_id=metadata.seller_id,
            buyer_email=metadata.buyer_email,
            buyer_name=metadata.buyer_name,
            shipping_address=metadata.shipping_address.model_dump(),
            amount=metadata.amount,
            quantity=metadata.quantity,
            shipping_option=metadata.shipping_option,
            shipping_fee=metadata.shipping_fee,
            payment_method=metadata.payment_method,
            buyer_notes=metadata.buyer_notes,
            state=metadata.state,
            transaction_code=metadata.transaction_code,
            order_id=metadata.order_id,
            is_processed=metadata.is_processed,
            created_at=metadata.created_at,
            updated_at=metadata.updated_at
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError:
            raise DuplicateTransactionError(metadata.transaction_id)

    async def get(self, transaction_id: str) -> Optional[PaymentMetadata]:
        result = await self._session.execute(
            select(payment_metadata_tbl).where(payment_metadata_tbl.c.transaction_uuid == transaction_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def attach_gateway_reference(self, transaction_id: str, transaction_code: str) -> bool:
        """staged -> verified. Returns False when the row already moved on."""
        stmt = (
            update(payment_metadata_tbl)
            .where(
                payment_metadata_tbl.c.transaction_uuid == transaction_id,
                payment_metadata_tbl.c.state == MetadataState.STAGED
            )
            .values(
                state=MetadataState.VERIFIED,
                transaction_code=transaction_code,
                updated_at=_now()
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def mark_processed(self, transaction_id: str, order_id: str) -> None:
        stmt = (
            update(payment_metadata_tbl)
            .where(
                payment_metadata_tbl.c.transaction_uuid == transaction_id,
                payment_metadata_tbl.c.state != MetadataState.PROCESSED
            )
            .values(
                state=MetadataState.PROCESSED,
                order_id=order_id,
                is_processed=True,
                updated_at=_now()
            )
        )
        await self._session.execute(stmt)

    def _to_domain(self, row) -> PaymentMetadata:
        """DB → Domain"""
        return PaymentMetadata(
            transaction_id=row.transaction_uuid,
            product_id=row.product_id,
            seller_id=row.seller_id,
            buyer_email=row.buyer_email,
            buyer_name=row.buyer_name,
            shipping_address=ShippingAddress(**row.shipping_address),
            amount=row.amount,
            quantity=row.quantity,
            shipping_option=row.shipping_option,
            shipping_fee=row.shipping_fee,
            payment_method=row.payment_method,
            buyer_notes=row.buyer_notes,
            state=MetadataState(row.state),
            transaction_code=row.transaction_code,
            order_id=row.order_id,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.id == order_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_transaction_uuid(self, transaction_uuid: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.transaction_uuid == transaction_uuid)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            order_code=order.order_code,
            seller_id=order.seller_id,
            product_id=order.product_id,
            quantity=order.quantity,
            buyer_email=order.buyer_email,
            buyer_name=order.buyer_name,
            shipping_address=order.shipping_address.model_dump(),
            transaction_code=order.transaction_code,
            transaction_uuid=order.transaction_uuid,
            amount=order.amount,
            shipping_fee=order.shipping_fee,
            shipping_option=order.shipping_option,
            payment_method=order.payment_method,
            status=order.status,
            sellers_earning=order.sellers_earning,
            platform_earnings=order.platform_earnings,
            buyer_notes=order.buyer_notes,
            created_at=order.created_at,
            updated_at=order.updated_at
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError:
            # the only unique key besides the primary key is transaction_uuid
            raise DuplicateTransactionError(order.transaction_uuid)
        except SQLAlchemyError as e:
            raise OrderCreationError(order.transaction_uuid, e)

    async def list(
        self,
        seller_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[Order], int]:
        conditions = []
        if seller_id:
            conditions.append(orders_tbl.c.seller_id == seller_id)
        if status:
            conditions.append(orders_tbl.c.status == status)

        count_result = await self._session.execute(
            select(func.count()).select_from(orders_tbl).where(*conditions)
        )
        result = await self._session.execute(
            select(orders_tbl)
            .where(*conditions)
            .order_by(orders_tbl.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return [self._to_domain(row) for row in result.fetchall()], count_result.scalar_one()

    async def update_status(self, order_id: str, status: OrderStatus, expected: OrderStatus) -> bool:
        stmt = (
            update(orders_tbl)
            .where(
                orders_tbl.c.id == order_id,
                orders_tbl.c.status == expected
            )
            .values(
                status=status,
                updated_at=_now()
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    def _to_domain(self, row) -> Order:
        """DB → Domain"""
        return Order(
            id=row.id,
            order_code=row.order_code,
            seller_id=row.seller_id,
            product_id=row.product_id,
            quantity=row.quantity,
            buyer_email=row.buyer_email,
            buyer_name=row.buyer_name,
            shipping_address=ShippingAddress(**row.shipping_address),
            transaction_code=row.transaction_code,
            transaction_uuid=row.transaction_uuid,
            amount=row.amount,
            shipping_fee=row.shipping_fee,
            shipping_option=row.shipping_option,
            payment_method=row.payment_method,
            status=OrderStatus(row.status),
            sellers_earning=row.sellers_earning,
            platform_earnings=row.platform_earnings,
            buyer_notes=row.buyer_notes,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyProfileRepository(ProfileRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, profile_id: str) -> Optional[SellerProfile]:
        result = await self._session.execute(
            select(profiles_tbl).where(profiles_tbl.c.id == profile_id)
        )
        row = result.fetchone()
        if not row:
            return None
        config = row.config or {}
        return SellerProfile(
            id=row.id,
            name=row.name,
            email=row.email,
            store_username=row.store_username,
            expo_push_tokens=row.expo_push_tokens or [],
            notifications_muted=bool(config.get("notifications_muted", False)),
        )


class SQLAlchemyNotificationRepository(NotificationRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, user_id: str, title: str, body: str, type: str, data: dict) -> str:
        notification_id = str(uuid.uuid4())
        stmt = insert(notifications_tbl).values(
            id=notification_id,
            user_id=user_id,
            title=title,
            body=body,
            type=type,
            data=data,
            is_read=False,
            created_at=_now()
        )
        await self._session.execute(stmt)
        return notification_id


class SQLAlchemyOutboxRepository(OutboxRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, event_type: str, event_data: dict, order_id: str) -> str:
        event_id = str(uuid.uuid4())
        stmt = insert(outbox_events_tbl).values(
            id=event_id,
            event_type=event_type,
            event_data=event_data,  # the JSON column serializes it
            order_id=order_id,
            status="pending",
            attempts=0,
            created_at=_now()
        )
        await self._session.execute(stmt)
        return event_id

    async def get_pending(self, limit: int = 10) -> List[dict]:
        result = await self._session.execute(
            select(outbox_events_tbl)
            .where(outbox_events_tbl.c.status == "pending")
            .order_by(outbox_events_tbl.c.created_at.asc())
            .limit(limit)
        )
        rows = result.fetchall()

        return [
            {
                "id": row.id,
                "event_type": row.event_type,
                "event_data": row.event_data,
                "order_id": row.order_id,
                "attempts": row.attempts
            }
            for row in rows
        ]

    async def mark_as_published(self, event_id: str) -> None:
        stmt = (
            update(outbox_events_tbl)
            .where(outbox_events_tbl.c.id == event_id)
            .values(status="published")
        )
        await self._session.execute(stmt)

    async def mark_attempt_failed(self, event_id: str, max_attempts: int) -> str:
        attempts = outbox_events_tbl.c.attempts + 1
        stmt = (
            update(outbox_events_tbl)
            .where(outbox_events_tbl.c.id == event_id)
            .values(
                attempts=attempts,
                status=case((attempts >= max_attempts, "failed"), else_="pending")
            )
            .returning(outbox_events_tbl.c.status)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()
