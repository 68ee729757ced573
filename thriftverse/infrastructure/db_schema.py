from sqlalchemy import (
    Table, Column, String, Integer, Numeric, Boolean, Enum, DateTime, JSON, MetaData, Text, UniqueConstraint
)
from sqlalchemy.sql import func

from thriftverse.domain.models import (
    MetadataState, OrderStatus, PaymentMethod, ProductStatus, ShippingOption
)

metadata = MetaData()

MONEY = Numeric(12, 2)


def _enum(enum_cls, name):
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


products_tbl = Table(
    "products",
    metadata,
    Column("id", String, primary_key=True),
    Column("store_id", String, nullable=False, index=True),
    Column("title", String, nullable=False),
    Column("price", MONEY, nullable=False),
    Column("availability_count", Integer, nullable=False, default=0),
    Column("status", _enum(ProductStatus, "product_status"), nullable=False, default=ProductStatus.AVAILABLE),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


profiles_tbl = Table(
    "profiles",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("email", String, nullable=True),
    Column("store_username", String, nullable=True),
    Column("expo_push_tokens", JSON, nullable=False, default=list),
    Column("config", JSON, nullable=False, default=dict),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


payment_metadata_tbl = Table(
    "payment_metadata",
    metadata,
    Column("transaction_uuid", String, primary_key=True),
    Column("product_id", String, nullable=False),
    Column("seller_id", String, nullable=False),
    Column("buyer_email", String, nullable=False),
    Column("buyer_name", String, nullable=False),
    Column("shipping_address", JSON, nullable=False),
    Column("amount", MONEY, nullable=False),
    Column("quantity", Integer, nullable=False, default=1),
    Column("shipping_option", _enum(ShippingOption, "shipping_option"), nullable=False),
    Column("shipping_fee", MONEY, nullable=False, default=0),
    Column("payment_method", _enum(PaymentMethod, "payment_method"), nullable=False),
    Column("buyer_notes", Text, nullable=True),
    Column("state", _enum(MetadataState, "payment_metadata_state"), nullable=False, default=MetadataState.STAGED),
    Column("transaction_code", String, nullable=True),
    Column("order_id", String, nullable=True),
    Column("is_processed", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_code", String, nullable=False, index=True),
    Column("seller_id", String, nullable=False, index=True),
    Column("product_id", String, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("buyer_email", String, nullable=False),
    Column("buyer_name", String, nullable=False),
    Column("shipping_address", JSON, nullable=False),
    Column("transaction_code", String, nullable=False),
    Column("transaction_uuid", String, nullable=False),
    Column("amount", MONEY, nullable=False),
    Column("shipping_fee", MONEY, nullable=False, default=0),
    Column("shipping_option", _enum(ShippingOption, "shipping_option"), nullable=False),
    Column("payment_method", _enum(PaymentMethod, "payment_method"), nullable=False),
    Column("status", _enum(OrderStatus, "order_status"), nullable=False, default=OrderStatus.PENDING),
    Column("sellers_earning", MONEY, nullable=False),
    Column("platform_earnings", MONEY, nullable=False),
    Column("buyer_notes", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    # at most one order per payment
    UniqueConstraint("transaction_uuid", name="uq_orders_transaction_uuid"),
)


notifications_tbl = Table(
    "notifications",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, nullable=False, index=True),
    Column("title", String, nullable=False),
    Column("body", String, nullable=False),
    Column("type", String, nullable=False),
    Column("data", JSON, nullable=False),
    Column("is_read", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


outbox_events_tbl = Table(
    "outbox_events",
    metadata,
    Column("id", String, primary_key=True),
    Column("event_type", String, nullable=False),
    Column("event_data", JSON, nullable=False),
    Column("order_id", String, nullable=False),
    Column("status", String, default="pending"),  # pending, published, failed
    Column("attempts", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)
