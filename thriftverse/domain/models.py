from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.COMPLETED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}


class ShippingOption(str, Enum):
    HOME = "home"
    BRANCH = "branch"
    NONE = "none"


class PaymentMethod(str, Enum):
    ESEWA = "eSewa"
    FONEPAY = "FonePay"
    COD = "COD"

    @property
    def is_gateway(self) -> bool:
        return self != PaymentMethod.COD


class MetadataState(str, Enum):
    STAGED = "staged"
    VERIFIED = "verified"
    PROCESSED = "processed"


class ProductStatus(str, Enum):
    AVAILABLE = "available"
    OUT_OF_STOCK = "out_of_stock"


class ShippingAddress(BaseModel):
    """Value Object: delivery address"""
    street: str
    city: str
    district: str
    country: str = "Nepal"
    phone: str


class PaymentMetadata(BaseModel):
    """Staging record written before the buyer leaves for the gateway.

    The state is explicit: ``staged`` rows have no gateway reference,
    ``verified`` rows carry the gateway's transaction code and ``processed``
    rows additionally point at the order they produced.
    """
    transaction_id: str
    product_id: str
    seller_id: str
    buyer_email: str
    buyer_name: str
    shipping_address: ShippingAddress
    amount: Decimal
    quantity: int = Field(gt=0)
    shipping_option: ShippingOption = ShippingOption.NONE
    shipping_fee: Decimal = Decimal("0")
    payment_method: PaymentMethod
    buyer_notes: Optional[str] = None
    state: MetadataState = MetadataState.STAGED
    transaction_code: Optional[str] = None
    order_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def check_state(self):
        if self.state != MetadataState.STAGED and not self.transaction_code:
            raise ValueError(f"{self.state.value} metadata requires a transaction code")
        if self.state == MetadataState.PROCESSED and not self.order_id:
            raise ValueError("processed metadata requires an order id")
        return self

    @property
    def is_processed(self) -> bool:
        return self.state == MetadataState.PROCESSED

    @property
    def product_cost(self) -> Decimal:
        return self.amount - self.shipping_fee


class Order(BaseModel):
    """Domain Entity: order"""
    id: str
    order_code: str
    seller_id: str
    product_id: str
    quantity: int
    buyer_email: str
    buyer_name: str
    shipping_address: ShippingAddress
    transaction_code: str
    transaction_uuid: str
    amount: Decimal
    shipping_fee: Decimal
    shipping_option: ShippingOption
    payment_method: PaymentMethod
    status: OrderStatus
    sellers_earning: Decimal
    platform_earnings: Decimal
    buyer_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    def can_transition_to(self, status: OrderStatus) -> bool:
        """Business rule: statuses only move forward"""
        return status in ORDER_TRANSITIONS[self.status]


class Product(BaseModel):
    """Value Object: product as seen by checkout"""
    id: str
    store_id: str
    title: str
    price: Decimal
    availability_count: int
    status: ProductStatus

    def can_be_bought(self, quantity: int) -> bool:
        return self.status == ProductStatus.AVAILABLE and self.availability_count >= quantity


class InventoryLevel(BaseModel):
    product_id: str
    availability_count: int
    status: ProductStatus


class SellerProfile(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    store_username: Optional[str] = None
    expo_push_tokens: list[str] = []
    notifications_muted: bool = False


class NeutralPaymentResult(BaseModel):
    """Gateway callback decoded into a gateway-neutral shape, not yet trusted"""
    gateway: PaymentMethod
    transaction_id: str
    transaction_code: str
    amount: Decimal
    status: str
    is_success: bool
    raw_signature: str
    signed_fields: dict[str, str]


class GatewayRedirect(BaseModel):
    transaction_id: str
    form_html: Optional[str] = None
    redirect_url: Optional[str] = None
    fields: dict[str, str]
