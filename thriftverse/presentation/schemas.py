from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from thriftverse.domain.models import (
    OrderStatus, PaymentMethod, ShippingAddress, ShippingOption
)


class InitiatePaymentRequest(BaseModel):
    product_id: str
    product_name: str = ""
    amount: Decimal = Field(gt=0)
    quantity: int = Field(default=1, gt=0)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)
    delivery_charge: Optional[Decimal] = None
    shipping_option: ShippingOption = ShippingOption.NONE
    buyer_name: str
    buyer_email: str
    shipping_address: ShippingAddress
    buyer_notes: Optional[str] = None


class EsewaPaymentResponse(BaseModel):
    transaction_uuid: str
    form_html: str


class FonepayPaymentResponse(BaseModel):
    transaction_uuid: str
    redirect_url: str


class PaymentFailureRequest(BaseModel):
    transaction_uuid: str
    reason: Optional[str] = None


class CodOrderRequest(BaseModel):
    product_id: str
    quantity: int = Field(default=1, gt=0)
    buyer_name: str
    buyer_email: str
    shipping_address: ShippingAddress
    shipping_option: ShippingOption = ShippingOption.NONE
    buyer_notes: Optional[str] = None
    idempotency_key: Optional[str] = None


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus


class OrderResponse(BaseModel):
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

    @classmethod
    def from_domain(cls, order):
        return cls(**order.model_dump())


class OrderListResponse(BaseModel):
    data: List[OrderResponse]
    count: int


class PaymentVerificationResponse(BaseModel):
    transaction_uuid: str
    transaction_code: str
    amount: Decimal
    status: str
    order_id: str
    order_code: str

    @classmethod
    def from_domain(cls, verification):
        return cls(
            transaction_uuid=verification.transaction_uuid,
            transaction_code=verification.transaction_code,
            amount=verification.amount,
            status=verification.status,
            order_id=verification.order.id,
            order_code=verification.order.order_code
        )


class ErrorResponse(BaseModel):
    detail: str
