import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from thriftverse.domain.models import (
    GatewayRedirect, MetadataState, PaymentMetadata, ShippingAddress, ShippingOption
)
from thriftverse.domain.exceptions import (
    ProductNotFoundError, ProductUnavailableError, QuoteMismatchError
)
from thriftverse.domain.pricing import money, shipping_fee_for
from thriftverse.application.interfaces import PaymentGateway

logger = logging.getLogger(__name__)


class PaymentIntentDTO(BaseModel):
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


class InitiatePaymentUseCase:
    """Stage payment metadata, then hand back the signed gateway redirect."""

    def __init__(self, unit_of_work, gateway: PaymentGateway):
        self._uow = unit_of_work
        self._gateway = gateway

    async def __call__(self, intent: PaymentIntentDTO) -> GatewayRedirect:
        shipping_fee = shipping_fee_for(intent.shipping_option)
        if intent.delivery_charge is not None and money(intent.delivery_charge) != shipping_fee:
            raise QuoteMismatchError(
                f"Delivery charge {intent.delivery_charge} does not match "
                f"{intent.shipping_option.value} shipping fee {shipping_fee}"
            )
        transaction_id = self._gateway.new_transaction_id()

        async with self._uow() as uow:
            product = await uow.products.get_by_id(intent.product_id)
            if not product:
                raise ProductNotFoundError(f"Product {intent.product_id} not found")
            if not product.can_be_bought(intent.quantity):
                raise ProductUnavailableError(product.id, product.availability_count, intent.quantity)

            # the catalogue price is authoritative, the client amount is only a quote
            product_cost = money(product.price * intent.quantity)
            if money(intent.amount) != product_cost:
                raise QuoteMismatchError(
                    f"Amount {intent.amount} does not match price {product_cost} "
                    f"for {intent.quantity} x {product.id}"
                )
            total_amount = money(product_cost + intent.tax_amount + shipping_fee)
            logger.info(
                f"Initiating {self._gateway.method.value} payment {transaction_id} "
                f"for product {intent.product_id}, total {total_amount}"
            )

            now = datetime.now(timezone.utc)
            await uow.payment_metadata.create(
                PaymentMetadata(
                    transaction_id=transaction_id,
                    product_id=product.id,
                    seller_id=product.store_id,
                    buyer_email=intent.buyer_email,
                    buyer_name=intent.buyer_name,
                    shipping_address=intent.shipping_address,
                    amount=total_amount,
                    quantity=intent.quantity,
                    shipping_option=intent.shipping_option,
                    shipping_fee=shipping_fee,
                    payment_method=self._gateway.method,
                    buyer_notes=intent.buyer_notes,
                    state=MetadataState.STAGED,
                    created_at=now,
                    updated_at=now
                )
            )
            await uow.commit()

        # The row is committed before the buyer can reach the gateway
        return self._gateway.build_redirect(
            transaction_id=transaction_id,
            amount=product_cost,
            tax_amount=money(intent.tax_amount),
            delivery_charge=shipping_fee,
            total_amount=total_amount,
            product_name=intent.product_name or product.title,
        )
