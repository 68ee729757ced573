import logging
from decimal import Decimal
from pydantic import BaseModel

from thriftverse.domain.models import MetadataState, Order
from thriftverse.domain.exceptions import (
    InvalidSignatureError, MetadataNotFoundError, PaymentFailedError
)
from thriftverse.application.interfaces import PaymentGateway
from thriftverse.application.materialize_order import CreateOrderFromPaymentUseCase

logger = logging.getLogger(__name__)


class PaymentVerification(BaseModel):
    transaction_uuid: str
    transaction_code: str
    amount: Decimal
    status: str
    order: Order


class VerifyPaymentUseCase:
    """Gateway callback: verify, attach the gateway reference, materialize the order."""

    def __init__(self, unit_of_work, gateway: PaymentGateway):
        self._uow = unit_of_work
        self._gateway = gateway
        self._create_order = CreateOrderFromPaymentUseCase(unit_of_work)

    async def __call__(self, raw_callback: dict) -> PaymentVerification:
        result = self._gateway.parse_callback(raw_callback)
        logger.info(
            f"{result.gateway.value} callback for transaction {result.transaction_id}: "
            f"code={result.transaction_code}, status={result.status}, amount={result.amount}"
        )

        if not self._gateway.verify(result):
            logger.warning(
                f"Signature verification failed for {result.gateway.value} transaction "
                f"{result.transaction_id}, flagging for review"
            )
            raise InvalidSignatureError(f"Invalid payment signature for transaction {result.transaction_id}")

        if not result.is_success:
            raise PaymentFailedError(result.transaction_id, result.status)

        async with self._uow() as uow:
            metadata = await uow.payment_metadata.get(result.transaction_id)
            if not metadata:
                logger.critical(
                    f"Payment verified but no metadata staged, manual reconciliation needed "
                    f"- transaction_uuid: {result.transaction_id}, transaction_code: {result.transaction_code}"
                )
                raise MetadataNotFoundError(result.transaction_id)

            if result.amount != metadata.amount:
                logger.warning(
                    f"Amount mismatch for transaction {result.transaction_id}: "
                    f"paid {result.amount}, staged {metadata.amount}"
                )
                raise InvalidSignatureError(f"Amount mismatch for transaction {result.transaction_id}")

            if metadata.state == MetadataState.STAGED:
                await uow.payment_metadata.attach_gateway_reference(result.transaction_id, result.transaction_code)
                await uow.commit()
            elif metadata.transaction_code != result.transaction_code:
                logger.warning(
                    f"Transaction {result.transaction_id} already carries code {metadata.transaction_code}, "
                    f"ignoring {result.transaction_code}"
                )

        order = await self._create_order(result.transaction_id)
        logger.info(f"Payment verified successfully, order {order.id}")

        return PaymentVerification(
            transaction_uuid=result.transaction_id,
            transaction_code=order.transaction_code,
            amount=result.amount,
            status=result.status,
            order=order,
        )


class HandlePaymentFailureUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, transaction_id: str, reason: str = "") -> bool:
        """Log a failed or cancelled payment. The staged row is kept for audit."""
        async with self._uow() as uow:
            metadata = await uow.payment_metadata.get(transaction_id)
        if not metadata:
            logger.warning(f"Payment failed for unknown transaction {transaction_id}")
            return False
        logger.info(
            f"Payment failed for transaction {transaction_id} "
            f"(state: {metadata.state.value}){': ' + reason if reason else ''}"
        )
        return True
