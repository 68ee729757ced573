import logging

from thriftverse.domain.models import Order, OrderStatus
from thriftverse.domain.exceptions import InvalidStatusTransitionError, OrderNotFoundError

logger = logging.getLogger(__name__)


class UpdateOrderStatusUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, status: OrderStatus) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Order {order_id} not found")

            if order.status == status:
                return order
            if not order.can_transition_to(status):
                raise InvalidStatusTransitionError(
                    f"Order {order_id} cannot move from {order.status.value} to {status.value}"
                )

            # earnings stay as computed at creation
            if not await uow.orders.update_status(order_id, status, expected=order.status):
                raise InvalidStatusTransitionError(
                    f"Order {order_id} changed status concurrently, expected {order.status.value}"
                )
            await uow.commit()

        logger.info(f"Order {order_id} moved {order.status.value} -> {status.value}")
        return order.model_copy(update={"status": status})
