from typing import Optional, List, Tuple

from thriftverse.domain.models import Order, OrderStatus
from thriftverse.domain.exceptions import OrderNotFoundError


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Order {order_id} not found")
            return order


class GetOrderByTransactionUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, transaction_uuid: str) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_transaction_uuid(transaction_uuid)
            if not order:
                raise OrderNotFoundError(f"No order for transaction {transaction_uuid}")
            return order


class ListOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self,
        seller_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[Order], int]:
        async with self._uow() as uow:
            return await uow.orders.list(seller_id=seller_id, status=status, limit=limit, offset=offset)
