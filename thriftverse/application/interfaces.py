from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, List, Tuple

from thriftverse.domain.models import (
    GatewayRedirect,
    InventoryLevel,
    NeutralPaymentResult,
    Order,
    OrderStatus,
    PaymentMetadata,
    PaymentMethod,
    Product,
    SellerProfile,
)


class ProductRepository(ABC):
    @abstractmethod
    async def get_by_id(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    async def decrement_inventory(self, product_id: str, quantity: int) -> InventoryLevel:
        """Atomic decrement clamped at zero, flipping status to out_of_stock at zero"""
        pass


class PaymentMetadataRepository(ABC):
    @abstractmethod
    async def create(self, metadata: PaymentMetadata) -> None:
        pass

    @abstractmethod
    async def get(self, transaction_id: str) -> Optional[PaymentMetadata]:
        pass

    @abstractmethod
    async def attach_gateway_reference(self, transaction_id: str, transaction_code: str) -> bool:
        pass

    @abstractmethod
    async def mark_processed(self, transaction_id: str, order_id: str) -> None:
        pass


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_transaction_uuid(self, transaction_uuid: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def list(
        self,
        seller_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[Order], int]:
        pass

    @abstractmethod
    async def update_status(self, order_id: str, status: OrderStatus, expected: OrderStatus) -> bool:
        """Move the order only while it is still in the expected status"""
        pass


class ProfileRepository(ABC):
    @abstractmethod
    async def get_by_id(self, profile_id: str) -> Optional[SellerProfile]:
        pass


class NotificationRepository(ABC):
    @abstractmethod
    async def create(self, user_id: str, title: str, body: str, type: str, data: dict) -> str:
        pass


class OutboxRepository(ABC):
    @abstractmethod
    async def create(self, event_type: str, event_data: dict, order_id: str) -> str:
        pass

    @abstractmethod
    async def get_pending(self, limit: int = 10) -> List[dict]:
        pass

    @abstractmethod
    async def mark_as_published(self, event_id: str) -> None:
        pass

    @abstractmethod
    async def mark_attempt_failed(self, event_id: str, max_attempts: int) -> str:
        """Record a failed delivery and return the resulting status"""
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def products(self) -> ProductRepository:
        pass

    @property
    @abstractmethod
    def payment_metadata(self) -> PaymentMetadataRepository:
        pass

    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @property
    @abstractmethod
    def profiles(self) -> ProfileRepository:
        pass

    @property
    @abstractmethod
    def notifications(self) -> NotificationRepository:
        pass

    @property
    @abstractmethod
    def outbox(self) -> OutboxRepository:
        pass

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class PaymentGateway(ABC):
    method: PaymentMethod

    @abstractmethod
    def new_transaction_id(self) -> str:
        pass

    @abstractmethod
    def build_redirect(
        self,
        transaction_id: str,
        amount: Decimal,
        tax_amount: Decimal,
        delivery_charge: Decimal,
        total_amount: Decimal,
        product_name: str,
    ) -> GatewayRedirect:
        pass

    @abstractmethod
    def parse_callback(self, raw: dict) -> NeutralPaymentResult:
        pass

    @abstractmethod
    def verify(self, result: NeutralPaymentResult) -> bool:
        pass


class EmailSender(ABC):
    @abstractmethod
    async def send(self, to: str, subject: str, html: str) -> None:
        pass


class PushSender(ABC):
    @abstractmethod
    async def send(self, tokens: List[str], title: str, body: str, data: dict) -> None:
        pass


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, event_type: str, key: str, event_data: dict) -> bool:
        pass
