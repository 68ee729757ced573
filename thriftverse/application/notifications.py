import html
import logging
from datetime import datetime, timedelta

from thriftverse.domain.models import Order
from thriftverse.domain.exceptions import NotificationError
from thriftverse.application.interfaces import EmailSender, OutboxRepository, PushSender

logger = logging.getLogger(__name__)

ORDER_CREATED = "order.created"
BUYER_EMAIL = "notification.buyer_email"
SELLER_EMAIL = "notification.seller_email"
SELLER_PUSH = "notification.seller_push"
SELLER_IN_APP = "notification.seller_in_app"

NOTIFICATION_EVENTS = (BUYER_EMAIL, SELLER_EMAIL, SELLER_PUSH, SELLER_IN_APP)

SHIPPING_DEADLINE_DAYS = 3


def order_event_data(order: Order, product_title: str) -> dict:
    return {
        "order_id": order.id,
        "order_code": order.order_code,
        "seller_id": order.seller_id,
        "product_id": order.product_id,
        "product_title": product_title,
        "quantity": order.quantity,
        "buyer_name": order.buyer_name,
        "buyer_email": order.buyer_email,
        "amount": str(order.amount),
        "shipping_fee": str(order.shipping_fee),
        "payment_method": order.payment_method.value,
        "transaction_uuid": order.transaction_uuid,
        "created_at": order.created_at.isoformat(),
    }


async def enqueue_order_events(outbox: OutboxRepository, order: Order, product_title: str) -> None:
    """Queue the integration event and one event per notification channel.

    Called inside the transaction that inserts the order, so the events exist
    if and only if the order does.
    """
    event_data = order_event_data(order, product_title)
    for event_type in (ORDER_CREATED,) + NOTIFICATION_EVENTS:
        await outbox.create(event_type=event_type, event_data=event_data, order_id=order.id)


class NotificationDispatcher:
    def __init__(self, email_sender: EmailSender, push_sender: PushSender, app_url: str):
        self._email = email_sender
        self._push = push_sender
        self._app_url = app_url

    async def deliver(self, uow, event_type: str, data: dict) -> None:
        """Deliver one notification channel. Raises NotificationError on failure."""
        if event_type == BUYER_EMAIL:
            await self._buyer_email(uow, data)
        elif event_type == SELLER_EMAIL:
            await self._seller_email(uow, data)
        elif event_type == SELLER_PUSH:
            await self._seller_push(uow, data)
        elif event_type == SELLER_IN_APP:
            await self._seller_in_app(uow, data)
        else:
            raise NotificationError(f"Unknown notification event {event_type}")

    def _order_url(self, order_id: str, view: str) -> str:
        return f"{self._app_url}/order/{order_id}?view={view}"

    @staticmethod
    def _title_and_body(data: dict) -> tuple[str, str]:
        title = f"New order · #{data['order_code']}"
        body = f"\"{data['product_title']}\" worth Rs.{data['amount']} has been ordered by {data['buyer_name']}"
        return title, body

    async def _buyer_email(self, uow, data: dict) -> None:
        seller = await uow.profiles.get_by_id(data["seller_id"])
        store_name = seller.name if seller else "ThriftVerse"
        order_date = datetime.fromisoformat(data["created_at"]).strftime("%B %d, %Y")
        subject = f"Order Confirmed - {data['order_code']} | ThriftVerse"
        body = (
            f"<p>Hi {html.escape(data['buyer_name'])},</p>"
            f"<p>Your order <strong>{html.escape(data['order_code'])}</strong> from "
            f"{html.escape(store_name)} was placed on {order_date}.</p>"
            f"<p>{html.escape(data['product_title'])} x {data['quantity']}<br>"
            f"Shipping: Rs.{data['shipping_fee']}<br>"
            f"Total: Rs.{data['amount']}</p>"
            f"<p><a href=\"{html.escape(self._order_url(data['order_id'], 'buyer'))}\">View order details</a></p>"
        )
        await self._email.send(to=data["buyer_email"], subject=subject, html=body)
        logger.info(f"Order confirmation sent to buyer for order {data['order_id']}")

    async def _seller_email(self, uow, data: dict) -> None:
        seller = await uow.profiles.get_by_id(data["seller_id"])
        if not seller or not seller.email:
            logger.info(f"Seller {data['seller_id']} has no email, skipping item sold email")
            return
        sale_date = datetime.fromisoformat(data["created_at"])
        deadline = sale_date + timedelta(days=SHIPPING_DEADLINE_DAYS)
        subject = f"Item Sold - {data['product_title']} | ThriftVerse"
        body = (
            f"<p>Hi {html.escape(seller.name)},</p>"
            f"<p>{html.escape(data['buyer_name'])} bought <strong>{html.escape(data['product_title'])}</strong> "
            f"for Rs.{data['amount']} on {sale_date.strftime('%B %d, %Y')}.</p>"
            f"<p>Please ship it by {deadline.strftime('%B %d, %Y')}.</p>"
            f"<p><a href=\"{html.escape(self._order_url(data['order_id'], 'seller'))}\">View order</a></p>"
        )
        await self._email.send(to=seller.email, subject=subject, html=body)
        logger.info(f"Item sold email sent to seller {seller.id} for order {data['order_id']}")

    async def _seller_push(self, uow, data: dict) -> None:
        seller = await uow.profiles.get_by_id(data["seller_id"])
        if not seller:
            logger.warning(f"Seller {data['seller_id']} not found, skipping push")
            return
        if seller.notifications_muted:
            logger.info(f"Seller {seller.id} muted notifications, skipping push")
            return
        if not seller.expo_push_tokens:
            logger.info(f"Seller {seller.id} has no push tokens")
            return
        title, body = self._title_and_body(data)
        await self._push.send(
            tokens=seller.expo_push_tokens,
            title=title,
            body=body,
            data={
                "order_id": data["order_id"],
                "product_title": data["product_title"],
                "buyer_name": data["buyer_name"],
                "amount": data["amount"],
            }
        )
        logger.info(f"Push sent to {len(seller.expo_push_tokens)} device(s) for seller {seller.id}")

    async def _seller_in_app(self, uow, data: dict) -> None:
        # written regardless of the mute preference
        title, body = self._title_and_body(data)
        try:
            await uow.notifications.create(
                user_id=data["seller_id"],
                title=title,
                body=body,
                type="order_placed",
                data={
                    "order_id": data["order_id"],
                    "product_title": data["product_title"],
                    "buyer_name": data["buyer_name"],
                    "amount": data["amount"],
                }
            )
        except Exception as e:
            raise NotificationError(f"Failed to store in-app notification for order {data['order_id']}: {e}")
