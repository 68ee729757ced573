import pytest
from sqlalchemy import select

from thriftverse.application.interfaces import EmailSender, EventPublisher, PushSender
from thriftverse.application.materialize_order import CreateOrderFromPaymentUseCase
from thriftverse.application.notifications import (
    BUYER_EMAIL, NotificationDispatcher, ORDER_CREATED, SELLER_EMAIL, SELLER_IN_APP, SELLER_PUSH
)
from thriftverse.application.process_outbox import ProcessOutboxEventsUseCase
from thriftverse.domain.exceptions import NotificationError
from thriftverse.infrastructure.db_schema import notifications_tbl, outbox_events_tbl

from conftest import APP_URL, SELLER_ID


class FakeEmailSender(EmailSender):
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send(self, to, subject, html):
        if self.fail:
            raise NotificationError("Email service error: 500")
        self.sent.append({"to": to, "subject": subject, "html": html})


class FakePushSender(PushSender):
    def __init__(self):
        self.sent = []

    async def send(self, tokens, title, body, data):
        self.sent.append({"tokens": tokens, "title": title, "body": body, "data": data})


class FakePublisher(EventPublisher):
    def __init__(self, success=True):
        self.published = []
        self.success = success

    async def publish(self, event_type, key, event_data):
        self.published.append((event_type, key, event_data))
        return self.success


@pytest.fixture
def placed_order(uow, add_product, add_seller, stage_payment):
    async def _place(**seller):
        await add_product()
        await add_seller(**seller)
        tx = await stage_payment()
        return await CreateOrderFromPaymentUseCase(uow)(tx)
    return _place


async def _outbox(session_factory):
    async with session_factory() as session:
        rows = (await session.execute(select(outbox_events_tbl))).fetchall()
    return {row.event_type: row for row in rows}


async def _in_app_notifications(session_factory):
    async with session_factory() as session:
        return (await session.execute(select(notifications_tbl))).fetchall()


async def test_all_channels_are_delivered(uow, session_factory, placed_order):
    order = await placed_order()
    email, push, publisher = FakeEmailSender(), FakePushSender(), FakePublisher()
    process = ProcessOutboxEventsUseCase(uow, publisher, NotificationDispatcher(email, push, APP_URL))

    assert await process() == 5
    assert await process() == 0

    assert publisher.published[0][0] == ORDER_CREATED
    assert publisher.published[0][1] == order.id
    assert sorted(m["to"] for m in email.sent) == ["buyer@example.com", "seller@example.com"]
    buyer_email = next(m for m in email.sent if m["to"] == "buyer@example.com")
    assert buyer_email["subject"] == f"Order Confirmed - {order.order_code} | ThriftVerse"
    assert f"{APP_URL}/order/{order.id}?view=buyer" in buyer_email["html"]
    assert push.sent[0]["tokens"] == ["ExponentPushToken[abc]"]
    assert push.sent[0]["title"] == f"New order · #{order.order_code}"

    notifications = await _in_app_notifications(session_factory)
    assert len(notifications) == 1
    assert notifications[0].user_id == SELLER_ID
    assert notifications[0].type == "order_placed"
    assert notifications[0].data["order_id"] == order.id
    assert {row.status for row in (await _outbox(session_factory)).values()} == {"published"}


async def test_email_failure_does_not_touch_the_order(uow, session_factory, placed_order):
    order = await placed_order()
    email, push = FakeEmailSender(fail=True), FakePushSender()
    process = ProcessOutboxEventsUseCase(uow, FakePublisher(), NotificationDispatcher(email, push, APP_URL))

    assert await process() == 3

    events = await _outbox(session_factory)
    assert events[BUYER_EMAIL].status == "pending"
    assert events[BUYER_EMAIL].attempts == 1
    assert events[SELLER_EMAIL].status == "pending"
    assert events[SELLER_PUSH].status == "published"
    assert events[SELLER_IN_APP].status == "published"
    async with uow() as u:
        stored = await u.orders.get_by_id(order.id)
    assert stored.status == order.status
    assert stored.amount == order.amount


async def test_event_fails_after_max_attempts(uow, session_factory, placed_order):
    await placed_order()
    dispatcher = NotificationDispatcher(FakeEmailSender(fail=True), FakePushSender(), APP_URL)
    process = ProcessOutboxEventsUseCase(uow, FakePublisher(), dispatcher, max_attempts=2)

    await process()
    await process()

    events = await _outbox(session_factory)
    assert events[BUYER_EMAIL].status == "failed"
    assert events[BUYER_EMAIL].attempts == 2
    assert await process() == 0


async def test_rejected_publish_is_retried(uow, session_factory, placed_order):
    await placed_order()
    dispatcher = NotificationDispatcher(FakeEmailSender(), FakePushSender(), APP_URL)

    await ProcessOutboxEventsUseCase(uow, FakePublisher(success=False), dispatcher)()

    events = await _outbox(session_factory)
    assert events[ORDER_CREATED].status == "pending"
    assert events[ORDER_CREATED].attempts == 1


async def test_muted_seller_gets_in_app_notification_only(uow, session_factory, placed_order):
    await placed_order(muted=True)
    email, push = FakeEmailSender(), FakePushSender()

    await ProcessOutboxEventsUseCase(uow, FakePublisher(), NotificationDispatcher(email, push, APP_URL))()

    assert push.sent == []
    assert len(await _in_app_notifications(session_factory)) == 1
    assert (await _outbox(session_factory))[SELLER_PUSH].status == "published"


async def test_seller_without_email_or_tokens_is_skipped(uow, session_factory, placed_order):
    await placed_order(email=None, tokens=())
    email, push = FakeEmailSender(), FakePushSender()

    assert await ProcessOutboxEventsUseCase(uow, FakePublisher(), NotificationDispatcher(email, push, APP_URL))() == 5

    assert [m["to"] for m in email.sent] == ["buyer@example.com"]
    assert push.sent == []


async def test_unknown_notification_event(uow):
    dispatcher = NotificationDispatcher(FakeEmailSender(), FakePushSender(), APP_URL)
    async with uow() as u:
        with pytest.raises(NotificationError):
            await dispatcher.deliver(u, "notification.carrier_pigeon", {})
