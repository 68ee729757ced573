import logging
import json

from thriftverse.application.interfaces import EventPublisher
from thriftverse.application.notifications import (
    NOTIFICATION_EVENTS, ORDER_CREATED, NotificationDispatcher
)
from thriftverse.domain.exceptions import NotificationError

logger = logging.getLogger(__name__)


class ProcessOutboxEventsUseCase:
    def __init__(
        self,
        unit_of_work,
        event_publisher: EventPublisher,
        dispatcher: NotificationDispatcher,
        max_attempts: int = 5
    ):
        self._uow = unit_of_work
        self._publisher = event_publisher
        self._dispatcher = dispatcher
        self._max_attempts = max_attempts

    async def __call__(self, limit: int = 10) -> int:
        """Process pending outbox events. Returns the number published."""

        async with self._uow() as uow:
            pending = await uow.outbox.get_pending(limit=limit)

        if not pending:
            return 0
        logger.info(f"Processing {len(pending)} outbox events")

        published = 0
        for event in pending:
            # each event gets its own transaction so one failure cannot poison the batch
            try:
                async with self._uow() as uow:
                    await self._handle(uow, event)
                    await uow.outbox.mark_as_published(event["id"])
                    await uow.commit()
                published += 1
                logger.info(f"Published {event['event_type']} event {event['id']} for order {event['order_id']}")
            except Exception as e:
                await self._record_failure(event, e)

        return published

    async def _handle(self, uow, event: dict) -> None:
        event_data = event["event_data"]
        if isinstance(event_data, str):
            event_data = json.loads(event_data)

        if event["event_type"] == ORDER_CREATED:
            success = await self._publisher.publish(
                event_type=ORDER_CREATED,
                key=event["order_id"],
                event_data=event_data
            )
            if not success:
                raise NotificationError(f"Kafka publish failed for order {event['order_id']}")
        elif event["event_type"] in NOTIFICATION_EVENTS:
            await self._dispatcher.deliver(uow, event["event_type"], event_data)
        else:
            logger.warning(f"Unknown outbox event type {event['event_type']}")

    async def _record_failure(self, event: dict, error: Exception) -> None:
        try:
            async with self._uow() as uow:
                status = await uow.outbox.mark_attempt_failed(event["id"], self._max_attempts)
                await uow.commit()
        except Exception as e:
            logger.error(f"Could not record failure of outbox event {event['id']}: {e}")
            return
        if status == "failed":
            logger.error(
                f"Giving up on {event['event_type']} event {event['id']} for order {event['order_id']} "
                f"after {self._max_attempts} attempts: {error}"
            )
        else:
            logger.error(f"Error processing outbox event {event['id']} ({event['event_type']}): {error}")
