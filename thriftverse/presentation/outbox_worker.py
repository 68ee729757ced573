import asyncio
import logging

from thriftverse.database import AsyncSessionLocal
from thriftverse.infrastructure.unit_of_work import UnitOfWork
from thriftverse.infrastructure.http_clients import ExpoPushClient, ResendEmailClient
from thriftverse.infrastructure.kafka_producer import KafkaProducerClient
from thriftverse.application.notifications import NotificationDispatcher
from thriftverse.application.process_outbox import ProcessOutboxEventsUseCase
from thriftverse.config import settings

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

kafka_producer = KafkaProducerClient(settings.KAFKA_BOOTSTRAP_SERVERS, settings.ORDER_EVENTS_TOPIC)
dispatcher = NotificationDispatcher(
    email_sender=ResendEmailClient(settings.RESEND_BASE_URL, settings.RESEND_API_KEY, settings.FROM_EMAIL),
    push_sender=ExpoPushClient(settings.EXPO_PUSH_URL),
    app_url=settings.APP_URL
)


async def outbox_worker():
    """Delivers queued order events and notifications"""
    logger.info("Outbox worker started")

    await kafka_producer.start()
    use_case = ProcessOutboxEventsUseCase(
        unit_of_work=UnitOfWork(AsyncSessionLocal),
        event_publisher=kafka_producer,
        dispatcher=dispatcher,
        max_attempts=settings.OUTBOX_MAX_ATTEMPTS
    )

    try:
        while True:
            try:
                processed = await use_case(limit=settings.OUTBOX_BATCH_SIZE)
                if processed:
                    logger.info(f"Published {processed} outbox events")

                await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL)

            except Exception as e:
                logger.error(f"Error in outbox worker: {e}", exc_info=True)
                await asyncio.sleep(10)
    finally:
        await kafka_producer.stop()


async def main():
    await outbox_worker()


if __name__ == "__main__":
    asyncio.run(main())
