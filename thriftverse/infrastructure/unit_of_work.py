from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thriftverse.infrastructure.repositories import (
    SQLAlchemyNotificationRepository,
    SQLAlchemyOrderRepository,
    SQLAlchemyOutboxRepository,
    SQLAlchemyPaymentMetadataRepository,
    SQLAlchemyProductRepository,
    SQLAlchemyProfileRepository,
)


class UnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        async with self._session_factory() as session:
            try:
                yield _UnitOfWorkImpl(session)
                # anything not committed is discarded
                await session.rollback()
            except Exception:
                await session.rollback()
                raise


class _UnitOfWorkImpl:
    def __init__(self, session: AsyncSession):
        self._session = session
        self.products = SQLAlchemyProductRepository(session)
        self.payment_metadata = SQLAlchemyPaymentMetadataRepository(session)
        self.orders = SQLAlchemyOrderRepository(session)
        self.profiles = SQLAlchemyProfileRepository(session)
        self.notifications = SQLAlchemyNotificationRepository(session)
        self.outbox = SQLAlchemyOutboxRepository(session)

    async def commit(self):
        await self._session.commit()

    async def rollback(self):
        await self._session.rollback()
