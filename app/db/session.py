import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession
from pymongo.errors import PyMongoError

from app.core.errors import ConcurrentModification

logger = logging.getLogger(__name__)


class MongoTransactionManager:
    """Opens multi-document transactions on a Motor client.

    ``start()`` yields a session inside ``start_transaction()``; the
    transaction commits when the block exits normally and aborts when it
    raises. With transactions disabled it yields ``None`` and every write
    is applied on its own.
    """

    def __init__(self, client: AsyncIOMotorClient, enabled: bool = True):
        self.client = client
        self.enabled = enabled

    @asynccontextmanager
    async def start(self) -> AsyncIterator[Optional[AsyncIOMotorClientSession]]:
        if not self.enabled:
            yield None
            return

        async with await self.client.start_session() as session:
            try:
                async with session.start_transaction():
                    yield session
            except PyMongoError as exc:
                if exc.has_error_label("TransientTransactionError"):
                    logger.warning("Transaction aborted on write conflict: %s", exc)
                    raise ConcurrentModification() from exc
                raise
