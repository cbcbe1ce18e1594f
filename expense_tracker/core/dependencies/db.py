from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.core.db import AsyncSessionLocal


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a new async session for each request and close it after the
    request is finished. Services commit explicitly; anything left
    uncommitted is rolled back on close.

    Yields:
        async_session: An async session object.
    """
    async with AsyncSessionLocal() as async_session:
        yield async_session
