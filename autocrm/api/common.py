"""
Helpers shared by the API routers.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import translate_storage_errors


async def commit(db: AsyncSession, operation: str, table: str) -> None:
    """Commit the request's unit of work so change notifications follow durable state."""
    with translate_storage_errors(operation, table):
        await db.commit()
