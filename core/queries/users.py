"""User-related database queries using SQLAlchemy Core."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncConnection

from ..tables import users


async def get_user(
    conn: AsyncConnection,
    user_id: int,
) -> dict[str, Any] | None:
    """Get a user by id. Deleted users are treated as missing."""
    result = await conn.execute(
        select(users)
        .where(users.c.user_id == user_id)
        .where(users.c.deleted_at.is_(None))
    )
    row = result.mappings().first()
    return dict(row) if row else None


async def user_exists(conn: AsyncConnection, user_id: int) -> bool:
    return await get_user(conn, user_id) is not None


async def is_admin(conn: AsyncConnection, user_id: int) -> bool:
    """Check if a user has the site admin flag."""
    result = await conn.execute(
        select(users.c.is_admin)
        .where(users.c.user_id == user_id)
        .where(users.c.deleted_at.is_(None))
    )
    row = result.first()
    return bool(row and row[0])
