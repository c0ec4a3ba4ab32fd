from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from .db import LedgerDatabase


async def is_counter_used(db: LedgerDatabase, uid: str, counter: int) -> bool:
    row = await db.fetchone(
        """
        SELECT counter FROM replay_counters
        WHERE uid = :uid AND counter = :counter
        """,
        {"uid": uid.upper(), "counter": counter},
    )
    return row is not None


async def get_max_counter(db: LedgerDatabase, uid: str) -> int:
    row = await db.fetchone(
        "SELECT max_counter FROM replay_tags WHERE uid = :uid",
        {"uid": uid.upper()},
    )
    return int(row["max_counter"]) if row else 0


async def get_counters(db: LedgerDatabase, uid: str) -> list[int]:
    rows = await db.fetchall(
        "SELECT counter FROM replay_counters WHERE uid = :uid ORDER BY counter",
        {"uid": uid.upper()},
    )
    return [int(row["counter"]) for row in rows]


async def raise_max_counter(conn: AsyncConnection, uid: str, counter: int) -> bool:
    """Move the high-water mark to ``counter`` if it is strictly higher.

    Creates the record for an unseen UID. Returns whether a row changed.
    """
    result = await conn.execute(
        text(
            """
            INSERT INTO replay_tags (uid, max_counter) VALUES (:uid, :counter)
            ON CONFLICT (uid) DO UPDATE SET max_counter = excluded.max_counter
            WHERE replay_tags.max_counter < excluded.max_counter
            """
        ),
        {"uid": uid.upper(), "counter": counter},
    )
    return result.rowcount > 0


async def insert_counter(conn: AsyncConnection, uid: str, counter: int) -> bool:
    result = await conn.execute(
        text(
            """
            INSERT INTO replay_counters (uid, counter) VALUES (:uid, :counter)
            ON CONFLICT (uid, counter) DO NOTHING
            """
        ),
        {"uid": uid.upper(), "counter": counter},
    )
    return result.rowcount > 0


async def evict_counters(conn: AsyncConnection, uid: str, window: int) -> int:
    result = await conn.execute(
        text(
            """
            DELETE FROM replay_counters
            WHERE uid = :uid AND counter NOT IN (
                SELECT counter FROM replay_counters
                WHERE uid = :uid
                ORDER BY counter DESC
                LIMIT :window
            )
            """
        ),
        {"uid": uid.upper(), "window": window},
    )
    return result.rowcount


async def delete_tag(db: LedgerDatabase, uid: str) -> None:
    async with db.connect() as conn:
        await conn.execute(
            text("DELETE FROM replay_counters WHERE uid = :uid"), {"uid": uid.upper()}
        )
        await conn.execute(
            text("DELETE FROM replay_tags WHERE uid = :uid"), {"uid": uid.upper()}
        )
