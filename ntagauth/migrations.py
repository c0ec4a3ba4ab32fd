import re

from loguru import logger

from .db import LedgerDatabase

DB_NAME = "ntagauth"


async def m001_initial(db):
    await db.execute(
        """
        CREATE TABLE replay_tags (
            uid TEXT PRIMARY KEY UNIQUE,
            max_counter INT NOT NULL DEFAULT 0,
            time TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
    """
    )

    await db.execute(
        """
        CREATE TABLE replay_counters (
            uid TEXT NOT NULL,
            counter INT NOT NULL,
            time TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (uid, counter)
        );
    """
    )


def _migrations():
    found = []
    for name, func in globals().items():
        match = re.match(r"^m(\d{3})_", name)
        if match:
            found.append((int(match.group(1)), func))
    return sorted(found, key=lambda item: item[0])


async def migrate(db: LedgerDatabase) -> None:
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS dbversions (
            db TEXT PRIMARY KEY,
            version INT NOT NULL
        );
    """
    )
    row = await db.fetchone(
        "SELECT version FROM dbversions WHERE db = :db", {"db": DB_NAME}
    )
    current = row["version"] if row else 0

    for version, migration in _migrations():
        if version <= current:
            continue
        logger.debug(f"running migration {DB_NAME}.{version}")
        await migration(db)
        await db.execute(
            """
            INSERT INTO dbversions (db, version) VALUES (:db, :version)
            ON CONFLICT (db) DO UPDATE SET version = excluded.version
            """,
            {"db": DB_NAME, "version": version},
        )
