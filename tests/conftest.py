import pytest
from loguru import logger

from ntagauth.ledger import MemoryReplayLedger, SqlReplayLedger
from ntagauth.verifier import SunVerifier

from vectors import ZERO_KEY


@pytest.fixture
def memory_ledger():
    return MemoryReplayLedger()


@pytest.fixture
async def sql_ledger(tmp_path):
    ledger = SqlReplayLedger.from_url(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.sqlite3'}"
    )
    await ledger.start()
    yield ledger
    await ledger.close()


@pytest.fixture(params=["memory", "sql"])
async def ledger(request, tmp_path):
    if request.param == "memory":
        yield MemoryReplayLedger(window=5)
        return
    sql = SqlReplayLedger.from_url(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.sqlite3'}", window=5
    )
    await sql.start()
    yield sql
    await sql.close()


@pytest.fixture
def verifier(memory_ledger):
    return SunVerifier(ZERO_KEY, memory_ledger)


@pytest.fixture
async def sql_verifier(sql_ledger):
    return SunVerifier(ZERO_KEY, sql_ledger)


@pytest.fixture
def log_messages():
    messages = []
    handler_id = logger.add(messages.append, format="{message}", level="DEBUG")
    yield messages
    logger.remove(handler_id)
