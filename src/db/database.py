# manages connection to db, provides helper methods internal to db package
import asyncio
import os.path
from contextlib import asynccontextmanager
from sqlite3 import Row

import aiosqlite

from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

_HERE = os.path.dirname(os.path.abspath(__file__))

DB_PATH = config.DB_PATH
SCHEMA_SCRIPT = os.path.join(_HERE, "schema.sql")
SEED_SCRIPT = os.path.join(_HERE, "seed.sql")
SEED_DEMO_DATA = True

_initialized = False
_init_lock = asyncio.Lock()


async def _run_script(conn: aiosqlite.Connection, script: str) -> None:
    if not os.path.exists(script) or os.path.getsize(script) == 0:
        return
    _logger.info(f"Initializing database with script {os.path.basename(script)}...")
    with open(script, "r", encoding="utf-8") as f:
        await conn.executescript(f.read())


async def _init_db(conn: aiosqlite.Connection) -> None:
    # local import: seed hashes passwords through utils, keep module import light
    from db.seed import seed_users

    await _run_script(conn, SCHEMA_SCRIPT)
    if SEED_DEMO_DATA:
        await seed_users(conn)
        await _run_script(conn, SEED_SCRIPT)
    await conn.commit()


async def _table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


@asynccontextmanager
async def connect() -> aiosqlite.Connection:
    """Async context manager yielding an aiosqlite connection with FK enabled.

    Ensures the database is initialized (tables and seed data) on first use.
    """
    global _initialized
    directory = os.path.dirname(DB_PATH)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = await aiosqlite.connect(DB_PATH)
    conn.row_factory = Row
    await conn.execute("PRAGMA foreign_keys = ON;")

    if not _initialized:
        async with _init_lock:
            if not _initialized:
                exists = await _table_exists(conn, "users")
                if not exists:
                    _logger.info("Initializing database...")
                    await _init_db(conn)
                _initialized = True
    try:
        yield conn
    finally:
        await conn.close()
