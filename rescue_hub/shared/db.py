import os
import json
from contextlib import asynccontextmanager

from dotenv import load_dotenv
import asyncpg
import logging
from fastapi import Request

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()


async def _init_connection(conn):
    """Decode json/jsonb columns into Python objects on every pooled connection."""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


class Database:
    """
    Handle around an asyncpg connection pool.
    Created once by the application lifespan, stored on app.state and
    injected into request handlers with Depends(get_db).
    """

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 20, command_timeout: int = 60):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self._pool = None

    @classmethod
    def from_env(cls) -> "Database":
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            logger.error("DATABASE_URL environment variable is not set.")
            raise RuntimeError("DATABASE_URL environment variable is not set.")
        return cls(database_url)

    async def connect(self):
        """Create the connection pool. Call once at application startup."""
        try:
            logger.info("Initializing database connection pool...")
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
                init=_init_connection,
            )
            logger.info("Database connection pool initialized successfully.")
        except Exception as e:
            logger.exception(f"Error initializing database: {str(e)}")
            raise

    async def close(self):
        """Close the connection pool. Call once at application shutdown."""
        if self._pool:
            logger.info("Closing database connection pool...")
            await self._pool.close()
            self._pool = None
            logger.info("Database connection pool closed.")

    @asynccontextmanager
    async def connection(self):
        """
        Acquire a connection from the pool and release it afterwards.
        Use with 'async with db.connection() as conn:'
        """
        if self._pool is None:
            logger.error("Database connection pool is not initialized. Call connect() first.")
            raise RuntimeError("Database connection pool is not initialized. Call connect() first.")

        conn = None
        try:
            logger.debug("Acquiring database connection from pool...")
            conn = await self._pool.acquire()
            yield conn
        finally:
            if conn:
                await self._pool.release(conn)
                logger.debug("Database connection released.")

    async def execute_query(self, sql, params=None, fetch_one=False):
        """
        Execute an SQL statement and return its rows (or a single row with fetch_one).
        Use $1, $2, ... as placeholders.
        """
        try:
            logger.debug(f"Executing SQL query: {sql.strip().splitlines()[0][:100]}... | Params: {params}")
            async with self.connection() as conn:
                if fetch_one:
                    return await conn.fetchrow(sql, *(params or []))
                return await conn.fetch(sql, *(params or []))
        except Exception as e:
            logger.exception(f"Database query error: {str(e)}")
            raise

    async def executemany(self, sql, args):
        """Execute one statement for every parameter tuple in args."""
        try:
            logger.debug(f"Executing SQL batch: {sql.strip().splitlines()[0][:100]}... | Rows: {len(args)}")
            async with self.connection() as conn:
                await conn.executemany(sql, args)
        except Exception as e:
            logger.exception(f"Database batch error: {str(e)}")
            raise


def get_db(request: Request) -> Database:
    """FastAPI dependency returning the application's database handle."""
    return request.app.state.db
