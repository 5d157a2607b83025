"""
Database connection and query module.

Provides a clean interface for database operations with support
for both PostgreSQL and SQLite backends.
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import asyncpg
import aiosqlite

from config import config

logger = logging.getLogger(__name__)


class Database:
    """
    Async database connection manager.

    Supports PostgreSQL (production) and SQLite (development).
    Every payment write is a single UPDATE statement so concurrent
    writers never interleave a read and a write.
    """

    def __init__(self, database_url: Optional[str] = None):
        """
        Initialize database manager.

        Args:
            database_url: Database connection URL. Uses config if not provided.
        """
        self.database_url = database_url or config.database.url
        self._pool = None
        self._sqlite_conn = None
        self._is_postgres = self.database_url.startswith(('postgresql', 'postgres://'))

    async def connect(self) -> None:
        """Establish database connection(s)."""
        if self._is_postgres:
            logger.info("Connecting to PostgreSQL database...")
            self._pool = await asyncpg.create_pool(
                self.database_url,
                min_size=2,
                max_size=10,
                command_timeout=60
            )
        else:
            # SQLite for development
            db_path = self.database_url.replace('sqlite:///', '')
            logger.info(f"Connecting to SQLite database: {db_path}")
            self._sqlite_conn = await aiosqlite.connect(db_path)
            self._sqlite_conn.row_factory = aiosqlite.Row

        logger.info("Database connection established")

    async def disconnect(self) -> None:
        """Close database connection(s)."""
        if self._is_postgres and self._pool:
            await self._pool.close()
            self._pool = None
        elif self._sqlite_conn:
            await self._sqlite_conn.close()
            self._sqlite_conn = None

        logger.info("Database connection closed")

    async def execute(self, query: str, *args) -> int:
        """
        Execute a query without returning results.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            Number of rows affected
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                status = await conn.execute(query, *args)
            # asyncpg returns the command tag, e.g. "UPDATE 1"
            last = status.split()[-1] if status else ''
            return int(last) if last.isdigit() else 0
        else:
            sqlite_query = self._convert_params(query)
            cursor = await self._sqlite_conn.execute(sqlite_query, args)
            await self._sqlite_conn.commit()
            return cursor.rowcount

    async def fetch_one(self, query: str, *args) -> Optional[Dict[str, Any]]:
        """
        Execute a query and fetch one row.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            Row as dictionary or None if no results
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(query, *args)
                return dict(row) if row else None
        else:
            # Convert $1, $2 style params to ? for SQLite
            sqlite_query = self._convert_params(query)
            cursor = await self._sqlite_conn.execute(sqlite_query, args)
            row = await cursor.fetchone()
            if row:
                columns = [d[0] for d in cursor.description]
                return dict(zip(columns, row))
            return None

    def _convert_params(self, query: str) -> str:
        """Convert PostgreSQL $1, $2 style params to SQLite ? style."""
        return re.sub(r'\$\d+', '?', query)

    def _timestamp(self, value: datetime) -> Any:
        """Timestamps go to PostgreSQL as datetimes, to SQLite as ISO strings."""
        return value if self._is_postgres else value.isoformat()

    async def init_schema(self) -> None:
        """Initialize database schema from schema.sql file."""
        schema_path = os.path.join(os.path.dirname(__file__), 'schema.sql')

        with open(schema_path, 'r') as f:
            lines = [line for line in f if not line.strip().startswith('--')]
        schema = ''.join(lines)

        # Split by semicolons and execute each statement
        statements = [s.strip() for s in schema.split(';') if s.strip()]

        for statement in statements:
            if not self._is_postgres:
                statement = statement.replace('TIMESTAMPTZ', 'TEXT')

            if self._is_postgres:
                async with self._pool.acquire() as conn:
                    await conn.execute(statement)
            else:
                await self._sqlite_conn.execute(statement)

        if not self._is_postgres:
            await self._sqlite_conn.commit()

        logger.info("Database schema initialized")

    # -------------------------------------------------------------------------
    # Application Operations
    # -------------------------------------------------------------------------

    async def get_application(self, application_id: str) -> Optional[Dict[str, Any]]:
        """Get application by ID."""
        return await self.fetch_one(
            "SELECT * FROM applications WHERE id = $1",
            application_id
        )

    async def create_application(
        self,
        application_id: str,
        full_name: Optional[str] = None,
        email: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create an unpaid application. Used by the registration flow and fixtures."""
        await self.execute(
            """
            INSERT INTO applications (id, full_name, email, paid, created_at)
            VALUES ($1, $2, $3, FALSE, $4)
            """,
            application_id, full_name, email,
            self._timestamp(datetime.now(timezone.utc))
        )
        return await self.get_application(application_id)

    async def update_application_payment(
        self,
        application_id: str,
        payment_method: Optional[str],
        payment_reference: Optional[str],
        payment_token: Optional[str],
        payment_date: datetime,
        notes: str,
        mark_paid: bool
    ) -> int:
        """
        Record ITN payment metadata.

        With ``mark_paid`` the same statement sets ``paid = TRUE``.
        Without it ``paid`` is not part of the statement at all, so a
        late or duplicate non-terminal notification cannot undo a payment.

        Returns:
            Number of rows updated (0 when the application does not exist)
        """
        paid_clause = "paid = TRUE, " if mark_paid else ""
        return await self.execute(
            f"""
            UPDATE applications
            SET {paid_clause}payfast_method = $1, payment_reference = $2,
                payfast_token = $3, payment_date = $4, notes = $5
            WHERE id = $6
            """,
            payment_method, payment_reference, payment_token,
            self._timestamp(payment_date), notes, application_id
        )

    async def annotate_unpaid_application(
        self,
        application_id: str,
        payment_date: datetime,
        notes: str,
        cancel: bool
    ) -> int:
        """
        Record a browser return on an application that is not yet paid.

        The ``paid`` guard sits in the WHERE clause, so a payment already
        confirmed by an ITN is never touched.
        """
        paid_clause = "paid = FALSE, " if cancel else ""
        return await self.execute(
            f"""
            UPDATE applications
            SET {paid_clause}payment_date = $1, notes = $2
            WHERE id = $3 AND COALESCE(paid, FALSE) = FALSE
            """,
            self._timestamp(payment_date), notes, application_id
        )

    async def mark_application_paid(self, application_id: str) -> int:
        """Set ``paid = TRUE`` unconditionally (manual override)."""
        return await self.execute(
            "UPDATE applications SET paid = TRUE WHERE id = $1",
            application_id
        )


# Global database instance
_db: Optional[Database] = None


async def get_db() -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database()
        await _db.connect()
    return _db


async def close_db() -> None:
    """Close the global database connection."""
    global _db
    if _db is not None:
        await _db.disconnect()
        _db = None
