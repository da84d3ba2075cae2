"""
Database operations for users, query history and auth sessions

Provides async interface to SQLite database using aiosqlite.
"""

import time
import uuid
from pathlib import Path
from typing import Optional

import aiosqlite
import structlog

from nova.core.config import config

logger = structlog.get_logger()

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        assistant_name TEXT,
        assistant_image TEXT,
        created_at REAL NOT NULL,
        updated_at REAL NOT NULL,

        UNIQUE(email)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        query TEXT NOT NULL,
        created_at REAL NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_user_history_user
    ON user_history(user_id, id)
    """,
    """
    CREATE TABLE IF NOT EXISTS auth_sessions (
        token TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        created_at REAL NOT NULL,
        expires_at REAL NOT NULL
    )
    """,
]

USER_COLUMNS = "id, name, email, assistant_name, assistant_image, created_at, updated_at"


class DuplicateEmailError(ValueError):
    """Email already registered"""


class DatabaseService:
    """
    Async database service for NOVA

    One row per user; history is append-only.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path or config.DATABASE_PATH
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self):
        """Establish database connection and ensure schema"""
        if self._conn is None:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(str(self.db_path))
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA foreign_keys = ON")
            await self.init_schema()
            logger.info("db.connected", path=str(self.db_path))

    async def close(self):
        """Close database connection"""
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("db.closed")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def init_schema(self):
        """Create tables if they don't exist"""
        for statement in SCHEMA:
            await self._conn.execute(statement)
        await self._conn.commit()

    # User operations

    async def create_user(self, name: str, email: str, password_hash: str) -> dict:
        """
        Create a new user

        Returns: user record (without password hash)

        Raises:
            DuplicateEmailError: Email already registered
        """
        if not self._conn:
            await self.connect()

        user_id = uuid.uuid4().hex
        now = time.time()
        email = email.strip().lower()

        try:
            await self._conn.execute(
                """
                INSERT INTO users (
                    id, name, email, password_hash, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, name, email, password_hash, now, now),
            )
            await self._conn.commit()
        except aiosqlite.IntegrityError as e:
            logger.warning("db.user.duplicate_email", email=email)
            raise DuplicateEmailError(email) from e

        logger.info("db.user.created", user_id=user_id)
        return await self.get_user(user_id)

    async def get_user(self, user_id: str) -> Optional[dict]:
        """Get user by ID (without password hash)"""
        if not self._conn:
            await self.connect()

        cursor = await self._conn.execute(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()

        if row:
            return dict(row)
        logger.warning("db.user.not_found", user_id=user_id)
        return None

    async def get_user_credentials(self, email: str) -> Optional[dict]:
        """Get user ID and password hash by email, for sign-in only"""
        if not self._conn:
            await self.connect()

        cursor = await self._conn.execute(
            "SELECT id, password_hash FROM users WHERE email = ?",
            (email.strip().lower(),),
        )
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def update_assistant(
        self,
        user_id: str,
        assistant_name: Optional[str],
        assistant_image: Optional[str],
    ) -> Optional[dict]:
        """
        Update assistant customization

        Returns: updated user record, None if the user doesn't exist
        """
        if not self._conn:
            await self.connect()

        cursor = await self._conn.execute(
            """
            UPDATE users
            SET assistant_name = ?, assistant_image = ?, updated_at = ?
            WHERE id = ?
            """,
            (assistant_name, assistant_image, time.time(), user_id),
        )
        await self._conn.commit()

        if cursor.rowcount == 0:
            logger.warning("db.user.update_failed", user_id=user_id)
            return None

        logger.info("db.user.assistant_updated", user_id=user_id, assistant_name=assistant_name)
        return await self.get_user(user_id)

    # History operations

    async def append_history(self, user_id: str, query: str) -> int:
        """
        Append a query to the user's history

        Returns: history entry ID
        """
        if not self._conn:
            await self.connect()

        cursor = await self._conn.execute(
            "INSERT INTO user_history (user_id, query, created_at) VALUES (?, ?, ?)",
            (user_id, query, time.time()),
        )
        await self._conn.commit()

        logger.debug("db.history.appended", user_id=user_id, id=cursor.lastrowid)
        return cursor.lastrowid

    async def get_history(self, user_id: str, limit: Optional[int] = None) -> list[str]:
        """
        Get a user's queries, oldest first

        With ``limit``, only the most recent ``limit`` entries are returned.
        """
        if not self._conn:
            await self.connect()

        if limit is None:
            cursor = await self._conn.execute(
                "SELECT query FROM user_history WHERE user_id = ? ORDER BY id ASC",
                (user_id,),
            )
            rows = await cursor.fetchall()
        else:
            cursor = await self._conn.execute(
                "SELECT query FROM user_history WHERE user_id = ? ORDER BY id DESC LIMIT ?",
                (user_id, limit),
            )
            rows = list(reversed(await cursor.fetchall()))

        return [row["query"] for row in rows]

    # Auth session operations

    async def create_session(self, token: str, user_id: str, max_age: int) -> None:
        """Store a new auth session"""
        if not self._conn:
            await self.connect()

        now = time.time()
        await self._conn.execute(
            "INSERT INTO auth_sessions (token, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)",
            (token, user_id, now, now + max_age),
        )
        await self._conn.commit()
        logger.info("db.session.created", user_id=user_id)

    async def get_session_user_id(self, token: str) -> Optional[str]:
        """Resolve a session token; expired sessions are removed"""
        if not self._conn:
            await self.connect()

        cursor = await self._conn.execute(
            "SELECT user_id, expires_at FROM auth_sessions WHERE token = ?",
            (token,),
        )
        row = await cursor.fetchone()
        if not row:
            return None

        if row["expires_at"] < time.time():
            await self.delete_session(token)
            logger.info("db.session.expired", user_id=row["user_id"])
            return None

        return row["user_id"]

    async def delete_session(self, token: str) -> bool:
        """
        Delete an auth session

        Returns: True if deleted, False if not found
        """
        if not self._conn:
            await self.connect()

        cursor = await self._conn.execute(
            "DELETE FROM auth_sessions WHERE token = ?",
            (token,),
        )
        await self._conn.commit()
        return cursor.rowcount > 0


# Global database service instance
db = DatabaseService()


async def get_database_service() -> DatabaseService:
    """
    Dependency injection for database service

    Returns:
        Database service instance
    """
    if not db._conn:
        await db.connect()
    return db
