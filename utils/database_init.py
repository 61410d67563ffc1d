import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

logger = logging.getLogger(__name__)

USERS_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    password TEXT NOT NULL,
    created_at REAL NOT NULL DEFAULT (strftime('%s', 'now'))
)
"""

IMAGES_TABLE = """
CREATE TABLE IF NOT EXISTS images (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    original_image_key TEXT NOT NULL,
    detoxified_image_key TEXT NOT NULL,
    diagnosis_points TEXT NOT NULL DEFAULT '[]',
    treatment_points TEXT NOT NULL DEFAULT '[]',
    contamination_level INTEGER NOT NULL,
    user_id INTEGER REFERENCES users(id),
    description TEXT,
    is_public INTEGER NOT NULL DEFAULT 1,
    created_at REAL NOT NULL DEFAULT (strftime('%s', 'now'))
)
"""

IMAGES_INDEX = "CREATE INDEX IF NOT EXISTS idx_images_public_created ON images (is_public, created_at)"


class AsyncDatabaseInitializer:
    """Owns the SQLite file that backs image metadata.

    The file lives at `<database_dir>/<filename>`. Schema creation is lazy and
    idempotent: `connection()` calls `ensure_database()` itself, and rows are
    never removed here, so the gallery persists across restarts.
    """

    def __init__(self, database_dir: Path | str, filename: str = "app.db") -> None:
        db_dir = Path(database_dir).expanduser()
        if db_dir.is_file():
            raise RuntimeError(f"DATABASE_DIR must be a directory, but {db_dir} is a file")
        try:
            db_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RuntimeError(f"Cannot create database directory {db_dir}") from exc

        self.db_dir = db_dir
        self.db_path = db_dir / filename
        self._initialized = False
        self._init_lock: Optional[asyncio.Lock] = None

    async def ensure_database(self) -> None:
        """Create the schema on first call; later calls return immediately."""
        if self._initialized:
            return
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()

        async with self._init_lock:
            if self._initialized:
                return

            max_attempts = 3
            for attempt in range(1, max_attempts + 1):
                try:
                    async with aiosqlite.connect(self.db_path) as db:
                        await db.execute("PRAGMA journal_mode=WAL;")
                        await db.execute(USERS_TABLE)
                        await db.execute(IMAGES_TABLE)
                        await db.execute(IMAGES_INDEX)
                        await db.commit()
                    break
                except FileNotFoundError:
                    # Transient on some filesystems right after mkdir; retry a few times.
                    if attempt >= max_attempts:
                        raise
                    await asyncio.sleep(0.1 * attempt)

            logger.info("Database ready at %s", self.db_path)
            self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The schema is created on first use via `ensure_database()`.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=ON;")
            yield conn
        finally:
            await conn.close()
