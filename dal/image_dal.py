"""Persistence for deghib records in the `images` table.

Point lists are stored as JSON text; `created_at` is unix seconds.
"""

from __future__ import annotations

import json
import logging
import time
from typing import List, Optional, Sequence

from models.image_record import ImageRecord
from utils.database_init import AsyncDatabaseInitializer

logger = logging.getLogger(__name__)

# SQLite INTEGER range; larger ids cannot be bound and can never exist.
MIN_ROWID = -(2**63)
MAX_ROWID = 2**63 - 1


def _encode_points(points: Sequence[str]) -> str:
    return json.dumps([str(p) for p in points])


def _decode_points(raw: object) -> List[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Discarding malformed points column: %r", raw)
        return []
    if not isinstance(value, list):
        return []
    return [str(p) for p in value]


class ImageDAL:
    """Create, read, list, count and delete image records.

    Works with anything exposing an async `connection()` context manager
    that yields an `aiosqlite.Connection`.
    """

    _COLUMNS = (
        "id",
        "original_image_key",
        "detoxified_image_key",
        "diagnosis_points",
        "treatment_points",
        "contamination_level",
        "description",
        "is_public",
        "created_at",
        "user_id",
    )
    _COLUMN_LIST, _INSERT_COLUMNS = ", ".join(_COLUMNS), ", ".join(_COLUMNS[1:])

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_image(self, record: ImageRecord) -> ImageRecord:
        """Insert a new row and return the stored record with `id` and `created_at` set.

        Args:
            record: ImageRecord with `id=None` and fields to insert.
        """
        if record.id is not None:
            raise ValueError("New image records must not carry an id.")
        created_at = record.created_at if record.created_at is not None else time.time()
        placeholders = ", ".join("?" for _ in self._COLUMNS[1:])

        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"INSERT INTO images ({self._INSERT_COLUMNS}) VALUES ({placeholders})",
                (
                    record.original_image_key,
                    record.detoxified_image_key,
                    _encode_points(record.diagnosis_points),
                    _encode_points(record.treatment_points),
                    int(record.contamination_level),
                    record.description,
                    1 if record.is_public else 0,
                    created_at,
                    record.user_id,
                ),
            )
            await conn.commit()
            new_id = cur.lastrowid

        logger.info("Stored image record %s", new_id)
        return ImageRecord(
            id=new_id,
            original_image_key=record.original_image_key,
            detoxified_image_key=record.detoxified_image_key,
            diagnosis_points=list(record.diagnosis_points),
            treatment_points=list(record.treatment_points),
            contamination_level=int(record.contamination_level),
            description=record.description,
            is_public=record.is_public,
            created_at=created_at,
            user_id=record.user_id,
        )

    async def get_image_by_id(self, image_id: int) -> Optional[ImageRecord]:
        """Return the ImageRecord for `image_id`, or None if not found."""
        if not MIN_ROWID <= image_id <= MAX_ROWID:
            return None
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM images WHERE id = ?",
                (image_id,),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def list_public_images(self, limit: Optional[int] = None) -> List[ImageRecord]:
        """List public rows, newest first."""
        sql = f"SELECT {self._COLUMN_LIST} FROM images WHERE is_public = 1 ORDER BY created_at DESC, id DESC"
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        async with self._db.connection() as conn:
            cur = await conn.execute(sql, params)
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def count_images(self) -> int:
        """Return the total number of stored rows, public or not."""
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT COUNT(*) FROM images")
            row = await cur.fetchone()
            return int(row[0]) if row and row[0] is not None else 0

    async def delete_image(self, image_id: int) -> bool:
        """Delete a row by id. Returns True if a row was deleted."""
        if not MIN_ROWID <= image_id <= MAX_ROWID:
            return False
        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM images WHERE id = ?", (image_id,))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> ImageRecord:
        """Convert a DB row tuple into an ImageRecord."""
        return ImageRecord(
            id=row[0],
            original_image_key=row[1],
            detoxified_image_key=row[2],
            diagnosis_points=_decode_points(row[3]),
            treatment_points=_decode_points(row[4]),
            contamination_level=int(row[5]),
            description=row[6],
            is_public=bool(row[7]),
            created_at=float(row[8]) if row[8] is not None else None,
            user_id=row[9],
        )
