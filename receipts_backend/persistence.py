"""Async SQLite persistence for extracted receipts and extraction settings."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite

from .schemas import ExtractionSettings
from .services.extraction.schemas import DEFAULT_OUTPUT_SCHEMA, DEFAULT_SYSTEM_PROMPT
from .services.processing.models import ExtractedRecord

logger = logging.getLogger(__name__)

SETTINGS_KEY = "extraction"
# Bump when the default prompt/schema change and stored copies must be replaced.
SETTINGS_VERSION = 2


def _utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="seconds")


def _row_to_record(row: aiosqlite.Row) -> ExtractedRecord:
    raw_fields = row["fields"]
    try:
        fields = json.loads(raw_fields) if raw_fields else {}
    except json.JSONDecodeError:
        logger.warning("Stored fields for receipt %s are not valid JSON", row["id"])
        fields = {}
    return ExtractedRecord(
        id=row["id"],
        created_at=row["created_at"],
        status=row["status"],
        source_image_ref=row["source_image_ref"],
        fields=fields if isinstance(fields, dict) else {},
        error=row["error"],
    )


class ReceiptStore:
    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def init(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return

            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(self.db_path)
            try:
                await conn.execute("PRAGMA journal_mode=WAL;")
                await conn.execute("PRAGMA synchronous=NORMAL;")

                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS receipts (
                        id TEXT PRIMARY KEY,
                        created_at TEXT NOT NULL,
                        status TEXT NOT NULL,
                        source_image_ref TEXT,
                        fields TEXT NOT NULL,
                        error TEXT,
                        updated_at TEXT NOT NULL
                    )
                    """
                )

                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS settings (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        version INTEGER NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )

                await conn.execute("CREATE INDEX IF NOT EXISTS idx_receipts_created ON receipts(created_at)")
                await conn.execute("CREATE INDEX IF NOT EXISTS idx_receipts_status ON receipts(status)")

                await conn.commit()
            finally:
                await conn.close()
            self._initialized = True

    async def _conn(self) -> aiosqlite.Connection:
        await self.init()
        conn = await aiosqlite.connect(self.db_path)
        conn.row_factory = aiosqlite.Row
        return conn

    # Receipts
    async def save(self, record: ExtractedRecord) -> None:
        conn = await self._conn()
        try:
            await conn.execute(
                """
                INSERT INTO receipts (id, created_at, status, source_image_ref, fields, error, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    status=excluded.status,
                    source_image_ref=excluded.source_image_ref,
                    fields=excluded.fields,
                    error=excluded.error,
                    updated_at=excluded.updated_at
                """,
                (
                    record.id,
                    record.created_at,
                    record.status,
                    record.source_image_ref,
                    json.dumps(record.fields, default=str),
                    record.error,
                    _utc_now(),
                ),
            )
            await conn.commit()
        finally:
            await conn.close()

    async def get(self, record_id: str) -> Optional[ExtractedRecord]:
        conn = await self._conn()
        try:
            cur = await conn.execute("SELECT * FROM receipts WHERE id=?", (record_id,))
            row = await cur.fetchone()
            await cur.close()
            return _row_to_record(row) if row else None
        finally:
            await conn.close()

    async def list_all(self) -> List[ExtractedRecord]:
        conn = await self._conn()
        try:
            cur = await conn.execute("SELECT * FROM receipts ORDER BY created_at DESC")
            rows = await cur.fetchall()
            await cur.close()
            return [_row_to_record(r) for r in rows]
        finally:
            await conn.close()

    async def count(self, status: Optional[str] = None) -> int:
        conn = await self._conn()
        try:
            if status is None:
                cur = await conn.execute("SELECT COUNT(*) FROM receipts")
            else:
                cur = await conn.execute("SELECT COUNT(*) FROM receipts WHERE status=?", (status,))
            row = await cur.fetchone()
            await cur.close()
            return int(row[0]) if row else 0
        finally:
            await conn.close()

    async def update(
        self,
        record_id: str,
        *,
        status: Optional[str] = None,
        fields: Optional[Dict[str, Any]] = None,
    ) -> Optional[ExtractedRecord]:
        """Apply a review change; ``fields`` is merged over the stored mapping."""
        record = await self.get(record_id)
        if record is None:
            return None
        if status is not None:
            record.status = status
            if status != "error":
                record.error = None
        if fields:
            record.fields = {**record.fields, **fields}
        await self.save(record)
        return record

    async def delete(self, record_id: str) -> bool:
        conn = await self._conn()
        try:
            cur = await conn.execute("DELETE FROM receipts WHERE id=?", (record_id,))
            await conn.commit()
            return cur.rowcount > 0
        finally:
            await conn.close()

    async def clear(self) -> int:
        conn = await self._conn()
        try:
            cur = await conn.execute("DELETE FROM receipts")
            await conn.commit()
            return cur.rowcount
        finally:
            await conn.close()

    # Settings
    async def get_setting(self, key: str) -> Optional[Dict[str, Any]]:
        conn = await self._conn()
        try:
            cur = await conn.execute("SELECT value, version FROM settings WHERE key=?", (key,))
            row = await cur.fetchone()
            await cur.close()
            if not row:
                return None
            return {"value": json.loads(row["value"]), "version": int(row["version"])}
        finally:
            await conn.close()

    async def put_setting(self, key: str, value: Dict[str, Any], version: int) -> None:
        conn = await self._conn()
        try:
            await conn.execute(
                """
                INSERT INTO settings (key, value, version, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    version=excluded.version,
                    updated_at=excluded.updated_at
                """,
                (key, json.dumps(value), version, _utc_now()),
            )
            await conn.commit()
        finally:
            await conn.close()

    async def delete_setting(self, key: str) -> None:
        conn = await self._conn()
        try:
            await conn.execute("DELETE FROM settings WHERE key=?", (key,))
            await conn.commit()
        finally:
            await conn.close()


class SettingsStore:
    """User-editable extraction settings, stored as one JSON row."""

    def __init__(self, store: ReceiptStore, defaults: ExtractionSettings) -> None:
        self._store = store
        self._defaults = defaults

    async def load(self) -> ExtractionSettings:
        saved = await self._store.get_setting(SETTINGS_KEY)
        if saved is None:
            return self._defaults.model_copy()

        values = dict(saved["value"])
        if saved["version"] < SETTINGS_VERSION:
            logger.info("Updating stored settings to version %d", SETTINGS_VERSION)
            values["system_prompt"] = DEFAULT_SYSTEM_PROMPT
            values["output_schema"] = DEFAULT_OUTPUT_SCHEMA
            await self._store.put_setting(SETTINGS_KEY, values, SETTINGS_VERSION)

        merged = {**self._defaults.model_dump(), **values}
        return ExtractionSettings.model_validate(merged)

    async def save(self, settings: ExtractionSettings) -> ExtractionSettings:
        await self._store.put_setting(SETTINGS_KEY, settings.model_dump(), SETTINGS_VERSION)
        return settings

    async def reset(self) -> ExtractionSettings:
        await self._store.delete_setting(SETTINGS_KEY)
        return self._defaults.model_copy()
