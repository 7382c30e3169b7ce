"""
Tests for the SQLite receipt store and the versioned settings row.
"""

import pytest

from receipts_backend.persistence import SETTINGS_KEY, SETTINGS_VERSION, ReceiptStore, SettingsStore
from receipts_backend.schemas import ExtractionSettings
from receipts_backend.services.extraction.schemas import DEFAULT_OUTPUT_SCHEMA, DEFAULT_SYSTEM_PROMPT
from receipts_backend.services.processing.models import ExtractedRecord


@pytest.fixture
def receipt_store(tmp_path):
    return ReceiptStore(tmp_path / "receipts.db")


@pytest.fixture
def settings_store(receipt_store):
    return SettingsStore(receipt_store, ExtractionSettings(api_key="env-key", concurrent_api_calls=4))


class TestReceiptStore:
    @pytest.mark.asyncio
    async def test_save_and_get(self, receipt_store):
        record = ExtractedRecord.new(
            fields={"merchantName": "Corner Deli", "totalAmount": 12.5, "items": [{"description": "Bagel"}]},
            source_image_ref="/images/abc.jpg",
        )
        await receipt_store.save(record)

        loaded = await receipt_store.get(record.id)
        assert loaded is not None
        assert loaded.to_dict() == record.to_dict()

    @pytest.mark.asyncio
    async def test_get_missing(self, receipt_store):
        assert await receipt_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_save_is_an_upsert(self, receipt_store):
        record = ExtractedRecord.new(fields={"merchantName": "Cafe"})
        await receipt_store.save(record)
        record.status = "approved"
        await receipt_store.save(record)

        assert await receipt_store.count() == 1
        assert (await receipt_store.get(record.id)).status == "approved"

    @pytest.mark.asyncio
    async def test_list_newest_first_and_count_by_status(self, receipt_store):
        older = ExtractedRecord(id="r1", created_at="2024-01-01T10:00:00.000+00:00", status="draft")
        newer = ExtractedRecord(id="r2", created_at="2024-02-01T10:00:00.000+00:00", status="approved")
        await receipt_store.save(older)
        await receipt_store.save(newer)

        assert [r.id for r in await receipt_store.list_all()] == ["r2", "r1"]
        assert await receipt_store.count(status="draft") == 1
        assert await receipt_store.count() == 2

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, receipt_store):
        record = ExtractedRecord.new(fields={"merchantName": "Cafe", "totalAmount": 3.0})
        await receipt_store.save(record)

        updated = await receipt_store.update(record.id, status="approved", fields={"totalAmount": 3.5})

        assert updated.status == "approved"
        assert updated.fields == {"merchantName": "Cafe", "totalAmount": 3.5}
        assert (await receipt_store.get(record.id)).fields["totalAmount"] == 3.5
        assert await receipt_store.update("missing", status="approved") is None

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, receipt_store):
        first = ExtractedRecord.new()
        second = ExtractedRecord.new()
        await receipt_store.save(first)
        await receipt_store.save(second)

        assert await receipt_store.delete(first.id) is True
        assert await receipt_store.delete(first.id) is False
        assert await receipt_store.clear() == 1
        assert await receipt_store.list_all() == []


class TestSettingsStore:
    @pytest.mark.asyncio
    async def test_defaults_when_nothing_saved(self, settings_store):
        loaded = await settings_store.load()
        assert loaded.api_key == "env-key"
        assert loaded.concurrent_api_calls == 4
        assert loaded.system_prompt == DEFAULT_SYSTEM_PROMPT

    @pytest.mark.asyncio
    async def test_save_round_trip_and_reset(self, settings_store):
        custom = ExtractionSettings(provider="local", model="llava", concurrent_api_calls=2)
        await settings_store.save(custom)

        assert await settings_store.load() == custom

        reset = await settings_store.reset()
        assert reset.concurrent_api_calls == 4
        assert (await settings_store.load()).provider == "gemini"

    @pytest.mark.asyncio
    async def test_stored_values_merge_over_defaults(self, settings_store, receipt_store):
        await receipt_store.put_setting(SETTINGS_KEY, {"concurrent_api_calls": 7}, SETTINGS_VERSION)

        loaded = await settings_store.load()

        assert loaded.concurrent_api_calls == 7
        assert loaded.api_key == "env-key"

    @pytest.mark.asyncio
    async def test_outdated_prompt_and_schema_are_replaced(self, settings_store, receipt_store):
        stale = {"system_prompt": "old prompt", "output_schema": "{}", "model": "custom-model"}
        await receipt_store.put_setting(SETTINGS_KEY, stale, SETTINGS_VERSION - 1)

        loaded = await settings_store.load()

        assert loaded.system_prompt == DEFAULT_SYSTEM_PROMPT
        assert loaded.output_schema == DEFAULT_OUTPUT_SCHEMA
        assert loaded.model == "custom-model"
        assert (await receipt_store.get_setting(SETTINGS_KEY))["version"] == SETTINGS_VERSION
