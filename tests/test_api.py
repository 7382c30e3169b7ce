"""
HTTP surface tests. Nothing here reaches a real provider: runs are only
started against an empty queue.
"""

import asyncio
import time
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from receipts_backend.app import app
from receipts_backend.dependencies import debug_log, receipt_store, scheduler
from receipts_backend.schemas import ExtractionSettings
from receipts_backend.services.extraction import OpenAICompatibleExtractor
from receipts_backend.services.processing.models import ExtractedRecord

from conftest import JPEG_BYTES, make_source


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        test_client.delete("/queue")
        test_client.post("/settings/reset")
        yield test_client
        test_client.delete("/queue")


def _upload(client, *names, content_type="image/jpeg"):
    files = [("files", (name, JPEG_BYTES, content_type)) for name in names]
    return client.post("/queue", files=files)


def _wait_until_idle(client, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        snapshot = client.get("/queue").json()
        if not snapshot["active"]:
            return snapshot
        time.sleep(0.02)
    raise AssertionError("processing run did not finish")


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_upload_and_snapshot(client):
    response = _upload(client, "a.jpg", "b.jpg")
    assert response.status_code == 200
    body = response.json()
    assert body["queued_count"] == 2
    assert [item["status"] for item in body["items"]] == ["pending", "pending"]

    snapshot = client.get("/queue").json()
    assert snapshot["total"] == 2
    assert snapshot["processed_count"] == 0
    assert snapshot["active"] is False
    assert [item["file"] for item in snapshot["items"]] == ["a.jpg", "b.jpg"]


def test_upload_rejects_bad_input(client):
    assert client.post("/queue").status_code == 400

    response = _upload(client, "notes.txt", content_type="text/plain")
    assert response.status_code == 400
    assert "not an image" in response.json()["detail"]

    empty = client.post("/queue", files=[("files", ("blank.jpg", b"", "image/jpeg"))])
    assert empty.status_code == 400


def test_remove_and_clear(client):
    items = _upload(client, "a.jpg", "b.jpg").json()["items"]

    assert client.delete(f"/queue/{items[0]['id']}").json() == {"id": items[0]["id"], "removed": True}
    assert client.delete("/queue/unknown").json()["removed"] is False
    assert client.get("/queue").json()["total"] == 1

    assert client.delete("/queue").json() == {"cleared": True}
    assert client.get("/queue").json()["items"] == []


def test_start_with_empty_queue(client):
    response = client.post("/queue/start")
    assert response.status_code == 200
    assert response.json()["started"] is True

    snapshot = _wait_until_idle(client)
    assert snapshot["logs"] == ["No pending files to process.", "Processing queue finished."]
    assert client.get("/queue/logs").json()[0]["level"] == "info"


def test_settings_round_trip(client):
    defaults = client.get("/settings").json()
    assert defaults["provider"] == "gemini"

    updated = {**defaults, "provider": "local", "model": "llava", "concurrent_api_calls": 2}
    assert client.put("/settings", json=updated).json()["concurrent_api_calls"] == 2
    assert client.get("/settings").json()["model"] == "llava"

    invalid = client.put("/settings", json={**defaults, "concurrent_api_calls": 0})
    assert invalid.status_code == 422

    assert client.post("/settings/reset").json()["provider"] == "gemini"


def test_status_masks_secrets(client):
    body = client.get("/status").json()

    assert body["active"] is False
    assert body["settings"]["extraction"]["api_key"] is True
    assert body["settings"]["retry"]["max_retries"] == scheduler.retry_options.max_retries
    assert "receipts_count" in body


def test_receipt_review(client):
    record = ExtractedRecord.new(fields={"merchantName": "Corner Deli", "totalAmount": 8.0})
    asyncio.run(receipt_store.save(record))

    listed = client.get("/receipts").json()
    assert record.id in [r["id"] for r in listed]

    patched = client.patch(f"/receipts/{record.id}", json={"status": "approved", "fields": {"totalAmount": 8.5}})
    assert patched.status_code == 200
    assert patched.json()["status"] == "approved"
    assert patched.json()["fields"] == {"merchantName": "Corner Deli", "totalAmount": 8.5}

    assert client.patch(f"/receipts/{record.id}", json={"status": "error"}).status_code == 422
    assert client.delete(f"/receipts/{record.id}").json() == {"id": record.id, "deleted": True}
    assert client.get(f"/receipts/{record.id}").status_code == 404
    assert client.delete(f"/receipts/{record.id}").status_code == 404


def test_clear_receipts(client):
    asyncio.run(receipt_store.save(ExtractedRecord.new()))

    assert client.delete("/receipts").json()["deleted"] >= 1
    assert client.get("/receipts").json() == []


def test_missing_image(client):
    assert client.get("/images/nothing.jpg").status_code == 404


def test_scheduler_shares_the_served_debug_log():
    assert scheduler.debug_log is debug_log


def test_extractor_diagnostics_reach_debug_logs(client):
    client.delete("/debug/logs")
    completion = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content='{"merchantName": "Cafe"}'))])
    fake_client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=AsyncMock(return_value=completion))))
    extractor = OpenAICompatibleExtractor(
        ExtractionSettings(api_key="k"), debug_log=scheduler.debug_log, client=fake_client
    )

    asyncio.run(extractor.extract(make_source("cafe.jpg")))

    messages = [entry["message"] for entry in client.get("/debug/logs").json()]
    assert "Starting extraction for: cafe.jpg" in messages
    assert "Extraction completed for: cafe.jpg" in messages

    assert client.delete("/debug/logs").json() == {"cleared": True}
    assert client.get("/debug/logs").json() == []
