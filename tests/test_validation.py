import pytest

from receipts_backend.services.processing.models import ExtractedRecord
from receipts_backend.services.processing.validation import missing_required_fields, validation_error


def test_complete_record_passes():
    record = ExtractedRecord.new(fields={"merchantName": "Cafe"})
    assert missing_required_fields(record) == []
    assert validation_error(record) is None


def test_error_record_still_has_envelope():
    record = ExtractedRecord.failed("No data extracted from receipt")
    assert validation_error(record) is None
    assert record.status == "error"


@pytest.mark.parametrize("blank", [None, "", "   "])
def test_blank_envelope_fields_are_reported(blank):
    record = ExtractedRecord(id="r1", created_at=blank, status=blank)
    assert missing_required_fields(record) == ["status", "created_at"]
    assert validation_error(record) == "Extracted record is missing required fields: status, created_at"


def test_missing_record():
    assert missing_required_fields(None) == ["id", "status", "created_at"]
