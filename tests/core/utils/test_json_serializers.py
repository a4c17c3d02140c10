from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path

from core.utils.json_serializers import json_serializer


class Outcome(Enum):
    VERIFIED = "verified"


@dataclass
class Sample:
    chunk_id: str
    rows: int


class TestJsonSerializer:

    def test_serializes_datetime_to_isoformat(self):
        assert json_serializer(datetime(2025, 6, 15, 10, 30, 0)) == "2025-06-15T10:30:00"

    def test_serializes_date_to_isoformat(self):
        assert json_serializer(date(2025, 12, 25)) == "2025-12-25"

    def test_serializes_decimal_to_float(self):
        result = json_serializer(Decimal("3.14"))
        assert result == 3.14
        assert isinstance(result, float)

    def test_serializes_path(self):
        assert json_serializer(Path("/var/log/ingest.log")) == "/var/log/ingest.log"

    def test_serializes_bytes_as_hex(self):
        assert json_serializer(b"\x01\xab") == "01ab"

    def test_serializes_dataclass_as_dict(self):
        assert json_serializer(Sample("abc", 3)) == {"chunk_id": "abc", "rows": 3}

    def test_serializes_enum_value(self):
        assert json_serializer(Outcome.VERIFIED) == "verified"

    def test_falls_back_to_str(self):
        assert json_serializer(object()).startswith("<object object")
