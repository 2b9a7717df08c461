"""Unit tests for the routelog Pydantic models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from routelog.models import (
    SCHEMA_VERSION,
    LogEvent,
    LogRequest,
    LogRoute,
    WriteFailureRecord,
)


class TestLogRoute:

    def test_from_table_entry_aliases(self):
        route = LogRoute.from_table_entry(
            {"retention": "30d", "category": "c", "description": None},
            {"flag": "f", "path": "a/{x}.log", "PciCompliance": True, "sensitivePlaceholders": "x"},
        )
        assert route.path_template == "a/{x}.log"
        assert route.is_pci_relevant is True
        assert route.encrypt_fields == ("x",)
        assert route.retention == "30d"

    def test_defaults(self):
        route = LogRoute(flag="f", path="a.log", critical=None)
        assert route.critical is False
        assert route.encrypt_fields == ()

    def test_frozen(self):
        route = LogRoute(flag="f", path="a.log")
        with pytest.raises(ValidationError):
            route.critical = True


class TestLogRequest:

    @pytest.mark.parametrize("flag", ["", "   ", None, 5])
    def test_invalid_flag(self, flag):
        with pytest.raises(ValidationError):
            LogRequest(flag=flag)

    def test_data_must_be_mapping(self):
        with pytest.raises(ValidationError):
            LogRequest(flag="f", data=["not", "a", "mapping"])

    def test_none_defaults(self):
        request = LogRequest(flag="f", message=None, level=None, encryptFields=None)
        assert request.message == ""
        assert request.level == "info"
        assert request.encrypt_fields == []
        assert request.critical is None

    def test_encrypt_fields_forms(self):
        assert LogRequest(flag="f", encryptFields="card").encrypt_fields == ["card"]
        assert LogRequest(flag="f", encrypt_fields=True).encrypt_fields is True

    def test_unknown_keys_ignored(self):
        assert LogRequest.model_validate({"flag": "f", "safeFailed": True}).flag == "f"


class TestLogEvent:

    def test_payload_is_camel_case_without_file_timestamp(self):
        event = LogEvent(
            timestamp="t", file_timestamp="ft", flag="f", is_pci_relevant=True, data={"a": 1}
        )
        payload = event.to_payload()
        assert payload["schemaVersion"] == SCHEMA_VERSION
        assert payload["isPciRelevant"] is True
        assert "fileTimestamp" not in payload
        assert "file_timestamp" not in payload


class TestWriteFailureRecord:

    def test_payload_omits_absent_entry_count(self):
        record = WriteFailureRecord(
            timestamp="t", error="e", attempted_path="/a", env="local", error_code="E_WRITE_FAIL"
        )
        payload = record.to_payload()
        assert payload["attemptedPath"] == "/a"
        assert payload["errorCode"] == "E_WRITE_FAIL"
        assert "entryCount" not in payload
