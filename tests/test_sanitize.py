"""Tests for log redaction helpers and activity sinks."""

import logging

from enrollbridge.activity import LoggingSink, MemorySink
from enrollbridge.sanitize import has_credentials, mask_identifier, redact_params, redact_text


class TestRedaction:

    def test_redact_params(self):
        params = {"utility_no": "1", "pswd": "secret"}
        assert redact_params(params) == {"utility_no": "1"}
        assert params["pswd"] == "secret"

    def test_has_credentials(self):
        assert has_credentials({"pswd": ""})
        assert not has_credentials({"password": "x"})

    def test_redact_text(self):
        text = "GET /promo_codes?pswd=abc&x=1 PASSWORD=zz from jane.doe@example.com"
        assert redact_text(text) == "GET /promo_codes?pswd=***&x=1 PASSWORD=*** from ***@***"
        assert redact_text(None) == ""

    def test_mask_identifier(self):
        assert mask_identifier("1234567890") == "***7890"
        assert mask_identifier("123") == "***"
        assert mask_identifier("  ") == ""
        assert mask_identifier(None) == ""


class TestSinks:

    def test_memory_sink(self):
        sink = MemorySink()
        sink.log("api_call", "POST promo_codes", {"status": 200}, 7)
        sink.log("warning", "odd")
        assert sink.by_level("api_call") == [{
            "level": "api_call", "message": "POST promo_codes",
            "details": {"status": 200}, "correlation_id": 7,
        }]
        assert sink.by_level("warning")[0]["details"] == {}

    def test_logging_sink_levels(self, caplog):
        target = logging.getLogger("enrollbridge.test_sink")
        sink = LoggingSink(target)
        with caplog.at_level(logging.DEBUG, logger="enrollbridge.test_sink"):
            sink.log("error", "boom", {"k": "v"}, 3)
            sink.log("api_call", "POST x")
        assert caplog.records[0].levelno == logging.ERROR
        assert "[error] boom" in caplog.records[0].getMessage()
        assert "correlation_id=3" in caplog.records[0].getMessage()
        assert caplog.records[1].levelno == logging.DEBUG
