"""Tests for the resilient API client.

The transport, backoff sleep and clock are all injected, so no test opens a
socket or waits on a real timer.
"""

import asyncio
from urllib.parse import parse_qs, urlsplit

import pytest
from pydantic import ValidationError

from enrollbridge.activity import MemorySink
from enrollbridge.circuit_breaker import CircuitOpenError, CircuitState
from enrollbridge.client import ApiClient, ApiError, join_url
from enrollbridge.field_mapper import MissingFieldsError
from enrollbridge.health import DEGRADED, ERROR, HEALTHY, SLOW
from enrollbridge.transport import TransportError, TransportResponse

ENDPOINT = "https://api.example.test/phiIntelliSOURCE/api/"

VALID_XML = (
    "<message><messagetype>prospect</messagetype><enroll-status>01</enroll-status>"
    "<fname>Jane</fname></message>"
)


class MockClock:
    """Deterministic monotonic clock."""

    def __init__(self, start: float = 0.0):
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


class FakeTransport:
    """Replays scripted responses; an Exception instance is raised instead."""

    def __init__(self, *outcomes, clock: MockClock | None = None, latency: float = 0.0):
        self._outcomes = list(outcomes)
        self.calls: list[dict] = []
        self._clock = clock
        self._latency = latency

    async def __call__(self, url, method, headers, body, timeout):
        self.calls.append(
            {"url": url, "method": method, "headers": headers, "body": body, "timeout": timeout}
        )
        if self._clock is not None:
            self._clock.advance(self._latency)
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _ok(body: str = VALID_XML) -> TransportResponse:
    return TransportResponse(200, body)


def _client(transport, **kwargs) -> tuple[ApiClient, MemorySink, FakeSleep]:
    sink = MemorySink()
    sleep = FakeSleep()
    client = ApiClient(
        ENDPOINT, "s3cret", transport=transport, sink=sink, sleep=sleep,
        clock=kwargs.pop("clock", MockClock()), **kwargs,
    )
    return client, sink, sleep


def _form(call: dict) -> dict:
    return {k: v[0] for k, v in parse_qs(call["body"] or "").items()}


# ── Request construction ──


class TestRequestConstruction:

    def test_join_url_avoids_double_slash(self):
        assert join_url("https://h/api/", "/promo_codes") == "https://h/api/promo_codes"
        assert join_url("https://h/api", "promo_codes") == "https://h/api/promo_codes"

    def test_post_form_encodes_body(self):
        transport = FakeTransport(_ok())
        client, _, _ = _client(transport)
        asyncio.run(client.call("/prospects/validate.xml", {"utility_no": "123", "pswd": "s3cret"}))
        call = transport.calls[0]
        assert call["method"] == "POST"
        assert call["url"] == "https://api.example.test/phiIntelliSOURCE/api/prospects/validate.xml"
        assert call["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
        assert _form(call) == {"utility_no": "123", "pswd": "s3cret"}
        assert call["timeout"] == 30

    def test_get_uses_query_string(self):
        transport = FakeTransport(_ok())
        client, _, _ = _client(transport)
        asyncio.run(client.call("/promo_codes", {"a": "1 2"}, method="GET", parse_tree=False))
        call = transport.calls[0]
        assert call["method"] == "GET"
        assert call["body"] is None
        assert "Content-Type" not in call["headers"]
        assert parse_qs(urlsplit(call["url"]).query) == {"a": ["1 2"]}

    def test_get_with_password_upgraded_to_post(self):
        transport = FakeTransport(_ok())
        client, sink, _ = _client(transport)
        asyncio.run(client.call("/promo_codes", {"pswd": "s3cret"}, method="GET", parse_tree=False))
        call = transport.calls[0]
        assert call["method"] == "POST"
        assert "s3cret" not in call["url"]
        warnings = sink.by_level("warning")
        assert warnings[0]["message"] == "Attempted to send credentials via GET request"


# ── Retry and backoff ──


class TestRetry:

    def test_fails_twice_then_succeeds(self):
        transport = FakeTransport(
            TransportError("connection reset"), TransportResponse(503, "busy"), _ok(),
        )
        client, _, sleep = _client(transport)
        doc = asyncio.run(client.call("/prospects/validate.xml", {"pswd": "x"}))
        assert doc["message"]["fname"]["value"] == "Jane"
        assert len(transport.calls) == 3
        assert sleep.delays == [2, 4]

    def test_always_500_fails_after_three_attempts(self):
        transport = FakeTransport(TransportResponse(500, "boom"))
        client, _, sleep = _client(transport)
        with pytest.raises(ApiError) as exc_info:
            asyncio.run(client.call("/promo_codes", {"pswd": "x"}))
        assert len(transport.calls) == 3
        assert sleep.delays == [2, 4]
        assert exc_info.value.http_status == 500
        assert str(exc_info.value) == "HTTP 500: boom"

    def test_transport_failure_exhausted(self):
        transport = FakeTransport(TransportError("dns failure"))
        client, _, _ = _client(transport)
        with pytest.raises(ApiError) as exc_info:
            asyncio.run(client.call("/promo_codes", {}))
        assert exc_info.value.http_status == 0
        assert "dns failure" in str(exc_info.value)
        assert len(transport.calls) == 3

    def test_4xx_not_retried(self):
        transport = FakeTransport(TransportResponse(403, "denied"))
        client, _, sleep = _client(transport)
        with pytest.raises(ApiError) as exc_info:
            asyncio.run(client.call("/promo_codes", {}))
        assert len(transport.calls) == 1
        assert sleep.delays == []
        assert exc_info.value.http_status == 403

    def test_error_body_redacted(self):
        transport = FakeTransport(TransportResponse(400, "bad pswd=s3cret for a@b.com"))
        client, _, _ = _client(transport)
        with pytest.raises(ApiError) as exc_info:
            asyncio.run(client.call("/promo_codes", {}))
        assert "s3cret" not in str(exc_info.value)
        assert "a@b.com" not in str(exc_info.value)

    def test_resilience_config_overrides(self):
        transport = FakeTransport(TransportResponse(502, ""))
        config = {"resilience": {"max_retries": 2, "backoff_base": 3, "request_timeout": 5}}
        client, _, sleep = _client(transport, config=config)
        with pytest.raises(ApiError):
            asyncio.run(client.call("/promo_codes", {}))
        assert len(transport.calls) == 2
        assert sleep.delays == [3]
        assert transport.calls[0]["timeout"] == 5

    def test_resilience_values_coerced(self):
        transport = FakeTransport(TransportResponse(503, ""), _ok("WEB"))
        config = {"resilience": {"max_retries": "3", "backoff_base": "2"}}
        client, _, sleep = _client(transport, config=config)
        assert asyncio.run(client.get_promo_codes()) == ["WEB"]
        assert client.max_retries == 3
        assert sleep.delays == [2]

    def test_invalid_resilience_rejected(self):
        with pytest.raises(ValidationError):
            ApiClient(ENDPOINT, "x", config={"resilience": {"max_retries": 0}})
        with pytest.raises(ValidationError):
            ApiClient(ENDPOINT, "x", config={"resilience": {"max_retries": "three"}})

    def test_cancellation_during_backoff(self):
        async def scenario():
            transport = FakeTransport(TransportError("down"))
            client = ApiClient(ENDPOINT, "x", transport=transport, sink=MemorySink())
            task = asyncio.create_task(client.call("/promo_codes", {}))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return transport

        transport = asyncio.run(scenario())
        assert len(transport.calls) == 1


class TestParsing:

    def test_unparseable_xml(self):
        client, _, _ = _client(FakeTransport(_ok("<message><open>")))
        with pytest.raises(ApiError) as exc_info:
            asyncio.run(client.call("/prospects/validate.xml", {}))
        assert str(exc_info.value).startswith("Failed to parse API response: ")
        assert exc_info.value.http_status == 0

    def test_empty_body_is_empty_document(self):
        client, _, _ = _client(FakeTransport(_ok("")))
        assert asyncio.run(client.call("/prospects/enroll.xml", {})) == {}

    def test_raw_text(self):
        client, _, _ = _client(FakeTransport(_ok("plain text")))
        assert asyncio.run(client.call("/x", {}, parse_tree=False)) == "plain text"


# ── Activity logging ──


class TestActivity:

    def test_request_and_response_records_redacted(self):
        clock = MockClock()
        transport = FakeTransport(_ok(), clock=clock, latency=0.25)
        client, sink, _ = _client(transport, clock=clock)
        asyncio.run(client.call("/prospects/validate.xml", {"utility_no": "1", "pswd": "s3cret"}))
        request, response = sink.by_level("api_call")
        assert request["message"] == "POST prospects/validate.xml"
        assert request["details"]["params"] == {"utility_no": "1"}
        assert response["details"]["status"] == 200
        assert response["details"]["elapsed_ms"] == 250
        assert response["details"]["success"] is True
        assert "s3cret" not in repr(sink.records)

    def test_usage_records_only_with_correlation_id(self):
        client, sink, _ = _client(FakeTransport(_ok()))
        asyncio.run(client.call("/x", {}))
        assert sink.by_level("api_usage") == []

        client, sink, _ = _client(FakeTransport(TransportResponse(404, "")), correlation_id=42)
        with pytest.raises(ApiError):
            asyncio.run(client.call("/x", {}))
        usage = sink.by_level("api_usage")
        assert len(usage) == 1
        assert usage[0]["correlation_id"] == 42
        assert usage[0]["details"]["success"] is False


# ── Circuit breaker ──


class TestCircuitBreaker:

    def test_opens_after_exhausted_calls(self):
        transport = FakeTransport(TransportResponse(500, ""))
        config = {"resilience": {"circuit_breaker": {"failure_threshold": 2, "recovery_timeout": 60}}}
        client, _, _ = _client(transport, config=config)
        for _ in range(2):
            with pytest.raises(ApiError):
                asyncio.run(client.call("/x", {}))
        assert client.circuit_breaker.state == CircuitState.OPEN
        calls_before = len(transport.calls)
        with pytest.raises(CircuitOpenError):
            asyncio.run(client.call("/x", {}))
        assert len(transport.calls) == calls_before

    def test_success_resets_failures(self):
        transport = FakeTransport(TransportResponse(500, ""), TransportResponse(500, ""),
                                  TransportResponse(500, ""), _ok())
        client, _, _ = _client(transport)
        with pytest.raises(ApiError):
            asyncio.run(client.call("/x", {}))
        assert client.circuit_breaker.failure_count == 1
        asyncio.run(client.call("/x", {}))
        assert client.circuit_breaker.failure_count == 0


# ── Endpoint helpers ──


class TestEndpoints:

    def test_validate_account(self):
        transport = FakeTransport(_ok())
        client, _, _ = _client(transport)
        result = asyncio.run(client.validate_account("123", "19901"))
        assert result.is_valid()
        assert _form(transport.calls[0]) == {
            "utility_no": "123", "zip": "19901", "pswd": "s3cret", "val": "submit",
        }

    def test_validate_account_untrusted_response(self):
        xml = "<message><status>ok</status><fname>&lt;script&gt;</fname></message>"
        client, sink, _ = _client(FakeTransport(_ok(xml)))
        with pytest.raises(ApiError) as exc_info:
            asyncio.run(client.validate_account("123", "19901"))
        assert str(exc_info.value) == (
            "Invalid response from API: Unsafe content detected in field: fname"
        )
        assert sink.by_level("warning")[0]["details"]["errors"]

    def test_enroll_maps_fields(self):
        transport = FakeTransport(_ok("<message><status>success</status></message>"))
        client, _, _ = _client(transport)
        form = {
            "account_number": "X4455", "cycling_level": "50", "first_name": "Jane",
            "last_name": "Doe", "zip": "19901", "phone": "302-555-0100",
            "email": "j@example.com",
        }
        doc = asyncio.run(client.enroll(form))
        assert doc["message"]["status"]["value"] == "success"
        sent = _form(transport.calls[0])
        assert sent["caNo"] == "4455"
        assert sent["contract"] == "01"
        assert sent["pswd"] == "s3cret"
        assert sent["val"] == "submit"

    def test_enroll_missing_fields_not_sent(self):
        transport = FakeTransport(_ok())
        client, _, _ = _client(transport)
        with pytest.raises(MissingFieldsError):
            asyncio.run(client.enroll({"first_name": "Jane"}))
        assert transport.calls == []

    def test_schedule_slots_params(self):
        xml = '<message><fsrno>NMD1</fsrno><openslots><noslots/></openslots></message>'
        transport = FakeTransport(_ok(xml))
        client, _, _ = _client(transport)
        result = asyncio.run(client.get_schedule_slots(
            "X4455", "1/5/2026", equipment={"15": {"count": 2, "location": "05"}},
            end_date="1/20/2026",
        ))
        assert result.fsr_no == "NMD1"
        sent = _form(transport.calls[0])
        assert sent["caNo"] == "4455"
        assert "utility_no" not in sent
        assert sent["eqCount-15"] == "2"
        assert sent["eqLoc-15"] == "05"
        assert sent["endDate"] == "1/20/2026"

    def test_schedule_slots_admin_view_omits_account(self):
        transport = FakeTransport(_ok("<message><messagetype>s</messagetype></message>"))
        client, _, _ = _client(transport)
        asyncio.run(client.get_schedule_slots("ADMIN-VIEW", "1/5/2026"))
        sent = _form(transport.calls[0])
        assert "utility_no" not in sent
        assert "caNo" not in sent

    def test_book_appointment(self):
        transport = FakeTransport(_ok("Scheduled"))
        client, _, _ = _client(transport)
        body = asyncio.run(client.book_appointment(
            "NMD1", "4455", "1/5/2026", "MD",
            {"15": {"count": 1, "location": "05", "desired_device": "05"}, "20": {"count": 0}},
            user_id="agent7",
        ))
        assert body == "Scheduled"
        sent = _form(transport.calls[0])
        assert sent["time"] == "Mid-Day"
        assert sent["dd-15"] == "05"
        assert "eqCount-20" not in sent
        assert sent["userId"] == "agent7"

    def test_promo_codes(self):
        client, _, _ = _client(FakeTransport(_ok("WEB, RADIO,,DEC1 ")))
        assert asyncio.run(client.get_promo_codes()) == ["WEB", "RADIO", "DEC1"]

    def test_test_connection(self):
        client, _, _ = _client(FakeTransport(_ok("WEB")))
        assert asyncio.run(client.test_connection()) is True
        client, _, _ = _client(FakeTransport(TransportResponse(401, "no")))
        assert asyncio.run(client.test_connection()) is False


class TestHealthCheck:

    @pytest.mark.parametrize("latency,expected", [
        (0.1, HEALTHY),
        (6.0, DEGRADED),
        (12.0, SLOW),
    ])
    def test_latency_classification(self, latency, expected):
        clock = MockClock()
        client, _, _ = _client(FakeTransport(_ok("WEB"), clock=clock, latency=latency), clock=clock)
        report = asyncio.run(client.health_check())
        assert report.status == expected
        assert report.latency_ms == round(latency * 1000)
        assert report.endpoint == ENDPOINT.rstrip("/")

    def test_error_report(self):
        client, _, _ = _client(FakeTransport(TransportResponse(401, "denied")))
        report = asyncio.run(client.health_check())
        assert report.status == ERROR
        assert report.http_status == 401
        assert report.error == "HTTP 401: denied"
