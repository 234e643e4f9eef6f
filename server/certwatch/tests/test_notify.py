"""
Tests for certwatch.notify

aiohttp sessions are replaced with MagicMock/AsyncMock, except for one
webhook test that runs against a real local aiohttp server.
"""
import io
import json
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from aiohttp import test_utils, web

from certwatch.core.types import DeliveryError, OutputError
from certwatch.models.cert import MatchResult
from certwatch.notify import Notifier, StdoutSink, WebhookSink, build_payload, format_lines
from certwatch.notify.webhook import mask_url

from fakes import FailingSink, RecordingSink


RESULT = MatchResult(domain="a.evil.com", patterns=(r"evil\.com$", "evil"))


# ── Helpers ───────────────────────────────────────────────────────────────────

def _mock_session(status: int = 200, body: str = "ok") -> MagicMock:
    """Build a mock aiohttp.ClientSession whose post() yields ``status``."""
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=body)

    request_ctx = MagicMock()
    request_ctx.__aenter__ = AsyncMock(return_value=response)
    request_ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.closed = False
    session.post = MagicMock(return_value=request_ctx)
    session.close = AsyncMock()
    return session


# ── format_lines() / StdoutSink ───────────────────────────────────────────────

class TestStdout:
    def test_pattern_mode_one_line_per_pattern(self):
        assert format_lines(RESULT, "pattern") == [
            r"evil\.com$ -> a.evil.com",
            "evil -> a.evil.com",
        ]

    def test_domain_mode_joins_patterns(self):
        assert format_lines(RESULT, "domain") == [r"a.evil.com -> evil\.com$, evil"]

    def test_json_mode(self):
        (line,) = format_lines(RESULT, "json")
        assert json.loads(line) == {"domain": "a.evil.com", "patterns": [r"evil\.com$", "evil"]}

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            StdoutSink(mode="xml")

    async def test_writes_and_flushes(self):
        stream = io.StringIO()
        sink = StdoutSink(stream=stream)

        await sink.send(RESULT)

        assert stream.getvalue() == "evil\\.com$ -> a.evil.com\nevil -> a.evil.com\n"

    async def test_defaults_to_process_stdout(self, capsys):
        await StdoutSink(mode="domain").send(RESULT)
        assert capsys.readouterr().out == "a.evil.com -> evil\\.com$, evil\n"

    async def test_broken_stream_raises_output_error(self):
        stream = io.StringIO()
        stream.close()

        with pytest.raises(OutputError, match="Cannot write"):
            await StdoutSink(stream=stream).send(RESULT)


# ── WebhookSink ───────────────────────────────────────────────────────────────

class TestWebhookPayload:
    def test_slack_payload_is_text_only(self):
        assert build_payload(RESULT, "slack") == {"text": r"a.evil.com -> evil\.com$, evil"}

    def test_json_payload_is_structured(self):
        payload = build_payload(RESULT, "json")
        assert payload["domain"] == "a.evil.com"
        assert payload["patterns"] == [r"evil\.com$", "evil"]
        assert payload["text"] == RESULT.summary

    def test_mask_url_hides_secret_path(self):
        assert mask_url("https://hooks.slack.com/services/T0/B0/secret") == "https://hooks.slack.com/***"


class TestWebhookSink:
    async def test_posts_json_payload(self):
        session = _mock_session(status=200)
        sink = WebhookSink("https://hooks.example/x", session=session)

        await sink.send(RESULT)

        session.post.assert_called_once_with(
            "https://hooks.example/x",
            json={"text": RESULT.summary},
        )

    async def test_non_success_status_raises_delivery_error(self):
        sink = WebhookSink("https://hooks.example/x", session=_mock_session(status=500, body="boom"))

        with pytest.raises(DeliveryError) as excinfo:
            await sink.send(RESULT)

        assert excinfo.value.status == 500
        assert excinfo.value.sink == "webhook"

    async def test_client_error_raises_delivery_error(self):
        session = _mock_session()
        session.post.side_effect = aiohttp.ClientConnectionError("refused")
        sink = WebhookSink("https://hooks.example/x", session=session)

        with pytest.raises(DeliveryError, match="request failed"):
            await sink.send(RESULT)

    async def test_close_leaves_injected_session_open(self):
        session = _mock_session()
        sink = WebhookSink("https://hooks.example/x", session=session)

        await sink.close()

        session.close.assert_not_called()

    def test_unknown_format_rejected(self):
        with pytest.raises(ValueError):
            WebhookSink("https://hooks.example/x", fmt="xml")


@pytest.fixture
async def failing_webhook():
    """A real HTTP endpoint answering every POST with 500. Yields (url, bodies)."""
    received: list[dict] = []

    async def handler(request: web.Request) -> web.Response:
        received.append(await request.json())
        return web.Response(status=500, text="internal error")

    app = web.Application()
    app.router.add_post("/hook", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    yield str(server.make_url("/hook")), received
    await server.close()


async def test_webhook_against_real_server_returning_500(failing_webhook):
    url, received = failing_webhook
    sink = WebhookSink(url, fmt="json")

    try:
        with pytest.raises(DeliveryError) as excinfo:
            await sink.send(RESULT)
    finally:
        await sink.close()

    assert excinfo.value.status == 500
    assert received == [build_payload(RESULT, "json")]


# ── Notifier ──────────────────────────────────────────────────────────────────

class TestNotifier:
    def test_requires_a_sink(self):
        with pytest.raises(ValueError, match="at least one sink"):
            Notifier([])

    async def test_success_returns_no_failures(self):
        sink = RecordingSink()
        notifier = Notifier([sink])

        assert await notifier.deliver(RESULT) == []
        assert sink.results == [RESULT]

    async def test_delivery_error_is_returned_and_other_sinks_still_run(self):
        failing = FailingSink(DeliveryError("HTTP 500", sink="webhook", status=500))
        recording = RecordingSink()
        notifier = Notifier([failing, recording])

        failures = await notifier.deliver(RESULT)

        assert [f.status for f in failures] == [500]
        assert recording.results == [RESULT]
        assert notifier.stats.delivery_failures == 1

    async def test_output_error_raised_after_remaining_sinks_run(self):
        broken = FailingSink(OutputError("stdout closed"), name="stdout")
        recording = RecordingSink()
        notifier = Notifier([broken, recording])

        with pytest.raises(OutputError):
            await notifier.deliver(RESULT)

        assert recording.results == [RESULT]

    async def test_close_closes_every_sink(self):
        a, b = RecordingSink(), RecordingSink()
        await Notifier([a, b]).close()
        assert a.closed and b.closed

    async def test_unexpected_sink_exception_becomes_delivery_error(self):
        broken = FailingSink(UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"), name="webhook")
        recording = RecordingSink()
        notifier = Notifier([broken, recording])

        failures = await notifier.deliver(RESULT)

        assert [f.sink for f in failures] == ["webhook"]
        assert "UnicodeDecodeError" in str(failures[0])
        assert recording.results == [RESULT]

    async def test_error_body_is_decoded_leniently(self):
        session = _mock_session(status=502, body="bad gateway")
        sink = WebhookSink("https://hooks.example/x", session=session)

        with pytest.raises(DeliveryError):
            await sink.send(RESULT)

        response = await session.post.return_value.__aenter__()
        response.text.assert_awaited_once_with(errors="replace")
