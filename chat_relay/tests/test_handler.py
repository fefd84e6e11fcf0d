import json
import logging

import pytest

from chat_relay.api.handler import CORS_HEADERS, ChatRelayHandler, HttpRequest
from chat_relay.domain.exceptions import ApiError, NetworkError, RateLimitError
from chat_relay.domain.models import ChatReply, ChatUsage


class SettingsStub:
    gemini_api_key = "test-key-123"
    provider = "gemini"
    model = "chat"
    max_output_tokens = 500
    temperature = 0.9
    http_timeout = 1.0
    sharpen_error_status = False


class NoKeySettings(SettingsStub):
    gemini_api_key = None


class StubProvider:
    name = "stub"

    def __init__(self, reply="Hi there", error=None, usage=None):
        self.reply = reply
        self.error = error
        self.usage = usage
        self.calls = []

    def send_message(self, history, message, generation_config):
        self.calls.append((history, message, generation_config))
        if self.error is not None:
            raise self.error
        return ChatReply(provider=self.name, model="stub-model", text=self.reply, finish_reason="STOP", usage=self.usage)


def _handler(provider, cfg=None):
    factory_calls = []

    def factory(settings, api_key):
        factory_calls.append(api_key)
        return provider

    h = ChatRelayHandler(cfg or SettingsStub(), provider_factory=factory)
    h.factory_calls = factory_calls
    return h


def _post(contents):
    return HttpRequest(method="POST", body=json.dumps({"contents": contents}).encode("utf-8"))


def _assert_cors(resp):
    for k, v in CORS_HEADERS.items():
        assert resp.headers[k] == v


def test_options_preflight():
    provider = StubProvider()
    resp = _handler(provider).handle(HttpRequest(method="OPTIONS", body=b"not even json"))
    assert resp.status == 204
    assert resp.body == b""
    _assert_cors(resp)
    assert provider.calls == []


@pytest.mark.parametrize("method", ["GET", "PUT", "DELETE", "PATCH", "HEAD"])
def test_other_methods_not_allowed(method):
    provider = StubProvider()
    resp = _handler(provider).handle(HttpRequest(method=method))
    assert resp.status == 405
    assert resp.body == b"Method not allowed"
    _assert_cors(resp)
    assert provider.calls == []


def test_single_turn_success():
    provider = StubProvider(reply="Hi there")
    resp = _handler(provider).handle(_post([{"parts": [{"text": "Hello"}]}]))
    assert resp.status == 200
    assert resp.body == b'{"response":"Hi there"}'
    assert resp.headers["Content-Type"] == "application/json"
    _assert_cors(resp)

    history, message, gen = provider.calls[0]
    assert history == []
    assert message == "Hello"
    assert gen.max_output_tokens == 500
    assert gen.temperature == 0.9


def test_multi_turn_history_and_latest_message():
    provider = StubProvider(reply="ok")
    h = _handler(provider)
    contents = [
        {"role": "user", "parts": [{"text": "Hi"}]},
        {"role": "model", "parts": [{"text": "Hello! How can I help?"}]},
        {"role": "user", "parts": [{"text": "What is CORS?"}]},
        {"role": "model", "parts": [{"text": "Cross-origin resource sharing."}]},
        {"role": "user", "parts": [{"text": "Thanks"}, {"text": "ignored second part"}]},
    ]
    resp = h.handle(_post(contents))
    assert resp.status == 200

    history, message, _ = provider.calls[0]
    assert history == contents[:-1]
    assert message == "Thanks"
    assert h.factory_calls == ["test-key-123"]


def test_method_is_case_insensitive():
    resp = _handler(StubProvider()).handle(HttpRequest(method="post", body=b'{"contents":[{"parts":[{"text":"x"}]}]}'))
    assert resp.status == 200


def test_missing_api_key_returns_500():
    provider = StubProvider()
    resp = _handler(provider, NoKeySettings()).handle(_post([{"parts": [{"text": "Hello"}]}]))
    assert resp.status == 500
    body = resp.json()
    assert body["error"]
    assert body["details"]
    assert resp.headers["Content-Type"] == "application/json"
    _assert_cors(resp)
    assert provider.calls == []


def test_unparsable_body_returns_500():
    resp = _handler(StubProvider()).handle(HttpRequest(method="POST", body=b"{not json"))
    assert resp.status == 500
    body = resp.json()
    assert body["error"]
    assert "Invalid JSON" in body["details"]
    _assert_cors(resp)


@pytest.mark.parametrize(
    "body",
    [
        b"{}",
        b'{"contents": []}',
        b'{"contents": "hello"}',
        b'{"contents": [{"parts": []}]}',
        b'{"contents": [{"text": "no parts"}]}',
        b"[1, 2, 3]",
    ],
)
def test_malformed_contents_returns_500(body):
    provider = StubProvider()
    resp = _handler(provider).handle(HttpRequest(method="POST", body=body))
    assert resp.status == 500
    assert resp.json()["details"]
    assert provider.calls == []


@pytest.mark.parametrize(
    "error",
    [
        NetworkError(code="NETWORK_ERROR", message="connection reset"),
        ApiError(code="API_ERROR", message="API key not valid."),
        RateLimitError(code="RATE_LIMIT", message="quota exceeded"),
        RuntimeError("unexpected"),
    ],
)
def test_upstream_failures_collapse_to_500(error):
    resp = _handler(StubProvider(error=error)).handle(_post([{"parts": [{"text": "Hello"}]}]))
    assert resp.status == 500
    assert resp.json()["details"] == str(error)


def test_error_without_message_still_has_details():
    resp = _handler(StubProvider(error=KeyError())).handle(_post([{"parts": [{"text": "Hello"}]}]))
    assert resp.status == 500
    assert resp.json()["details"] == "KeyError"


class SharpSettings(SettingsStub):
    sharpen_error_status = True


@pytest.mark.parametrize(
    "error, status",
    [
        (NetworkError(code="NETWORK_ERROR", message="x"), 502),
        (ApiError(code="API_ERROR", message="x"), 502),
        (RateLimitError(code="RATE_LIMIT", message="x"), 429),
        (RuntimeError("x"), 500),
    ],
)
def test_sharpened_status_for_upstream_errors(error, status):
    h = _handler(StubProvider(error=error), SharpSettings())
    resp = h.handle(_post([{"parts": [{"text": "Hello"}]}]))
    assert resp.status == status


def test_sharpened_status_for_bad_request():
    resp = _handler(StubProvider(), SharpSettings()).handle(HttpRequest(method="POST", body=b"nope"))
    assert resp.status == 400


def test_sharpened_status_for_missing_key():
    class Cfg(SharpSettings):
        gemini_api_key = ""

    resp = _handler(StubProvider(), Cfg()).handle(_post([{"parts": [{"text": "Hello"}]}]))
    assert resp.status == 500


def test_identical_requests_yield_identical_responses():
    h = _handler(StubProvider(reply="same"))
    req = _post([{"parts": [{"text": "a"}]}, {"parts": [{"text": "b"}]}])
    first = h.handle(req)
    second = h.handle(req)
    assert (first.status, first.body) == (second.status, second.body)


def test_generation_config_follows_settings():
    class Cfg(SettingsStub):
        max_output_tokens = 128
        temperature = 0.2

    provider = StubProvider()
    _handler(provider, Cfg()).handle(_post([{"parts": [{"text": "Hello"}]}]))
    _, _, gen = provider.calls[0]
    assert (gen.max_output_tokens, gen.temperature) == (128, 0.2)


def test_non_ascii_reply_round_trips():
    resp = _handler(StubProvider(reply="こんにちは")).handle(_post([{"parts": [{"text": "やあ"}]}]))
    assert resp.json() == {"response": "こんにちは"}


def test_multimodal_turns_are_relayed():
    provider = StubProvider(reply="A cat.")
    image_turn = {
        "role": "user",
        "parts": [{"inlineData": {"mimeType": "image/png", "data": "iVBORw0KGgo="}}, {"text": "Look at this"}],
    }
    contents = [
        image_turn,
        {"role": "model", "parts": [{"text": "Nice picture."}]},
        {"role": "user", "parts": [{"text": "hi"}, {"inlineData": {"mimeType": "image/png", "data": "AA=="}}]},
    ]
    resp = _handler(provider).handle(_post(contents))
    assert resp.status == 200
    assert resp.json() == {"response": "A cat."}

    history, message, _ = provider.calls[0]
    assert history == contents[:-1]
    assert history[0]["parts"][0]["inlineData"]["data"] == "iVBORw0KGgo="
    assert message == "hi"


def test_success_log_carries_token_usage(caplog):
    provider = StubProvider(usage=ChatUsage(prompt_tokens=3, completion_tokens=2, total_tokens=5))
    with caplog.at_level(logging.INFO, logger="chat_relay"):
        _handler(provider).handle(_post([{"parts": [{"text": "Hello"}]}]))
    records = [r for r in caplog.records if r.getMessage() == "Chat relayed"]
    assert records
    assert records[-1].extra["prompt_tokens"] == 3
    assert records[-1].extra["completion_tokens"] == 2
    assert records[-1].extra["total_tokens"] == 5
