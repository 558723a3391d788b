from __future__ import annotations

import hashlib
import hmac
import json
from typing import List

import httpx
import pytest
from pydantic import ValidationError

from conftest import make_settings
from printdesk.whatsapp import WhatsAppClient, parse_webhook, verify_signature


def _payload(*messages: dict) -> dict:
    return {"entry": [{"changes": [{"value": {"messages": list(messages)}}]}]}


def _client(tmp_path, handler, **overrides) -> WhatsAppClient:
    transport = httpx.MockTransport(handler)
    return WhatsAppClient(make_settings(tmp_path, **overrides), client=httpx.Client(transport=transport))


def test_parse_webhook_flattens_messages() -> None:
    messages = parse_webhook(
        _payload(
            {"from": "15550001", "id": "wamid.1", "type": "text", "text": {"body": "hello"}},
            {"from": "15550001", "id": "wamid.2", "type": "audio", "audio": {"id": "media-7", "mime_type": "audio/ogg"}},
            {"from": "15550002", "id": "wamid.3", "type": "image", "image": {"id": "img-1"}},
        )
    )

    assert [(m.sender_id, m.text, m.audio_ref, m.message_id) for m in messages] == [
        ("15550001", "hello", None, "wamid.1"),
        ("15550001", None, "media-7", "wamid.2"),
        ("15550002", None, None, "wamid.3"),
    ]
    assert not messages[2].has_content()


def test_parse_webhook_without_messages() -> None:
    assert parse_webhook({"object": "whatsapp_business_account"}) == []
    assert parse_webhook({"entry": [{"changes": [{"value": {"statuses": [{"id": "x"}]}}]}]}) == []


def test_parse_webhook_rejects_wrong_shape() -> None:
    with pytest.raises(ValidationError):
        parse_webhook({"entry": "not a list"})


def test_verify_signature() -> None:
    body = b'{"entry": []}'
    digest = hmac.new(b"secret", body, hashlib.sha256).hexdigest()

    assert verify_signature("secret", body, f"sha256={digest}")
    assert not verify_signature("secret", body, "sha256=0000")
    assert not verify_signature("secret", body, None)
    assert not verify_signature("secret", body, digest)
    assert verify_signature("", body, None)


def test_send_text_posts_to_graph_api(tmp_path) -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.out"}]})

    assert _client(tmp_path, handler).send_text("15550001", "Hello!")

    request = requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://graph.facebook.com/v19.0/12345/messages"
    assert request.headers["authorization"] == "Bearer token"
    assert json.loads(request.content) == {
        "messaging_product": "whatsapp",
        "to": "15550001",
        "type": "text",
        "text": {"body": "Hello!"},
    }


def test_send_text_reports_http_errors(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "invalid recipient"}})

    assert not _client(tmp_path, handler).send_text("15550001", "Hello!")


def test_send_text_reports_transport_errors(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert not _client(tmp_path, handler).send_text("15550001", "Hello!")


def test_send_text_without_credentials(tmp_path) -> None:
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    assert not _client(tmp_path, handler, whatsapp_token="").send_text("15550001", "Hello!")
    assert calls == []


def test_fetch_media_follows_download_url(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "graph.facebook.com":
            assert request.url.path == "/v19.0/media-7"
            return httpx.Response(
                200,
                json={"url": "https://lookaside.fbsbx.com/whatsapp/media-7", "mime_type": "audio/ogg; codecs=opus"},
            )
        assert request.headers["authorization"] == "Bearer token"
        return httpx.Response(200, content=b"OggS-voice")

    data, mime_type = _client(tmp_path, handler).fetch_media("media-7")

    assert data == b"OggS-voice"
    assert mime_type == "audio/ogg; codecs=opus"


def test_fetch_media_without_url(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "media-7"})

    with pytest.raises(ValueError, match="no download url"):
        _client(tmp_path, handler).fetch_media("media-7")


def test_fetch_media_propagates_http_errors(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    with pytest.raises(httpx.HTTPStatusError):
        _client(tmp_path, handler).fetch_media("media-7")
