import json
import socket
import threading
from unittest.mock import MagicMock

import pytest
import requests

from conftest import SECRET, signed_headers
from golive.core import constants
from golive.server.server import create_server
from golive.webhook import StreamOnlineNotification, WebhookAuthenticator

ONLINE_BODY = json.dumps(
    {
        "subscription": {"id": "sub-1", "type": "stream.online", "status": "enabled"},
        "event": {
            "broadcaster_user_id": "1001",
            "broadcaster_user_login": "alice",
            "broadcaster_user_name": "Alice",
        },
    }
).encode("utf-8")


@pytest.fixture
def relay():
    relay = MagicMock()
    relay.announced = threading.Event()
    relay.refreshed = threading.Event()
    relay.announce.side_effect = lambda notification: relay.announced.set()
    relay.refresh_subscriptions.side_effect = lambda: relay.refreshed.set()
    return relay


@pytest.fixture
def authenticator():
    return WebhookAuthenticator(SECRET)


@pytest.fixture
def base_url(relay, authenticator):
    server = create_server(("127.0.0.1", 0), relay, authenticator)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


def _post(base_url, path, body, headers=None):
    return requests.post(f"{base_url}{path}", data=body, headers=headers or {}, timeout=5)


def test_liveness_probe(base_url):
    response = requests.get(f"{base_url}/", timeout=5)
    assert response.status_code == 200
    assert response.text == "\n"


def test_unknown_paths_are_404(base_url):
    assert requests.get(f"{base_url}/nope", timeout=5).status_code == 404
    assert _post(base_url, "/nope", b"{}").status_code == 404


class TestEventSubCallback:
    def test_challenge_is_echoed_without_signature(self, base_url, relay):
        response = _post(base_url, "/webhook/callbacks", b'{"challenge":"abc123"}')

        assert response.status_code == 200
        assert response.text == "abc123"
        relay.announce.assert_not_called()

    def test_challenge_is_echoed_with_bogus_signature(self, base_url):
        body = b'{"challenge":"abc123","subscription":{"id":"sub-1"}}'
        headers = signed_headers(body, secret="wrong")
        headers[constants.HEADER_MESSAGE_TYPE] = constants.MESSAGE_TYPE_VERIFICATION

        response = _post(base_url, "/webhook/callbacks", body, headers)

        assert response.status_code == 200
        assert response.text == "abc123"

    def test_signed_stream_online_is_announced(self, base_url, relay):
        response = _post(
            base_url, "/webhook/callbacks", ONLINE_BODY, signed_headers(ONLINE_BODY)
        )

        assert response.status_code == 200
        assert response.text == "ok"
        assert relay.announced.wait(5)
        notification = relay.announce.call_args.args[0]
        assert isinstance(notification, StreamOnlineNotification)
        assert notification.broadcaster_user_id == "1001"

    def test_response_does_not_wait_for_announcement(self, base_url, relay):
        release = threading.Event()
        relay.announce.side_effect = lambda notification: release.wait(5)

        response = _post(
            base_url, "/webhook/callbacks", ONLINE_BODY, signed_headers(ONLINE_BODY)
        )

        assert response.text == "ok"
        release.set()

    def test_bad_signature_is_dropped(self, base_url, relay):
        headers = signed_headers(ONLINE_BODY, secret="attacker")

        response = _post(base_url, "/webhook/callbacks", ONLINE_BODY, headers)

        assert response.status_code == 403
        relay.announce.assert_not_called()

    def test_tampered_body_is_dropped(self, base_url, relay):
        headers = signed_headers(ONLINE_BODY)
        tampered = ONLINE_BODY.replace(b"1001", b"6666")

        response = _post(base_url, "/webhook/callbacks", tampered, headers)

        assert response.status_code == 403
        relay.announce.assert_not_called()

    def test_malformed_body_is_dropped(self, base_url, relay):
        response = _post(base_url, "/webhook/callbacks", b"{not json")
        assert response.status_code == 400
        relay.announce.assert_not_called()

    def test_unrecognized_type_is_acknowledged(self, base_url, relay):
        body = json.dumps(
            {"subscription": {"id": "sub-2", "type": "channel.follow"}, "event": {}}
        ).encode()

        response = _post(base_url, "/webhook/callbacks", body, signed_headers(body))

        assert response.status_code == 200
        relay.announce.assert_not_called()

    def test_revocation_forgets_secret(self, base_url, authenticator):
        authenticator.remember("sub-1", SECRET)
        body = json.dumps(
            {"subscription": {"id": "sub-1", "type": "stream.online", "status": "authorization_revoked"}}
        ).encode()
        headers = signed_headers(body, message_type=constants.MESSAGE_TYPE_REVOCATION)

        response = _post(base_url, "/webhook/callbacks", body, headers)

        assert response.status_code == 200
        assert "sub-1" not in authenticator._secrets


@pytest.mark.parametrize("content_length", ["abc", "-5"])
def test_bad_content_length_is_400(base_url, relay, content_length):
    host, port = base_url[len("http://"):].split(":")
    with socket.create_connection((host, int(port)), timeout=5) as sock:
        sock.sendall(
            b"POST /webhook/callbacks HTTP/1.1\r\n"
            b"Host: localhost\r\n"
            b"Content-Length: " + content_length.encode() + b"\r\n"
            b"\r\n"
        )
        reply = sock.recv(1024)

    assert reply.startswith(b"HTTP/1.0 400") or reply.startswith(b"HTTP/1.1 400")
    relay.announce.assert_not_called()


def test_airtable_webhook_triggers_refresh(base_url, relay):
    response = _post(base_url, "/webhook/airtable", b'{"base": {"id": "appBase"}}')

    assert response.status_code == 200
    assert relay.refreshed.wait(5)
