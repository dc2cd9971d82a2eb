"""HTTP listener for EventSub deliveries and watch-list change webhooks"""

import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional, Tuple

from ..core import constants
from ..errors import MalformedPayload
from ..webhook import (
    ChallengeEnvelope,
    RevocationNotification,
    StreamOnlineNotification,
    WebhookAuthenticator,
    parse_envelope,
)

logger = logging.getLogger("golive.server")


class CallbackHandler(BaseHTTPRequestHandler):
    """HTTP handler for Twitch and Airtable callbacks"""

    relay: Optional["GoLiveRelay"] = None
    authenticator: Optional[WebhookAuthenticator] = None

    def _respond(self, status: int, body: bytes = b"") -> None:
        self.send_response(status)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if body:
            self.wfile.write(body)

    def _read_body(self) -> bytes:
        """Read the request body.

        Raises:
            ValueError: Content-Length is not a non-negative integer
        """
        content_length = int(self.headers.get("Content-Length", 0) or 0)
        if content_length < 0:
            raise ValueError(f"negative Content-Length {content_length}")
        return self.rfile.read(content_length) if content_length > 0 else b""

    @staticmethod
    def _in_background(target: Any, *args: Any) -> None:
        # Twitch retries deliveries that are slow to answer, so work that
        # talks to other services happens after the response is written.
        threading.Thread(target=target, args=args, daemon=True).start()

    def do_GET(self) -> None:
        """Liveness probe"""
        if self.path == "/":
            self._respond(200, b"\n")
        else:
            self._respond(404, b"Not Found: " + self.path.encode("utf-8"))

    def do_POST(self) -> None:
        try:
            body = self._read_body()
        except ValueError as e:
            logger.error(f"Dropping request with bad Content-Length: {e}")
            self.close_connection = True
            self._respond(400)
            return
        path = self.path.split("?", 1)[0].rstrip("/")

        if path == "/" + constants.EVENTSUB_CALLBACK_PATH:
            self._handle_eventsub(body)
        elif path == "/" + constants.AIRTABLE_WEBHOOK_PATH:
            self._handle_airtable(body)
        else:
            self._respond(404, b"Not Found: " + self.path.encode("utf-8"))

    def _handle_eventsub(self, body: bytes) -> None:
        message_type = self.headers.get(constants.HEADER_MESSAGE_TYPE)
        try:
            envelope = parse_envelope(body, message_type)
        except MalformedPayload as e:
            logger.error(f"Dropping malformed EventSub delivery: {e}")
            self._respond(400)
            return

        # Answering the verification handshake proves we own the callback URL
        if isinstance(envelope, ChallengeEnvelope):
            logger.info(
                f"Received verification request for subscription {envelope.subscription_id}"
            )
            self._respond(200, envelope.challenge.encode("utf-8"))
            return

        if self.authenticator is None or not self.authenticator.authenticate(
            envelope.subscription_id, self.headers, body
        ):
            logger.info("Dropping delivery that failed verification")
            self._respond(403)
            return

        logger.debug(f"Verified signature on message: {body!r}")

        if isinstance(envelope, StreamOnlineNotification):
            logger.info(f"Got online event for: {envelope.broadcaster_user_name}")
            self._respond(200, b"ok")
            if self.relay:
                self._in_background(self.relay.announce, envelope)
        elif isinstance(envelope, RevocationNotification):
            logger.warning(
                f"Subscription {envelope.subscription_id} ({envelope.subscription_type}) "
                f"revoked: {envelope.status}"
            )
            self.authenticator.forget(envelope.subscription_id)
            self._respond(200)
        else:
            logger.error(
                f"Event type {envelope.subscription_type} has not been implemented"
            )
            self._respond(200)

    def _handle_airtable(self, body: bytes) -> None:
        # The payload only says "something changed"; the whole list is re-read
        logger.info("Got webhook from airtable")
        logger.debug(f"Airtable webhook body: {body!r}")
        self._respond(200)
        if self.relay:
            self._in_background(self.relay.refresh_subscriptions)

    def log_message(self, format: str, *args: Any) -> None:
        """Override to use our logger"""
        logger.debug(f"{self.address_string()} - {format % args}")


def create_server(
    address: Tuple[str, int],
    relay: Optional["GoLiveRelay"],
    authenticator: WebhookAuthenticator,
) -> ThreadingHTTPServer:
    """Build a threaded listener whose handler is bound to ``relay``"""
    handler = type(
        "BoundCallbackHandler",
        (CallbackHandler,),
        {"relay": relay, "authenticator": authenticator},
    )
    server = ThreadingHTTPServer(address, handler)
    server.daemon_threads = True
    return server
