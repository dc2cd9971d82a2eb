"""EventSub delivery authentication and envelope parsing"""

import hashlib
import hmac
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from .core import constants
from .errors import MalformedPayload

logger = logging.getLogger("golive.webhook")


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup that works on plain dicts too"""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def sign(secret: str, message_id: str, timestamp: str, raw_body: bytes) -> str:
    """Compute the ``sha256=<hex>`` signature Twitch sends for a delivery"""
    message = message_id.encode("utf-8") + timestamp.encode("utf-8") + raw_body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return f"{constants.SIGNATURE_PREFIX}{digest}"


def verify(secret: str, headers: Mapping[str, str], raw_body: bytes) -> bool:
    """Check a delivery's signature against ``secret``.

    The HMAC covers message id + timestamp + the raw body bytes exactly as
    received. Returns False for anything that does not check out, never raises.
    """
    if not secret:
        return False

    message_id = _header(headers, constants.HEADER_MESSAGE_ID)
    timestamp = _header(headers, constants.HEADER_MESSAGE_TIMESTAMP)
    signature = _header(headers, constants.HEADER_MESSAGE_SIGNATURE)
    if not message_id or not timestamp or not signature:
        return False
    if not signature.startswith(constants.SIGNATURE_PREFIX):
        return False
    if not isinstance(raw_body, (bytes, bytearray)):
        return False

    expected = sign(secret, message_id, timestamp, bytes(raw_body))
    return hmac.compare_digest(
        expected.encode("ascii"), signature.encode("utf-8", errors="replace")
    )


class WebhookAuthenticator:
    """Resolves the signing secret for a subscription and verifies deliveries.

    Subscriptions created by this service are registered with the secret they
    were created with; anything unknown falls back to the default secret.
    """

    def __init__(self, default_secret: str):
        self.default_secret = default_secret
        self._secrets: Dict[str, str] = {}
        self._lock = threading.Lock()

    def remember(self, subscription_id: str, secret: str) -> None:
        with self._lock:
            self._secrets[subscription_id] = secret

    def forget(self, subscription_id: str) -> None:
        with self._lock:
            self._secrets.pop(subscription_id, None)

    def secret_for(self, subscription_id: Optional[str]) -> str:
        with self._lock:
            if subscription_id and subscription_id in self._secrets:
                return self._secrets[subscription_id]
        return self.default_secret

    def authenticate(
        self,
        subscription_id: Optional[str],
        headers: Mapping[str, str],
        raw_body: bytes,
    ) -> bool:
        ok = verify(self.secret_for(subscription_id), headers, raw_body)
        if not ok:
            logger.warning(
                f"Invalid signature on message for subscription {subscription_id}"
            )
        return ok


@dataclass(frozen=True)
class ChallengeEnvelope:
    challenge: str
    subscription_id: Optional[str] = None


@dataclass(frozen=True)
class StreamOnlineNotification:
    subscription_id: Optional[str]
    broadcaster_user_id: str
    broadcaster_user_login: str
    broadcaster_user_name: str
    started_at: Optional[str] = None


@dataclass(frozen=True)
class RevocationNotification:
    subscription_id: Optional[str]
    subscription_type: str
    status: str


@dataclass(frozen=True)
class UnrecognizedNotification:
    subscription_id: Optional[str]
    subscription_type: str


Envelope = Union[
    ChallengeEnvelope,
    StreamOnlineNotification,
    RevocationNotification,
    UnrecognizedNotification,
]


def parse_envelope(
    raw_body: bytes, message_type: Optional[str] = None
) -> Envelope:
    """Decode an EventSub request body into one of the known envelope shapes.

    Args:
        raw_body: Request body as received
        message_type: Value of the Twitch-Eventsub-Message-Type header, if any

    Raises:
        MalformedPayload: Body is not a JSON object or lacks required fields
    """
    try:
        data = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedPayload(f"Body is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedPayload("Body is not a JSON object")

    subscription = data.get("subscription") or {}
    if not isinstance(subscription, dict):
        raise MalformedPayload("subscription is not an object")
    subscription_id = subscription.get("id")
    subscription_type = subscription.get("type", "")

    challenge = data.get("challenge")
    if challenge:
        return ChallengeEnvelope(str(challenge), subscription_id)

    if message_type == constants.MESSAGE_TYPE_REVOCATION:
        return RevocationNotification(
            subscription_id, subscription_type, subscription.get("status", "")
        )

    if subscription_type == constants.EVENTSUB_TYPE_STREAM_ONLINE:
        return _parse_stream_online(subscription_id, data.get("event"))

    return UnrecognizedNotification(subscription_id, subscription_type)


def _parse_stream_online(
    subscription_id: Optional[str], event: Any
) -> StreamOnlineNotification:
    if not isinstance(event, dict):
        raise MalformedPayload("stream.online delivery has no event object")

    broadcaster_id = event.get("broadcaster_user_id")
    if not broadcaster_id:
        raise MalformedPayload("stream.online event has no broadcaster_user_id")

    return StreamOnlineNotification(
        subscription_id=subscription_id,
        broadcaster_user_id=str(broadcaster_id),
        broadcaster_user_login=event.get("broadcaster_user_login", ""),
        broadcaster_user_name=event.get("broadcaster_user_name", ""),
        started_at=event.get("started_at"),
    )
