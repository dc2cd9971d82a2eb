"""Discord go-live notifications with duplicate suppression"""

import logging
import re
import threading
from typing import Any, Dict, Optional

import requests

from .core import constants
from .errors import NotificationError

logger = logging.getLogger("golive.notifier")

_MARKDOWN_SPECIAL = re.compile(r"([_*\[\]()~`>#+=|.!-])")


def escape_markdown(text: str) -> str:
    """Backslash-escape characters Discord would treat as markdown"""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", text)


def render_message(template: str, stream: Dict[str, Any]) -> str:
    """Fill the go-live template from a Helix stream object"""
    params = {
        "game": escape_markdown(stream.get("game_name", "")),
        "channel_name": escape_markdown(stream.get("user_name", "")),
        "channel_url": constants.TWITCH_CHANNEL_URL_TEMPLATE.format(
            stream.get("user_login", "")
        ),
    }
    return template.format_map(params)


class NotificationDeduplicator:
    """Remembers the last body sent and suppresses an identical repeat.

    Only the single most recent body is kept, across all broadcasters. Twitch
    can deliver the same stream.online several times in a short window; this
    catches exactly that and nothing more.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last_body: Optional[str] = None

    @property
    def last_body(self) -> Optional[str]:
        with self._lock:
            return self._last_body

    def should_send(self, candidate_body: str) -> bool:
        with self._lock:
            if candidate_body == self._last_body:
                return False
            self._last_body = candidate_body
            return True


class DiscordNotifier:
    """Posts rendered go-live messages to a Discord webhook"""

    def __init__(
        self,
        webhook_url: str,
        template: str = constants.DEFAULT_GOLIVE_MESSAGE,
        deduplicator: Optional[NotificationDeduplicator] = None,
    ):
        self.webhook_url = webhook_url
        self.template = template or constants.DEFAULT_GOLIVE_MESSAGE
        self.deduplicator = deduplicator or NotificationDeduplicator()
        self.session = requests.Session()
        self.sent = 0

    def notify(self, stream: Dict[str, Any]) -> bool:
        """Render and send a notification for ``stream``.

        Returns False when the body duplicates the previous one. The body is
        recorded before sending, so a failed send is not retried when the same
        event is delivered again.

        Raises:
            NotificationError: Template could not be rendered or the post failed
        """
        try:
            body = render_message(self.template, stream)
        except (KeyError, IndexError, ValueError) as e:
            raise NotificationError(f"Error populating template: {e}") from e

        if not self.deduplicator.should_send(body):
            logger.info("Duplicate post body, skipping for now")
            return False

        try:
            response = self.session.post(
                self.webhook_url,
                json={"content": body},
                timeout=constants.DISCORD_REQUEST_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(f"Posting to discord failed: {e}") from e

        self.sent += 1
        logger.info(f"Sent go-live notification for {stream.get('user_login', '?')}")
        return True
