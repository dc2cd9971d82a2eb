"""Shared fixtures and fakes for the golive test suite"""

import itertools
from typing import Any, Callable, Dict, List, Optional

import pytest

from golive.core import constants
from golive.errors import TwitchAPIError
from golive.webhook import sign

PREFIX = "https://golive.example.com/"
SECRET = "s3cret-signing-key"


class FakeTimer:
    """Stands in for threading.Timer; fires only when a test says so"""

    def __init__(self, clock: "FakeClock", interval: float, function: Callable[[], None]):
        self.clock = clock
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False
        self.due_at = 0.0

    def start(self) -> None:
        self.started = True
        self.due_at = self.clock.now + self.interval

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Timer factory with a manual clock"""

    def __init__(self):
        self.now = 0.0
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self, interval, function)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every timer that comes due"""
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.due_at <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due_at)
            self.now = timer.due_at
            timer.fired = True
            timer.function()
        self.now = target


class FakeHelix:
    """In-memory Twitch Helix with just the calls the reconciler makes"""

    def __init__(self, users: Optional[Dict[str, str]] = None):
        self.users = users or {}
        self.subscriptions: List[Dict[str, Any]] = []
        self.fail_create_for: set = set()
        self.fail_list = False
        self.calls: List[tuple] = []
        self._ids = itertools.count(1)

    def add_subscription(self, broadcaster_id: str, callback: str) -> str:
        sub_id = f"sub-{next(self._ids)}"
        self.subscriptions.append(
            {
                "id": sub_id,
                "type": constants.EVENTSUB_TYPE_STREAM_ONLINE,
                "status": "enabled",
                "condition": {"broadcaster_user_id": broadcaster_id},
                "transport": {"method": "webhook", "callback": callback},
            }
        )
        return sub_id

    def get_users(self, logins: List[str]) -> List[Dict[str, Any]]:
        self.calls.append(("get_users", list(logins)))
        return [
            {"id": self.users[login], "login": login}
            for login in logins
            if login in self.users
        ]

    def get_eventsub_subscriptions(self) -> List[Dict[str, Any]]:
        self.calls.append(("list",))
        if self.fail_list:
            raise TwitchAPIError(500, "boom")
        return [dict(sub) for sub in self.subscriptions]

    def delete_eventsub_subscription(self, subscription_id: str) -> None:
        self.calls.append(("delete", subscription_id))
        self.subscriptions = [s for s in self.subscriptions if s["id"] != subscription_id]

    def create_eventsub_subscription(
        self, broadcaster_id: str, callback: str, secret: str
    ) -> Dict[str, Any]:
        self.calls.append(("create", broadcaster_id))
        if broadcaster_id in self.fail_create_for:
            raise TwitchAPIError(409, "subscription already exists")
        sub_id = self.add_subscription(broadcaster_id, callback)
        return {"id": sub_id, "status": "webhook_callback_verification_pending"}

    def owned_broadcasters(self, prefix: str = PREFIX) -> List[str]:
        return sorted(
            s["condition"]["broadcaster_user_id"]
            for s in self.subscriptions
            if s["transport"]["callback"].startswith(prefix)
        )


def signed_headers(
    body: bytes,
    secret: str = SECRET,
    message_id: str = "msg-1",
    timestamp: str = "2023-01-01T00:00:00Z",
    message_type: str = constants.MESSAGE_TYPE_NOTIFICATION,
) -> Dict[str, str]:
    return {
        constants.HEADER_MESSAGE_ID: message_id,
        constants.HEADER_MESSAGE_TIMESTAMP: timestamp,
        constants.HEADER_MESSAGE_SIGNATURE: sign(secret, message_id, timestamp, body),
        constants.HEADER_MESSAGE_TYPE: message_type,
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def helix() -> FakeHelix:
    return FakeHelix({"alice": "1001", "bob": "1002", "carol": "1003"})
