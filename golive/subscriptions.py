"""EventSub subscription reconciliation against the watch list"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .core import constants
from .errors import ReconcileError, TwitchAPIError

logger = logging.getLogger("golive.subscriptions")


@dataclass(frozen=True)
class RemoteSubscription:
    """An EventSub subscription as reported by Helix"""

    id: str
    type: str
    broadcaster_id: str
    callback_url: str
    status: str

    @property
    def enabled(self) -> bool:
        return self.status == "enabled"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteSubscription":
        condition = data.get("condition") or {}
        transport = data.get("transport") or {}
        return cls(
            id=data.get("id", ""),
            type=data.get("type", ""),
            broadcaster_id=condition.get("broadcaster_user_id", ""),
            callback_url=transport.get("callback", ""),
            status=data.get("status", ""),
        )


@dataclass
class ReconcileResult:
    """What one reconciliation pass did"""

    monitored: Dict[str, str] = field(default_factory=dict)  # login -> id
    missing: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    untouched: List[str] = field(default_factory=list)


def normalize_logins(logins: Iterable[str]) -> List[str]:
    """Strip, lowercase and de-duplicate logins, keeping first-seen order"""
    seen = []
    for login in logins:
        login = (login or "").strip().lower()
        if login and login not in seen:
            seen.append(login)
    return seen


class SubscriptionReconciler:
    """Makes the account's owned EventSub subscriptions match the watch list.

    A subscription is "owned" when its callback URL starts with the public
    callback prefix; everything else on the account is left alone. Each pass
    deletes every owned subscription and recreates one per watched broadcaster.
    Passes are serialised, so a second trigger waits for the first to finish.
    """

    def __init__(
        self,
        api_client: "TwitchAPIClient",
        secret: str,
        authenticator: Optional["WebhookAuthenticator"] = None,
    ):
        self.api_client = api_client
        self.secret = secret
        self.authenticator = authenticator
        self._lock = threading.Lock()
        self.passes = 0
        self.last_result: Optional[ReconcileResult] = None

    def reconcile(
        self, desired_logins: Iterable[str], public_callback_prefix: str
    ) -> ReconcileResult:
        """Run one full pass.

        Raises:
            ReconcileError: A lookup, list, delete or create call failed.
                Subscriptions created before the failure are left in place.
        """
        with self._lock:
            logins = normalize_logins(desired_logins)
            result = self._reconcile(logins, public_callback_prefix)
            self.passes += 1
            self.last_result = result
            return result

    def _reconcile(self, logins: List[str], prefix: str) -> ReconcileResult:
        result = ReconcileResult()
        result.monitored = self._resolve(logins)
        result.missing = [login for login in logins if login not in result.monitored]
        for login in result.missing:
            logger.warning(f"No Twitch user found for login {login}, skipping")

        try:
            remote = [
                RemoteSubscription.from_api(sub)
                for sub in self.api_client.get_eventsub_subscriptions()
            ]
        except TwitchAPIError as e:
            raise ReconcileError(f"Error getting subscriptions: {e}") from e

        for sub in remote:
            if sub.callback_url.startswith(prefix):
                self._delete(sub)
                result.deleted.append(sub.id)
            else:
                logger.info(
                    f"Not one of my subscriptions: {sub.callback_url} => {sub.broadcaster_id}"
                )
                result.untouched.append(sub.id)

        callback = f"{prefix}{constants.EVENTSUB_CALLBACK_PATH}"
        for login, broadcaster_id in result.monitored.items():
            result.created.append(self._create(login, broadcaster_id, callback))

        logger.info(
            f"Reconciled subscriptions: {len(result.deleted)} deleted, "
            f"{len(result.created)} created, {len(result.untouched)} not ours"
        )
        return result

    def _resolve(self, logins: List[str]) -> Dict[str, str]:
        if not logins:
            return {}

        try:
            users = self.api_client.get_users(logins)
        except TwitchAPIError as e:
            raise ReconcileError(f"Error looking up users: {e}") from e

        monitored = {}
        for user in users:
            login = user.get("login", "").lower()
            if login in logins and user.get("id"):
                monitored[login] = user["id"]
                logger.info(f"Monitoring: {login} => {user['id']}")
        return monitored

    def _delete(self, sub: RemoteSubscription) -> None:
        try:
            self.api_client.delete_eventsub_subscription(sub.id)
        except TwitchAPIError as e:
            raise ReconcileError(
                f"Error removing subscription {sub.id}: {e}",
                broadcaster_id=sub.broadcaster_id,
            ) from e
        if self.authenticator:
            self.authenticator.forget(sub.id)

    def _create(self, login: str, broadcaster_id: str, callback: str) -> str:
        try:
            created = self.api_client.create_eventsub_subscription(
                broadcaster_id, callback, self.secret
            )
        except TwitchAPIError as e:
            raise ReconcileError(
                f"Error creating subscription for {login} ({broadcaster_id}): {e}",
                login=login,
                broadcaster_id=broadcaster_id,
            ) from e

        subscription_id = created.get("id", "")
        if self.authenticator and subscription_id:
            self.authenticator.remember(subscription_id, self.secret)
        logger.info(
            f"Created subscription {subscription_id} for {login} ({created.get('status', 'unknown')})"
        )
        return subscription_id
