"""Airtable-backed watch list and its change-notification webhook"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from .core import constants
from .core.scheduler import RenewalTimer
from .errors import WatchListError

logger = logging.getLogger("golive.airtable")


class AirtableWatchList:
    """Reads watched Twitch logins from an Airtable table.

    Airtable webhooks expire, so after registration the webhook is refreshed
    shortly before each expiry for as long as the process runs.
    """

    def __init__(
        self,
        api_key: str,
        base_id: str,
        table_name: str,
        on_fatal: Optional[Callable[[Exception], None]] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.api_key = api_key
        self.base_id = base_id
        self.table_name = table_name
        self.base_url = constants.AIRTABLE_API_BASE_URL
        self.session = requests.Session()
        self.webhook_id: Optional[str] = None
        self._refresh_timer = RenewalTimer(
            "airtable webhook",
            self._refresh_current,
            on_fatal or self._log_refresh_failure,
            timer_factory,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _get(self, url: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        logger.debug(f"Getting endpoint {url}")
        try:
            response = self.session.get(
                url,
                params=params,
                headers=self._headers(),
                timeout=constants.API_REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise WatchListError(f"Unable to get {url}: {e}") from e

    def _post(self, url: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        logger.debug(f"Posting endpoint {url}")
        try:
            response = self.session.post(
                url,
                json=body,
                headers=self._headers(),
                timeout=constants.API_REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise WatchListError(f"Unable to post {url}: {e}") from e

    def usernames(self) -> List[str]:
        """Return the Twitch logins listed in the table, in table order"""
        url = f"{self.base_url}/{self.base_id}/{self.table_name}"
        usernames: List[str] = []
        offset: Optional[str] = None

        while True:
            result = self._get(url, params={"offset": offset} if offset else None)
            for record in result.get("records", []):
                usernames.extend(self._username_from_record(record))
            offset = result.get("offset")
            if not offset:
                return usernames

    @staticmethod
    def _username_from_record(record: Dict[str, Any]) -> List[str]:
        fields = record.get("fields") or {}
        if not fields:
            return []

        if constants.AIRTABLE_TWITCH_FIELD not in fields:
            raise WatchListError(
                f"Record {record.get('id', '?')} has no {constants.AIRTABLE_TWITCH_FIELD} field"
            )

        value = fields[constants.AIRTABLE_TWITCH_FIELD]
        if not isinstance(value, str):
            logger.warning(f"Record {record.get('id', '?')} has no twitch account")
            return []

        value = value.strip()
        return [value] if value else []

    def register_webhook(self, notification_url: str) -> str:
        """Ensure a table-data webhook points at ``notification_url`` and keep it alive"""
        webhook_id = self._find_matching_webhook(notification_url)

        if webhook_id is None:
            result = self._post(
                f"{self.base_url}/bases/{self.base_id}/webhooks",
                {
                    "notificationUrl": notification_url,
                    "specification": {
                        "options": {"filters": {"dataTypes": ["tableData"]}}
                    },
                },
            )
            webhook_id = result.get("id")
            if not webhook_id:
                raise WatchListError("Webhook creation returned no id")
            logger.info(f"Created airtable webhook {webhook_id} for {notification_url}")
        else:
            logger.info(f"Reusing airtable webhook {webhook_id} for {notification_url}")

        self.webhook_id = webhook_id
        delay = self.refresh_webhook(webhook_id)
        self._refresh_timer.start(delay)
        return webhook_id

    def refresh_webhook(self, webhook_id: str) -> float:
        """Extend the webhook's expiry and return the seconds until it lapses"""
        result = self._post(
            f"{self.base_url}/bases/{self.base_id}/webhooks/{webhook_id}/refresh"
        )
        expiration = result.get("expirationTime")
        if not expiration:
            raise WatchListError(f"Refresh of webhook {webhook_id} returned no expirationTime")

        try:
            expires_at = datetime.fromisoformat(expiration.replace("Z", "+00:00"))
        except ValueError as e:
            raise WatchListError(f"Unable to parse expirationTime {expiration}") from e

        delay = max((expires_at - datetime.now(timezone.utc)).total_seconds(), 0.0)
        logger.info(
            f"Scheduling refreshing airtable webhook {webhook_id} in {delay:.0f} seconds at {expiration}"
        )
        return delay

    def stop(self) -> None:
        self._refresh_timer.cancel()

    def _refresh_current(self) -> float:
        logger.info(f"Refreshing airtable webhook {self.webhook_id}")
        return self.refresh_webhook(self.webhook_id)

    @staticmethod
    def _log_refresh_failure(error: Exception) -> None:
        logger.error(f"Airtable webhook refresh stopped: {error}")

    def _find_matching_webhook(self, notification_url: str) -> Optional[str]:
        result = self._get(f"{self.base_url}/bases/{self.base_id}/webhooks")
        for webhook in result.get("webhooks", []):
            if webhook.get("isHookEnabled") and webhook.get("notificationUrl") == notification_url:
                return webhook.get("id")
        return None
