"""Main relay: wires credentials, reconciliation, notifications and the listener"""

import json
import logging
import threading
from datetime import datetime, timezone
from http.server import ThreadingHTTPServer
from typing import Any, Dict, List, Optional

import redis

from .airtable import AirtableWatchList
from .api.api_client import TwitchAPIClient, TwitchAuthClient
from .config import GoLiveConfig
from .core import constants
from .credentials import CredentialManager
from .errors import (
    AuthError,
    CredentialRejectedError,
    NotificationError,
    ReconcileError,
    StreamNotFoundError,
    TwitchAPIError,
    WatchListError,
)
from .notifier import DiscordNotifier, NotificationDeduplicator
from .server.server import create_server
from .subscriptions import ReconcileResult, SubscriptionReconciler
from .webhook import StreamOnlineNotification, WebhookAuthenticator

logger = logging.getLogger("golive.monitor")


class GoLiveRelay:
    """Relays Twitch go-live events for the Airtable watch list to Discord"""

    def __init__(self, config: GoLiveConfig, connect_redis: bool = True):
        self.config = config

        self.redis_client: Optional[redis.Redis] = None
        if connect_redis:
            self.redis_client = self._connect_redis()

        self.credentials = CredentialManager(
            TwitchAuthClient(config.client_id, config.client_secret), self.fatal
        )
        self.api_client = TwitchAPIClient(config.client_id, self.credentials)
        self.authenticator = WebhookAuthenticator(config.secret_key)
        self.reconciler = SubscriptionReconciler(
            self.api_client, config.secret_key, self.authenticator
        )
        self.watch_list = AirtableWatchList(
            config.airtable_api_key,
            config.airtable_base_id,
            config.airtable_table_name,
            on_fatal=self.fatal,
        )
        self.notifier = DiscordNotifier(
            config.discord_webhook, config.golive_message, NotificationDeduplicator()
        )

        self.server: Optional[ThreadingHTTPServer] = None
        self.running = False
        self._wakeup = threading.Event()
        self.fatal_error: Optional[Exception] = None
        self._reconcile_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self.stats: Dict[str, Any] = {
            "notifications_sent": 0,
            "reconciliations": 0,
            "last_reconcile_status": "never",
            "start_time": datetime.now(timezone.utc),
        }

    def _connect_redis(self) -> Optional[redis.Redis]:
        try:
            client = redis.Redis(
                host=self.config.redis_host,
                port=self.config.redis_port,
                username=self.config.redis_username,
                password=self.config.redis_password,
                db=self.config.redis_db,
                decode_responses=True,
                socket_connect_timeout=5,
            )
            client.ping()
            logger.info(
                f"Connected to Redis at {self.config.redis_host}:{self.config.redis_port}"
            )
            return client
        except redis.RedisError as e:
            logger.warning(f"Failed to connect to Redis: {e}. Heartbeat will be disabled.")
            return None

    def fatal(self, error: Exception) -> None:
        """Record an unrecoverable error and wake the main loop to exit"""
        logger.critical(f"Fatal error, shutting down: {error}", exc_info=error)
        self.fatal_error = error
        self.running = False
        self._wakeup.set()

    def authenticate(self) -> None:
        """Acquire the Twitch credential and keep it renewed"""
        credential = self.credentials.acquire(constants.TWITCH_DEFAULT_SCOPES)
        self.credentials.schedule_renewal(credential)

    def _reacquire_credential(self) -> None:
        """Replace a credential Twitch has rejected; failing that, shut down"""
        logger.warning("Twitch rejected the access token, requesting a new one")
        try:
            self.authenticate()
        except AuthError as e:
            self.fatal(e)

    def reconcile(self, usernames: Optional[List[str]] = None) -> ReconcileResult:
        """Reconcile against ``usernames`` or, if omitted, the current watch list.

        The watch list is read inside the same lock as the pass, so overlapping
        triggers apply in order and the last one always sees the newest list.

        Raises:
            WatchListError: The watch list could not be read
            ReconcileError: The pass failed against Twitch
        """
        with self._reconcile_lock:
            if usernames is None:
                usernames = self.watch_list.usernames()
            try:
                result = self.reconciler.reconcile(usernames, self.config.public_url)
            except ReconcileError:
                with self._stats_lock:
                    self.stats["last_reconcile_status"] = "failed"
                raise
        with self._stats_lock:
            self.stats["reconciliations"] += 1
            self.stats["last_reconcile_status"] = "ok"
        return result

    def refresh_subscriptions(self) -> None:
        """Re-read the watch list and reconcile; failures are logged, not raised"""
        try:
            self.reconcile()
        except (WatchListError, ReconcileError) as e:
            logger.error(f"Unable to update subscriptions: {e}")
            if isinstance(e.__cause__, CredentialRejectedError):
                self._reacquire_credential()

    def announce(self, notification: StreamOnlineNotification) -> None:
        """Fetch stream details for a go-live event and send the notification"""
        try:
            stream = self.api_client.get_stream(notification.broadcaster_user_id)
        except (StreamNotFoundError, TwitchAPIError) as e:
            logger.error(
                f"Error fetching stream info for {notification.broadcaster_user_name} "
                f"(uid: {notification.broadcaster_user_id}): {e}"
            )
            if isinstance(e, CredentialRejectedError):
                self._reacquire_credential()
            return

        try:
            if self.notifier.notify(stream):
                with self._stats_lock:
                    self.stats["notifications_sent"] += 1
        except NotificationError as e:
            logger.error(f"Unable to send webhook: {e}")

    def _update_heartbeat(self) -> None:
        """Update heartbeat in Redis"""
        if not self.redis_client:
            return

        try:
            now = datetime.now(timezone.utc)
            uptime = now - self.stats["start_time"]
            last_result = self.reconciler.last_result

            heartbeat_data = {
                "timestamp": now.isoformat(),
                "uptime_seconds": int(uptime.total_seconds()),
                "watched": len(last_result.monitored) if last_result else 0,
                "notifications_sent": self.stats["notifications_sent"],
                "reconciliations": self.stats["reconciliations"],
                "last_reconcile_status": self.stats["last_reconcile_status"],
                "api_calls": self.api_client.api_calls,
                "status": "running",
            }

            # Expire at 3x the interval so stale data is cleared
            self.redis_client.setex(
                constants.REDIS_KEY_HEARTBEAT,
                self.config.heartbeat_interval * 3,
                json.dumps(heartbeat_data),
            )
            logger.debug("Heartbeat updated")
        except redis.RedisError as e:
            logger.error(f"Error updating heartbeat: {e}")

    def start(self) -> None:
        """Start the relay and block until stopped.

        Raises:
            AuthError: The initial credential could not be acquired
            WatchListError: The Airtable webhook could not be registered
            Exception: Whatever fatal error stopped a renewal timer
        """
        logger.info("Starting go-live relay")
        self.running = True
        self.stats["start_time"] = datetime.now(timezone.utc)

        self.authenticate()
        self.watch_list.register_webhook(self.config.airtable_webhook_url)

        # A failed startup pass is retried by the next airtable webhook
        self.refresh_subscriptions()

        self.server = create_server(
            (self.config.bind_address, self.config.server_port),
            self,
            self.authenticator,
        )
        server_thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        server_thread.start()
        bind_info = self.config.bind_address or "all interfaces"
        logger.info(f"Server starting on {bind_info}:{self.config.server_port}")

        self._update_heartbeat()
        while self.running:
            self._wakeup.wait(self.config.heartbeat_interval)
            if self.running:
                self._update_heartbeat()

        if self.fatal_error is not None:
            raise self.fatal_error

    def stop(self) -> None:
        """Stop timers and the listener"""
        logger.info("Stopping go-live relay")
        self.running = False
        self._wakeup.set()

        self.credentials.stop()
        self.watch_list.stop()

        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None

        uptime = datetime.now(timezone.utc) - self.stats["start_time"]
        logger.info(
            f"Stats - Uptime: {uptime}, Notifications: {self.stats['notifications_sent']}, "
            f"Reconciliations: {self.stats['reconciliations']}, API calls: {self.api_client.api_calls}"
        )
