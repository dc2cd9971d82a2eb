"""Twitch access credential lifecycle: acquire once, renew forever"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .core.scheduler import RenewalTimer
from .errors import AuthError

logger = logging.getLogger("golive.credentials")


@dataclass(frozen=True)
class Credential:
    """A Twitch OAuth token set as returned by the token endpoint"""

    access_token: str
    refresh_token: str
    expires_in: int

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "Credential":
        try:
            expires_in = int(data.get("expires_in", 0))
        except (TypeError, ValueError) as e:
            raise AuthError(f"Invalid expires_in in token response: {e}") from e
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires_in=expires_in,
        )


class CredentialManager:
    """Holds the active credential and keeps it renewed.

    The credential is replaced as a whole under a lock, so readers on request
    threads always see either the old or the new token, never a mix. Renewal
    fires ``expires_in`` seconds after each acquisition and re-arms itself from
    the fresh response. A failed refresh is passed to ``on_fatal``.
    """

    def __init__(
        self,
        auth_client: "TwitchAuthClient",
        on_fatal: Callable[[Exception], None],
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.auth_client = auth_client
        self._lock = threading.Lock()
        self._credential: Optional[Credential] = None
        self.renewals = 0
        self._timer = RenewalTimer(
            "twitch credential", self._renew, on_fatal, timer_factory
        )

    @property
    def current(self) -> Optional[Credential]:
        with self._lock:
            return self._credential

    @property
    def access_token(self) -> str:
        credential = self.current
        if credential is None:
            raise AuthError("No Twitch credential has been acquired")
        return credential.access_token

    def acquire(self, scopes: List[str]) -> Credential:
        """Request a fresh app credential and make it the active one"""
        logger.info("Requesting Twitch app access token")
        credential = Credential.from_response(self.auth_client.request_app_token(scopes))
        self._install(credential)
        return credential

    def refresh(self, refresh_token: str) -> Credential:
        """Exchange ``refresh_token`` for a new credential and install it"""
        logger.info("Refreshing Twitch client token")
        credential = Credential.from_response(
            self.auth_client.refresh_token(refresh_token)
        )
        self._install(credential)
        with self._lock:
            self.renewals += 1
        return credential

    def schedule_renewal(self, credential: Credential) -> None:
        logger.info(
            f"Scheduling refreshing twitch client token in {credential.expires_in} seconds"
        )
        self._timer.start(credential.expires_in)

    def stop(self) -> None:
        self._timer.cancel()

    def _install(self, credential: Credential) -> None:
        with self._lock:
            self._credential = credential

    def _renew(self) -> float:
        current = self.current
        refresh_token = current.refresh_token if current else ""
        credential = self.refresh(refresh_token)
        logger.info(
            f"Scheduling refreshing twitch client token in {credential.expires_in} seconds"
        )
        return credential.expires_in
