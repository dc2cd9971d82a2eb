"""Twitch OAuth and Helix API clients"""

import logging
import threading
from typing import Any, Dict, List, Optional

import requests

from ..core import constants
from ..errors import (
    AuthError,
    CredentialRejectedError,
    StreamNotFoundError,
    TwitchAPIError,
)

logger = logging.getLogger("golive.api_client")


class TwitchAuthClient:
    """Obtains app access tokens from the Twitch OAuth endpoint"""

    def __init__(self, client_id: str, client_secret: str):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = constants.TWITCH_OAUTH_TOKEN_URL
        self.session = requests.Session()

    def request_app_token(self, scopes: List[str]) -> Dict[str, Any]:
        """Run a client-credentials grant and return the token response"""
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "client_credentials",
        }
        if scopes:
            data["scope"] = " ".join(scopes)
        return self._post_token(data, "request app token")

    def refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        """Exchange a refresh token for a new token response.

        App tokens from the client-credentials grant carry no refresh token;
        for those a new grant is the only way to renew.
        """
        if not refresh_token:
            logger.info("No refresh token on credential, requesting a new app token")
            return self.request_app_token(constants.TWITCH_DEFAULT_SCOPES)

        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return self._post_token(data, "refresh token")

    def _post_token(self, data: Dict[str, str], action: str) -> Dict[str, Any]:
        try:
            response = self.session.post(
                self.token_url, data=data, timeout=constants.API_REQUEST_TIMEOUT
            )
        except requests.RequestException as e:
            raise AuthError(f"Unable to {action}: {e}") from e

        if response.status_code != 200:
            raise AuthError(
                f"Unable to {action}: HTTP {response.status_code} {response.text}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthError(f"Unable to {action}: invalid JSON response") from e

        if not payload.get("access_token"):
            raise AuthError(f"Unable to {action}: no access_token in response")
        return payload


class TwitchAPIClient:
    """Client for the Twitch Helix API.

    Every request reads the active token from ``credentials`` at call time so
    that a renewed credential is picked up without restarting anything.
    """

    def __init__(self, client_id: str, credentials: "CredentialManager"):
        self.client_id = client_id
        self.credentials = credentials
        self.base_url = constants.TWITCH_HELIX_BASE_URL
        self.session = requests.Session()
        self._stats_lock = threading.Lock()
        self.api_calls = 0
        self.rate_limit_remaining: Optional[int] = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Client-Id": self.client_id,
            "Authorization": f"Bearer {self.credentials.access_token}",
        }

    def _record_api_call(self, response: requests.Response) -> None:
        """Track call count and the rate limit bucket reported by Helix"""
        with self._stats_lock:
            self.api_calls += 1
            remaining = response.headers.get("Ratelimit-Remaining")
            if remaining is None:
                return
            try:
                self.rate_limit_remaining = int(remaining)
            except ValueError:
                return

        if self.rate_limit_remaining < constants.RATE_LIMIT_WARNING_THRESHOLD:
            logger.warning(
                f"Twitch API rate limit low: {self.rate_limit_remaining} points remaining"
            )

    def _request(
        self,
        method: str,
        path: str,
        params: Any = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        url = f"{self.base_url}/{path}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._headers(),
                timeout=constants.API_REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise TwitchAPIError(0, f"{method} /{path} failed: {e}") from e

        self._record_api_call(response)
        self._handle_api_response(response)
        return response

    def _handle_api_response(self, response: requests.Response) -> None:
        """Raise for error responses, separating rejected credentials"""
        if response.status_code < 400:
            return

        try:
            message = response.json().get("message", response.text)
        except ValueError:
            message = response.text

        if response.status_code == 401:
            logger.error(f"Twitch rejected the access token: {message}")
            raise CredentialRejectedError(response.status_code, message)
        raise TwitchAPIError(response.status_code, message)

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        """Decode a success body, keeping bad payloads inside TwitchAPIError"""
        try:
            data = response.json()
        except ValueError as e:
            raise TwitchAPIError(response.status_code, f"invalid JSON in response: {e}") from e
        if not isinstance(data, dict):
            raise TwitchAPIError(response.status_code, "response body is not a JSON object")
        return data

    def get_users(self, logins: List[str]) -> List[Dict[str, Any]]:
        """Look up users by login, batching to the Helix limit"""
        users: List[Dict[str, Any]] = []
        step = constants.TWITCH_USERS_PER_REQUEST
        for start in range(0, len(logins), step):
            batch = logins[start : start + step]
            params = [("login", login) for login in batch]
            response = self._request("GET", "users", params=params)
            users.extend(self._json(response).get("data", []))
        return users

    def get_eventsub_subscriptions(self) -> List[Dict[str, Any]]:
        """Fetch every EventSub subscription on the account, following pagination"""
        subscriptions: List[Dict[str, Any]] = []
        cursor: Optional[str] = None

        while True:
            params = {"after": cursor} if cursor else None
            data = self._json(self._request("GET", "eventsub/subscriptions", params=params))
            subscriptions.extend(data.get("data", []))
            cursor = data.get("pagination", {}).get("cursor")
            if not cursor:
                return subscriptions

    def create_eventsub_subscription(
        self, broadcaster_id: str, callback: str, secret: str
    ) -> Dict[str, Any]:
        """Create a stream.online webhook subscription for one broadcaster"""
        body = {
            "type": constants.EVENTSUB_TYPE_STREAM_ONLINE,
            "version": constants.EVENTSUB_VERSION_STREAM_ONLINE,
            "condition": {"broadcaster_user_id": broadcaster_id},
            "transport": {
                "method": constants.EVENTSUB_TRANSPORT_METHOD,
                "callback": callback,
                "secret": secret,
            },
        }
        data = self._json(
            self._request("POST", "eventsub/subscriptions", json_body=body)
        )
        created = data.get("data", [])
        if not created:
            raise TwitchAPIError(202, "subscription response contained no data")
        return created[0]

    def delete_eventsub_subscription(self, subscription_id: str) -> None:
        self._request("DELETE", "eventsub/subscriptions", params={"id": subscription_id})

    def get_stream(self, user_id: str) -> Dict[str, Any]:
        """Get the current live stream for a broadcaster.

        Raises:
            StreamNotFoundError: Twitch has no live stream for the user (yet)
        """
        data = self._json(self._request("GET", "streams", params={"user_id": user_id}))
        streams = data.get("data", [])
        if not streams:
            raise StreamNotFoundError(f"No stream returned for uid: {user_id}")
        return streams[0]
