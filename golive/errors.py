"""Exception hierarchy for the go-live relay"""

from typing import Optional


class GoLiveError(Exception):
    """Base class for all relay errors"""


class AuthError(GoLiveError):
    """Twitch credential could not be acquired or refreshed.

    Fatal: without a valid credential every subscription operation fails.
    """


class TwitchAPIError(GoLiveError):
    """Helix returned a non-success response"""

    def __init__(self, status: int, message: str):
        super().__init__(f"Twitch API error {status}: {message}")
        self.status = status
        self.message = message


class CredentialRejectedError(TwitchAPIError):
    """Helix rejected the active credential (401)"""


class StreamNotFoundError(GoLiveError):
    """No live stream was returned for a broadcaster"""


class ReconcileError(GoLiveError):
    """A reconciliation pass failed part way through"""

    def __init__(
        self,
        message: str,
        login: Optional[str] = None,
        broadcaster_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.login = login
        self.broadcaster_id = broadcaster_id


class WatchListError(GoLiveError):
    """The Airtable watch list could not be read or its webhook registered"""


class NotificationError(GoLiveError):
    """Posting to the Discord webhook failed"""


class MalformedPayload(GoLiveError):
    """An inbound EventSub body does not match the expected envelope"""
