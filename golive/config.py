"""Configuration management for golive"""

import logging
import os
from typing import List, Tuple

from .core import constants

logger = logging.getLogger("golive.config")

REQUIRED_VARS = {
    "TWITCH_CLIENT_ID": "Twitch application client id from https://dev.twitch.tv/console/apps",
    "TWITCH_CLIENT_SECRET": "Twitch application client secret",
    "SECRETKEY": "Secret used to sign EventSub deliveries (10-100 characters)",
    "PUBLIC_URL": "Public https base URL this service is reachable at (e.g., https://example.com/)",
    "DISCORD_WEBHOOK": "Discord webhook URL go-live messages are posted to",
    "AIRTABLE_API_KEY": "Airtable personal access token",
    "AIRTABLE_BASE_ID": "Airtable base id holding the watch list (format: appxxxxxxxxxxxxxx)",
    "AIRTABLE_TABLE_NAME": "Airtable table with a 'Twitch Account' column",
}

OPTIONAL_VARS = {
    "GOLIVE_MESSAGE": "Message template using {channel_name}, {game}, {channel_url}",
    "PORT": f"Port for the HTTP listener (default: {constants.DEFAULT_PORT})",
    "BIND_ADDRESS": "Address to bind the HTTP listener to (default: empty = all interfaces)",
    "REDIS_HOST": "Redis host for heartbeat monitoring (default: localhost)",
    "REDIS_PORT": "Redis port (default: 6379)",
    "REDIS_USERNAME": "Redis username for ACL (optional, requires Redis 6+)",
    "REDIS_PASSWORD": "Redis password if required (optional)",
    "REDIS_DB": "Redis database number (default: 0)",
    "GOLIVE_HEARTBEAT_INTERVAL": "Seconds between heartbeat updates (default: 30)",
    "GOLIVE_LOG_FILE": "Path to log file (optional, logs to stdout if not set)",
}


def load_env_file(env_path: str) -> None:
    """Load environment variables from .env file if it exists"""
    if not os.path.exists(env_path):
        return

    logger.info(f"Loading environment variables from {env_path}")

    with open(env_path, "r") as f:
        for line in f:
            line = line.strip()
            # Skip comments and empty lines
            if not line or line.startswith("#"):
                continue

            if "=" in line:
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")

                # Only set if not already in environment
                if key and value and key not in os.environ:
                    os.environ[key] = value


def _display_value(var: str, value: str) -> str:
    if "SECRET" in var or "KEY" in var or "PASSWORD" in var or "WEBHOOK" in var:
        return "*" * min(len(value), 20)
    return value[:50] + ("..." if len(value) > 50 else "")


def validate_environment(show_details: bool = True) -> Tuple[bool, List[str]]:
    """
    Validate required and optional environment variables

    Args:
        show_details: If True, print detailed validation results

    Returns:
        Tuple of (is_valid, missing_vars)
    """
    missing_required = []

    if show_details:
        print("\n=== Environment Variable Validation ===\n")
        print("REQUIRED Variables:")

    for var, description in REQUIRED_VARS.items():
        value = os.getenv(var)
        if not value:
            missing_required.append(var)

        if show_details:
            if value:
                print(f"  ✓ {var} = {_display_value(var, value)}")
            else:
                print(f"  ✗ {var} (MISSING)")
            print(f"    → {description}")

    if show_details:
        print("\nOPTIONAL Variables:")
        for var, description in OPTIONAL_VARS.items():
            value = os.getenv(var)
            if value:
                print(f"  ✓ {var} = {_display_value(var, value)}")
            else:
                print(f"  ○ {var} (using default)")
            print(f"    → {description}")

        print()
        if missing_required:
            print(f"✗ Missing {len(missing_required)} required variable(s)")
        else:
            print("✓ All required environment variables are set!")

    return not missing_required, missing_required


class GoLiveConfig:
    """Configuration for the Twitch, Airtable and Discord integrations"""

    def __init__(self, validate: bool = True):
        """
        Initialize configuration from environment variables

        Args:
            validate: If True, validate environment before loading config
        """
        if validate:
            is_valid, missing = validate_environment(show_details=False)
            if not is_valid:
                raise ValueError(
                    f"Missing required environment variables: {', '.join(missing)}. "
                    "Run with --validate flag to see details."
                )

        self.client_id = os.getenv("TWITCH_CLIENT_ID", "")
        self.client_secret = os.getenv("TWITCH_CLIENT_SECRET", "")
        self.secret_key = os.getenv("SECRETKEY", "")
        self.discord_webhook = os.getenv("DISCORD_WEBHOOK", "")
        self.golive_message = os.getenv("GOLIVE_MESSAGE", "") or constants.DEFAULT_GOLIVE_MESSAGE
        if "{{." in self.golive_message:
            logger.warning(
                "GOLIVE_MESSAGE looks like a {{.Field}} template; use {channel_name}, "
                "{game} and {channel_url} instead or the placeholders will be posted as text"
            )

        self.airtable_api_key = os.getenv("AIRTABLE_API_KEY", "")
        self.airtable_base_id = os.getenv("AIRTABLE_BASE_ID", "")
        self.airtable_table_name = os.getenv("AIRTABLE_TABLE_NAME", "")

        public_url = os.getenv("PUBLIC_URL", "")
        if public_url and not public_url.endswith("/"):
            public_url += "/"
        if public_url and not public_url.startswith("https://"):
            logger.warning(
                f"PUBLIC_URL {public_url} is not https; Twitch will refuse to deliver to it"
            )
        self.public_url = public_url

        # Validate and set server port
        server_port = int(os.getenv("PORT", str(constants.DEFAULT_PORT)))
        if not (1 <= server_port <= 65535):
            raise ValueError(f"Invalid port number: {server_port}. Must be between 1-65535")
        self.server_port = server_port
        self.bind_address = os.getenv("BIND_ADDRESS", "")

        # Redis configuration for heartbeat
        self.redis_host = os.getenv("REDIS_HOST", constants.REDIS_DEFAULT_HOST)
        self.redis_port = int(os.getenv("REDIS_PORT", str(constants.REDIS_DEFAULT_PORT)))
        self.redis_username = os.getenv("REDIS_USERNAME", "") or None
        self.redis_password = os.getenv("REDIS_PASSWORD", "") or None
        self.redis_db = int(os.getenv("REDIS_DB", str(constants.REDIS_DEFAULT_DB)))
        self.heartbeat_interval = int(
            os.getenv("GOLIVE_HEARTBEAT_INTERVAL", str(constants.HEARTBEAT_INTERVAL_DEFAULT))
        )

        # Final safety checks
        if not self.secret_key:
            raise ValueError("SECRETKEY environment variable is required")
        if not self.public_url:
            raise ValueError("PUBLIC_URL environment variable is required")

    @property
    def callback_url(self) -> str:
        return f"{self.public_url}{constants.EVENTSUB_CALLBACK_PATH}"

    @property
    def airtable_webhook_url(self) -> str:
        return f"{self.public_url}{constants.AIRTABLE_WEBHOOK_PATH}"
