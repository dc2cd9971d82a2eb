#!/usr/bin/env python3
"""
Twitch Go-Live Relay - Main Entry Point

Keeps Twitch EventSub stream.online subscriptions in sync with an Airtable
watch list and posts a Discord message whenever a watched channel goes live.
"""

import argparse
import glob
import logging
import os
import sys
import time
from logging.handlers import RotatingFileHandler
from typing import List

from .config import GoLiveConfig, load_env_file, validate_environment
from .core import constants
from .monitor import GoLiveRelay

logger = logging.getLogger("golive")


def configure_logging() -> None:
    """Log to stdout, plus a rotating file when GOLIVE_LOG_FILE is set"""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if os.environ.get("GOLIVE_LOG_FILE"):
        max_bytes = int(
            os.environ.get("GOLIVE_LOG_MAX_BYTES", constants.LOG_MAX_BYTES_DEFAULT)
        )
        backup_count = int(
            os.environ.get("GOLIVE_LOG_BACKUP_COUNT", constants.LOG_BACKUP_COUNT_DEFAULT)
        )
        handlers.append(
            RotatingFileHandler(
                os.environ["GOLIVE_LOG_FILE"],
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
        )

    logging.basicConfig(
        level=logging.DEBUG if os.environ.get("GOLIVE_DEBUG") else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def cleanup_old_logs(log_dir: str, max_age_days: int = constants.LOG_RETENTION_DAYS) -> int:
    """
    Delete log files older than the specified number of days

    Args:
        log_dir: Directory containing log files
        max_age_days: Maximum age of log files in days (default: 7)

    Returns:
        Number of files deleted
    """
    if not os.path.exists(log_dir):
        return 0

    now = time.time()
    max_age_seconds = max_age_days * 86400

    log_patterns = [os.path.join(log_dir, "*.log"), os.path.join(log_dir, "*.log.*")]

    deleted_count = 0
    for pattern in log_patterns:
        for log_file in glob.glob(pattern):
            try:
                file_age = now - os.path.getmtime(log_file)
                if file_age > max_age_seconds:
                    os.remove(log_file)
                    logger.info(
                        f"Deleted old log file: {log_file} (age: {file_age / 86400:.1f} days)"
                    )
                    deleted_count += 1
            except OSError as e:
                logger.warning(f"Failed to delete log file {log_file}: {e}")

    if deleted_count > 0:
        logger.info(f"Cleaned up {deleted_count} old log file(s)")
    return deleted_count


def main() -> None:
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="Twitch Go-Live Relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  TWITCH_CLIENT_ID          Twitch application client id (required)
  TWITCH_CLIENT_SECRET      Twitch application client secret (required)
  SECRETKEY                 EventSub signing secret (required)
  PUBLIC_URL                Public https base URL of this service (required)
  DISCORD_WEBHOOK           Discord webhook URL for notifications (required)
  AIRTABLE_API_KEY          Airtable access token (required)
  AIRTABLE_BASE_ID          Airtable base holding the watch list (required)
  AIRTABLE_TABLE_NAME       Airtable table with a 'Twitch Account' column (required)
  GOLIVE_MESSAGE            Message template ({channel_name}, {game}, {channel_url})
  PORT                      Port for the HTTP listener (default: 3000)
  BIND_ADDRESS              Bind address for the HTTP listener (default: all interfaces)
  REDIS_HOST                Redis host for heartbeat monitoring (default: localhost)
  REDIS_PORT                Redis port (default: 6379)
  REDIS_USERNAME            Redis username for ACL (optional, requires Redis 6+)
  REDIS_PASSWORD            Redis password if required (optional)
  REDIS_DB                  Redis database number (default: 0)
  GOLIVE_HEARTBEAT_INTERVAL Heartbeat update interval in seconds (default: 30)
  GOLIVE_LOG_FILE           Path to log file (optional, logs to stdout if not set)
  GOLIVE_LOG_MAX_BYTES      Max log file size in bytes before rotation (default: 10485760 = 10MB)
  GOLIVE_LOG_BACKUP_COUNT   Number of backup log files to keep (default: 5)
  GOLIVE_LOG_RETENTION_DAYS Number of days to keep old log files (default: 7)
  GOLIVE_DEBUG              Enable debug logging when set

Example:
  export TWITCH_CLIENT_ID="xxxxxxxxxxxxxxxx"
  export PUBLIC_URL="https://golive.example.com/"
  python -m golive
        """,
    )

    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate environment variables and exit",
    )
    parser.add_argument(
        "--subscribe-only",
        action="store_true",
        help="Reconcile EventSub subscriptions with the watch list and exit",
    )
    parser.add_argument(
        "--unsubscribe",
        action="store_true",
        help="Delete every EventSub subscription owned by this service and exit",
    )

    args = parser.parse_args()

    load_env_file(os.path.join(os.getcwd(), ".env"))
    configure_logging()

    if os.environ.get("GOLIVE_LOG_FILE"):
        log_dir = os.path.dirname(os.path.abspath(os.environ["GOLIVE_LOG_FILE"]))
        retention = int(
            os.environ.get("GOLIVE_LOG_RETENTION_DAYS", constants.LOG_RETENTION_DAYS)
        )
        cleanup_old_logs(log_dir, retention)

    if args.validate:
        is_valid, missing = validate_environment(show_details=True)
        sys.exit(0 if is_valid else 1)

    try:
        is_valid, missing = validate_environment(show_details=False)
        if not is_valid:
            logger.error(
                f"Environment validation failed. Missing: {', '.join(missing)}"
            )
            logger.error("Run with --validate flag for detailed information")
            sys.exit(1)

        config = GoLiveConfig(validate=False)  # Already validated above

        if args.subscribe_only or args.unsubscribe:
            relay = GoLiveRelay(config, connect_redis=False)
            relay.authenticate()
            try:
                result = relay.reconcile([] if args.unsubscribe else None)
            finally:
                relay.credentials.stop()
            logger.info(
                f"Subscriptions updated: {len(result.created)} created, "
                f"{len(result.deleted)} deleted"
            )
            return

        relay = GoLiveRelay(config)

        try:
            relay.start()
        except KeyboardInterrupt:
            logger.info("Shutting down...")
        finally:
            relay.stop()

    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
