"""Application constants and configuration defaults"""

# Twitch API Configuration
TWITCH_OAUTH_TOKEN_URL = "https://id.twitch.tv/oauth2/token"
TWITCH_HELIX_BASE_URL = "https://api.twitch.tv/helix"
TWITCH_CHANNEL_URL_TEMPLATE = "https://www.twitch.tv/{}"
TWITCH_DEFAULT_SCOPES = ["user:read:email"]
TWITCH_USERS_PER_REQUEST = 100  # Helix limit on login= params

# EventSub Configuration
EVENTSUB_TYPE_STREAM_ONLINE = "stream.online"
EVENTSUB_VERSION_STREAM_ONLINE = "1"
EVENTSUB_TRANSPORT_METHOD = "webhook"
EVENTSUB_CALLBACK_PATH = "webhook/callbacks"

# EventSub Header Names
HEADER_MESSAGE_ID = "Twitch-Eventsub-Message-Id"
HEADER_MESSAGE_TIMESTAMP = "Twitch-Eventsub-Message-Timestamp"
HEADER_MESSAGE_SIGNATURE = "Twitch-Eventsub-Message-Signature"
HEADER_MESSAGE_TYPE = "Twitch-Eventsub-Message-Type"
SIGNATURE_PREFIX = "sha256="

# EventSub Message Types
MESSAGE_TYPE_NOTIFICATION = "notification"
MESSAGE_TYPE_VERIFICATION = "webhook_callback_verification"
MESSAGE_TYPE_REVOCATION = "revocation"

# Airtable Configuration
AIRTABLE_API_BASE_URL = "https://api.airtable.com/v0"
AIRTABLE_TWITCH_FIELD = "Twitch Account"
AIRTABLE_WEBHOOK_PATH = "webhook/airtable"

# Discord Configuration
DISCORD_REQUEST_TIMEOUT = 30  # seconds
DEFAULT_GOLIVE_MESSAGE = """Look alive, mateys! {channel_name} is playing {game}
Channel URL: {channel_url}

Go give them some love!"""

# Redis Configuration
REDIS_DEFAULT_HOST = "localhost"
REDIS_DEFAULT_PORT = 6379
REDIS_DEFAULT_DB = 0
REDIS_KEY_HEARTBEAT = "golive:heartbeat"

# HTTP Server Configuration
DEFAULT_PORT = 3000

# API Request Configuration
API_REQUEST_TIMEOUT = 10  # seconds
RATE_LIMIT_WARNING_THRESHOLD = 50  # remaining points in the current bucket

# Heartbeat Configuration
HEARTBEAT_INTERVAL_DEFAULT = 30  # seconds

# Logging Configuration
LOG_RETENTION_DAYS = 7
LOG_MAX_BYTES_DEFAULT = 10 * 1024 * 1024
LOG_BACKUP_COUNT_DEFAULT = 5
