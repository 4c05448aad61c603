"""Shared constants for EventDesk.

All size limits, batch caps and rate-limit defaults used across modules are
defined here. No magic numbers in other modules — import from here.
"""

# ─── Key Generation ───────────────────────────────────────────────────────────

# Inclusive bounds on the quantity accepted by a single generate call.
MIN_KEYS_PER_BATCH: int = 1
MAX_KEYS_PER_BATCH: int = 1000

# Length of the random middle segment of an access key code.
KEY_RANDOM_LENGTH: int = 6

# Alphabet for the random segment. Excludes the visually ambiguous 0/O, 1/I/l.
# 57 symbols ** 6 positions ≈ 3.4e10 combinations.
KEY_CODE_ALPHABET: str = (
    "23456789"
    "ABCDEFGHJKLMNPQRSTUVWXYZ"
    "abcdefghijkmnopqrstuvwxyz"
)

# Width of the event prefix and sport code segments, and their filler char.
EVENT_PREFIX_LENGTH: int = 2
SPORT_CODE_LENGTH: int = 3
CODE_FILLER_CHAR: str = "X"

# Maximum regeneration attempts when the store reports a duplicate code.
MAX_CODE_GENERATION_ATTEMPTS: int = 5

# ─── Text Field Limits ────────────────────────────────────────────────────────

MAX_ID_LENGTH: int = 64
MAX_SPORT_NAME_LENGTH: int = 100
MAX_SPORT_EMOJI_LENGTH: int = 16
MAX_EVENT_NAME_LENGTH: int = 120
MAX_LOCATION_LENGTH: int = 200
MAX_FILENAME_LENGTH: int = 255

# ─── Upload Limits ────────────────────────────────────────────────────────────

# Ceiling on decoded logo size (5 MiB).
MAX_LOGO_BYTES: int = 5 * 1024 * 1024

# Allowed image extensions (final extension only).
ALLOWED_IMAGE_EXTENSIONS: frozenset[str] = frozenset({"png", "jpg", "jpeg", "webp"})

# Sponsor logos per event.
MAX_SPONSOR_LOGOS: int = 5

# Upper bound on an event's participant count.
MAX_PARTICIPANTS: int = 100_000

# ─── Rate Limiting ────────────────────────────────────────────────────────────
# Rate strings use the `limits` notation ("<amount>/<granularity>").

DEFAULT_RATE_LIMIT: str = "60/minute"
STRICT_RATE_LIMIT: str = "10/minute"
LENIENT_RATE_LIMIT: str = "120/minute"
UPLOAD_RATE_LIMIT: str = "5/minute"

# Background sweep of expired rate-limit entries; independent of window length.
RATE_LIMIT_SWEEP_INTERVAL_SECONDS: float = 5 * 60

# Bucket used when the client identifier cannot be resolved.
UNKNOWN_CLIENT: str = "unknown"

# ─── Key List Invalidation ────────────────────────────────────────────────────

# Maximum number of events whose key-list generation counters are retained.
KEY_LIST_GENERATIONS_MAXSIZE: int = 256

# ─── Timezone Lookup ──────────────────────────────────────────────────────────

TIMEZONE_API_URL: str = "https://maps.googleapis.com/maps/api/timezone/json"

# Outbound request timeout (seconds) for the timezone API.
TIMEZONE_HTTP_TIMEOUT: float = 10.0

# Resolved timezones are reused for an hour, keyed by coordinates at 4 decimals.
TIMEZONE_CACHE_TTL_SECONDS: float = 60 * 60
TIMEZONE_CACHE_MAXSIZE: int = 512
TIMEZONE_COORDINATE_PRECISION: int = 4
