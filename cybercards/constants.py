"""True constants - unit conversions and fixed protocol values.

These are fundamental constants that should never need to be changed.
For developer-configurable values, see config.py.

Guidelines:
- Only include truly immutable values (unit conversions, wire identifiers)
- Use SCREAMING_SNAKE_CASE for constant names
- Include units in the constant name (e.g., _SECONDS, _MS)
"""

# =============================================================================
# Time Constants (Base Units)
# =============================================================================

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 60 * SECONDS_PER_MINUTE
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR

MS_PER_SECOND = 1000
MS_PER_DAY = SECONDS_PER_DAY * MS_PER_SECOND

# =============================================================================
# KV Namespaces (first segment of every key)
# =============================================================================

CARDS_NAMESPACE = "cards"
USERS_NAMESPACE = "users"
SESSIONS_NAMESPACE = "sessions"

# =============================================================================
# Broadcast Event Types
# =============================================================================

EVENT_KV_SET = "kv:set"
EVENT_KV_DELETE = "kv:delete"
EVENT_KV_VALUE = "kv:value"  # current value of a watched key
EVENT_CONNECTED = "connected"

# Schema version written into every new card's metadata
CARD_SCHEMA_VERSION = "1.0"
