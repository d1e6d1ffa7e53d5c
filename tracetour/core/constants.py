"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000

# Security and redaction
REDACTED = "[REDACTED]"

# Cache behaviour (fixed, not configurable)
CACHE_TTL_SECONDS = 300  # 5 minutes
USER_CACHE_KEY_PREFIX = "user:"

# Store behaviour (fixed, not configurable)
FIND_ALL_LIMIT = 100

# Log layers used for trace-correlated log entries
LAYER_HANDLER = "handler"
LAYER_USECASE = "usecase"
LAYER_REPOSITORY = "repository"
LAYER_MIDDLEWARE = "middleware"
