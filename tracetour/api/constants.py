"""API-related constants."""

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"
TRACE_ID_HEADER = "X-Trace-ID"
SPAN_ID_HEADER = "X-Span-ID"

# Content types
PROBLEM_JSON_CONTENT_TYPE = "application/problem+json"

# Problem type slugs, appended to Settings.problem_type_base
PROBLEM_VALIDATION = "validation"
PROBLEM_NOT_FOUND = "not-found"
PROBLEM_CONFLICT = "conflict"
PROBLEM_INTERNAL = "internal"
PROBLEM_CANCELLED = "cancelled"
PROBLEM_BAD_REQUEST = "bad-request"

# Non-standard status used when the client closed the connection
HTTP_499_CLIENT_CLOSED_REQUEST = 499

# Request state attribute holding the RequestContext
CONTEXT_STATE_KEY = "context"

INTERNAL_SERVER_ERROR_MESSAGE = "Internal Server Error"

# Returned verbatim when the recovery path itself fails
FALLBACK_PROBLEM_BODY = (
    b'{"type":"about:blank","title":"Internal Server Error","status":500,'
    b'"notify":true,"error":"Internal Server Error"}'
)
