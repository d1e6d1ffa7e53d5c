"""Type aliases shared across the application."""

# Attribute values accepted by OpenTelemetry spans
type SpanAttributeValue = str | int | float | bool
