"""Core infrastructure package for shared application functionality.

This package provides the cross-cutting components used by every layer:

- **config**: Centralized configuration management with environment support
- **context**: Immutable request context, correlation IDs and cancellation
- **exceptions**: Structured exception hierarchy with alerting semantics
- **error_context**: Sensitive data sanitization for safe logging
- **logging**: Structured, trace-correlated logging with Loguru
- **observability**: Distributed tracing with OpenTelemetry
- **types**: Type aliases for better code clarity
"""
