"""Middleware chain.

Requests pass through, outermost first:

1. ``RequestContextMiddleware``: request context, correlation ID, root span,
   cancellation on client disconnect, trace headers on every response
2. ``RecoveryMiddleware``: turns any unhandled failure into one 500 problem
3. ``LoggerMiddleware``: binds a request-scoped logger into the context
4. ``RequestLoggingMiddleware``: request started/completed/slow logging
5. ``RepositoryLocatorMiddleware``: binds the repository locator
6. ``TracedCORSMiddleware``: CORS, inside a ``middleware.cors`` span

Exception handlers (``error_handler``) sit inside the chain, so the responses
they build still pass every middleware on the way out.
"""
