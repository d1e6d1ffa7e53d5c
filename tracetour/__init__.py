"""TraceTour - an observability walkthrough built around a tiny user service.

TraceTour exposes a handful of HTTP endpoints (create/read/list users backed
by PostgreSQL with a Redis read-through cache) and instruments every layer of
the request path so traces, logs and error responses line up.

Architecture Overview:
- **API Layer**: FastAPI routes and the request middleware chain
- **Core Layer**: Configuration, request context, logging, tracing, errors
- **Domain Layer**: The User entity and the repository ports
- **Use Case Layer**: Cache-aside orchestration of one operation per call
- **Infrastructure Layer**: SQLAlchemy/Redis adapters and tracing decorators

Every request carries an immutable RequestContext from the outermost
middleware down to the repositories, and any unexpected failure is turned
into exactly one well-formed problem response by the recovery middleware.
"""
