"""HTTP API layer built on FastAPI.

Key components:
- **main**: Application factory and lifespan
- **middleware**: Request context, panic recovery, logging, repository
  injection and CORS, each traced
- **routers**: Health, user and demo endpoints
- **schemas**: Request/response models and RFC 9457 problem details
- **utils**: orjson-backed response classes
"""
