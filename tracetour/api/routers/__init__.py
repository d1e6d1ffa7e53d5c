"""HTTP routers: health check, user CRUD and observability demo endpoints."""
