from __future__ import annotations

from fastapi import FastAPI

from app.api.routes import accounts, status
from app.core.exceptions import global_exception_handler
from app.core.lifespan import lifespan
from app.core.middleware import OpenCorsMiddleware, RequestLoggingMiddleware

app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_exception_handler(Exception, global_exception_handler)

# Add middleware; the last one added wraps the others, so every response gets logged.
app.add_middleware(OpenCorsMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(accounts.router, tags=["accounts"])
# Registered last: it matches every path.
app.include_router(status.router, tags=["status"])
