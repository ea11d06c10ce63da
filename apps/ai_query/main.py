"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logging.basicConfig(level=logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from apps.ai_query.config import config
from apps.ai_query.db import ensure_tables
from apps.ai_query.routes import cache, chat, health, query
from apps.ai_query.services.auth import auth_middleware
from apps.ai_query.services.query import QueryError

logger = logging.getLogger(__name__)

# CORS: allow only specified origins (no wildcard).
# Env: CORS_ALLOW_ORIGINS="https://endmill.example.com,http://localhost:3000" (comma-separated).
CORS_DEFAULT_ORIGINS = ["http://localhost:3000"]
CORS_ORIGINS = config.CORS_ALLOW_ORIGINS or CORS_DEFAULT_ORIGINS


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create service tables on SQLite/dev databases; Postgres is migrated by Alembic."""
    ensure_tables()
    yield


app = FastAPI(
    title="Endmill AI Query API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(CORSMiddleware, allow_origins=CORS_ORIGINS, allow_methods=["*"], allow_headers=["*"])
app.middleware("http")(auth_middleware)


def _error(status_code: int, error: str, code: str, details=None, headers=None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "code": code, "details": details, **extra},
        headers=headers,
    )


@app.exception_handler(QueryError)
async def query_error_handler(request: Request, exc: QueryError) -> JSONResponse:
    if exc.code == "RATE_LIMITED" and exc.rate_limit is not None:
        return _error(
            429,
            exc.message,
            exc.code,
            exc.details,
            headers=exc.rate_limit.headers(),
            reset_at=exc.rate_limit.reset_at_iso(),
        )
    return _error(exc.status_code, exc.message, exc.code, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return _error(400, "Invalid request.", "VALIDATION_ERROR", details)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Dependencies raise HTTPException with an {error, code, details} dict; anything else is wrapped."""
    if isinstance(exc.detail, dict) and "code" in exc.detail:
        return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)
    return _error(exc.status_code, str(exc.detail), "HTTP_ERROR", headers=exc.headers)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "An unexpected error occurred.", "UNEXPECTED_ERROR")


app.include_router(health.router, tags=["health"])
app.include_router(query.router, prefix="/ai/query", tags=["query"])
app.include_router(chat.router, prefix="/ai/chat", tags=["chat"])
app.include_router(cache.router, prefix="/ai/cache", tags=["cache"])
