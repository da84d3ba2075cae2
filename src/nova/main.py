"""
NOVA - FastAPI Main Application

Entry point for the voice assistant API server.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from nova import __version__
from nova.core.config import config
from nova.core.error_handling import get_error_handler
from nova.core.logging_config import configure_logging
from nova.core.security import SecurityConfig, get_security_headers, limiter
from nova.api.auth import router as auth_router
from nova.api.users import router as users_router
from nova.api.websocket import voice_websocket
from nova.services.database import db
from nova.services.llm import close_llm_service

# Configure unified structured logging
configure_logging()
logger = structlog.get_logger()


def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(
        "rate_limit_exceeded",
        client_ip=get_remote_address(request),
        path=request.url.path,
        limit=str(exc.detail)
    )
    return JSONResponse(
        status_code=429,
        content={"message": "Rate limit exceeded. Please try again later."},
        headers=get_security_headers()
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager

    Validates configuration on startup; closes the database and the LLM
    client on shutdown.
    """
    logger.info("nova.startup", version=app.version)

    if not config.validate():
        logger.error("nova.startup.failed", reason="config_validation_failed")
        raise RuntimeError("Configuration validation failed")

    if not config.llm_configured():
        # Queries still work: the responder answers with a configuration error
        logger.warning("nova.config.llm_missing",
                       message="GEMINI_API_KEY or GEMINI_MODEL not set")

    logger.info("nova.config.validated",
                database=str(config.DATABASE_PATH),
                llm_provider=config.LLM_PROVIDER,
                image_provider=config.IMAGE_PROVIDER)

    yield  # Server is running

    logger.info("nova.shutdown", message="Cleaning up resources")
    await close_llm_service()
    await db.close()
    logger.info("nova.shutdown.complete")


# Create FastAPI application
app = FastAPI(
    title="NOVA - Voice Assistant",
    description="Voice-driven personal assistant with per-user customization",
    version=__version__,
    lifespan=lifespan,
)

# Configure rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

# Credentials are needed for the session cookie
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)

    for header_name, header_value in get_security_headers().items():
        response.headers[header_name] = header_value

    return response


@app.get("/health", tags=["System"])
@limiter.limit(SecurityConfig.DEFAULT_RATE_LIMIT)
async def health_check(request: Request):
    """Health check endpoint"""
    return JSONResponse({
        "status": "healthy",
        "version": app.version,
        "llm_configured": config.llm_configured(),
        "errors": get_error_handler().get_stats(),
    })


app.include_router(auth_router)
app.include_router(users_router)
app.add_api_websocket_route("/ws/voice", voice_websocket)

config.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(config.UPLOAD_DIR)), name="uploads")
app.mount("/static", StaticFiles(directory=str(config.STATIC_DIR), html=True), name="static")


@app.get("/", tags=["System"], include_in_schema=False)
async def root():
    """Serve the voice client"""
    return RedirectResponse(url="/static/index.html")


if __name__ == "__main__":
    import uvicorn

    logger.info("nova.dev_server.starting",
                host=config.HOST,
                port=config.PORT)

    uvicorn.run(
        "nova.main:app",
        host=config.HOST,
        port=config.PORT,
        reload=True,
        log_level=config.LOG_LEVEL.lower(),
    )
