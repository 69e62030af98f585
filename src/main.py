"""FastAPI application initialization."""

import os
from contextlib import asynccontextmanager

import logfire
import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api import health, scrape
from src.config import get_settings
from src.logging_config import setup_logfire
from src.middleware.correlation_id import CorrelationIDMiddleware

APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()

    # Initialize Logfire for observability
    setup_logfire(app)

    # Initialize Sentry if DSN is provided
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            environment=settings.env,
            integrations=[FastApiIntegration()],
        )

    logfire.info(
        "Application startup complete",
        environment=settings.env,
        browser_service=settings.browser_service_url,
    )

    yield

    logfire.info("Application shutdown complete")


app = FastAPI(
    title="Webpage Scraper",
    description="Render pages in a remote browser and store HTML, screenshots and metadata",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as {"message", "status": "failed"}."""
    message = exc.detail
    if exc.status_code == 405:
        message = "Invalid request method"
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": message, "status": "failed"},
        headers=getattr(exc, "headers", None),
    )


# Correlation ID middleware (must be first for request tracing)
app.add_middleware(CorrelationIDMiddleware)

# Register routers
app.include_router(health.router, tags=["health"])
app.include_router(scrape.router, prefix="/scrape", tags=["scrape"])


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Webpage Scraper API",
        "version": APP_VERSION,
    }


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "src.main:app", host="0.0.0.0", port=port, reload=os.getenv("ENV") == "local"
    )
