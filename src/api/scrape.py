"""Scrape endpoints.

- POST /scrape: scrape synchronously and return the outcome
- PUT  /scrape: validate, enqueue and return 202 immediately
- any other verb: 405, once the credential has been checked

All require ``Authorization: Bearer <API_TOKEN>``. The handlers only deal
with HTTP concerns; scraping lives in ScrapeOrchestrator.
"""

import hmac
import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from src.config import get_settings
from src.logging_config import mask_pii
from src.middleware.correlation_id import get_correlation_id
from src.models.scrape_models import ScrapeRequest
from src.services.scrape_errors import ScrapeError
from src.services.scrape_orchestrator import ScrapeOrchestrator, get_scrape_orchestrator
from src.services.scrape_queue import ScrapeQueue, get_scrape_queue

logger = logging.getLogger(__name__)
router = APIRouter()


def is_authorized(authorization: str | None, api_token: str) -> bool:
    """True when the Authorization header carries the configured bearer token."""
    if not authorization or not api_token:
        return False
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return False
    return hmac.compare_digest(token.strip().encode(), api_token.encode())


def require_api_token(authorization: str | None = Header(default=None)) -> None:
    """FastAPI dependency rejecting requests without the bearer token."""
    settings = get_settings()
    if not is_authorized(authorization, settings.api_token):
        logger.warning(
            "Unauthorized request (token: %s)",
            mask_pii(authorization.partition(" ")[2] if authorization else None),
        )
        raise HTTPException(status_code=401, detail="Unauthorized")


async def parse_scrape_request(request: Request) -> ScrapeRequest:
    """Parse the JSON body into a ScrapeRequest, filling defaults.

    Raises:
        HTTPException: 400 when the body is not JSON, the URL is missing,
            or a field is invalid
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None

    if not isinstance(payload, dict) or not payload.get("url"):
        logger.info("Scrape request without URL")
        raise HTTPException(status_code=400, detail="URL is required")

    try:
        scrape_request = ScrapeRequest.model_validate(payload)
    except ValidationError as e:
        messages = "; ".join(error["msg"] for error in e.errors())
        logger.info("Invalid scrape request: %s", messages)
        raise HTTPException(status_code=400, detail=messages) from e

    logger.info(
        "Scrape request: url=%s idle=%s lang=%s mode=%s",
        scrape_request.url,
        scrape_request.idle_window_ms,
        scrape_request.language,
        scrape_request.mode.value,
    )
    return scrape_request


@router.post("", dependencies=[Depends(require_api_token)])
async def scrape_page(
    request: Request,
    scrape_request: ScrapeRequest = Depends(parse_scrape_request),
    orchestrator: ScrapeOrchestrator = Depends(get_scrape_orchestrator),
):
    """Scrape a page and wait for the result."""
    try:
        outcome = await orchestrator.scrape(scrape_request)
    except ScrapeError as e:
        logger.error(
            "Failed to scrape page %s at %s stage: %s (correlation_id=%s)",
            scrape_request.url,
            e.stage,
            e,
            get_correlation_id(request),
        )
        return JSONResponse(
            status_code=500,
            content={
                "message": "Failed to scrape page",
                "status": "failed",
                "targetUrl": scrape_request.url,
                "error": str(e),
                "stage": e.stage,
            },
        )

    return {
        "message": "Page scraped successfully.",
        "status": "success",
        "targetUrl": scrape_request.url,
        "result": outcome.model_dump(by_alias=True, exclude={"url"}),
    }


@router.put("", status_code=202, dependencies=[Depends(require_api_token)])
async def enqueue_scrape(
    scrape_request: ScrapeRequest = Depends(parse_scrape_request),
    queue: ScrapeQueue = Depends(get_scrape_queue),
):
    """Hand a scrape request to the queue for asynchronous processing."""
    try:
        await queue.send(scrape_request)
    except Exception as e:
        logger.error("Failed to send message to queue: %s", e, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"message": "Failed to send message to queue", "status": "failed"},
        )

    return {
        "message": "Request Accepted",
        "status": "success",
        "request": scrape_request.to_message(),
    }


@router.api_route(
    "",
    methods=["GET", "HEAD", "PATCH", "DELETE", "OPTIONS"],
    dependencies=[Depends(require_api_token)],
    include_in_schema=False,
)
async def unsupported_method(request: Request):
    """Reject other verbs, after the credential check."""
    logger.info("Unsupported method %s on /scrape", request.method)
    raise HTTPException(
        status_code=405,
        detail="Invalid request method",
        headers={"Allow": "POST, PUT"},
    )
