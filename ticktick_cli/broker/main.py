"""FastAPI application entry point for the OAuth broker.

The broker exposes two token endpoints that mirror TickTick's token
endpoint minus the client secret:

- ``POST /v1/oauth/exchange``: authorization_code grant (PKCE)
- ``POST /v1/oauth/refresh``: refresh_token grant

It holds no state between requests and never logs request or response
bodies.
"""

import json
import logging
import time
from typing import Callable, Optional, Type

import requests
from fastapi import Depends, FastAPI, Header, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from ticktick_cli.broker import __version__
from ticktick_cli.broker.config import BrokerSettings, get_settings
from ticktick_cli.broker.forwarding import (
    UpstreamRequest,
    UpstreamResponse,
    build_exchange_request,
    build_refresh_request,
    is_authorized,
    post_upstream,
    to_outbound_response,
)
from ticktick_cli.broker.models import (
    ErrorResponse,
    ExchangeRequest,
    HealthResponse,
    RefreshRequest,
)

logger = logging.getLogger(__name__)

Upstream = Callable[[UpstreamRequest, float], UpstreamResponse]

ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in (400, 401, 500, 502)
}

app = FastAPI(
    title="TickTick OAuth Broker",
    description="Injects confidential client credentials into TickTick token requests",
    version=__version__,
    docs_url=None,
    redoc_url=None,
)


def get_upstream() -> Upstream:
    """Dependency returning the function that performs the upstream call."""
    return post_upstream


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(detail=detail).model_dump(),
        headers={"Cache-Control": "no-store"},
    )


async def _parse_body(request: Request, model: Type[BaseModel]) -> Optional[BaseModel]:
    try:
        data = json.loads(await request.body())
        return model.model_validate(data)
    except (ValueError, ValidationError):
        return None


async def _forward(
    route: str,
    upstream_request: UpstreamRequest,
    upstream: Upstream,
    settings: BrokerSettings,
) -> Response:
    started = time.monotonic()
    try:
        result = await run_in_threadpool(upstream, upstream_request, settings.timeout_seconds)
    except requests.RequestException as e:
        logger.error(f"{route}: upstream request failed ({type(e).__name__})")
        return _error(status.HTTP_502_BAD_GATEWAY, "Token endpoint unreachable")

    elapsed_ms = (time.monotonic() - started) * 1000
    logger.info(f"{route}: upstream returned {result.status_code} in {elapsed_ms:.0f}ms")
    return to_outbound_response(result)


@app.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["health"],
    summary="Health check endpoint",
)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok")


@app.post(
    "/v1/oauth/exchange",
    tags=["oauth"],
    summary="Exchange an authorization code for tokens",
    responses=ERROR_RESPONSES,
)
async def exchange(
    request: Request,
    x_broker_key: Optional[str] = Header(default=None),
    settings: BrokerSettings = Depends(get_settings),
    upstream: Upstream = Depends(get_upstream),
) -> Response:
    """Forward an authorization_code grant with the client credentials injected.

    Request body: ``{"code", "code_verifier", "redirect_uri"}``. The
    provider's status and body are returned unchanged.
    """
    if not is_authorized(x_broker_key, settings.api_key):
        logger.warning("exchange: rejected request with missing or invalid broker key")
        return _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized")

    payload = await _parse_body(request, ExchangeRequest)
    if payload is None:
        return _error(
            status.HTTP_400_BAD_REQUEST, "Missing code, code_verifier, or redirect_uri"
        )

    if not settings.has_credentials:
        logger.error("exchange: broker client credentials are not configured")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Broker is not configured")

    return await _forward(
        "exchange", build_exchange_request(payload, settings), upstream, settings
    )


@app.post(
    "/v1/oauth/refresh",
    tags=["oauth"],
    summary="Refresh an access token",
    responses=ERROR_RESPONSES,
)
async def refresh(
    request: Request,
    x_broker_key: Optional[str] = Header(default=None),
    settings: BrokerSettings = Depends(get_settings),
    upstream: Upstream = Depends(get_upstream),
) -> Response:
    """Forward a refresh_token grant with the client credentials injected.

    Request body: ``{"refresh_token"}``. The provider's status and body are
    returned unchanged.
    """
    if not is_authorized(x_broker_key, settings.api_key):
        logger.warning("refresh: rejected request with missing or invalid broker key")
        return _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized")

    payload = await _parse_body(request, RefreshRequest)
    if payload is None:
        return _error(status.HTTP_400_BAD_REQUEST, "Missing refresh_token")

    if not settings.has_credentials:
        logger.error("refresh: broker client credentials are not configured")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Broker is not configured")

    return await _forward(
        "refresh", build_refresh_request(payload, settings), upstream, settings
    )


def run() -> None:
    """Run the broker with uvicorn (``tt-broker`` console script)."""
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=logging.INFO if not settings.debug else logging.DEBUG,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(f"Starting {settings.app_name} v{__version__}")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
        access_log=settings.debug,
    )


if __name__ == "__main__":
    run()
