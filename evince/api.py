from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from . import __version__
from .config import Settings
from .errors import EvinceError
from .resolvers import (
    APR,
    CIRCULATING_SUPPLY,
    EXISTING_DELEGATIONS,
    TOTAL_SUPPLY,
    VALIDATOR_LIST,
    ZONES,
)
from .service import Gateway

logger = structlog.get_logger()

router = APIRouter()


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


def serve_json(gateway: Gateway, resource: str, **params: str) -> Response:
    """Serve a resource payload as-is; any resolution failure becomes a bare 500."""
    try:
        data = gateway.serve(resource, **params)
    except EvinceError:
        raise HTTPException(status_code=500, detail="Internal Server Error")
    return Response(content=data, media_type="application/json")


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
def banner(request: Request) -> str:
    return f"Quicksilver (evince): {request.app.state.settings.GIT_COMMIT}\n"


@router.get("/validatorList/{chain_id}")
def validator_list(chain_id: str, gateway: Gateway = Depends(get_gateway)):
    return serve_json(gateway, VALIDATOR_LIST, chain_id=chain_id)


@router.get("/existingDelegations/{chain_id}/{address}")
def existing_delegations(chain_id: str, address: str, gateway: Gateway = Depends(get_gateway)):
    return serve_json(gateway, EXISTING_DELEGATIONS, chain_id=chain_id, address=address)


@router.get("/zones")
def zones(gateway: Gateway = Depends(get_gateway)):
    return serve_json(gateway, ZONES)


@router.get("/apr")
def apr(gateway: Gateway = Depends(get_gateway)):
    return serve_json(gateway, APR)


@router.get("/total_supply")
def total_supply(gateway: Gateway = Depends(get_gateway)):
    return serve_json(gateway, TOTAL_SUPPLY)


@router.get("/circulating_supply")
def circulating_supply(gateway: Gateway = Depends(get_gateway)):
    return serve_json(gateway, CIRCULATING_SUPPLY)


@router.get("/health")
def health_check() -> Dict[str, str]:
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}


@router.get("/stats")
def stats(gateway: Gateway = Depends(get_gateway)) -> Dict[str, Any]:
    return gateway.stats()


@router.get("/metrics")
def metrics():
    """Prometheus metrics endpoint."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def create_app(settings: Optional[Settings] = None, gateway: Optional[Gateway] = None) -> FastAPI:
    """
    Build the gateway application.

    The cache and the gateway are created once here and shared by every
    request handler through ``app.state``.
    """
    settings = settings or Settings()
    gateway = gateway or Gateway.from_settings(settings)

    app = FastAPI(title="Evince", version=__version__,
                  description="Caching gateway for Quicksilver chain metrics")
    app.state.settings = settings
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.include_router(router)

    logger.info("app_created", version=__version__, commit=settings.GIT_COMMIT)
    return app
