"""Health and monitoring endpoints."""

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from membernode.api.dependencies import get_adapter
from membernode.models import Health

router = APIRouter(tags=["Health"])


class CapacityResponse(BaseModel):
    """Remaining storage capacity in bytes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    capacity_remaining: int


@router.get("/health", response_model=Health, response_model_by_alias=True)
def get_health(request: Request) -> Health:
    """Health check; always healthy while the process serves requests."""
    return get_adapter(request).health()


@router.get("/v1/monitor/capacity", response_model=CapacityResponse, response_model_by_alias=True)
def get_capacity(request: Request) -> CapacityResponse:
    return CapacityResponse(capacity_remaining=get_adapter(request).capacity_remaining())
