"""
Provider state routes for contract verification.

A provider mounts the router returned by ``create_state_router`` so that a
verifier running in another process can set up provider states over HTTP
(see ``RemoteStateHandlers``).
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ..core.exceptions import StateSetupFailed, UnknownProviderState
from .states import StateHandlerRegistry

logger = logging.getLogger(__name__)


class ProblemDetails(BaseModel):
    """RFC 7807 problem details."""

    type: str = "about:blank"
    title: str
    status: int
    detail: Optional[str] = None


class ProviderStateRequest(BaseModel):
    """Request model for provider state setup."""

    state: str = Field(..., description="Name of the provider state to set up")
    params: Optional[Dict[str, Any]] = Field(default_factory=dict, description="State parameters")
    action: str = Field("setup", description="Only 'setup' is supported")


class ProviderStateResponse(BaseModel):
    """Response model for provider state operations."""

    state: str
    status: str = "success"
    message: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


def _problem(status_code: int, title: str, detail: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail=ProblemDetails(
            type="https://tools.ietf.org/html/rfc7807",
            title=title,
            status=status_code,
            detail=detail,
        ).model_dump(),
    )


def create_state_router(registry: StateHandlerRegistry, prefix: str = "/_pact") -> APIRouter:
    router = APIRouter(prefix=prefix, tags=["contract-verification"])

    @router.post(
        "/provider-states",
        response_model=ProviderStateResponse,
        status_code=status.HTTP_200_OK,
        summary="Set up provider state",
    )
    def setup_provider_state(request: ProviderStateRequest) -> ProviderStateResponse:
        """
        Set up a provider state before an interaction is replayed.

        Raises:
            HTTPException: 400 for an unknown state, 500 when the handler fails
        """
        logger.info(f"Setting up provider state: {request.state}")
        try:
            result = registry.setup(request.state, request.params)
        except UnknownProviderState as e:
            logger.error(f"Invalid provider state '{request.state}': {e}")
            raise _problem(status.HTTP_400_BAD_REQUEST, "Invalid Provider State", str(e))
        except StateSetupFailed as e:
            logger.error(f"Failed to set up provider state '{request.state}': {e.cause}")
            raise _problem(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Provider State Setup Error",
                f"Failed to configure provider state: {e.cause}",
            )

        return ProviderStateResponse(
            state=request.state,
            status="success",
            message=f"Provider state '{request.state}' configured successfully",
            data=result if isinstance(result, dict) else None,
        )

    @router.get("/provider-states", response_model=Dict[str, Any], summary="List available provider states")
    def list_provider_states() -> Dict[str, Any]:
        available_states = registry.describe()
        return {
            "available_states": available_states,
            "total_states": len(available_states),
        }

    @router.get(
        "/provider-states/{state_name}",
        response_model=Dict[str, Any],
        summary="Get provider state information",
    )
    def get_provider_state_info(state_name: str) -> Dict[str, Any]:
        available_states = registry.describe()
        if state_name not in available_states:
            raise _problem(
                status.HTTP_404_NOT_FOUND,
                "Provider State Not Found",
                f"Provider state '{state_name}' is not available",
            )
        return {"name": state_name, **available_states[state_name]}

    @router.get("/health", summary="Provider state endpoints health check")
    def state_health_check() -> Dict[str, Any]:
        return {
            "status": "healthy",
            "registered_states": len(registry),
            "endpoints": {
                "setup_state": f"{prefix}/provider-states",
                "list_states": f"{prefix}/provider-states",
                "state_info": f"{prefix}/provider-states/{{state_name}}",
            },
        }

    return router
