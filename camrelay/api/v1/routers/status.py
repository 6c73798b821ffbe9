"""Relay runtime status endpoint."""

from fastapi import APIRouter, Depends

from camrelay.api.v1.dependency import get_relay_coordinator
from camrelay.api.v1.schemas.base import RelayOut
from camrelay.domain.relay import RelayCoordinator
from camrelay.schemas import RelayStatus

router = APIRouter(prefix="/relay")


@router.get("/status")
async def get_relay_status(
    coordinator: RelayCoordinator = Depends(get_relay_coordinator),
) -> RelayOut[RelayStatus]:
    """Get the current producer state, viewer counts and ingest endpoint.

    Returns:
        Snapshot of the relay

    Raises:
        503: Relay has not been started
    """
    return RelayOut(results=coordinator.status())
