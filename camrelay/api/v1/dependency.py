from fastapi import Request

from camrelay.domain.relay import RelayCoordinator
from camrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


def get_relay_coordinator(request: Request) -> RelayCoordinator:
    coordinator: RelayCoordinator | None = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise AppError(
            errcode=AppErrorCode.E_NOT_READY,
            errmesg="Relay is not started yet",
            status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
        )
    return coordinator
