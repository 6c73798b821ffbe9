"""socket.io signaling namespace for viewers.

Every request is answered through the socket.io acknowledgement of the same
event. Failures are answered with ``{"error": <message>}`` and never reach
other viewers.
"""

from typing import Any

import socketio
from loguru import logger
from pydantic import ValidationError

from camrelay.domain.relay import RelayCoordinator, ViewerSession
from camrelay.schemas import ConnectTransportIn, ConsumeIn, SignalingError
from camrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

RTP_CAPABILITIES_EVENT = "rtpCapabilities"


class SignalingNamespace(socketio.AsyncNamespace):
    def __init__(self, namespace: str = "/", coordinator: RelayCoordinator | None = None):
        super().__init__(namespace)
        self.coordinator: RelayCoordinator | None = None
        if coordinator is not None:
            self.bind(coordinator)

    def bind(self, coordinator: RelayCoordinator | None) -> None:
        """Attach the relay and route its broadcasts to every connected viewer."""
        if self.coordinator is not None:
            self.coordinator.set_broadcaster(None)
        self.coordinator = coordinator
        if coordinator is not None:
            coordinator.set_broadcaster(self.broadcast)

    async def broadcast(self, event: str, data: dict[str, Any]) -> None:
        await self.emit(event, data)

    def _session(self, sid: str) -> ViewerSession:
        if self.coordinator is None:
            raise AppError(
                errcode=AppErrorCode.E_NOT_READY,
                errmesg="Relay is not started yet",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )
        return self.coordinator.get_session(sid) or self.coordinator.open_session(sid)

    def _error(self, sid: str, event: str, exc: AppError) -> dict[str, Any]:
        logger.warning(
            f"{exc.errcode} {exc.erresid} event={event} sid={sid} msg={exc.errmesg} caller={exc.caller_info}"
        )
        return SignalingError(error=exc.errmesg).to_wire()

    def _invalid(self, sid: str, event: str, exc: ValidationError) -> dict[str, Any]:
        return self._error(
            sid,
            event,
            AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg=f"Invalid {event} request: {exc.error_count()} validation error(s)",
                status_code=HttpStatusCode.BAD_REQUEST,
            ),
        )

    async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
        if self.coordinator is None:
            logger.warning(f"Viewer connected before relay start: sid={sid}")
            return
        self.coordinator.open_session(sid)

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        if self.coordinator is None:
            return
        logger.debug(f"Disconnect: sid={sid} reason={reason}")
        await self.coordinator.close_session(sid)

    async def on_getRtpCapabilities(self, sid: str, *args: Any) -> dict[str, Any] | None:
        """Answer with the router capabilities, or stay silent while the engine is not ready."""
        try:
            capabilities = self._session(sid).get_capabilities()
        except AppError as e:
            logger.info(f"Capabilities requested before ready: sid={sid} errcode={e.errcode}")
            return None

        await self.emit(RTP_CAPABILITIES_EVENT, capabilities, to=sid)
        return capabilities

    async def on_createTransport(self, sid: str, *args: Any) -> dict[str, Any] | None:
        try:
            transport = await self._session(sid).create_transport()
        except AppError as e:
            return self._reply_error(sid, "createTransport", e)
        return transport.to_wire()

    async def on_connectTransport(self, sid: str, data: Any = None) -> dict[str, Any] | None:
        try:
            request = ConnectTransportIn.model_validate(data or {})
        except ValidationError as e:
            return self._invalid(sid, "connectTransport", e)

        try:
            await self._session(sid).connect_transport(request.transport_id, request.dtls_parameters)
        except AppError as e:
            return self._reply_error(sid, "connectTransport", e)
        return None

    async def on_consume(self, sid: str, data: Any = None) -> dict[str, Any] | None:
        try:
            request = ConsumeIn.model_validate(data or {})
        except ValidationError as e:
            return self._invalid(sid, "consume", e)

        try:
            consumer = await self._session(sid).consume(request.transport_id, request.rtp_capabilities)
        except AppError as e:
            return self._reply_error(sid, "consume", e)
        return consumer.to_wire()

    async def on_consumerCreated(self, sid: str, *args: Any) -> None:
        """Ready acknowledgement: the viewer has set up its track, resume the paused consumer."""
        try:
            await self._session(sid).acknowledge_consumer()
        except AppError as e:
            self._reply_error(sid, "consumerCreated", e)

    def _reply_error(self, sid: str, event: str, exc: AppError) -> dict[str, Any] | None:
        # Nobody is left to answer once the session was torn down mid-request
        if exc.errcode == AppErrorCode.E_SESSION_CLOSED.value:
            logger.debug(f"Dropped {event} reply for closed session: sid={sid}")
            return None
        return self._error(sid, event, exc)
