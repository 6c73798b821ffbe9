"""Per-viewer signaling session.

Runs the viewer sequence: capabilities -> create transport -> connect transport
-> consume (paused) -> ready acknowledgement (resume). Each step is gated on the
previous one, and every failure is reported to this viewer only.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

from loguru import logger

from camrelay.schemas import ConsumerOut, TransportOut
from camrelay.services.media.engine import Consumer
from camrelay.services.media.media_service import MediaService
from camrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .capabilities import CapabilityNegotiator
from .producer_manager import ProducerLifecycleManager
from .transport_registry import RegisteredTransport, TransportRegistry

T = TypeVar("T")

NO_PRODUCER_MESSAGE = "No producer yet"
INVALID_TRANSPORT_MESSAGE = "Invalid transport"
CONSUME_FAILED_MESSAGE = "Failed to create consumer"


class ViewerSession:
    """State of one connected viewer.

    Owns the transports it created (registered in the shared registry) and the
    consumers created on them. The paused consumer awaiting the viewer's ready
    acknowledgement is tracked explicitly, so an acknowledgement can only resume
    the consumer handed out by the immediately preceding consume request.
    """

    def __init__(
        self,
        sid: str,
        *,
        media: MediaService,
        registry: TransportRegistry,
        negotiator: CapabilityNegotiator,
        producers: ProducerLifecycleManager,
    ) -> None:
        self.sid = sid
        self._media = media
        self._registry = registry
        self._negotiator = negotiator
        self._producers = producers

        self._transport_ids: list[str] = []
        self._consumers: dict[str, Consumer] = {}
        self._pending_consumer: Consumer | None = None
        self._inflight: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def transport_ids(self) -> tuple[str, ...]:
        return tuple(self._transport_ids)

    @property
    def consumers(self) -> dict[str, Consumer]:
        return dict(self._consumers)

    @property
    def pending_consumer(self) -> Consumer | None:
        return self._pending_consumer

    def _ensure_open(self) -> None:
        if self._closed:
            raise AppError(
                errcode=AppErrorCode.E_SESSION_CLOSED,
                errmesg="Viewer session is closed",
                status_code=HttpStatusCode.CONFLICT,
            )

    async def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Await an engine call as a task that ``close()`` can cancel."""
        if self._closed:
            coro.close()
            self._ensure_open()

        task = asyncio.ensure_future(coro)
        self._inflight.add(task)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._closed and not (current is not None and current.cancelling()):
                self._ensure_open()
            raise
        finally:
            self._inflight.discard(task)

    def _owned_transport(self, transport_id: str) -> RegisteredTransport:
        entry = self._registry.lookup(transport_id)
        if entry is None or entry.owner_sid != self.sid:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_TRANSPORT,
                errmesg=INVALID_TRANSPORT_MESSAGE,
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return entry

    def get_capabilities(self) -> dict[str, Any]:
        self._ensure_open()
        return self._negotiator.get_capabilities()

    async def create_transport(self) -> TransportOut:
        """Create a viewer transport on the configured listen address and register it."""
        self._ensure_open()
        if not self._negotiator.is_available:
            raise AppError(
                errcode=AppErrorCode.E_NOT_READY,
                errmesg="Router is not initialized yet",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )

        transport = await self._run(self._media.create_webrtc_transport())
        if self._closed:
            await self._media.close_quietly(transport, "transport")
            self._ensure_open()

        self._registry.register(RegisteredTransport(transport=transport, owner_sid=self.sid))
        self._transport_ids.append(transport.id)
        logger.info(f"Transport created: id={transport.id} sid={self.sid}")

        return TransportOut(
            id=transport.id,
            ice_parameters=transport.ice_parameters,
            ice_candidates=transport.ice_candidates,
            dtls_parameters=transport.dtls_parameters,
        )

    async def connect_transport(self, transport_id: str, dtls_parameters: dict[str, Any]) -> None:
        self._ensure_open()
        entry = self._owned_transport(transport_id)

        await self._run(self._media.connect_transport(entry.transport, dtls_parameters))
        entry.connected = True
        logger.info(f"Transport {transport_id} connected: sid={self.sid}")

    async def consume(self, transport_id: str, rtp_capabilities: dict[str, Any]) -> ConsumerOut:
        """Create a paused consumer of the current producer on a connected transport.

        Raises:
            AppError: E_NO_PRODUCER when no producer is live,
                E_INVALID_TRANSPORT when the transport is unknown, foreign or not connected,
                E_ENGINE_CALL_FAILED / E_ENGINE_TIMEOUT when the engine call fails
        """
        self._ensure_open()
        # Only the consumer created by this request may be acknowledged next
        self._pending_consumer = None

        producer = self._producers.producer
        if producer is None:
            raise AppError(
                errcode=AppErrorCode.E_NO_PRODUCER,
                errmesg=NO_PRODUCER_MESSAGE,
                status_code=HttpStatusCode.CONFLICT,
            )

        entry = self._owned_transport(transport_id)
        if not entry.connected:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_TRANSPORT,
                errmesg=f"{INVALID_TRANSPORT_MESSAGE}: not connected",
                status_code=HttpStatusCode.CONFLICT,
            )
        logger.debug(f"Transport found: id={transport_id} sid={self.sid}")

        try:
            consumer = await self._run(
                self._media.consume(entry.transport, producer.id, rtp_capabilities, paused=True)
            )
        except AppError as e:
            if e.errcode not in (AppErrorCode.E_ENGINE_CALL_FAILED.value, AppErrorCode.E_ENGINE_TIMEOUT.value):
                raise
            logger.warning(f"Error creating consumer: sid={self.sid} error={e}")
            raise AppError(errcode=e.errcode, errmesg=CONSUME_FAILED_MESSAGE, status_code=e.status_code) from e

        if self._closed:
            await self._media.close_quietly(consumer, "consumer")
            self._ensure_open()

        self._consumers[consumer.id] = consumer
        consumer.on("producerclose", lambda: self._forget_consumer(consumer.id))
        self._pending_consumer = consumer
        logger.info(f"Created consumer {consumer.id} for producer {producer.id}: sid={self.sid}")

        return ConsumerOut(
            id=consumer.id,
            kind=consumer.kind,
            rtp_parameters=consumer.rtp_parameters,
            type=consumer.type,
            producer_id=producer.id,
        )

    def _forget_consumer(self, consumer_id: str) -> None:
        self._consumers.pop(consumer_id, None)
        if self._pending_consumer is not None and self._pending_consumer.id == consumer_id:
            self._pending_consumer = None

    async def acknowledge_consumer(self) -> bool:
        """Resume the pending paused consumer after the viewer finished local setup.

        An acknowledgement without a pending consumer is a no-op.

        Returns:
            True if a consumer was resumed
        """
        consumer = self._pending_consumer
        self._pending_consumer = None

        if consumer is None or self._closed:
            logger.debug(f"Ready acknowledgement without pending consumer: sid={self.sid}")
            return False
        if consumer.closed or not consumer.paused:
            return False

        try:
            await self._run(self._media.resume_consumer(consumer))
        except AppError as e:
            logger.warning(f"Failed to resume consumer {consumer.id}: sid={self.sid} error={e}")
            return False

        logger.info(f"Consumer {consumer.id} resumed: sid={self.sid}")
        return True

    async def close(self) -> None:
        """Release every transport and consumer this viewer created."""
        if self._closed:
            return
        self._closed = True

        for task in list(self._inflight):
            task.cancel()

        self._pending_consumer = None
        for consumer in list(self._consumers.values()):
            await self._media.close_quietly(consumer, "consumer")
        self._consumers.clear()

        for transport_id in self._transport_ids:
            entry = self._registry.remove(transport_id)
            if entry is not None:
                await self._media.close_quietly(entry.transport, "transport")
        released = len(self._transport_ids)
        self._transport_ids.clear()

        logger.info(f"Viewer session closed: sid={self.sid} transports_released={released}")
