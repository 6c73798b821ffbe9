"""Producer lifecycle manager: sole writer of the upstream producer state."""

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from loguru import logger

from camrelay.schemas import ProducerState, TransportTuple
from camrelay.services.media.engine import PlainTransport, Producer
from camrelay.services.media.media_service import MediaService
from camrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .liveness_monitor import LivenessMonitor
from .producer_state_machine import ProducerStateMachine

MediaStoppedCallback = Callable[[str, str], Awaitable[Any]]


class CloseReason:
    STALLED = "stalled"
    TRACK_ENDED = "track_ended"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class ProducerSnapshot:
    """State and producer reference, replaced as one value on every transition."""

    state: ProducerState
    producer: Producer | None = None

    @property
    def producer_id(self) -> str | None:
        return self.producer.id if self.producer is not None else None

    @property
    def is_expecting_producer(self) -> bool:
        return self.producer is None


class ProducerLifecycleManager:
    """Owns the single upstream producer and its liveness monitor.

    All transitions run under one asyncio lock, so an inbound-stream signal and a
    stall declaration can never interleave. Readers get an immutable snapshot and
    never observe a closed producer referenced as current.
    """

    def __init__(
        self,
        media: MediaService,
        *,
        on_media_stopped: MediaStoppedCallback | None = None,
        liveness_interval: float = 5.0,
        stall_threshold: int = 3,
        monitor_factory: Callable[..., LivenessMonitor] = LivenessMonitor,
    ) -> None:
        self._media = media
        self._on_media_stopped = on_media_stopped
        self._liveness_interval = liveness_interval
        self._stall_threshold = stall_threshold
        self._monitor_factory = monitor_factory

        self._current = ProducerSnapshot(state=ProducerStateMachine.INITIAL_STATE)
        self._lock = asyncio.Lock()
        self._monitor: LivenessMonitor | None = None
        self._background: set[asyncio.Task] = set()

        self.producers_created = 0
        self.producers_closed = 0

    @property
    def snapshot(self) -> ProducerSnapshot:
        return self._current

    @property
    def state(self) -> ProducerState:
        return self._current.state

    @property
    def producer(self) -> Producer | None:
        return self._current.producer

    @property
    def is_expecting_producer(self) -> bool:
        return self._current.is_expecting_producer

    @property
    def monitor(self) -> LivenessMonitor | None:
        return self._monitor

    def attach(self, plain_transport: PlainTransport) -> None:
        """Subscribe to the ingest transport's inbound-tuple event."""
        plain_transport.on("tuple", self._handle_tuple)

    def _handle_tuple(self, tuple_: TransportTuple | None = None) -> None:
        if tuple_ is not None:
            logger.info(f"Incoming RTP from upstream at: {tuple_.remote_ip}:{tuple_.remote_port}")
        self._spawn(self.on_inbound_stream())

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _set(self, state: ProducerState, producer: Producer | None = None) -> None:
        current = self._current.state
        if not ProducerStateMachine.can_transition(current, state):
            raise AppError(
                errcode=AppErrorCode.E_INTERNAL_ERROR,
                errmesg=f"Invalid producer state transition: {current} -> {state}",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            )
        if ProducerStateMachine.holds_producer(state) != (producer is not None):
            raise AppError(
                errcode=AppErrorCode.E_INTERNAL_ERROR,
                errmesg=f"Producer reference inconsistent with state {state}",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            )
        self._current = ProducerSnapshot(state=state, producer=producer)
        logger.debug(f"Producer state: {current} -> {state}")

    async def on_inbound_stream(self) -> Producer | None:
        """Create the producer if one is expected.

        Signals arriving while a producer is active are ignored. A failed
        creation leaves the manager awaiting the next signal.

        Returns:
            The new producer, or None when ignored or failed
        """
        async with self._lock:
            if not self._current.is_expecting_producer:
                logger.debug(f"Inbound stream ignored, producer already active: {self._current.producer_id}")
                return None

            try:
                producer = await self._media.produce()
            except AppError as e:
                logger.error(f"Failed to create producer: {e}")
                return None

            self._set(ProducerState.ACTIVE, producer)
            self.producers_created += 1
            producer.on("trackended", lambda: self._spawn(self.on_stream_ended(producer.id)))
            await self._start_monitor(producer)

            logger.info(f"RTP producer from upstream is active: id={producer.id}")
            return producer

    async def on_stall(self, producer_id: str) -> bool:
        return await self._close(producer_id, CloseReason.STALLED)

    async def on_stream_ended(self, producer_id: str) -> bool:
        return await self._close(producer_id, CloseReason.TRACK_ENDED)

    async def _close(self, producer_id: str, reason: str) -> bool:
        async with self._lock:
            current = self._current
            if current.state != ProducerState.ACTIVE or current.producer_id != producer_id:
                logger.debug(
                    f"Close ignored: producer={producer_id} reason={reason} "
                    f"current={current.producer_id} state={current.state}"
                )
                return False

            await self._teardown(current.producer, reason, notify=True)  # type: ignore[arg-type]
            return True

    async def _teardown(self, producer: Producer, reason: str, *, notify: bool) -> None:
        await self._stop_monitor()
        self._set(ProducerState.CLOSED)

        await self._media.close_quietly(producer, "producer")
        self.producers_closed += 1
        logger.warning(f"Producer closed: id={producer.id} reason={reason}")

        if notify and self._on_media_stopped is not None:
            try:
                await self._on_media_stopped(producer.id, reason)
            except Exception:
                logger.exception(f"Failed to broadcast media stopped: producer={producer.id}")

        self._set(ProducerState.AWAITING_SOURCE)

    async def _start_monitor(self, producer: Producer) -> None:
        await self._stop_monitor()
        self._monitor = self._monitor_factory(
            producer,
            self._media,
            on_stall=self.on_stall,
            interval=self._liveness_interval,
            threshold=self._stall_threshold,
        )
        self._monitor.start()

    async def _stop_monitor(self) -> None:
        monitor = self._monitor
        self._monitor = None
        if monitor is not None:
            await monitor.stop()

    async def shutdown(self) -> None:
        """Close any live producer without broadcasting and drop pending signals."""
        for task in list(self._background):
            task.cancel()

        async with self._lock:
            current = self._current
            if current.producer is not None:
                await self._teardown(current.producer, CloseReason.SHUTDOWN, notify=False)
            else:
                await self._stop_monitor()
