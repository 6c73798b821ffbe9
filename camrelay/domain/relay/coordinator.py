"""Relay coordinator: wires the engine, producer lifecycle and viewer sessions together."""

from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from camrelay.app_config import AppEnvironConfig, get_app_environ_config
from camrelay.schemas import IngestStatus, MediaStoppedOut, RelayStatus
from camrelay.services.media.media_service import MediaService

from .capabilities import CapabilityNegotiator
from .producer_manager import ProducerLifecycleManager
from .transport_registry import TransportRegistry
from .viewer_session import ViewerSession

Broadcaster = Callable[[str, dict[str, Any]], Awaitable[Any]]

MEDIA_STOPPED_EVENT = "mediaStopped"


class RelayCoordinator:
    """Process-wide relay state.

    The producer lifecycle manager runs independently of viewers; each viewer
    gets its own ViewerSession sharing the registry, the negotiator and a
    read-only view of the current producer.
    """

    def __init__(self, media: MediaService, cfg: AppEnvironConfig | None = None) -> None:
        self._cfg = cfg or get_app_environ_config()
        self.media = media
        self.registry = TransportRegistry()
        self.negotiator = CapabilityNegotiator(media)
        self.producers = ProducerLifecycleManager(
            media,
            on_media_stopped=self._on_media_stopped,
            liveness_interval=self._cfg.LIVENESS_INTERVAL_SECONDS,
            stall_threshold=self._cfg.LIVENESS_STALL_THRESHOLD,
        )
        self._sessions: dict[str, ViewerSession] = {}
        self._broadcaster: Broadcaster | None = None

    def set_broadcaster(self, broadcaster: Broadcaster | None) -> None:
        """Install the callable used to notify every connected viewer."""
        self._broadcaster = broadcaster

    async def start(self) -> None:
        """Bootstrap the engine and start listening for the upstream stream.

        Raises:
            AppError: if the worker, router or ingest transport cannot be created
        """
        await self.media.bootstrap()
        assert self.media.plain_transport is not None
        self.producers.attach(self.media.plain_transport)
        logger.info("Relay coordinator started, awaiting upstream source")

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def open_session(self, sid: str) -> ViewerSession:
        session = self._sessions.get(sid)
        if session is None or session.closed:
            session = ViewerSession(
                sid,
                media=self.media,
                registry=self.registry,
                negotiator=self.negotiator,
                producers=self.producers,
            )
            self._sessions[sid] = session
            logger.info(f"Client connected: sid={sid} viewers={len(self._sessions)}")
        return session

    def get_session(self, sid: str) -> ViewerSession | None:
        return self._sessions.get(sid)

    async def close_session(self, sid: str) -> None:
        session = self._sessions.pop(sid, None)
        if session is None:
            return
        await session.close()
        logger.info(f"Client disconnected: sid={sid} viewers={len(self._sessions)}")

    async def _on_media_stopped(self, producer_id: str, reason: str) -> None:
        if self._broadcaster is None:
            logger.debug("No broadcaster installed, media stopped not sent")
            return
        payload = MediaStoppedOut(producer_id=producer_id, reason=reason).to_wire()
        await self._broadcaster(MEDIA_STOPPED_EVENT, payload)
        logger.info(f"Broadcast {MEDIA_STOPPED_EVENT}: producer={producer_id} reason={reason}")

    def status(self) -> RelayStatus:
        snapshot = self.producers.snapshot
        plain = self.media.plain_transport
        ingest = None
        if plain is not None:
            ingest = IngestStatus(
                listen_ip=plain.tuple.local_ip,
                rtp_port=plain.tuple.local_port,
                rtcp_port=plain.rtcp_tuple.local_port if plain.rtcp_tuple else None,
                remote_ip=plain.tuple.remote_ip,
                remote_port=plain.tuple.remote_port,
            )

        return RelayStatus(
            router_ready=self.media.is_ready,
            producer_state=snapshot.state,
            producer_id=snapshot.producer_id,
            is_expecting_producer=snapshot.is_expecting_producer,
            viewers=len(self._sessions),
            transports=len(self.registry),
            producers_created=self.producers.producers_created,
            producers_closed=self.producers.producers_closed,
            ingest=ingest,
        )

    async def shutdown(self) -> None:
        for sid in list(self._sessions):
            await self.close_session(sid)
        await self.producers.shutdown()
        await self.media.shutdown()
        logger.info("Relay coordinator shut down")
