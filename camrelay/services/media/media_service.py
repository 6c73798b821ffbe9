"""Media engine helper service.

This module provides a thin wrapper around the configured media engine binding.
Every engine call goes through ``_call`` which bounds it with the configured
timeout and turns engine failures into ``AppError`` so callers only deal with
one error type.

Usage:
    from camrelay.services.media.media_service import media_service

    await media_service.bootstrap()
    transport = await media_service.create_webrtc_transport()
    await media_service.connect_transport(transport, dtls_parameters)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from importlib import import_module
from typing import Any, TypeVar

from loguru import logger

from camrelay.app_config import AppEnvironConfig, get_app_environ_config
from camrelay.schemas.media import CodecSettings
from camrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .engine import Consumer, MediaEngine, PlainTransport, Producer, Router, WebRtcTransport, Worker

T = TypeVar("T")


def load_engine_factory(path: str):
    """Resolve a ``module:callable`` path to the engine factory callable."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise AppError(
            errcode=AppErrorCode.E_INVALID_REQUEST,
            errmesg=f"Invalid MEDIA_ENGINE_FACTORY '{path}', expected 'module:callable'",
            status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
        )
    return getattr(import_module(module_name), attr)


class MediaService:
    """Service wrapper for the media engine.

    Owns the worker, the router and the upstream ingest transport. Viewer
    transports, producers and consumers are created here but owned by the
    domain components that asked for them.
    """

    def __init__(self, cfg: AppEnvironConfig | None = None, engine: MediaEngine | None = None) -> None:
        self._cfg = cfg or get_app_environ_config()
        self._engine = engine
        self.codec = CodecSettings.from_config(self._cfg)

        self._worker: Worker | None = None
        self._router: Router | None = None
        self._plain_transport: PlainTransport | None = None
        logger.info("MediaService initialized")

    @property
    def router(self) -> Router | None:
        return self._router

    @property
    def plain_transport(self) -> PlainTransport | None:
        return self._plain_transport

    @property
    def is_ready(self) -> bool:
        return self._router is not None

    @property
    def rtp_capabilities(self) -> dict[str, Any] | None:
        """Router capabilities, or None until the router exists."""
        if self._router is None:
            return None
        return self._router.rtp_capabilities

    def _get_engine(self) -> MediaEngine:
        if self._engine is None:
            factory = load_engine_factory(self._cfg.MEDIA_ENGINE_FACTORY)
            self._engine = factory()
            logger.info(f"Media engine loaded from {self._cfg.MEDIA_ENGINE_FACTORY}")
        return self._engine

    def _require_router(self) -> Router:
        if self._router is None:
            raise AppError(
                errcode=AppErrorCode.E_NOT_READY,
                errmesg="Router is not initialized yet",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )
        return self._router

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await an engine call under the configured timeout.

        Raises:
            AppError: E_ENGINE_TIMEOUT when the call exceeds the bound,
                E_ENGINE_CALL_FAILED for any other engine failure
        """
        timeout = self._cfg.ENGINE_CALL_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except AppError:
            raise
        except asyncio.TimeoutError as e:
            logger.error(f"Engine call timed out: op={operation} timeout={timeout}s")
            raise AppError(
                errcode=AppErrorCode.E_ENGINE_TIMEOUT,
                errmesg=f"{operation} timed out after {timeout}s",
                status_code=HttpStatusCode.GATEWAY_TIMEOUT,
            ) from e
        except Exception as e:
            logger.error(f"Engine call failed: op={operation} error={type(e).__name__}: {e}")
            raise AppError(
                errcode=AppErrorCode.E_ENGINE_CALL_FAILED,
                errmesg=str(e) or f"{operation} failed",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            ) from e

    async def bootstrap(self) -> None:
        """Create worker, router and the upstream ingest transport.

        Failure here is fatal for the process: without a router there is nothing
        to relay.
        """
        engine = self._get_engine()

        self._worker = await self._call(
            "createWorker",
            engine.create_worker(log_level=self._cfg.ENGINE_LOG_LEVEL, log_tags=self._cfg.ENGINE_LOG_TAGS),
        )
        logger.info(f"Media worker created (pid={self._worker.pid})")

        router = await self._call(
            "createRouter",
            self._worker.create_router(media_codecs=self.codec.router_media_codecs()),
        )
        logger.info(f"Media router created (id={router.id})")

        self._plain_transport = await self._call(
            "createPlainTransport",
            router.create_plain_transport(
                listen_ip=self._cfg.RTC_PLAIN_LISTEN_IP,
                rtcp_mux=False,
                comedia=True,
            ),
        )
        # Publish the router last: capabilities become visible only once ingest is ready
        self._router = router

        rtcp_port = self._plain_transport.rtcp_tuple.local_port if self._plain_transport.rtcp_tuple else None
        logger.info(
            f"Upstream RTP transport listening: ip={self._plain_transport.tuple.local_ip} "
            f"rtp_port={self._plain_transport.tuple.local_port} rtcp_port={rtcp_port}"
        )

    async def produce(self) -> Producer:
        """Create the upstream producer with the fixed codec and SSRC."""
        if self._plain_transport is None:
            raise AppError(
                errcode=AppErrorCode.E_NOT_READY,
                errmesg="Ingest transport is not initialized yet",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )
        return await self._call(
            "produce",
            self._plain_transport.produce(
                kind=self.codec.kind,
                rtp_parameters=self.codec.producer_rtp_parameters(),
            ),
        )

    async def get_producer_stats(self, producer: Producer) -> list[dict[str, Any]]:
        return await self._call("getStats", producer.get_stats())

    async def create_webrtc_transport(self) -> WebRtcTransport:
        router = self._require_router()
        listen_ip: dict[str, Any] = {"ip": self._cfg.RTC_LISTEN_IP}
        if self._cfg.RTC_ANNOUNCED_IP:
            listen_ip["announcedIp"] = self._cfg.RTC_ANNOUNCED_IP

        return await self._call(
            "createWebRtcTransport",
            router.create_webrtc_transport(
                listen_ips=[listen_ip],
                enable_udp=True,
                enable_tcp=True,
                prefer_udp=True,
            ),
        )

    async def connect_transport(self, transport: WebRtcTransport, dtls_parameters: dict[str, Any]) -> None:
        await self._call("connect", transport.connect(dtls_parameters=dtls_parameters))

    async def consume(
        self,
        transport: WebRtcTransport,
        producer_id: str,
        rtp_capabilities: dict[str, Any],
        *,
        paused: bool = True,
    ) -> Consumer:
        return await self._call(
            "consume",
            transport.consume(producer_id=producer_id, rtp_capabilities=rtp_capabilities, paused=paused),
        )

    async def resume_consumer(self, consumer: Consumer) -> None:
        await self._call("resume", consumer.resume())

    async def close_quietly(self, resource: Any, label: str) -> None:
        """Close an engine object, logging instead of raising on failure."""
        if resource is None:
            return
        try:
            await self._call(f"close {label}", resource.close())
        except AppError as e:
            logger.warning(f"Failed to close {label}: {e}")

    async def shutdown(self) -> None:
        await self.close_quietly(self._plain_transport, "plain transport")
        await self.close_quietly(self._router, "router")
        await self.close_quietly(self._worker, "worker")
        self._plain_transport = None
        self._router = None
        self._worker = None
        logger.info("MediaService shut down")


# Module-level singleton
media_service = MediaService()


__all__ = ["MediaService", "load_engine_factory", "media_service"]
