"""Protocol definitions for the media engine binding.

The relay never implements media itself. It drives an SFU-style engine through
these structural types: an engine hands out workers, a worker hosts a router,
a router creates transports, and transports create producers and consumers.

Callbacks registered with ``on(event, handler)`` are invoked synchronously by
the engine; handlers that need to await must schedule their own task.

Events:
- PlainTransport ``"tuple"``: first RTP packet seen from a remote address
  (comedia mode); handler receives the TransportTuple.
- Producer ``"trackended"``: upstream track ended; no arguments.
- Consumer ``"producerclose"``: the consumed producer was closed; no arguments.
"""

from collections.abc import Callable
from typing import Any, Protocol

from camrelay.schemas.media import TransportTuple

EventHandler = Callable[..., Any]


class Consumer(Protocol):
    """One viewer's subscription to a producer through one transport."""

    @property
    def id(self) -> str: ...

    @property
    def kind(self) -> str: ...

    @property
    def type(self) -> str: ...

    @property
    def rtp_parameters(self) -> dict[str, Any]: ...

    @property
    def producer_id(self) -> str: ...

    @property
    def paused(self) -> bool: ...

    @property
    def closed(self) -> bool: ...

    def on(self, event: str, handler: EventHandler) -> None: ...

    async def resume(self) -> None:
        """Start forwarding media. Resuming a running consumer is a no-op."""
        ...

    async def close(self) -> None:
        """Close the consumer. Must be idempotent."""
        ...


class Producer(Protocol):
    """The upstream media source accepted by the engine."""

    @property
    def id(self) -> str: ...

    @property
    def kind(self) -> str: ...

    @property
    def rtp_parameters(self) -> dict[str, Any]: ...

    @property
    def closed(self) -> bool: ...

    def on(self, event: str, handler: EventHandler) -> None: ...

    async def get_stats(self) -> list[dict[str, Any]]:
        """Return delivery statistics; inbound entries carry ``packetCount``."""
        ...

    async def close(self) -> None:
        """Close the producer and every consumer attached to it. Idempotent."""
        ...


class PlainTransport(Protocol):
    """Raw RTP ingest endpoint facing the upstream sender."""

    @property
    def id(self) -> str: ...

    @property
    def tuple(self) -> TransportTuple: ...

    @property
    def rtcp_tuple(self) -> TransportTuple | None: ...

    def on(self, event: str, handler: EventHandler) -> None: ...

    async def produce(self, *, kind: str, rtp_parameters: dict[str, Any]) -> Producer: ...

    async def close(self) -> None: ...


class WebRtcTransport(Protocol):
    """Browser-facing endpoint terminating one network path to one viewer."""

    @property
    def id(self) -> str: ...

    @property
    def ice_parameters(self) -> dict[str, Any]: ...

    @property
    def ice_candidates(self) -> list[dict[str, Any]]: ...

    @property
    def dtls_parameters(self) -> dict[str, Any]: ...

    @property
    def closed(self) -> bool: ...

    async def connect(self, *, dtls_parameters: dict[str, Any]) -> None: ...

    async def consume(
        self,
        *,
        producer_id: str,
        rtp_capabilities: dict[str, Any],
        paused: bool = False,
    ) -> Consumer: ...

    async def close(self) -> None:
        """Close the transport and its consumers. Must be idempotent."""
        ...


class Router(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def rtp_capabilities(self) -> dict[str, Any]: ...

    async def create_plain_transport(
        self,
        *,
        listen_ip: str,
        rtcp_mux: bool,
        comedia: bool,
    ) -> PlainTransport: ...

    async def create_webrtc_transport(
        self,
        *,
        listen_ips: list[dict[str, Any]],
        enable_udp: bool = True,
        enable_tcp: bool = True,
        prefer_udp: bool = True,
    ) -> WebRtcTransport: ...

    async def close(self) -> None: ...


class Worker(Protocol):
    @property
    def pid(self) -> int: ...

    async def create_router(self, *, media_codecs: list[dict[str, Any]]) -> Router: ...

    async def close(self) -> None: ...


class MediaEngine(Protocol):
    """Entry point of an engine binding."""

    async def create_worker(self, *, log_level: str, log_tags: list[str]) -> Worker: ...


__all__ = [
    "Consumer",
    "EventHandler",
    "MediaEngine",
    "PlainTransport",
    "Producer",
    "Router",
    "WebRtcTransport",
    "Worker",
]
