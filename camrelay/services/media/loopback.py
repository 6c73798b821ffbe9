"""In-memory loopback media engine.

Implements the engine protocols without touching the network: ids, ICE/DTLS
parameters and ports are synthesized, and media delivery is simulated through
explicit hooks. Used for local runs and tests.

Simulation hooks (not part of the engine protocols):
- ``LoopbackPlainTransport.receive_rtp_from(ip, port)``: the upstream sender
  starts emitting from that address; fires ``"tuple"`` whenever the remote
  address changes, so a restarted sender is detected again.
- ``LoopbackProducer.feed(packets)``: advance the inbound packet counters.
- ``LoopbackProducer.end_track()``: fire ``"trackended"``.
"""

import itertools
import os
import secrets
import time
from collections import defaultdict
from collections.abc import Callable
from typing import Any
from uuid import uuid4

from loguru import logger

from camrelay.schemas.media import TransportTuple

_port_counter = itertools.count(40000)


class EngineError(Exception):
    """Raised by the loopback engine for invalid calls."""


class _EventEmitter:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[..., Any]]] = defaultdict(list)

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self._handlers[event].append(handler)

    def _emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception:
                logger.exception("Loopback engine event handler failed: event={}", event)


class LoopbackConsumer(_EventEmitter):
    type = "simple"

    def __init__(self, *, producer: "LoopbackProducer", paused: bool) -> None:
        super().__init__()
        self.id = str(uuid4())
        self.kind = producer.kind
        self.producer_id = producer.id
        self.paused = paused
        self.closed = False
        self.resume_count = 0
        self.rtp_parameters = {
            "codecs": list(producer.rtp_parameters.get("codecs", [])),
            "encodings": [{"ssrc": secrets.randbelow(2**31 - 1) + 1}],
            "rtcp": {"cname": uuid4().hex[:8], "reducedSize": True},
        }

    async def resume(self) -> None:
        if self.closed:
            raise EngineError(f'Consumer "{self.id}" is closed')
        if not self.paused:
            return
        self.paused = False
        self.resume_count += 1

    async def close(self) -> None:
        self.closed = True

    def _on_producer_closed(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._emit("producerclose")


class LoopbackProducer(_EventEmitter):
    def __init__(self, *, kind: str, rtp_parameters: dict[str, Any], router: "LoopbackRouter") -> None:
        super().__init__()
        self.id = str(uuid4())
        self.kind = kind
        self.rtp_parameters = rtp_parameters
        self.closed = False
        self.packet_count = 0
        self.byte_count = 0
        self._router = router
        self._consumers: list[LoopbackConsumer] = []

    def feed(self, packets: int = 1, packet_size: int = 1200) -> None:
        if self.closed:
            return
        self.packet_count += packets
        self.byte_count += packets * packet_size

    def end_track(self) -> None:
        self._emit("trackended")

    async def get_stats(self) -> list[dict[str, Any]]:
        if self.closed:
            raise EngineError(f'Producer "{self.id}" is closed')
        encodings = self.rtp_parameters.get("encodings") or [{}]
        return [
            {
                "type": "inbound-rtp",
                "kind": self.kind,
                "ssrc": encodings[0].get("ssrc"),
                "packetCount": self.packet_count,
                "byteCount": self.byte_count,
                "timestamp": int(time.time() * 1000),
            }
        ]

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._router._producers.pop(self.id, None)
        for consumer in self._consumers:
            consumer._on_producer_closed()
        self._consumers.clear()


class LoopbackPlainTransport(_EventEmitter):
    def __init__(self, *, listen_ip: str, rtcp_mux: bool, comedia: bool, router: "LoopbackRouter") -> None:
        super().__init__()
        self.id = str(uuid4())
        self.comedia = comedia
        self.closed = False
        self._router = router
        self._producers: list[LoopbackProducer] = []
        self.tuple = TransportTuple(local_ip=listen_ip, local_port=next(_port_counter))
        self.rtcp_tuple = (
            None if rtcp_mux else TransportTuple(local_ip=listen_ip, local_port=next(_port_counter))
        )

    def receive_rtp_from(self, remote_ip: str, remote_port: int) -> None:
        if self.closed or (self.tuple.remote_ip, self.tuple.remote_port) == (remote_ip, remote_port):
            return
        self.tuple = self.tuple.model_copy(update={"remote_ip": remote_ip, "remote_port": remote_port})
        self._emit("tuple", self.tuple)

    async def produce(self, *, kind: str, rtp_parameters: dict[str, Any]) -> LoopbackProducer:
        if self.closed:
            raise EngineError(f'PlainTransport "{self.id}" is closed')
        if not rtp_parameters.get("codecs"):
            raise EngineError("missing rtpParameters.codecs")
        if not rtp_parameters.get("encodings"):
            raise EngineError("missing rtpParameters.encodings")

        producer = LoopbackProducer(kind=kind, rtp_parameters=rtp_parameters, router=self._router)
        self._producers.append(producer)
        self._router._producers[producer.id] = producer
        return producer

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for producer in self._producers:
            await producer.close()


class LoopbackWebRtcTransport(_EventEmitter):
    def __init__(self, *, listen_ips: list[dict[str, Any]], router: "LoopbackRouter") -> None:
        super().__init__()
        self.id = str(uuid4())
        self.closed = False
        self.connected = False
        self._router = router
        self._consumers: list[LoopbackConsumer] = []

        port = next(_port_counter)
        self.ice_parameters = {
            "usernameFragment": secrets.token_hex(8),
            "password": secrets.token_hex(16),
            "iceLite": True,
        }
        self.ice_candidates = [
            {
                "foundation": f"udpcandidate{index}",
                "ip": item.get("announcedIp") or item["ip"],
                "port": port,
                "priority": 1076302079 - index,
                "protocol": "udp",
                "type": "host",
            }
            for index, item in enumerate(listen_ips)
        ]
        self.dtls_parameters = {
            "role": "auto",
            "fingerprints": [
                {
                    "algorithm": "sha-256",
                    "value": ":".join(secrets.token_hex(1).upper() for _ in range(32)),
                }
            ],
        }

    async def connect(self, *, dtls_parameters: dict[str, Any]) -> None:
        if self.closed:
            raise EngineError(f'WebRtcTransport "{self.id}" is closed')
        if self.connected:
            raise EngineError("connect() already called")
        if not dtls_parameters.get("fingerprints"):
            raise EngineError("missing dtlsParameters.fingerprints")
        self.connected = True

    async def consume(
        self,
        *,
        producer_id: str,
        rtp_capabilities: dict[str, Any],
        paused: bool = False,
    ) -> LoopbackConsumer:
        if self.closed:
            raise EngineError(f'WebRtcTransport "{self.id}" is closed')

        producer = self._router._producers.get(producer_id)
        if producer is None or producer.closed:
            raise EngineError(f'Producer with id "{producer_id}" not found')

        wanted = {
            str(codec.get("mimeType", "")).lower() for codec in producer.rtp_parameters.get("codecs", [])
        }
        offered = {str(codec.get("mimeType", "")).lower() for codec in rtp_capabilities.get("codecs", [])}
        if not wanted & offered:
            raise EngineError("cannot consume: no compatible codecs in rtpCapabilities")

        consumer = LoopbackConsumer(producer=producer, paused=paused)
        producer._consumers.append(consumer)
        self._consumers.append(consumer)
        return consumer

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for consumer in self._consumers:
            await consumer.close()
        self._consumers.clear()


class LoopbackRouter:
    def __init__(self, *, media_codecs: list[dict[str, Any]]) -> None:
        self.id = str(uuid4())
        self.closed = False
        self._producers: dict[str, LoopbackProducer] = {}
        self._transports: list[LoopbackPlainTransport | LoopbackWebRtcTransport] = []
        self.rtp_capabilities = {
            "codecs": [
                {
                    "kind": codec["kind"],
                    "mimeType": codec["mimeType"],
                    "preferredPayloadType": codec.get("preferredPayloadType"),
                    "clockRate": codec["clockRate"],
                    "parameters": dict(codec.get("parameters") or {}),
                    "rtcpFeedback": [
                        {"type": "nack"},
                        {"type": "nack", "parameter": "pli"},
                        {"type": "ccm", "parameter": "fir"},
                        {"type": "goog-remb"},
                    ],
                }
                for codec in media_codecs
            ],
            "headerExtensions": [],
        }

    async def create_plain_transport(self, *, listen_ip: str, rtcp_mux: bool, comedia: bool) -> LoopbackPlainTransport:
        if self.closed:
            raise EngineError(f'Router "{self.id}" is closed')
        transport = LoopbackPlainTransport(listen_ip=listen_ip, rtcp_mux=rtcp_mux, comedia=comedia, router=self)
        self._transports.append(transport)
        return transport

    async def create_webrtc_transport(
        self,
        *,
        listen_ips: list[dict[str, Any]],
        enable_udp: bool = True,
        enable_tcp: bool = True,
        prefer_udp: bool = True,
    ) -> LoopbackWebRtcTransport:
        if self.closed:
            raise EngineError(f'Router "{self.id}" is closed')
        if not listen_ips:
            raise EngineError("missing listenIps")
        transport = LoopbackWebRtcTransport(listen_ips=listen_ips, router=self)
        self._transports.append(transport)
        return transport

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for transport in self._transports:
            await transport.close()


class LoopbackWorker:
    def __init__(self, *, log_level: str, log_tags: list[str]) -> None:
        self.pid = os.getpid()
        self.log_level = log_level
        self.log_tags = list(log_tags)
        self.closed = False
        self._routers: list[LoopbackRouter] = []

    async def create_router(self, *, media_codecs: list[dict[str, Any]]) -> LoopbackRouter:
        if self.closed:
            raise EngineError("Worker is closed")
        if not media_codecs:
            raise EngineError("missing mediaCodecs")
        router = LoopbackRouter(media_codecs=media_codecs)
        self._routers.append(router)
        return router

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for router in self._routers:
            await router.close()


class LoopbackEngine:
    async def create_worker(self, *, log_level: str, log_tags: list[str]) -> LoopbackWorker:
        return LoopbackWorker(log_level=log_level, log_tags=log_tags)


def create_loopback_engine() -> LoopbackEngine:
    return LoopbackEngine()


__all__ = [
    "EngineError",
    "LoopbackConsumer",
    "LoopbackEngine",
    "LoopbackPlainTransport",
    "LoopbackProducer",
    "LoopbackRouter",
    "LoopbackWebRtcTransport",
    "LoopbackWorker",
    "create_loopback_engine",
]
