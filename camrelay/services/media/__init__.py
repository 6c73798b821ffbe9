"""Media engine binding: protocols, the engine service wrapper and the loopback engine."""

from .engine import Consumer, MediaEngine, PlainTransport, Producer, Router, WebRtcTransport, Worker
from .media_service import MediaService, media_service

__all__ = [
    "Consumer",
    "MediaEngine",
    "MediaService",
    "PlainTransport",
    "Producer",
    "Router",
    "WebRtcTransport",
    "Worker",
    "media_service",
]
