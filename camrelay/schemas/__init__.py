"""Pydantic schemas and enums shared across the relay."""

from .media import CodecSettings, TransportTuple
from .producer_state import ProducerState
from .relay_status import IngestStatus, RelayStatus
from .signaling import (
    ConnectTransportIn,
    ConsumeIn,
    ConsumerOut,
    MediaStoppedOut,
    SignalingError,
    TransportOut,
)

__all__ = [
    "CodecSettings",
    "ConnectTransportIn",
    "ConsumeIn",
    "ConsumerOut",
    "IngestStatus",
    "MediaStoppedOut",
    "ProducerState",
    "RelayStatus",
    "SignalingError",
    "TransportOut",
    "TransportTuple",
]
