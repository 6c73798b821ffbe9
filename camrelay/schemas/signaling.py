"""Payload schemas of the socket.io signaling protocol.

Field names on the wire are camelCase to stay compatible with the browser
client; Python code uses the snake_case attribute names.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ConnectTransportIn(_WireModel):
    transport_id: str = Field(alias="transportId", min_length=1)
    dtls_parameters: dict[str, Any] = Field(alias="dtlsParameters")


class ConsumeIn(_WireModel):
    transport_id: str = Field(alias="transportId", min_length=1)
    rtp_capabilities: dict[str, Any] = Field(alias="rtpCapabilities")


class TransportOut(_WireModel):
    """Connection parameters of a newly created viewer transport."""

    id: str
    ice_parameters: dict[str, Any] = Field(alias="iceParameters")
    ice_candidates: list[dict[str, Any]] = Field(alias="iceCandidates")
    dtls_parameters: dict[str, Any] = Field(alias="dtlsParameters")


class ConsumerOut(_WireModel):
    """Parameters of a paused consumer handed to the viewer."""

    id: str
    kind: str
    rtp_parameters: dict[str, Any] = Field(alias="rtpParameters")
    type: str
    producer_id: str = Field(alias="producerId")


class SignalingError(_WireModel):
    error: str


class MediaStoppedOut(_WireModel):
    """Broadcast to every viewer when the upstream producer goes away."""

    producer_id: str = Field(alias="producerId")
    reason: str


__all__ = [
    "ConnectTransportIn",
    "ConsumeIn",
    "ConsumerOut",
    "MediaStoppedOut",
    "SignalingError",
    "TransportOut",
]
