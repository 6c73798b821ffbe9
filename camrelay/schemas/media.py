"""Media descriptors exchanged with the media engine."""

from typing import Any

from pydantic import BaseModel, Field

from camrelay.app_config import AppEnvironConfig


class CodecSettings(BaseModel):
    """Fixed, pre-agreed codec of the upstream RTP source.

    The relay does not negotiate with the upstream sender: the router is created
    with exactly this codec and the producer is created with these RTP parameters
    and this SSRC, which must match what the sender emits.
    """

    kind: str = "video"
    mime_type: str = "video/H264"
    payload_type: int = 96
    clock_rate: int = 90000
    packetization_mode: int = 1
    profile_level_id: str = "42e01f"
    ssrc: int = Field(default=22222222, description="SSRC identifying the upstream RTP source")

    @classmethod
    def from_config(cls, cfg: AppEnvironConfig) -> "CodecSettings":
        return cls(
            mime_type=cfg.PRODUCER_MIME_TYPE,
            payload_type=cfg.PRODUCER_PAYLOAD_TYPE,
            clock_rate=cfg.PRODUCER_CLOCK_RATE,
            packetization_mode=cfg.PRODUCER_PACKETIZATION_MODE,
            profile_level_id=cfg.PRODUCER_PROFILE_LEVEL_ID,
            ssrc=cfg.PRODUCER_SSRC,
        )

    def _codec_parameters(self) -> dict[str, Any]:
        return {
            "packetization-mode": self.packetization_mode,
            "profile-level-id": self.profile_level_id,
        }

    def router_media_codecs(self) -> list[dict[str, Any]]:
        return [
            {
                "kind": self.kind,
                "mimeType": self.mime_type,
                "preferredPayloadType": self.payload_type,
                "clockRate": self.clock_rate,
                "parameters": self._codec_parameters(),
            }
        ]

    def producer_rtp_parameters(self) -> dict[str, Any]:
        return {
            "codecs": [
                {
                    "mimeType": self.mime_type,
                    "payloadType": self.payload_type,
                    "clockRate": self.clock_rate,
                    "parameters": self._codec_parameters(),
                }
            ],
            "encodings": [{"ssrc": self.ssrc}],
        }


class TransportTuple(BaseModel):
    """Network 5-tuple of a transport as reported by the engine."""

    local_ip: str
    local_port: int
    remote_ip: str | None = None
    remote_port: int | None = None
    protocol: str = "udp"


__all__ = ["CodecSettings", "TransportTuple"]
