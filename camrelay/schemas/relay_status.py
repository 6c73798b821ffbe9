"""Relay runtime status snapshot."""

from pydantic import BaseModel, Field

from .producer_state import ProducerState


class IngestStatus(BaseModel):
    """Upstream RTP ingest endpoint, for pointing the sender at the relay."""

    listen_ip: str
    rtp_port: int
    rtcp_port: int | None = None
    remote_ip: str | None = None
    remote_port: int | None = None


class RelayStatus(BaseModel):
    router_ready: bool
    producer_state: ProducerState
    producer_id: str | None = None
    is_expecting_producer: bool
    viewers: int = Field(description="Connected viewer sessions")
    transports: int = Field(description="Registered viewer transports")
    producers_created: int = 0
    producers_closed: int = 0
    ingest: IngestStatus | None = None


__all__ = ["IngestStatus", "RelayStatus"]
