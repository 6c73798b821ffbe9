"""Common enums used across schemas."""

from enum import Enum


class ProducerState(str, Enum):
    """Upstream producer lifecycle states.

    State Transition Flow:

    AWAITING_SOURCE → ACTIVE → CLOSED → AWAITING_SOURCE (cyclic)

    State Descriptions:
    - AWAITING_SOURCE: No producer exists; the relay expects one. Initial state.
    - ACTIVE: Producer created from the inbound RTP stream, liveness monitor running.
    - CLOSED: Producer torn down after a stall or an end-of-stream signal. Transient,
      collapses back to AWAITING_SOURCE once cleanup completes.
    """

    AWAITING_SOURCE = "awaiting_source"
    ACTIVE = "active"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


__all__ = ["ProducerState"]
