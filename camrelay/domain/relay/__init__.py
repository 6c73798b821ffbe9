from .capabilities import CapabilityNegotiator
from .coordinator import MEDIA_STOPPED_EVENT, RelayCoordinator
from .liveness_monitor import LivenessMonitor, SampleOutcome
from .producer_manager import ProducerLifecycleManager, ProducerSnapshot
from .producer_state_machine import ProducerStateMachine
from .transport_registry import RegisteredTransport, TransportRegistry
from .viewer_session import ViewerSession

__all__ = [
    "MEDIA_STOPPED_EVENT",
    "CapabilityNegotiator",
    "LivenessMonitor",
    "ProducerLifecycleManager",
    "ProducerSnapshot",
    "ProducerStateMachine",
    "RegisteredTransport",
    "RelayCoordinator",
    "SampleOutcome",
    "TransportRegistry",
    "ViewerSession",
]
