"""Producer state machine for managing lifecycle transitions."""

from camrelay.schemas import ProducerState


class ProducerStateMachine:
    """State machine for the single upstream producer.

    State flow with triggers:
    - AWAITING_SOURCE -> ACTIVE (inbound RTP tuple detected and producer created)
    - ACTIVE -> CLOSED (liveness monitor declared a stall, or the track ended)
    - CLOSED -> AWAITING_SOURCE (immediately, once teardown and broadcast completed)

    There is no terminal state: the cycle repeats for every reconnect of the source.
    """

    TRANSITIONS: dict[ProducerState, set[ProducerState]] = {
        ProducerState.AWAITING_SOURCE: {ProducerState.ACTIVE},
        ProducerState.ACTIVE: {ProducerState.CLOSED},
        ProducerState.CLOSED: {ProducerState.AWAITING_SOURCE},
    }

    INITIAL_STATE: ProducerState = ProducerState.AWAITING_SOURCE

    @classmethod
    def can_transition(cls, current: ProducerState, new: ProducerState) -> bool:
        """Check if state transition is valid.

        Args:
            current: Current producer state
            new: Target state to transition to

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def get_valid_transitions(cls, state: ProducerState) -> set[ProducerState]:
        return cls.TRANSITIONS.get(state, set())

    @classmethod
    def holds_producer(cls, state: ProducerState) -> bool:
        """Only ACTIVE may reference a producer as current."""
        return state == ProducerState.ACTIVE
