"""Tests for ProducerStateMachine state transitions."""

from camrelay.domain.relay.producer_state_machine import ProducerStateMachine
from camrelay.schemas import ProducerState


class TestCanTransition:
    """Tests for ProducerStateMachine.can_transition method."""

    def test_awaiting_to_active_valid(self):
        """Test AWAITING_SOURCE -> ACTIVE is a valid transition."""
        assert ProducerStateMachine.can_transition(ProducerState.AWAITING_SOURCE, ProducerState.ACTIVE) is True

    def test_active_to_closed_valid(self):
        """Test ACTIVE -> CLOSED is a valid transition."""
        assert ProducerStateMachine.can_transition(ProducerState.ACTIVE, ProducerState.CLOSED) is True

    def test_closed_to_awaiting_valid(self):
        """Test CLOSED -> AWAITING_SOURCE is a valid transition (source may reconnect)."""
        assert ProducerStateMachine.can_transition(ProducerState.CLOSED, ProducerState.AWAITING_SOURCE) is True

    def test_active_to_active_invalid(self):
        """Test a second producer cannot replace an active one."""
        assert ProducerStateMachine.can_transition(ProducerState.ACTIVE, ProducerState.ACTIVE) is False

    def test_awaiting_to_closed_invalid(self):
        """Test nothing can be closed before a producer exists."""
        assert ProducerStateMachine.can_transition(ProducerState.AWAITING_SOURCE, ProducerState.CLOSED) is False

    def test_closed_to_active_invalid(self):
        """Test CLOSED must go back to AWAITING_SOURCE first."""
        assert ProducerStateMachine.can_transition(ProducerState.CLOSED, ProducerState.ACTIVE) is False

    def test_active_to_awaiting_invalid(self):
        """Test the producer is always closed before awaiting a new source."""
        assert ProducerStateMachine.can_transition(ProducerState.ACTIVE, ProducerState.AWAITING_SOURCE) is False


class TestGetValidTransitions:
    """Tests for ProducerStateMachine.get_valid_transitions method."""

    def test_every_state_has_exactly_one_successor(self):
        """Test the lifecycle is a simple cycle."""
        for state in ProducerState:
            assert len(ProducerStateMachine.get_valid_transitions(state)) == 1

    def test_initial_state(self):
        assert ProducerStateMachine.INITIAL_STATE == ProducerState.AWAITING_SOURCE


class TestHoldsProducer:
    """Tests for ProducerStateMachine.holds_producer method."""

    def test_only_active_holds_producer(self):
        assert ProducerStateMachine.holds_producer(ProducerState.ACTIVE) is True
        assert ProducerStateMachine.holds_producer(ProducerState.AWAITING_SOURCE) is False
        assert ProducerStateMachine.holds_producer(ProducerState.CLOSED) is False
