"""Unit tests for the fetch result lifecycle state machine."""

import pytest

from src.fetch.state_machine import FetchState, FetchStateError, FetchStateMachine


class TestFetchStateMachine:
    """Tests for FetchStateMachine."""

    def test_starts_pending(self) -> None:
        """Test the initial state."""
        machine = FetchStateMachine(cache_key="abc")

        assert machine.state == FetchState.FETCH_PENDING
        assert machine.is_pending() is True
        assert machine.is_released() is False

    @pytest.mark.parametrize(
        "outcome", [FetchState.FETCH_SUCCEEDED, FetchState.FETCH_FAILED]
    )
    def test_happy_path(self, outcome: FetchState) -> None:
        """Test pending -> outcome -> released."""
        machine = FetchStateMachine()

        machine.transition(outcome)
        machine.transition(FetchState.FETCH_RELEASED)

        assert machine.is_released() is True

    @pytest.mark.parametrize(
        ("path", "illegal"),
        [
            ([], FetchState.FETCH_RELEASED),
            ([FetchState.FETCH_SUCCEEDED], FetchState.FETCH_FAILED),
            ([FetchState.FETCH_FAILED], FetchState.FETCH_SUCCEEDED),
            (
                [FetchState.FETCH_SUCCEEDED, FetchState.FETCH_RELEASED],
                FetchState.FETCH_RELEASED,
            ),
        ],
    )
    def test_illegal_transitions(
        self, path: list[FetchState], illegal: FetchState
    ) -> None:
        """Test that illegal transitions raise and leave the state unchanged."""
        machine = FetchStateMachine()
        for state in path:
            machine.transition(state)
        before = machine.state

        assert machine.can_transition(illegal) is False
        with pytest.raises(FetchStateError) as exc_info:
            machine.transition(illegal)

        assert machine.state == before
        assert exc_info.value.from_state == before
        assert exc_info.value.to_state == illegal
        assert "Invalid fetch state transition" in str(exc_info.value)

    def test_released_is_terminal(self) -> None:
        """Test that no transition leaves the released state."""
        assert FetchStateMachine.VALID_TRANSITIONS[FetchState.FETCH_RELEASED] == set()
