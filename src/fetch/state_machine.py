"""Fetch result lifecycle state machine implementation."""

from enum import Enum, auto
from typing import ClassVar

import structlog


logger = structlog.get_logger()


class FetchState(Enum):
    """Fetch result lifecycle states.

    State transitions:
        FETCH_PENDING -> FETCH_SUCCEEDED: Content fetched or revalidated
        FETCH_PENDING -> FETCH_FAILED: Fetch failed at any stage
        FETCH_SUCCEEDED -> FETCH_RELEASED: Caller released the result
        FETCH_FAILED -> FETCH_RELEASED: Caller released the result
    """

    FETCH_PENDING = auto()
    FETCH_SUCCEEDED = auto()
    FETCH_FAILED = auto()
    FETCH_RELEASED = auto()


class FetchStateError(Exception):
    """Raised when an invalid fetch state transition is attempted."""

    def __init__(self, from_state: FetchState, to_state: FetchState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid fetch state transition: {from_state.name} -> {to_state.name}"
        )


class FetchStateMachine:
    """State machine for a single fetch result.

    Enforces valid state transitions from the start of a fetch until the
    caller releases its result. Logs invariant violations when invalid
    transitions are attempted.
    """

    VALID_TRANSITIONS: ClassVar[dict[FetchState, set[FetchState]]] = {
        FetchState.FETCH_PENDING: {
            FetchState.FETCH_SUCCEEDED,
            FetchState.FETCH_FAILED,
        },
        FetchState.FETCH_SUCCEEDED: {FetchState.FETCH_RELEASED},
        FetchState.FETCH_FAILED: {FetchState.FETCH_RELEASED},
        FetchState.FETCH_RELEASED: set(),  # Terminal state
    }

    def __init__(self, cache_key: str = "") -> None:
        """Initialize the state machine in FETCH_PENDING state.

        Args:
            cache_key: Cache key of the fetch, for logging.
        """
        self._state = FetchState.FETCH_PENDING
        self._log = logger.bind(component="fetch", cache_key=cache_key)

    @property
    def state(self) -> FetchState:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: FetchState) -> bool:
        """Check if a transition to the given state is valid.

        Args:
            to_state: The target state.

        Returns:
            True if the transition is valid, False otherwise.
        """
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: FetchState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            FetchStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise FetchStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.debug(
            "fetch_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def is_released(self) -> bool:
        """Check if the result has been released."""
        return self._state == FetchState.FETCH_RELEASED

    def is_pending(self) -> bool:
        """Check if the fetch is still in flight."""
        return self._state == FetchState.FETCH_PENDING
