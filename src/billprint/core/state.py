"""
State machine for a single print job.

States:
    CREATED: Job record exists, nothing started yet
    LOADING: Sandbox is loading the receipt URL
    AWAITING_READY: Page loaded, waiting for the content-ready signal
    PRINTING: Output handed to the printing facility
    COMPLETED: Printing facility accepted the job
    FAILED: Load, encode or print failure (or user cancellation)
    TIMED_OUT: Job ceiling expired before a terminal state was reached
"""

from enum import Enum, auto
from typing import Callable
import logging

logger = logging.getLogger(__name__)


class JobState(Enum):
    """Print job states."""
    CREATED = auto()
    LOADING = auto()
    AWAITING_READY = auto()
    PRINTING = auto()
    COMPLETED = auto()
    FAILED = auto()
    TIMED_OUT = auto()

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.TIMED_OUT})

StateListener = Callable[[JobState, JobState], None]


class JobStateMachine:
    """
    Tracks the lifecycle of one print job.

    Terminal states accept no further transitions, so a late event
    arriving after a timeout cannot move the job again.
    """

    # Valid state transitions
    VALID_TRANSITIONS: list[tuple[JobState, JobState]] = [
        # From CREATED
        (JobState.CREATED, JobState.LOADING),
        (JobState.CREATED, JobState.FAILED),  # Sandbox could not be created

        # From LOADING
        (JobState.LOADING, JobState.AWAITING_READY),
        (JobState.LOADING, JobState.FAILED),

        # From AWAITING_READY
        (JobState.AWAITING_READY, JobState.PRINTING),
        (JobState.AWAITING_READY, JobState.FAILED),  # Late load failure

        # From PRINTING
        (JobState.PRINTING, JobState.COMPLETED),
        (JobState.PRINTING, JobState.FAILED),
    ] + [
        # Ceiling applies to every non-terminal state
        (state, JobState.TIMED_OUT)
        for state in (
            JobState.CREATED,
            JobState.LOADING,
            JobState.AWAITING_READY,
            JobState.PRINTING,
        )
    ]

    def __init__(self, name: str = "job", initial_state: JobState = JobState.CREATED) -> None:
        self._name = name
        self._state = initial_state
        self._listeners: list[StateListener] = []
        self._valid_transitions = set(self.VALID_TRANSITIONS)

    @property
    def state(self) -> JobState:
        """Get current state."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    def can_transition(self, to_state: JobState) -> bool:
        """Check if transition to given state is valid."""
        return (self._state, to_state) in self._valid_transitions

    def transition(self, to_state: JobState) -> bool:
        """
        Attempt to transition to a new state.

        Returns:
            True if transition successful, False otherwise
        """
        if not self.can_transition(to_state):
            logger.warning(
                f"[{self._name}] Invalid transition: {self._state.name} -> {to_state.name}"
            )
            return False

        old_state = self._state
        self._state = to_state
        logger.info(f"[{self._name}] {old_state.name} -> {to_state.name}")

        for listener in self._listeners:
            try:
                listener(old_state, to_state)
            except Exception as e:
                logger.error(f"Error in state listener: {e}")

        return True

    def add_listener(self, callback: StateListener) -> None:
        """Add a state change listener."""
        self._listeners.append(callback)
