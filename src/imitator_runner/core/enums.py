"""Core enumerations for the Imitator Runner service."""
from enum import Enum


class ExecutionStatus(str, Enum):
    """
    Outcome of one model run.

    State flow:
        (running) → SUCCESS | NON_ZERO_EXIT | TIMED_OUT | SPAWN_FAILED | CANCELLED

    - SUCCESS: Tool exited with code 0
    - NON_ZERO_EXIT: Tool exited with any other code
    - TIMED_OUT: Timeout fired first and the process was terminated
    - SPAWN_FAILED: The tool could not be started
    - CANCELLED: The job was cancelled and the process was terminated
    """

    SUCCESS = "SUCCESS"
    NON_ZERO_EXIT = "NON_ZERO_EXIT"
    TIMED_OUT = "TIMED_OUT"
    SPAWN_FAILED = "SPAWN_FAILED"
    CANCELLED = "CANCELLED"

    def __str__(self) -> str:
        """Return string representation of the enum value."""
        return self.value


class FailurePolicy(str, Enum):
    """
    How a job reacts to an unsuccessful model run.

    - ISOLATE: Keep running the other models and mark the job as failed
    - ABORT: Cancel the remaining models and fail the whole job
    """

    ISOLATE = "isolate"
    ABORT = "abort"

    def __str__(self) -> str:
        """Return string representation of the enum value."""
        return self.value


class StreamBackend(str, Enum):
    """Backends available for live output streaming."""

    MEMORY = "memory"
    REDIS = "redis"

    def __str__(self) -> str:
        """Return string representation of the enum value."""
        return self.value


class StreamMessageKind(str, Enum):
    """Kinds of messages sent on an output stream."""

    OUTPUT = "output"
    END = "end"

    def __str__(self) -> str:
        """Return string representation of the enum value."""
        return self.value
