"""Unit tests for core enums."""
import pytest
from imitator_runner.core.enums import (
    ExecutionStatus,
    FailurePolicy,
    StreamBackend,
    StreamMessageKind,
)


class TestExecutionStatusEnum:
    """Test ExecutionStatus enum values and behavior."""

    @pytest.mark.parametrize(
        "status",
        ["SUCCESS", "NON_ZERO_EXIT", "TIMED_OUT", "SPAWN_FAILED", "CANCELLED"],
    )
    def test_status_values(self, status):
        assert ExecutionStatus(status).value == status

    def test_str_is_value(self):
        """Test statuses render as their value in messages."""
        assert str(ExecutionStatus.TIMED_OUT) == "TIMED_OUT"
        assert f"{ExecutionStatus.SUCCESS}" == "SUCCESS"

    def test_is_string_comparable(self):
        assert ExecutionStatus.SUCCESS == "SUCCESS"


class TestConfigEnums:
    """Test enums used by settings."""

    def test_failure_policy_values(self):
        assert FailurePolicy("isolate") is FailurePolicy.ISOLATE
        assert FailurePolicy("abort") is FailurePolicy.ABORT

    def test_stream_backend_values(self):
        assert StreamBackend("memory") is StreamBackend.MEMORY
        assert StreamBackend("redis") is StreamBackend.REDIS

    def test_unknown_value_raises(self):
        with pytest.raises(ValueError):
            FailurePolicy("retry")


class TestStreamMessageKindEnum:
    """Test StreamMessageKind enum."""

    def test_kinds(self):
        assert str(StreamMessageKind.OUTPUT) == "output"
        assert str(StreamMessageKind.END) == "end"
