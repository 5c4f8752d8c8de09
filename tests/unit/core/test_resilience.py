"""Unit tests for notestore.core.resilience."""

from unittest.mock import MagicMock, patch

import pytest

from notestore.core.config_schema import RetrySchema
from notestore.core.exceptions import NotFoundError, StorageError
from notestore.core.resilience import is_transient, log_retry, transient_retry


class TestLogRetry:
    def test_emits_structured_event(self):
        """log_retry should emit a warning with retry metadata."""
        mock_state = MagicMock()
        mock_state.attempt_number = 1
        mock_state.fn = None
        mock_state.outcome_timestamp = 1000.25
        mock_state.start_time = 1000.0
        mock_state.outcome.failed = True
        mock_state.outcome.exception.return_value = StorageError("database is locked", transient=True)

        with patch("notestore.core.resilience.logger") as mock_logger:
            log_retry(mock_state)
            mock_logger.warning.assert_called_once()
            call_args = mock_logger.warning.call_args
            assert "unit_of_work" in call_args[0][0]
            extra = call_args[1]["extra"]
            assert extra["resilience_event"] == "retry_attempt"
            assert extra["dependency"] == "sqlite"
            assert extra["duration_ms"] == 250
            assert extra["error"] == "database is locked"


class TestIsTransient:
    def test_transient_storage_error(self):
        assert is_transient(StorageError("busy", transient=True))

    def test_permanent_storage_error(self):
        assert not is_transient(StorageError("disk I/O error"))

    def test_other_errors(self):
        assert not is_transient(NotFoundError())
        assert not is_transient(RuntimeError())


class TestTransientRetry:
    """The retry controller retries transient failures once, nothing else."""

    @staticmethod
    async def run(fn, policy=None):
        async for attempt in transient_retry(policy):
            with attempt:
                return await fn()

    @pytest.mark.asyncio
    async def test_retries_transient_once(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise StorageError("database is locked", transient=True)
            return "ok"

        with patch("notestore.core.resilience.logger") as mock_logger:
            result = await self.run(flaky, RetrySchema(backoff_min_seconds=0, backoff_max_seconds=0))

        assert result == "ok"
        assert len(calls) == 2
        mock_logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        calls = []

        async def locked():
            calls.append(1)
            raise StorageError("database is locked", transient=True)

        with pytest.raises(StorageError):
            await self.run(locked, RetrySchema(attempts=2, backoff_min_seconds=0, backoff_max_seconds=0))

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_never_retries_client_errors(self):
        calls = []

        async def missing():
            calls.append(1)
            raise NotFoundError("gone")

        with pytest.raises(NotFoundError):
            await self.run(missing)

        assert len(calls) == 1
