import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI

from spinwheel.config.logging import JsonFormatter
from spinwheel.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError, CircuitState
from spinwheel.core.exceptions import FreeSpinCooldownError, InsufficientSpinsError
from spinwheel.core.telemetry import LoggingSpinTelemetrySink, setup_telemetry
from spinwheel.models.schemas import SpinTelemetryEvent


async def fail():
    raise Exception("Error")


class TestCircuitBreaker:
    def test_initial_state(self):
        cb = CircuitBreaker("test", failure_threshold=2)
        assert cb.state == CircuitState.CLOSED
        assert cb.name == "test"

    @pytest.mark.asyncio
    async def test_successful_call(self):
        cb = CircuitBreaker("test")
        mock_func = AsyncMock(return_value="success")

        result = await cb.call(mock_func)

        assert result == "success"
        assert cb.state == CircuitState.CLOSED
        mock_func.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_call_opens_after_threshold(self):
        cb = CircuitBreaker("test", failure_threshold=2)
        mock_func = AsyncMock(side_effect=Exception("Error"))

        # 1st failure
        with pytest.raises(Exception):
            await cb.call(mock_func)
        assert cb.state == CircuitState.CLOSED

        # 2nd failure -> Open
        with pytest.raises(Exception):
            await cb.call(mock_func)
        assert cb.failure_count == 2
        assert cb.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_open_circuit_raises_error_no_fallback(self):
        cb = CircuitBreaker("test", failure_threshold=1)
        with pytest.raises(Exception):
            await cb.call(fail)

        with pytest.raises(CircuitBreakerOpenError):
            await cb.call(AsyncMock(return_value="should not run"))

    @pytest.mark.asyncio
    async def test_fallback_usage(self):
        cb = CircuitBreaker("test", failure_threshold=1, recovery_timeout_sec=1)
        mock_fallback = AsyncMock(return_value="fallback")

        # 1. Error with fallback provided -> returns fallback, circuit tracks failure
        res = await cb.call(fail, fallback=mock_fallback)
        assert res == "fallback"
        assert cb.failure_count == 1
        assert cb.state == CircuitState.OPEN

        # 2. Circuit is OPEN. Call with fallback -> returns fallback immediately
        res2 = await cb.call(AsyncMock(return_value="success"), fallback=mock_fallback)
        assert res2 == "fallback"

    @pytest.mark.asyncio
    async def test_recovery_half_open(self):
        cb = CircuitBreaker("test", failure_threshold=1, recovery_timeout_sec=0.1)
        with pytest.raises(Exception):
            await cb.call(fail)

        await asyncio.sleep(0.15)  # Wait for timeout

        res = await cb.call(AsyncMock(return_value="recovered"))
        assert res == "recovered"
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    @pytest.mark.asyncio
    async def test_failed_trial_call_reopens(self):
        cb = CircuitBreaker("test", failure_threshold=3, recovery_timeout_sec=0.05)
        for _ in range(3):
            with pytest.raises(Exception):
                await cb.call(fail)
        assert cb.state == CircuitState.OPEN

        await asyncio.sleep(0.1)
        with pytest.raises(Exception):
            await cb.call(fail)

        assert cb.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_half_open_lets_one_call_through(self):
        cb = CircuitBreaker("test", failure_threshold=1, recovery_timeout_sec=0.05)
        with pytest.raises(Exception):
            await cb.call(fail)
        await asyncio.sleep(0.1)

        release = asyncio.Event()

        async def slow_success():
            await release.wait()
            return "recovered"

        first = asyncio.create_task(cb.call(slow_success))
        await asyncio.sleep(0)
        assert cb.state == CircuitState.HALF_OPEN

        # A second caller is blocked while the first call is in flight
        with pytest.raises(CircuitBreakerOpenError):
            await cb.call(AsyncMock(return_value="second"))

        release.set()
        assert await first == "recovered"
        assert cb.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_trial_call_frees_the_slot(self):
        cb = CircuitBreaker("test", failure_threshold=1, recovery_timeout_sec=0.05)
        with pytest.raises(Exception):
            await cb.call(fail)
        await asyncio.sleep(0.1)

        trial = asyncio.create_task(cb.call(lambda: asyncio.sleep(10)))
        await asyncio.sleep(0)
        trial.cancel()
        with pytest.raises(asyncio.CancelledError):
            await trial

        assert await cb.call(AsyncMock(return_value="ok")) == "ok"
        assert cb.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_manual_reset(self):
        cb = CircuitBreaker("test", failure_threshold=1)
        with pytest.raises(Exception):
            await cb.call(fail)
        assert cb.state == CircuitState.OPEN

        cb.reset()
        assert cb.state == CircuitState.CLOSED


class TestExceptions:
    def test_to_dict(self):
        exc = InsufficientSpinsError("pro", available=0)

        assert exc.status_code == 409
        assert exc.to_dict() == {
            "error": {
                "code": "INSUFFICIENT_SPINS",
                "message": "No available pro spins",
                "details": {"tier": "pro", "available": 0},
            }
        }

    def test_cooldown_details_are_serializable(self, clock):
        exc = FreeSpinCooldownError(clock())

        assert exc.status_code == 429
        json.dumps(exc.to_dict())


class TestLogging:
    def test_json_formatter_lifts_context(self):
        record = logging.LogRecord("spinwheel", logging.INFO, __file__, 1, "spin done", None, None)
        record.user_id = "u1"
        record.tier = "rookie"
        record.telemetry = {"draw": 0.5}

        output = json.loads(JsonFormatter().format(record))

        assert output["message"] == "spin done"
        assert output["level"] == "INFO"
        assert output["user_id"] == "u1"
        assert output["tier"] == "rookie"
        assert output["telemetry"] == {"draw": 0.5}
        assert "spin_id" not in output


class TestTelemetry:
    def test_sink_logs_event(self, clock, caplog):
        event = SpinTelemetryEvent(
            user_id="u1",
            spin_id="spin-1",
            tier="rookie",
            reward_id="boost_50",
            category="xp",
            rarity_flag=False,
            was_pity=False,
            pity_counter_before=2,
            draw=0.7,
            timestamp=clock(),
        )

        with caplog.at_level(logging.INFO, logger="spinwheel.telemetry"):
            LoggingSpinTelemetrySink().record(event)

        assert len(caplog.records) == 1
        logged = caplog.records[0]
        assert logged.spin_id == "spin-1"
        assert logged.telemetry["pity_counter_before"] == 2

    @patch("spinwheel.core.telemetry.get_settings")
    @patch("spinwheel.core.telemetry.Instrumentator")
    def test_setup_telemetry_prometheus_enabled(self, mock_instrumentator, mock_get_settings):
        # Mock settings
        mock_settings = MagicMock()
        mock_settings.ENABLE_PROMETHEUS = True
        mock_settings.ENABLE_OTEL = False
        mock_get_settings.return_value = mock_settings

        app = FastAPI()
        setup_telemetry(app)

        mock_instrumentator.assert_called_once()
        mock_instrumentator.return_value.instrument.assert_called_once_with(app)

    @patch("spinwheel.core.telemetry.get_settings")
    @patch("spinwheel.core.telemetry.BatchSpanProcessor")
    @patch("spinwheel.core.telemetry.FastAPIInstrumentor")
    def test_setup_telemetry_otel_enabled(self, mock_fastapi_instr, mock_processor, mock_get_settings):
        # Mock settings
        mock_settings = MagicMock()
        mock_settings.ENABLE_PROMETHEUS = False
        mock_settings.ENABLE_OTEL = True
        mock_settings.APP_NAME = "test"
        mock_settings.APP_VERSION = "1.0"
        mock_settings.DEBUG = False
        mock_get_settings.return_value = mock_settings

        app = FastAPI()
        setup_telemetry(app)

        mock_fastapi_instr.instrument_app.assert_called_once()
        mock_processor.assert_called_once()
