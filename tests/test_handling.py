"""Tests for the error handler strategies."""

import logging

import pytest

from yuugen.config import LoggerConfig, RetryPolicy, TelemetryConfig
from yuugen.errors import (
    AdServingError,
    ErrorCode,
    ErrorContext,
    ErrorSeverity,
    NetworkError,
    PrivacyViolationError,
    SDKIntegrationError,
)
from yuugen.guidance import DEFAULT_GUIDANCE, get_guidance
from yuugen.handling import ErrorHandler, build_error_reporter
from yuugen.logger import StructuredLogger
from yuugen.processors import DropNewestPolicy, TelemetryPipeline

from conftest import RecordingExporter, RecordingSleep


def make_handler(**kwargs):
    exporter = RecordingExporter()
    reporter = TelemetryPipeline(exporter, payload_key="errors", batch_size=100, flush_interval=60)
    handler = ErrorHandler(
        RetryPolicy(max_attempts=3, jitter=False),
        logger=StructuredLogger(LoggerConfig(level="debug")),
        reporter=reporter,
        sleep=RecordingSleep(),
        **kwargs,
    )
    return handler, exporter


def critical_records(caplog):
    return [r for r in caplog.records if r.levelno == logging.CRITICAL]


class TestReporterConstruction:
    def test_disabled_by_default(self):
        assert build_error_reporter(TelemetryConfig()) is None
        assert ErrorHandler().reporter is None

    def test_enabled_reporter_uses_errors_key(self):
        reporter = build_error_reporter(TelemetryConfig(enable_remote=True, batch_size=4, drop_policy="newest"))
        assert reporter.payload_key == "errors"
        assert reporter.batch_size == 4
        assert reporter.include_stack_trace is True
        assert isinstance(reporter.drop_policy, DropNewestPolicy)


class TestNetworkStrategy:
    @pytest.mark.asyncio
    async def test_success_is_not_reported(self):
        handler, exporter = make_handler()

        async def ok():
            return "value"

        assert await handler.handle_network_error(ok) == "value"
        await handler.destroy()
        assert exporter.entries == []

    @pytest.mark.asyncio
    async def test_exhaustion_is_logged_and_reported_once(self, caplog):
        handler, exporter = make_handler()
        calls = []

        async def down():
            calls.append(1)
            raise ConnectionError("refused")

        with caplog.at_level(logging.DEBUG, logger="yuugen"):
            with pytest.raises(NetworkError):
                await handler.handle_network_error(down, ErrorContext(session_id="s1"))

        assert len(calls) == 3
        warnings = [r for r in caplog.records if r.name == "yuugen.network" and r.levelno == logging.WARNING]
        assert len(warnings) == 2
        await handler.destroy()
        assert len(exporter.entries) == 1
        assert exporter.entries[0]["code"] == ErrorCode.NETWORK_OPERATION_FAILED

    @pytest.mark.asyncio
    async def test_partial_policy_overrides_handler_default(self):
        handler, _ = make_handler()
        calls = []

        async def down():
            calls.append(1)
            raise ConnectionError("refused")

        with pytest.raises(NetworkError):
            await handler.handle_network_error(down, policy={"max_attempts": 5})
        assert len(calls) == 5


class TestPrivacyStrategy:
    def test_single_critical_record_and_raise(self, caplog):
        handler, _ = make_handler()
        with caplog.at_level(logging.DEBUG, logger="yuugen"):
            with pytest.raises(PrivacyViolationError) as exc_info:
                handler.handle_privacy_violation("tracking without consent")

        err = exc_info.value
        assert err.code == ErrorCode.PRIVACY_CONSENT_MISSING
        assert err.severity is ErrorSeverity.CRITICAL
        records = critical_records(caplog)
        assert len(records) == 1
        assert "PRIVACY VIOLATION: tracking without consent" in records[0].getMessage()

    @pytest.mark.asyncio
    async def test_violation_is_reported(self):
        handler, exporter = make_handler()
        with pytest.raises(PrivacyViolationError):
            handler.handle_privacy_violation("no consent", context=ErrorContext(user_id="u1"))
        await handler.destroy()
        assert exporter.entries[0]["category"] == "privacy"
        assert "userId" not in exporter.entries[0]["context"]

    def test_listeners_notified_even_if_one_fails(self):
        handler, _ = make_handler()
        seen = []

        def broken(error):
            raise RuntimeError("listener bug")

        handler.add_privacy_listener(broken)
        handler.add_privacy_listener(seen.append)

        with pytest.raises(PrivacyViolationError) as exc_info:
            handler.handle_privacy_violation("no consent")
        assert seen == [exc_info.value]


class TestAdServingStrategy:
    @pytest.mark.asyncio
    async def test_fallback_result_returned(self):
        handler, exporter = make_handler()
        result = await handler.handle_ad_serving_error(ConnectionError("down"), fallback=lambda: "fallback-ad")
        assert result == "fallback-ad"
        await handler.destroy()
        assert exporter.entries == []

    @pytest.mark.asyncio
    async def test_async_fallback_awaited(self):
        handler, _ = make_handler()

        async def fallback():
            return "async-fallback"

        assert await handler.handle_ad_serving_error(ConnectionError("down"), fallback=fallback) == "async-fallback"

    @pytest.mark.asyncio
    async def test_fallback_failure_carries_both_errors(self):
        handler, exporter = make_handler()
        attempts = []

        def fallback():
            attempts.append(1)
            raise ValueError("no placeholder")

        with pytest.raises(AdServingError) as exc_info:
            await handler.handle_ad_serving_error(
                ConnectionError("primary down"), ErrorContext(session_id="s1"), fallback
            )

        err = exc_info.value
        assert len(attempts) == 1
        assert err.code == ErrorCode.AD_SERVING_FAILED
        assert err.severity is ErrorSeverity.HIGH
        assert err.retryable is False
        assert "primary down" in err.context.additional_data["originalError"]
        assert "no placeholder" in err.context.additional_data["fallbackError"]
        assert err.context.session_id == "s1"
        await handler.destroy()
        assert len(exporter.entries) == 1

    @pytest.mark.asyncio
    async def test_without_fallback_error_is_retryable(self):
        handler, _ = make_handler()
        with pytest.raises(AdServingError) as exc_info:
            await handler.handle_ad_serving_error(ConnectionError("down"))
        assert exc_info.value.retryable is True
        assert exc_info.value.severity is ErrorSeverity.MEDIUM
        assert "fallbackError" not in exc_info.value.context.additional_data


class TestSDKStrategy:
    def test_raises_with_guidance(self, caplog):
        handler, _ = make_handler()
        with caplog.at_level(logging.DEBUG, logger="yuugen"):
            with pytest.raises(SDKIntegrationError) as exc_info:
                handler.handle_sdk_error("bad key", ErrorCode.INVALID_API_KEY, severity=ErrorSeverity.CRITICAL)

        assert exc_info.value.severity is ErrorSeverity.CRITICAL
        messages = [r.getMessage() for r in caplog.records]
        assert any(get_guidance(ErrorCode.INVALID_API_KEY).solution in m for m in messages)

    def test_unknown_code_gets_generic_guidance(self, caplog):
        handler, _ = make_handler()
        with caplog.at_level(logging.DEBUG, logger="yuugen"):
            with pytest.raises(SDKIntegrationError):
                handler.handle_sdk_error("odd", "brand-new-code")
        messages = [r.getMessage() for r in caplog.records]
        assert any(DEFAULT_GUIDANCE.description in m for m in messages)

    def test_guidance_shown_even_when_logger_threshold_is_high(self, caplog):
        handler = ErrorHandler(logger=StructuredLogger(LoggerConfig(level="critical")))
        error = SDKIntegrationError("not ready", ErrorCode.NOT_INITIALIZED)
        with caplog.at_level(logging.DEBUG, logger="yuugen"):
            guidance = handler.provide_troubleshooting_guidance(error)
        assert guidance is get_guidance(ErrorCode.NOT_INITIALIZED)
        assert len(caplog.records) == 1


class TestSeverityMapping:
    @pytest.mark.parametrize(
        "severity,level",
        [
            (ErrorSeverity.LOW, logging.INFO),
            (ErrorSeverity.MEDIUM, logging.WARNING),
            (ErrorSeverity.HIGH, logging.ERROR),
            (ErrorSeverity.CRITICAL, logging.CRITICAL),
        ],
    )
    def test_log_error_level_follows_severity(self, caplog, severity, level):
        handler, _ = make_handler()
        with caplog.at_level(logging.DEBUG, logger="yuugen"):
            handler.log_error(NetworkError("x", ErrorCode.NETWORK_OPERATION_FAILED, severity=severity))
        assert [r.levelno for r in caplog.records] == [level]
        assert caplog.records[0].name == "yuugen.network"
