from __future__ import annotations

import logging

import pytest

from tradekit.exchange.common import (
    ConfigurationError,
    RateLimitError,
    ResponseError,
    ServerError,
    ValidationError,
)
from tradekit.exchange.error_handling import (
    ErrorCategory,
    ErrorSeverity,
    ExchangeErrorContext,
    ExchangeErrorHandler,
    ExchangeRetryHandler,
    RetryConfig,
    exchange_operation_context,
)


@pytest.fixture
def ctx():
    return ExchangeErrorContext(exchange_name="kraken", operation="place", symbol="XBTUSD")


def _classify(error, ctx):
    return ExchangeErrorHandler().classify_error(error, ctx)


def test_context_timestamp_defaults_to_now(ctx):
    assert ctx.timestamp_ns > 0


@pytest.mark.parametrize("error,category,retryable", [
    (ValidationError("too small"), ErrorCategory.VALIDATION, False),
    (ConfigurationError("no secret"), ErrorCategory.VALIDATION, False),
    (RateLimitError("bucket empty"), ErrorCategory.RATE_LIMIT, True),
    (ServerError(429), ErrorCategory.RATE_LIMIT, True),
    (ServerError(503), ErrorCategory.NETWORK, True),
    (ServerError(None, "connection reset"), ErrorCategory.NETWORK, True),
    (ServerError(403), ErrorCategory.AUTHENTICATION, False),
    (ServerError(404), ErrorCategory.NETWORK, False),
    (ResponseError(["EAPI:Rate limit exceeded"]), ErrorCategory.RATE_LIMIT, True),
    (ResponseError(["EAPI:Invalid nonce"]), ErrorCategory.AUTHENTICATION, True),
    (ResponseError(["EAPI:Invalid key"]), ErrorCategory.AUTHENTICATION, False),
    (ResponseError(["EService:Unavailable"]), ErrorCategory.NETWORK, True),
    (ResponseError(["EGeneral:Invalid arguments:volume"]), ErrorCategory.VALIDATION, False),
    (ResponseError(["EOrder:Insufficient funds"]), ErrorCategory.EXCHANGE_SPECIFIC, False),
    (KeyError("result"), ErrorCategory.SYSTEM, False),
])
def test_classification(ctx, error, category, retryable):
    info = _classify(error, ctx)
    assert info.category == category
    assert info.retryable is retryable


def test_invalid_signature_is_critical(ctx):
    info = _classify(ResponseError(["EAPI:Invalid signature"]), ctx)
    assert info.severity == ErrorSeverity.CRITICAL
    assert info.retry_after_seconds is None


def test_error_info_dict(ctx):
    d = _classify(ServerError(503), ctx).to_dict()
    assert d["error_code"] == "network_ServerError"
    assert d["category"] == "network"
    assert d["context"]["symbol"] == "XBTUSD"
    assert d["user_message"] == "Network connectivity issue with kraken for XBTUSD during place"


def test_retry_until_success(ctx):
    sleeps = []
    calls = {"n": 0}

    def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise ServerError(502)
        return "ok"

    handler = ExchangeRetryHandler(RetryConfig(max_attempts=3, jitter=False), sleep=sleeps.append)
    assert handler.execute_with_retry(flaky, ExchangeErrorHandler(), ctx) == "ok"
    assert sleeps == [5.0, 5.0]


def test_retry_gives_up_after_max_attempts(ctx):
    sleeps = []

    def down():
        raise ServerError(None, "timeout")

    handler = ExchangeRetryHandler(RetryConfig(max_attempts=2, jitter=False), sleep=sleeps.append)
    with pytest.raises(ServerError):
        handler.execute_with_retry(down, ExchangeErrorHandler(), ctx)
    assert len(sleeps) == 1


def test_validation_errors_are_not_retried(ctx):
    sleeps = []
    calls = {"n": 0}

    def rejected():
        calls["n"] += 1
        raise ValidationError("below minimum")

    handler = ExchangeRetryHandler(RetryConfig(max_attempts=5), sleep=sleeps.append)
    with pytest.raises(ValidationError):
        handler.execute_with_retry(rejected, ExchangeErrorHandler(), ctx)
    assert calls["n"] == 1
    assert sleeps == []


def test_delay_backoff_is_capped():
    handler = ExchangeRetryHandler(RetryConfig(base_delay=1.0, backoff_factor=2.0, max_delay=5.0, jitter=False))
    assert handler._calculate_delay(0, None) == 1.0
    assert handler._calculate_delay(2, None) == 4.0
    assert handler._calculate_delay(5, None) == 5.0


def test_operation_context_reraises_original(caplog):
    with caplog.at_level(logging.INFO, logger="tradekit.exchange.error_handling"):
        with pytest.raises(ResponseError) as ei:
            with exchange_operation_context("kraken", "balance"):
                raise ResponseError(["EAPI:Invalid nonce"])
    assert ei.value.errors == ["EAPI:Invalid nonce"]
    failed = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(failed) == 1
    assert failed[0].error_info["category"] == "authentication"
    assert "Starting balance on kraken" in caplog.text


def test_operation_context_logs_completion(caplog):
    with caplog.at_level(logging.INFO, logger="tradekit.exchange.error_handling"):
        with exchange_operation_context("kraken", "time") as c:
            assert c.operation == "time"
    assert "Completed time on kraken" in caplog.text
