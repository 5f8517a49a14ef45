"""Step-up metrics for Prometheus.

Usage:
    ```python
    from stepup_mfa.observability import StepUpMetrics

    with StepUpMetrics.operation("enroll.confirm"):
        codes = await enrollment.confirm_enrollment(user_id, code)

    StepUpMetrics.record_verification("totp", "mfa:verify", "success")
    ```
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from prometheus_client import Counter, Histogram

_logger = logging.getLogger("stepup_mfa.metrics")

if TYPE_CHECKING:
    from collections.abc import Generator


class _StepUpMetricsRegistry:
    """Registry for step-up Prometheus metrics.

    Metrics are created on first use so importing the package never
    touches the default collector registry.
    """

    def __init__(self) -> None:
        self._verifications: Any = None
        self._duration: Any = None
        self._denials: Any = None
        self._gate_outcomes: Any = None
        self._initialized = False

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        self._verifications = Counter(
            "stepup_verifications_total",
            "Step-up code verifications",
            ["method", "purpose", "result"],
        )
        self._duration = Histogram(
            "stepup_operation_duration_seconds",
            "Step-up operation duration",
            ["operation", "result"],
        )
        self._denials = Counter(
            "stepup_rate_limit_denials_total",
            "Requests denied by the rate limiter",
            ["endpoint"],
        )
        self._gate_outcomes = Counter(
            "stepup_gate_outcomes_total",
            "Gated action outcomes",
            ["outcome"],
        )
        self._initialized = True

    @property
    def verifications(self) -> Any:
        self._ensure_initialized()
        return self._verifications

    @property
    def duration(self) -> Any:
        self._ensure_initialized()
        return self._duration

    @property
    def denials(self) -> Any:
        self._ensure_initialized()
        return self._denials

    @property
    def gate_outcomes(self) -> Any:
        self._ensure_initialized()
        return self._gate_outcomes


# Global registry instance
_registry = _StepUpMetricsRegistry()


class StepUpMetrics:
    """Helpers for recording step-up metrics.

    Metric failures are logged at DEBUG and never propagate.
    """

    @staticmethod
    @contextmanager
    def operation(operation: str) -> Generator[None, None, None]:
        """Context manager timing a step-up operation.

        Args:
            operation: Operation name (enroll.begin, verify, disable, ...).
        """
        result = "success"
        start = time.monotonic()

        try:
            yield
        except Exception:
            result = "error"
            raise
        finally:
            duration = time.monotonic() - start
            try:
                _registry.duration.labels(
                    operation=operation, result=result
                ).observe(duration)
            except Exception:
                _logger.debug("Failed to record histogram")

    @staticmethod
    def record_verification(method: str, purpose: str, result: str) -> None:
        try:
            _registry.verifications.labels(
                method=method, purpose=purpose, result=result
            ).inc()
        except Exception:
            _logger.debug("Failed to record verification counter")

    @staticmethod
    def record_rate_limit_denial(endpoint: str) -> None:
        try:
            _registry.denials.labels(endpoint=endpoint).inc()
        except Exception:
            _logger.debug("Failed to record rate-limit denial")

    @staticmethod
    def record_gate_outcome(outcome: str) -> None:
        try:
            _registry.gate_outcomes.labels(outcome=outcome).inc()
        except Exception:
            _logger.debug("Failed to record gate outcome")


__all__: list[str] = ["StepUpMetrics"]
