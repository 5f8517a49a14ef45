"""Observability helpers (Prometheus metrics)."""

from __future__ import annotations

from .metrics import StepUpMetrics

__all__: list[str] = ["StepUpMetrics"]
