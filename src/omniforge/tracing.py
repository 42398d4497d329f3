"""
OpenTelemetry span helpers for runs, phases and scripts.

Only the OTel API is used. Without an SDK provider configured by the host
application every span is a no-op.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Generator, Union

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode

from omniforge.reporter import RunSummary

logger = logging.getLogger(__name__)

tracer = trace.get_tracer("omniforge")

AttributeValue = Union[str, int, float, bool]


@contextmanager
def run_span(run_id: str, mode: str, policy: str) -> Generator[Span, None, None]:
    with tracer.start_as_current_span(
        "omniforge.run",
        attributes={"run.id": run_id, "run.mode": mode, "run.policy": policy},
    ) as span:
        yield span


@contextmanager
def phase_span(phase_id: int, name: str) -> Generator[Span, None, None]:
    with tracer.start_as_current_span(
        "omniforge.phase",
        attributes={"phase.id": phase_id, "phase.name": name},
    ) as span:
        yield span


@contextmanager
def script_span(phase_id: int, key: str) -> Generator[Span, None, None]:
    with tracer.start_as_current_span(
        "omniforge.script",
        attributes={"phase.id": phase_id, "script.key": key},
    ) as span:
        yield span


def set_outcome(span: Span, outcome: str, exit_code: int = 0, duration_ms: int = 0) -> None:
    """Record a script's outcome on its span."""
    if not span.is_recording():
        return
    span.set_attribute("script.outcome", outcome)
    span.set_attribute("script.exit_code", exit_code)
    span.set_attribute("script.duration_ms", duration_ms)
    if outcome == "failed":
        span.set_status(Status(StatusCode.ERROR, f"exit {exit_code}"))


def emit_run_summary(span: Span, summary: RunSummary) -> None:
    """Add an ``omniforge.run_summary`` event to the run span."""
    attrs: Dict[str, AttributeValue] = {
        "run.mode": summary.mode.value,
        "run.completed": summary.completed,
        "run.failed": summary.failed,
        "run.skipped": summary.skipped,
        "run.duration_ms": summary.duration_ms,
        "run.ok": not summary.has_failures,
    }
    if span.is_recording():
        span.add_event(name="omniforge.run_summary", attributes=attrs)
        if summary.has_failures:
            span.set_status(Status(StatusCode.ERROR, f"{summary.failed} script(s) failed"))
    logger.debug("Run summary: %s", attrs)
