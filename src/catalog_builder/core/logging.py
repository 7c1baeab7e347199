"""Structured logging infrastructure for the catalog pipeline.

This module provides logging that works for:
- Local development (rich console output)
- Host integrations that collect JSON structured logs

Usage:
    from catalog_builder.core.logging import get_logger, configure_logging

    # Configure at startup
    configure_logging(log_level="INFO", log_format="console")

    # Get logger in any module
    logger = get_logger(__name__)

    # Log with structured context
    logger.info("filters_applied", before=120, after=48)

    # Use context managers for automatic context propagation
    with log_context(run_id="run-123", stage="grouping"):
        logger.info("groups_built", groups=12)
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, cast

import structlog
from structlog.typing import FilteringBoundLogger

from catalog_builder.core.config import Settings, get_settings

# Context variables for correlation
_run_context: ContextVar[dict[str, Any] | None] = ContextVar("run_context", default=None)


@dataclass
class StageMetrics:
    """Metrics collected while one pipeline stage runs."""

    stage_name: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None

    # Counters
    records_in: int = 0
    records_out: int = 0
    formula_failures: int = 0

    # Sub-operation timings (seconds)
    timings: dict[str, float] = field(default_factory=dict)

    warnings: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Get duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return (datetime.now(UTC) - self.start_time).total_seconds()

    def record_timing(self, operation: str, seconds: float) -> None:
        """Record timing for a sub-operation."""
        self.timings[operation] = self.timings.get(operation, 0.0) + seconds

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "stage_name": self.stage_name,
            "duration_seconds": self.duration_seconds,
            "records_in": self.records_in,
            "records_out": self.records_out,
            "formula_failures": self.formula_failures,
            "timings": self.timings,
            "warning_count": len(self.warnings),
        }


@dataclass
class PipelineMetrics:
    """Aggregate metrics for an entire pipeline run."""

    run_id: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    stages: list[StageMetrics] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Get total duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return (datetime.now(UTC) - self.start_time).total_seconds()

    def add_stage(self, metrics: StageMetrics) -> None:
        """Add stage metrics."""
        self.stages.append(metrics)

    def get_stage(self, stage_name: str) -> StageMetrics | None:
        """Find the metrics of a stage by name."""
        for stage in self.stages:
            if stage.stage_name == stage_name:
                return stage
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "run_id": self.run_id,
            "duration_seconds": self.duration_seconds,
            "stage_count": len(self.stages),
            "total_formula_failures": sum(s.formula_failures for s in self.stages),
            "stages": [s.to_dict() for s in self.stages],
        }


# Metrics storage (per-run)
_current_metrics: ContextVar[PipelineMetrics | None] = ContextVar("current_metrics", default=None)
_current_stage_metrics: ContextVar[StageMetrics | None] = ContextVar(
    "current_stage_metrics", default=None
)


def start_pipeline_metrics(run_id: str) -> PipelineMetrics:
    """Start collecting metrics for a pipeline run."""
    metrics = PipelineMetrics(run_id=run_id)
    _current_metrics.set(metrics)
    return metrics


def get_pipeline_metrics() -> PipelineMetrics | None:
    """Get current pipeline metrics."""
    return _current_metrics.get()


def start_stage_metrics(stage_name: str) -> StageMetrics:
    """Start collecting metrics for a stage."""
    metrics = StageMetrics(stage_name=stage_name)
    _current_stage_metrics.set(metrics)
    return metrics


def get_stage_metrics() -> StageMetrics | None:
    """Get current stage metrics."""
    return _current_stage_metrics.get()


def end_stage_metrics() -> StageMetrics | None:
    """End current stage metrics and add to pipeline metrics."""
    stage_metrics = _current_stage_metrics.get()
    if stage_metrics:
        stage_metrics.end_time = datetime.now(UTC)
        pipeline_metrics = _current_metrics.get()
        if pipeline_metrics:
            pipeline_metrics.add_stage(stage_metrics)
        _current_stage_metrics.set(None)
    return stage_metrics


def end_pipeline_metrics() -> PipelineMetrics | None:
    """End pipeline metrics collection."""
    metrics = _current_metrics.get()
    if metrics:
        metrics.end_time = datetime.now(UTC)
        _current_metrics.set(None)
    return metrics


def _add_run_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor to add run context to log events."""
    context = _run_context.get()
    if context:
        event_dict.update(context)
    return event_dict


def _add_metrics_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor to add current metrics context."""
    stage_metrics = _current_stage_metrics.get()
    if stage_metrics:
        event_dict["_stage"] = stage_metrics.stage_name
    pipeline_metrics = _current_metrics.get()
    if pipeline_metrics:
        event_dict["_run_id"] = pipeline_metrics.run_id
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    show_timestamps: bool = True,
    color: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Output format ("console" for development, "json" for hosts)
        show_timestamps: Whether to show timestamps in console mode
        color: Whether to use colors in console mode
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_run_context,
        _add_metrics_context,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if show_timestamps:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))

    if log_format == "json":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=color,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Also configure stdlib logging for libraries
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def setup_logging(settings: Settings | None = None) -> None:
    """Configure logging from the CATALOG_BUILDER_LOG_LEVEL and _LOG_FORMAT settings."""
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        color=settings.log_format == "console",
    )


def get_logger(name: str | None = None) -> FilteringBoundLogger:
    """Get a structured logger.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Bound structlog logger
    """
    return cast(FilteringBoundLogger, structlog.get_logger(name))


class LogContext:
    """Context manager for adding context to logs within a scope."""

    def __init__(self, **context: Any):
        """Initialize with context key-value pairs."""
        self.context = context
        self.token: Any = None

    def __enter__(self) -> LogContext:
        """Enter context, adding values to log context."""
        current = _run_context.get() or {}
        new_context = {**current, **self.context}
        self.token = _run_context.set(new_context)
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context, restoring previous values."""
        if self.token:
            _run_context.reset(self.token)


def log_context(**context: Any) -> LogContext:
    """Create a context manager for scoped logging context.

    Usage:
        with log_context(run_id="abc", stage="filtering"):
            logger.info("processing")  # Will include run_id and stage
    """
    return LogContext(**context)


def record_stage_warning(message: str) -> None:
    """Attach a non-fatal warning to the current stage metrics."""
    metrics = _current_stage_metrics.get()
    if metrics:
        metrics.warnings.append(message)


def record_operation_timing(operation: str, seconds: float) -> None:
    """Record timing for a sub-operation in current stage metrics."""
    metrics = _current_stage_metrics.get()
    if metrics:
        metrics.record_timing(operation, seconds)


# Initialize with default configuration
configure_logging()
