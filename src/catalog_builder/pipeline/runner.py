"""Pipeline runner.

Runs one pipeline definition over a record collection:

    formulas -> filters -> sort -> grouping -> aggregations

Every stage produces new collections; the input records are never mutated.
Formula failures for single records are reported in the result, never raised.

Usage:
    config = load_pipeline_config("price-list.yaml")
    result = CatalogPipeline(config).run(records)
    for item in result.flat_list:
        ...
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from time import perf_counter
from uuid import uuid4

from catalog_builder.core.config import Settings, get_settings
from catalog_builder.core.logging import (
    PipelineMetrics,
    StageMetrics,
    end_pipeline_metrics,
    end_stage_metrics,
    get_logger,
    log_context,
    record_operation_timing,
    record_stage_warning,
    start_pipeline_metrics,
    start_stage_metrics,
)
from catalog_builder.core.models import Record
from catalog_builder.filtering.engine import FilterEngine
from catalog_builder.formulas.engine import FormulaEngine
from catalog_builder.formulas.models import FormulaFailure
from catalog_builder.grouping.engine import (
    GroupingEngine,
    calculate_aggregations,
    generate_table_of_contents,
)
from catalog_builder.grouping.models import (
    Group,
    GroupingResult,
    PresentationItem,
    TocEntry,
)
from catalog_builder.pipeline.config import PipelineConfig

logger = get_logger(__name__)


@dataclass
class PipelineResult:
    """Output of one pipeline run."""

    run_id: str
    records: list[Record]
    grouping: GroupingResult
    formula_failures: list[FormulaFailure] = field(default_factory=list)
    metrics: PipelineMetrics | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def groups(self) -> list[Group]:
        return self.grouping.groups

    @property
    def flat_list(self) -> list[PresentationItem]:
        return self.grouping.flat_list

    @property
    def failure_count(self) -> int:
        return len(self.formula_failures)

    def table_of_contents(
        self, page_numbers: Mapping[str, int | str] | None = None
    ) -> list[TocEntry]:
        return generate_table_of_contents(self.groups, page_numbers)


@contextmanager
def _stage(name: str, records_in: int) -> Iterator[StageMetrics]:
    stage = start_stage_metrics(name)
    stage.records_in = records_in
    try:
        yield stage
    finally:
        end_stage_metrics()
        logger.debug("stage_completed", **stage.to_dict())


@contextmanager
def _timed(operation: str) -> Iterator[None]:
    started = perf_counter()
    try:
        yield
    finally:
        record_operation_timing(operation, perf_counter() - started)


class CatalogPipeline:
    """Runs a `PipelineConfig` with freshly constructed engines."""

    def __init__(self, config: PipelineConfig, settings: Settings | None = None):
        self.config = config
        self.settings = settings or get_settings()

        self.formula_engine = FormulaEngine(config.formulas, settings=self.settings)

        self.filter_engine = FilterEngine(settings=self.settings)
        self.filter_engine.filters = list(config.filters)
        self.filter_engine.sort_rules = list(config.sort_rules)

        self.grouping_engine = GroupingEngine(settings=self.settings)
        self.grouping_engine.group_levels = list(config.group_levels)
        self.grouping_engine.options = config.group_options

    def run(self, records: Sequence[Record], run_id: str | None = None) -> PipelineResult:
        run_id = run_id or str(uuid4())
        metrics = start_pipeline_metrics(run_id)

        try:
            with log_context(run_id=run_id, pipeline=self.config.name):
                logger.info("pipeline_run_started", records=len(records))

                with _stage("formulas", len(records)) as stage:
                    batch = self.formula_engine.apply(records)
                    stage.records_out = len(batch.records)
                    stage.formula_failures = batch.failure_count
                    for failure in batch.failures:
                        record_stage_warning(
                            f"Record {failure.record_index}: {failure.formula_name}: "
                            f"{failure.error}"
                        )

                with _stage("filtering", len(batch.records)) as stage:
                    filtered = self.filter_engine.apply_filters(
                        batch.records, self.config.filter_logic
                    )
                    stage.records_out = len(filtered)

                with _stage("sorting", len(filtered)) as stage:
                    ordered = self.filter_engine.apply_sort(filtered)
                    stage.records_out = len(ordered)

                with _stage("grouping", len(ordered)) as stage:
                    with _timed("group_records"):
                        grouping = self.grouping_engine.group_records(ordered)
                    stage.records_out = len(ordered)
                    if not self.config.group_levels:
                        record_stage_warning("No group levels defined")

                if self.config.aggregations:
                    with _stage("aggregations", len(ordered)) as stage:
                        with _timed("calculate_aggregations"):
                            calculate_aggregations(grouping.groups, self.config.aggregations)
                        stage.records_out = len(ordered)
        finally:
            end_pipeline_metrics()

        warnings = [warning for s in metrics.stages for warning in s.warnings]
        logger.info(
            "pipeline_run_completed",
            run_id=run_id,
            records_in=len(records),
            records_out=len(ordered),
            formula_failures=batch.failure_count,
            duration_seconds=metrics.duration_seconds,
        )
        return PipelineResult(
            run_id=run_id,
            records=ordered,
            grouping=grouping,
            formula_failures=batch.failures,
            metrics=metrics,
            warnings=warnings,
        )
