"""Tests for settings, errors, Result and stage metrics."""

from __future__ import annotations

import pytest

from catalog_builder.core.config import Settings, get_settings
from catalog_builder.core.errors import (
    CatalogBuilderError,
    EvaluationError,
    NotFoundError,
    ValidationError,
)
from catalog_builder.core.logging import (
    configure_logging,
    end_pipeline_metrics,
    end_stage_metrics,
    get_logger,
    get_pipeline_metrics,
    get_stage_metrics,
    log_context,
    record_operation_timing,
    record_stage_warning,
    setup_logging,
    start_pipeline_metrics,
    start_stage_metrics,
)
from catalog_builder.core.models import Result


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, settings: Settings) -> None:
        assert settings.config_version == "1.0"
        assert settings.default_id_field == "id"
        assert settings.reference_delimiter == ","
        assert settings.default_chain_depth == 3
        assert settings.max_chain_results == 1000

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CATALOG_BUILDER_DEFAULT_ID_FIELD", "sku")
        monkeypatch.setenv("CATALOG_BUILDER_MAX_CHAIN_RESULTS", "10")

        settings = get_settings()

        assert settings.default_id_field == "sku"
        assert settings.max_chain_results == 10

    def test_cached(self) -> None:
        assert get_settings() is get_settings()


class TestErrors:
    """Tests for the error taxonomy."""

    def test_common_base(self) -> None:
        assert issubclass(ValidationError, CatalogBuilderError)
        assert issubclass(EvaluationError, CatalogBuilderError)

    def test_evaluation_error_names_expression(self) -> None:
        error = EvaluationError("Division by zero", expression="{a}/0")

        assert error.expression == "{a}/0"
        assert error.message == "Division by zero"
        assert str(error) == "Formula error in '{a}/0': Division by zero"

    def test_not_found_is_key_error(self) -> None:
        """NotFoundError can be caught as KeyError but prints without quotes."""
        with pytest.raises(KeyError):
            raise NotFoundError("Preset not found: weekly")
        assert str(NotFoundError("Preset not found: weekly")) == "Preset not found: weekly"


class TestResult:
    """Tests for Result."""

    def test_ok(self) -> None:
        result = Result.ok(42, warnings=["careful"])

        assert result.success
        assert result.unwrap() == 42
        assert result.warnings == ["careful"]

    def test_fail_unwrap_raises(self) -> None:
        result: Result[int] = Result.fail("boom")

        assert not result.success
        with pytest.raises(ValueError, match="boom"):
            result.unwrap()

    def test_map(self) -> None:
        assert Result.ok(2).map(lambda v: v * 10).value == 20


class TestStageMetrics:
    """Tests for pipeline and stage metrics collection."""

    def test_stage_added_to_pipeline(self) -> None:
        pipeline = start_pipeline_metrics("run-1")
        stage = start_stage_metrics("filtering")
        stage.records_in = 10
        stage.records_out = 4
        record_stage_warning("unknown operator")
        record_operation_timing("apply", 0.5)
        record_operation_timing("apply", 0.25)

        end_stage_metrics()
        assert get_pipeline_metrics() is pipeline
        end_pipeline_metrics()

        assert get_stage_metrics() is None
        assert get_pipeline_metrics() is None
        assert pipeline.get_stage("filtering") is stage
        assert stage.warnings == ["unknown operator"]
        assert stage.timings == {"apply": 0.75}
        assert pipeline.to_dict()["stage_count"] == 1
        assert stage.end_time is not None

    def test_warning_outside_stage_ignored(self) -> None:
        record_stage_warning("nobody listening")
        assert get_stage_metrics() is None

    def test_log_context_scoped(self) -> None:
        with log_context(run_id="abc") as context:
            assert context.context == {"run_id": "abc"}

    def test_setup_logging_from_settings(
        self, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        setup_logging(settings.model_copy(update={"log_format": "json", "log_level": "DEBUG"}))
        try:
            get_logger("tests").debug("json_event", answer=42)
        finally:
            configure_logging()

        err = capsys.readouterr().err
        assert '"event": "json_event"' in err
        assert '"answer": 42' in err
