"""
Tests for configuration and structured logging
"""

import pytest
import structlog
from pydantic import ValidationError
from structlog.contextvars import get_contextvars
from structlog.testing import capture_logs

from codegraph_rs.config import CodegraphSettings, GraphBuildConfig
from codegraph_rs.exceptions import ConfigurationError
from codegraph_rs.observability import LogPerformance, bind_context, clear_context, setup_logging


@pytest.fixture
def reset_structlog():
    yield
    structlog.reset_defaults()


class TestConfig:
    def test_defaults(self):
        config = GraphBuildConfig()

        assert config.crate_name == "crate"
        assert config.max_type_depth == 32
        assert config.max_id == 2**32 - 1

    @pytest.mark.parametrize(
        "kwargs", [{"max_workers": 0}, {"max_type_depth": 0}, {"max_type_depth": 129}, {"crate_name": ""}]
    )
    def test_limits_are_validated(self, kwargs):
        with pytest.raises(ValidationError):
            GraphBuildConfig(**kwargs)

    def test_environment_overrides(self, monkeypatch):
        """Test: nested settings are read from CODEGRAPH_RS_<GROUP>__<FIELD>"""
        monkeypatch.setenv("CODEGRAPH_RS_BUILD__MAX_TYPE_DEPTH", "8")
        monkeypatch.setenv("CODEGRAPH_RS_OBSERVABILITY__LOG_FORMAT", "json")

        settings = CodegraphSettings()

        assert settings.build.max_type_depth == 8
        assert settings.observability.log_format == "json"


class TestLogging:
    def test_unknown_level_rejected(self):
        with pytest.raises(ConfigurationError):
            setup_logging(level="LOUD")

    def test_unknown_format_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            setup_logging(format="xml")

        assert "expected=json|console" in str(exc_info.value)

    def test_json_setup(self, reset_structlog):
        setup_logging(level="debug", format="json", include_timestamp=False)

        assert structlog.is_configured()

    def test_context_binding(self):
        bind_context(file_path="src/lib.rs", stage="traverse")
        clear_context("stage")

        assert get_contextvars() == {"file_path": "src/lib.rs"}

        clear_context()
        assert get_contextvars() == {}

    def test_log_performance_success(self):
        with capture_logs() as logs:
            with LogPerformance(structlog.get_logger(), "merge_fragments", units=3):
                pass

        [entry] = logs
        assert entry["event"] == "operation_complete"
        assert entry["operation"] == "merge_fragments"
        assert entry["units"] == 3

    def test_log_performance_failure_propagates(self):
        with capture_logs() as logs:
            with pytest.raises(KeyError):
                with LogPerformance(structlog.get_logger(), "resolve"):
                    raise KeyError("x")

        [entry] = logs
        assert entry["event"] == "resolve_failed"
        assert entry["error_type"] == "KeyError"
