"""
Integration tests for the rule evaluation flow.
"""

import logging
import pytest
import structlog
from concurrent.futures import ThreadPoolExecutor
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram
from pydantic import ValidationError
from structlog.testing import capture_logs

from condition_engine import RuleEngine, check_conditions, get
from shared.config import EngineConfig, get_config
from shared.errors import UnknownOperatorError
from shared.metrics import get_metrics_collector
from shared.logging import (
    add_component_context,
    add_correlation_context,
    clear_context,
    configure_logging,
    get_evaluation_id,
    set_evaluation_id,
)
from shared.test_helpers import (
    TestDataFactory,
    TraceRecorder,
    create_test_metrics,
    sample_value,
)


class TestEvaluationFlow:
    """Integration tests for rule set evaluation."""

    @pytest.fixture
    def customers(self):
        """Create reference data for each test customer."""
        return {
            customer.customer_id: customer.to_reference()
            for customer in TestDataFactory.create_test_customers()
        }

    @pytest.fixture
    def metrics(self):
        """Create an isolated metrics collector."""
        return create_test_metrics()

    @pytest.fixture
    def rule_engine(self, metrics):
        """Create RuleEngine instance with metrics."""
        return RuleEngine(config=EngineConfig(enable_metrics=True), metrics=metrics)

    def test_loyalty_offer_any(self, rule_engine, customers):
        """Test the loyalty rule set under the ANY policy."""
        settings = {"rules": TestDataFactory.create_loyalty_rules()}

        assert rule_engine.evaluate(settings, customers["c-1"]) is True
        assert rule_engine.evaluate(settings, customers["c-2"]) is False
        # No orders: the wildcard rule holds vacuously
        assert rule_engine.evaluate(settings, customers["c-3"]) is True

    def test_loyalty_offer_all(self, rule_engine, customers):
        """Test the loyalty rule set under the ALL policy."""
        settings = {"rules": TestDataFactory.create_loyalty_rules(), "satisfy": "ALL"}

        assert rule_engine.evaluate(settings, customers["c-1"]) is True
        assert rule_engine.evaluate(settings, customers["c-3"]) is False

    def test_trace_delivery(self, rule_engine, customers):
        """Test the full trace of a failing evaluation."""
        recorder = TraceRecorder()
        settings = {"rules": TestDataFactory.create_loyalty_rules(), "log": recorder}

        rule_engine.evaluate(settings, customers["c-2"])

        assert len(recorder.traces) == 1
        assert recorder.last_lines == [
            "(0) customer.age (17) gte 18? false",
            "(1) customer.verified (false) eq true? false",
            "(2) customer.tags () some vip? false",
            "(3) orders[].status (returned) all delivered? false",
            "(4) customer.tier (silver) eq gold? false",
            "Passed 0 / 3 (need ANY, fail)",
            "Passed 0 / 2 required conditions (fail)",
            "Result: FAIL",
        ]

    def test_metrics_recorded(self, rule_engine, metrics, customers):
        """Test evaluation, rule check and cache metrics."""
        settings = {"rules": TestDataFactory.create_loyalty_rules()}

        rule_engine.evaluate(settings, customers["c-1"])
        rule_engine.evaluate(settings, customers["c-2"])
        rule_engine.evaluate({"satisfy": "ALL"}, customers["c-1"])

        assert sample_value(metrics, "evaluations_total", outcome="pass") == 1.0
        assert sample_value(metrics, "evaluations_total", outcome="fail") == 1.0
        assert sample_value(metrics, "evaluations_total", outcome="no_rules") == 1.0
        assert sample_value(metrics, "rule_checks_total", operator="eq", result="pass") == 2.0
        assert sample_value(metrics, "rule_checks_total", operator="eq", result="fail") == 2.0
        assert sample_value(metrics, "rule_checks_total", operator="some", result="pass") == 1.0
        assert sample_value(metrics, "evaluation_duration_seconds_count") == 3.0
        assert sample_value(metrics, "path_cache_entries") > 0

    def test_error_metrics_and_response(self, rule_engine, metrics, customers):
        """Test authoring errors are counted and render as error responses."""
        rules = [TestDataFactory.create_rule("customer.age", "between", [18, 65])]

        with pytest.raises(UnknownOperatorError) as exc_info:
            rule_engine.evaluate({"rules": rules}, customers["c-1"])

        response = exc_info.value.to_response().model_dump()
        assert response["code"] == "UNKNOWN_OPERATOR"
        assert response["details"]["index"] == 0
        assert response["details"]["rule"]["op"] == "between"
        assert sample_value(metrics, "errors_total", error_type="UNKNOWN_OPERATOR") == 1.0

    def test_crosses_with_history(self, rule_engine):
        """Test crosses against a stored history of readings."""
        history = {"sensor.temp": 18}
        settings = {
            "rules": [TestDataFactory.create_rule("sensor.temp", "crosses", 20)],
            "previousValueFn": lambda reference, prop: history[prop],
        }

        assert rule_engine.evaluate(settings, {"sensor": {"temp": 21}}) is True
        assert rule_engine.evaluate(settings, {"sensor": {"temp": 19}}) is False

    def test_concurrent_evaluations(self, customers):
        """Test evaluations from many threads share the path cache safely."""
        engine = RuleEngine(config=EngineConfig(path_cache_size=4))
        settings = {"rules": TestDataFactory.create_loyalty_rules()}
        expected = {
            customer_id: engine.evaluate(settings, reference)
            for customer_id, reference in customers.items()
        }

        def run(customer_id):
            return customer_id, engine.evaluate(settings, customers[customer_id])

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(run, list(customers) * 50))

        assert all(outcome == expected[customer_id] for customer_id, outcome in results)
        assert len(engine.resolver.cache) <= 4

    def test_module_level_helpers(self, customers):
        """Test the default engine and path helper."""
        rules = [TestDataFactory.create_rule("customer.name", "startsWith", "John")]

        assert check_conditions({"rules": rules}, customers["c-1"]) is True
        assert get(customers["c-1"], "orders[1].total") == 75.5
        assert get(customers["c-3"], "orders[0].total", 0) == 0


class TestMetricsCollector:
    """Integration tests for the metrics collector."""

    def test_registered_metrics(self):
        """Test every engine metric is registered under the component prefix."""
        metrics = get_metrics_collector("offers", registry=CollectorRegistry())

        assert isinstance(metrics.get_metric("evaluations_total"), Counter)
        assert isinstance(metrics.get_metric("rule_checks_total"), Counter)
        assert isinstance(metrics.get_metric("errors_total"), Counter)
        assert isinstance(metrics.get_metric("evaluation_duration_seconds"), Histogram)
        assert isinstance(metrics.get_metric("path_cache_entries"), Gauge)
        assert metrics.get_metric("unknown_metric") is None
        assert metrics.registry.get_sample_value("offers_path_cache_entries") == 0.0

    def test_unknown_metric_names_are_ignored(self):
        """Test recording against an unregistered name is a no-op."""
        metrics = create_test_metrics()

        metrics.increment_counter("unknown_metric", outcome="pass")
        metrics.set_gauge("path_cache_entries", 7)

        assert sample_value(metrics, "path_cache_entries") == 7.0

    def test_engine_builds_collector_when_enabled(self):
        """Test enabling metrics gives each engine its own collector."""
        first = RuleEngine(config=EngineConfig(enable_metrics=True))
        second = RuleEngine(config=EngineConfig(enable_metrics=True))

        first.evaluate({"rules": []}, {})

        assert first.metrics.registry is not second.metrics.registry
        assert sample_value(first.metrics, "evaluations_total", outcome="pass") == 1.0
        assert sample_value(second.metrics, "evaluations_total", outcome="pass") == 0.0


class TestEngineLogging:
    """Integration tests for structured logging of evaluations."""

    @pytest.fixture
    def reference(self):
        """Create reference data."""
        return TestDataFactory.create_test_customers()[0].to_reference()

    def test_rule_and_evaluation_events(self, reference):
        """Test per-rule and per-evaluation debug events."""
        engine = RuleEngine(config=EngineConfig())
        rules = [TestDataFactory.create_rule("customer.age", "gte", 18)]

        with capture_logs() as logs:
            engine.evaluate({"rules": rules}, reference)

        rule_events = [log for log in logs if log["event"] == "Rule evaluated"]
        assert len(rule_events) == 1
        assert rule_events[0]["operator"] == "gte"
        assert rule_events[0]["result"] is True

        summary = [log for log in logs if log["event"] == "Rule set evaluated"]
        assert summary[0]["outcome"] is True
        assert summary[0]["log_level"] == "debug"

    def test_trace_to_logger(self, reference):
        """Test the trace is logged when configured."""
        engine = RuleEngine(config=EngineConfig(trace_to_logger=True))
        rules = [TestDataFactory.create_rule("customer.tier", "eq", "gold")]

        with capture_logs() as logs:
            engine.evaluate({"rules": rules}, reference)

        traces = [log["trace"] for log in logs if log["event"] == "Evaluation trace"]
        assert traces == ["(0) customer.tier (gold) eq gold? true\nPassed 1 / 1 (need ANY, pass)\nResult: PASS"]

    def test_rejection_is_logged(self, reference):
        """Test authoring errors are logged before they are raised."""
        engine = RuleEngine(config=EngineConfig())

        with capture_logs() as logs:
            with pytest.raises(UnknownOperatorError):
                engine.evaluate({"rules": [{"property": "customer.age", "op": "?"}]}, reference)

        errors = [log for log in logs if log["log_level"] == "error"]
        assert errors[0]["event"] == "Rule set rejected"
        assert errors[0]["code"] == "UNKNOWN_OPERATOR"

    def test_failing_sink_is_logged(self, reference):
        """Test a failing log sink is reported without failing the evaluation."""
        engine = RuleEngine(config=EngineConfig())

        def sink(trace):
            raise IOError("disk full")

        with capture_logs() as logs:
            outcome = engine.evaluate({"rules": [], "log": sink}, reference)

        assert outcome is True
        warnings = [log for log in logs if log["event"] == "Trace sink failed"]
        assert warnings[0]["error"] == "disk full"
        assert warnings[0]["log_level"] == "warning"

    def test_correlation_processors(self):
        """Test component and evaluation id processors."""
        evaluation_id = set_evaluation_id("eval-1")
        try:
            event = add_correlation_context(None, "info", {"event": "x"})
            assert event["evaluation_id"] == "eval-1"
            assert get_evaluation_id() == evaluation_id
        finally:
            clear_context()

        assert "evaluation_id" not in add_correlation_context(None, "info", {"event": "x"})
        event = add_component_context(None, "info", {"logger": "conditions.rule_engine"})
        assert event["component"] == "conditions"

    def test_configure_logging(self):
        """Test logging configuration installs the processor chain."""
        try:
            configure_logging("conditions", "debug")
            processors = structlog.get_config()["processors"]
            assert add_component_context in processors
            assert add_correlation_context in processors
        finally:
            structlog.reset_defaults()

    def test_timestamp_stays_iso(self):
        """Test the rendered event carries the ISO timestamp."""
        try:
            configure_logging("conditions", "debug")
            processors = structlog.get_config()["processors"]
        finally:
            structlog.reset_defaults()

        logger = logging.getLogger("conditions.rule_engine")
        event = {"event": "Rule evaluated"}
        for processor in processors[1:-1]:
            event = processor(logger, "info", event)

        assert isinstance(event["timestamp"], str)
        assert "T" in event["timestamp"]
        assert event["component"] == "conditions"


class TestEngineConfiguration:
    """Integration tests for environment configuration."""

    def test_environment_overrides(self, monkeypatch):
        """Test settings are read from prefixed environment variables."""
        monkeypatch.setenv("CONDITIONS_PATH_CACHE_SIZE", "3")
        monkeypatch.setenv("CONDITIONS_DEFAULT_SATISFY", "all")
        monkeypatch.setenv("CONDITIONS_LOG_LEVEL", "DEBUG")

        config = get_config()

        assert config.path_cache_size == 3
        assert config.default_satisfy == "ALL"
        assert config.log_level == "debug"

        engine = RuleEngine(config=config)
        assert engine.resolver.cache.max_size == 3
        assert engine.get_engine_stats()["default_satisfy"] == "ALL"

    def test_explicit_overrides(self):
        """Test keyword overrides take precedence."""
        config = get_config(enable_metrics=True, component_name="offers")
        engine = RuleEngine(config=config)

        assert engine.metrics is not None
        assert engine.metrics.component_name == "offers"

    @pytest.mark.parametrize("overrides", [
        {"default_satisfy": "MOST"},
        {"path_cache_size": 0},
        {"log_level": "verbose"},
    ])
    def test_invalid_values(self, overrides):
        """Test invalid configuration is rejected."""
        with pytest.raises(ValidationError):
            get_config(**overrides)
