"""
Shared metrics configuration for the condition engine.

Metrics are kept in-memory in a prometheus-client registry; exposing them is
left to the embedding application.
"""

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry
from typing import Dict, Any, Optional


class MetricsCollector:
    """Centralized metrics collector for the rule engine."""

    def __init__(self, component_name: str = "conditions", registry: Optional[CollectorRegistry] = None):
        self.component_name = component_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up rule engine metrics."""
        prefix = self.component_name

        self._metrics["evaluations_total"] = Counter(
            f"{prefix}_evaluations_total",
            "Total rule set evaluations",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["rule_checks_total"] = Counter(
            f"{prefix}_rule_checks_total",
            "Total individual rule checks",
            ["operator", "result"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            f"{prefix}_errors_total",
            "Total authoring and configuration errors",
            ["error_type"],
            registry=self.registry
        )

        self._metrics["evaluation_duration_seconds"] = Histogram(
            f"{prefix}_evaluation_duration_seconds",
            "Rule set evaluation duration in seconds",
            registry=self.registry
        )

        self._metrics["path_cache_entries"] = Gauge(
            f"{prefix}_path_cache_entries",
            "Entries in the path normalization cache",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_evaluation(self, outcome: Optional[bool], duration: float):
        """Record a finished rule set evaluation."""
        if outcome is None:
            label = "no_rules"
        else:
            label = "pass" if outcome else "fail"
        self.increment_counter("evaluations_total", outcome=label)
        self.observe_histogram("evaluation_duration_seconds", duration)

    def record_rule_check(self, operator: str, passed: bool):
        """Record a single rule check."""
        self.increment_counter(
            "rule_checks_total",
            operator=operator,
            result="pass" if passed else "fail"
        )

    def record_error(self, error_type: str):
        """Record error metrics."""
        self.increment_counter("errors_total", error_type=error_type)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            (metric.labels(**labels) if labels else metric).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            (metric.labels(**labels) if labels else metric).set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            (metric.labels(**labels) if labels else metric).observe(value)


def get_metrics_collector(component_name: str = "conditions", registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a component."""
    return MetricsCollector(component_name, registry)
