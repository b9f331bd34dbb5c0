"""
Rule evaluation engine.
"""

import time
from typing import Any, Callable, Dict, List, Optional

from shared.config import EngineConfig, get_config
from shared.errors import (
    ConditionsException,
    CrossesConfigurationError,
    MissingPropertyError,
    UnknownOperatorError,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector, get_metrics_collector

from .coercion import (
    boolean_reading,
    contains_strict,
    format_value,
    is_sequence,
    is_truthy,
    loose_equals,
    ordered,
    strict_equals,
    to_text,
)
from .models import (
    ORDERING_OPERATORS,
    UNARY_OPERATORS,
    EvaluationResult,
    EvaluationSettings,
    Rule,
    RuleOperator,
    RuleResult,
    Satisfy,
)
from .paths import PathCache, PathResolver, get_default_resolver


class RuleEngine:
    """Rule evaluation engine."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        resolver: Optional[PathResolver] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.logger = get_logger("conditions.rule_engine")
        if config is None:
            self.config = get_config()
            self.resolver = resolver or get_default_resolver()
        else:
            self.config = config
            self.resolver = resolver or PathResolver(PathCache(config.path_cache_size))
        if metrics is None and self.config.enable_metrics:
            metrics = get_metrics_collector(self.config.component_name)
        self.metrics = metrics
        self.evaluations = 0

    def evaluate(self, settings: Any, reference: Any) -> Optional[bool]:
        """
        Evaluate a rule set against reference data.

        Returns None when ``settings`` carries no rule list, otherwise whether
        the reference satisfies the rule set. The evaluation trace is passed
        to ``settings.log`` when one is supplied.

        Raises:
            RuleAuthoringError: A rule has no property or an unknown operator
            CrossesConfigurationError: A ``crosses`` rule has no previous-value function
        """
        return self.evaluate_detailed(settings, reference).outcome

    def evaluate_detailed(self, settings: Any, reference: Any) -> EvaluationResult:
        """Evaluate a rule set, returning counts, per-rule results and the trace."""
        start_time = time.perf_counter()
        self.evaluations += 1

        normalized = EvaluationSettings.from_value(settings)
        if normalized is None:
            self.logger.debug("No rule set supplied")
            result = EvaluationResult(
                outcome=None,
                evaluation_time_ms=(time.perf_counter() - start_time) * 1000
            )
            self._record_evaluation(result)
            return result

        trace_lines: List[str] = []
        rule_results: List[RuleResult] = []
        required_passed = 0
        normal_passed = 0

        for index, raw_rule in enumerate(normalized.rules):
            rule_result = self._check_rule(index, raw_rule, normalized, reference, trace_lines)
            rule_results.append(rule_result)
            if rule_result.passed:
                if rule_result.required:
                    required_passed += 1
                else:
                    normal_passed += 1

        required_total = sum(1 for rule_result in rule_results if rule_result.required)
        satisfy = Satisfy.parse(normalized.satisfy, default=Satisfy(self.config.default_satisfy))

        result = EvaluationResult(
            outcome=None,
            rule_results=rule_results,
            normal_passed=normal_passed,
            normal_total=len(rule_results) - required_total,
            required_passed=required_passed,
            required_total=required_total,
            satisfy=satisfy,
        )
        result.outcome = result.normal_satisfied and result.required_satisfied

        if result.normal_total > 0:
            trace_lines.append(
                f"Passed {result.normal_passed} / {result.normal_total} "
                f"(need {satisfy.value}, {_verdict(result.normal_satisfied)})"
            )
        if result.required_total > 0:
            trace_lines.append(
                f"Passed {result.required_passed} / {result.required_total} "
                f"required conditions ({_verdict(result.required_satisfied)})"
            )
        trace_lines.append(f"Result: {'PASS' if result.outcome else 'FAIL'}")
        result.trace = "\n".join(trace_lines)
        result.evaluation_time_ms = (time.perf_counter() - start_time) * 1000

        self._deliver_trace(normalized.log, result.trace)
        self._record_evaluation(result)

        self.logger.debug(
            "Rule set evaluated",
            outcome=result.outcome,
            rules=len(rule_results),
            satisfy=satisfy.value,
            evaluation_time_ms=result.evaluation_time_ms
        )
        return result

    def evaluate_rule(
        self,
        rule: Any,
        reference: Any,
        settings: Any = None,
        index: int = 0
    ) -> RuleResult:
        """Check a single rule, using ``settings`` only for its callbacks."""
        normalized = EvaluationSettings.from_value(settings, require_rules=False) or EvaluationSettings()
        return self._check_rule(index, rule, normalized, reference, [])

    def _check_rule(
        self,
        index: int,
        raw_rule: Any,
        settings: EvaluationSettings,
        reference: Any,
        trace_lines: List[str]
    ) -> RuleResult:
        """Resolve, transform and compare one rule, appending its trace lines."""
        rule = Rule.from_value(raw_rule)
        if not rule.property:
            raise self._reject(MissingPropertyError(raw_rule, index))
        operator = rule.resolve_operator()
        if operator is None:
            raise self._reject(UnknownOperatorError(raw_rule, index, rule.op))

        value = self.resolver.resolve(reference, rule.property)
        wildcard = rule.wildcard_paths()
        if wildcard is not None:
            value = self._expand_wildcard(reference, *wildcard)

        target_value = rule.value
        if callable(settings.transform_value_fn):
            target_value = settings.transform_value_fn(rule.value, reference, rule.property)

        previous_value = None
        if operator == RuleOperator.CROSSES:
            if not callable(settings.previous_value_fn):
                raise self._reject(CrossesConfigurationError(raw_rule, index))
            previous_value = settings.previous_value_fn(reference, rule.property)
            passed = self._crosses(previous_value, value, target_value)
            trace_lines.append(
                f"({index}) {format_value(rule.property)} was {format_value(previous_value)} "
                f"and became {format_value(value)}. crossed {format_value(target_value)}? {_flag(passed)}"
            )
        else:
            alternate = boolean_reading(value, target_value)
            passed = self._evaluate_condition(operator, value, target_value, alternate)

        trace_lines.append(_describe(index, rule.property, value, operator, target_value, passed))

        self.logger.debug(
            "Rule evaluated",
            index=index,
            property=format_value(rule.property),
            operator=operator.value,
            result=passed
        )
        if self.metrics:
            self.metrics.record_rule_check(operator.value, passed)

        return RuleResult(
            index=index,
            property=rule.property,
            operator=operator,
            value=value,
            target_value=target_value,
            passed=passed,
            required=rule.required,
            previous_value=previous_value,
        )

    def _expand_wildcard(self, reference: Any, collection_path: str, item_path: str) -> Optional[List[Any]]:
        """Map ``item_path`` over every element of the collection at ``collection_path``."""
        collection = self.resolver.resolve(reference, collection_path)
        if not is_sequence(collection):
            return None
        if not item_path:
            return list(collection)
        return [self.resolver.resolve(item, item_path) for item in collection]

    def _evaluate_condition(
        self,
        operator: RuleOperator,
        value: Any,
        target_value: Any,
        alternate: Optional[bool]
    ) -> bool:
        """Evaluate a single comparison."""
        if operator == RuleOperator.EQ:
            result = loose_equals(value, target_value)
            if alternate is not None:
                result = result or loose_equals(value, alternate)
            return result

        elif operator in (RuleOperator.NE, RuleOperator.NEQ):
            result = not loose_equals(value, target_value)
            if alternate is not None:
                result = result and not loose_equals(value, alternate)
            return result

        elif operator in ORDERING_OPERATORS:
            return ordered(value, target_value, operator.value)

        elif operator == RuleOperator.STARTS_WITH:
            return _text_test(value, target_value, str.startswith)

        elif operator == RuleOperator.ENDS_WITH:
            return _text_test(value, target_value, str.endswith)

        elif operator == RuleOperator.CONTAINS:
            return _text_test(value, target_value, str.__contains__)

        elif operator == RuleOperator.PRESENT:
            return is_truthy(value)

        elif operator in (RuleOperator.EMPTY, RuleOperator.ABSENT):
            return not is_truthy(value)

        elif operator == RuleOperator.ALL:
            # Vacuously true for an empty sequence
            return is_sequence(value) and all(strict_equals(item, target_value) for item in value)

        elif operator == RuleOperator.SOME:
            return is_sequence(value) and contains_strict(value, target_value)

        elif operator == RuleOperator.NONE:
            if value is None:
                return True
            return is_sequence(value) and not contains_strict(value, target_value)

        self.logger.warning("Unhandled condition operator", operator=operator.value)
        return False

    @staticmethod
    def _crosses(previous_value: Any, value: Any, target_value: Any) -> bool:
        """Whether the threshold lies above the previous value and at or below the current one."""
        return ordered(target_value, previous_value, "gt") and ordered(target_value, value, "lte")

    def _reject(self, error: ConditionsException) -> ConditionsException:
        """Log and count an error before it is raised."""
        self.logger.error(
            "Rule set rejected",
            code=error.code,
            error=error.message,
            index=error.details.get("index")
        )
        if self.metrics:
            self.metrics.record_error(error.code)
        return error

    def _deliver_trace(self, sink: Optional[Callable[[str], Any]], trace: str):
        """Hand the trace to the caller's sink and, if configured, the logger."""
        if self.config.trace_to_logger:
            self.logger.debug("Evaluation trace", trace=trace)
        if not callable(sink):
            return
        try:
            sink(trace)
        except Exception as e:
            self.logger.warning("Trace sink failed", error=str(e))

    def _record_evaluation(self, result: EvaluationResult):
        if not self.metrics:
            return
        self.metrics.record_evaluation(result.outcome, result.evaluation_time_ms / 1000)
        self.metrics.set_gauge("path_cache_entries", len(self.resolver.cache))

    def get_engine_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        return {
            "evaluations": self.evaluations,
            "default_satisfy": self.config.default_satisfy,
            "metrics_enabled": self.metrics is not None,
            "path_cache": self.resolver.cache.stats(),
        }


def _text_test(value: Any, target_value: Any, test: Callable[[str, str], bool]) -> bool:
    if target_value is None:
        return False
    return test(to_text(value), to_text(target_value))


def _flag(passed: bool) -> str:
    return "true" if passed else "false"


def _verdict(satisfied: bool) -> str:
    return "pass" if satisfied else "fail"


def _describe(
    index: int,
    path: Any,
    value: Any,
    operator: RuleOperator,
    target_value: Any,
    passed: bool
) -> str:
    """One trace line per rule; unary operators omit the comparison value."""
    prefix = f"({index}) {format_value(path)} ({format_value(value)})"
    if operator in UNARY_OPERATORS:
        return f"{prefix} is {operator.value}? {_flag(passed)}"
    return f"{prefix} {operator.value} {format_value(target_value)}? {_flag(passed)}"


_default_engine: Optional[RuleEngine] = None


def get_default_engine() -> RuleEngine:
    """Process-wide engine built from the environment configuration."""
    global _default_engine
    if _default_engine is None:
        _default_engine = RuleEngine()
    return _default_engine


def check_conditions(settings: Any, reference: Any) -> Optional[bool]:
    """
    Evaluate ``settings.rules`` against ``reference``.

    Args:
        settings: Mapping or EvaluationSettings with ``rules`` and optional
            ``satisfy``, ``transformValueFn``, ``previousValueFn`` and ``log``
        reference: The data under test

    Returns:
        None if there is no rule list, otherwise True/False depending on
        whether ``reference`` satisfies the rules
    """
    return get_default_engine().evaluate(settings, reference)
