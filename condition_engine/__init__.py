"""
Condition engine.

Evaluates declarative comparison rules against nested reference data::

    from condition_engine import check_conditions

    check_conditions(
        {"rules": [{"property": "user.age", "op": "gte", "value": 18}]},
        {"user": {"age": 42}},
    )
"""

from .app.rules.engine import RuleEngine, check_conditions
from .app.rules.models import (
    EvaluationResult,
    EvaluationSettings,
    Rule,
    RuleOperator,
    RuleResult,
    Satisfy,
)
from .app.rules.paths import PathCache, PathResolver, get

__all__ = [
    "EvaluationResult",
    "EvaluationSettings",
    "PathCache",
    "PathResolver",
    "Rule",
    "RuleEngine",
    "RuleOperator",
    "RuleResult",
    "Satisfy",
    "check_conditions",
    "get",
]
