"""
Rule data models for the condition engine.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field
from collections.abc import Mapping
from enum import Enum

WILDCARD_MARKER = "[]"


class RuleOperator(str, Enum):
    """Rule comparison operators."""
    EQ = "eq"
    NE = "ne"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    CONTAINS = "contains"
    PRESENT = "present"
    EMPTY = "empty"
    ABSENT = "absent"
    ALL = "all"
    SOME = "some"
    NONE = "none"
    CROSSES = "crosses"

    @classmethod
    def parse(cls, value: Any) -> Optional["RuleOperator"]:
        """Look up an operator, returning None for unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except (ValueError, TypeError):
            return None


UNARY_OPERATORS = frozenset({RuleOperator.PRESENT, RuleOperator.ABSENT})
ORDERING_OPERATORS = frozenset({RuleOperator.GT, RuleOperator.GTE, RuleOperator.LT, RuleOperator.LTE})


class Satisfy(str, Enum):
    """Aggregation policy for normal (non-required) rules."""
    ALL = "ALL"
    ANY = "ANY"

    @classmethod
    def parse(cls, value: Any, default: Optional["Satisfy"] = None) -> "Satisfy":
        """Only ALL selects ALL; anything else aggregates as ANY."""
        if value is None or value == "":
            return default if default is not None else cls.ANY
        if isinstance(value, cls):
            return value
        return cls.ALL if value == cls.ALL.value else cls.ANY


@dataclass(frozen=True)
class Rule:
    """A single comparison against a property path of the reference data."""
    property: Optional[str] = None
    op: Any = None
    value: Any = None
    required: bool = False

    @classmethod
    def from_value(cls, value: Any) -> "Rule":
        """Build a rule from a Rule, a mapping or an object with rule attributes."""
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls(
                property=value.get("property"),
                op=value.get("op"),
                value=value.get("value"),
                required=bool(value.get("required", False)),
            )
        return cls(
            property=getattr(value, "property", None),
            op=getattr(value, "op", None),
            value=getattr(value, "value", None),
            required=bool(getattr(value, "required", False)),
        )

    def resolve_operator(self) -> Optional[RuleOperator]:
        return RuleOperator.parse(self.op)

    def wildcard_paths(self) -> Optional[Tuple[str, str]]:
        """
        Split a wildcard property into its collection and per-item paths.

        ``orders[].total`` maps to ``("orders", "total")`` and ``tags[]`` to
        ``("tags", "")``. Returns None unless the marker occurs exactly once.
        """
        if not isinstance(self.property, str) or self.property.count(WILDCARD_MARKER) != 1:
            return None
        collection_path, item_path = self.property.split(WILDCARD_MARKER)
        # Drop the separator that joins the marker to the item path
        return collection_path, item_path[1:]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "property": self.property,
            "op": self.op.value if isinstance(self.op, RuleOperator) else self.op,
            "value": self.value,
            "required": self.required,
        }


@dataclass
class EvaluationSettings:
    """Rule set plus the collaborators used while evaluating it."""
    rules: Sequence[Any] = field(default_factory=list)
    satisfy: Optional[Any] = None
    transform_value_fn: Optional[Callable[[Any, Any, str], Any]] = None
    previous_value_fn: Optional[Callable[[Any, str], Any]] = None
    log: Optional[Callable[[str], Any]] = None

    @classmethod
    def from_value(cls, settings: Any, require_rules: bool = True) -> Optional["EvaluationSettings"]:
        """
        Normalize caller settings.

        Accepts an EvaluationSettings, a mapping (camelCase or snake_case
        callback keys) or an object with matching attributes. Returns None
        when there is no usable rule list, unless ``require_rules`` is off,
        in which case the rule list is replaced by an empty one.
        """
        if settings is None:
            return None
        if isinstance(settings, cls):
            candidate = settings
        elif isinstance(settings, Mapping):
            candidate = cls(
                rules=settings.get("rules"),
                satisfy=settings.get("satisfy"),
                transform_value_fn=_first_present(settings, "transformValueFn", "transform_value_fn"),
                previous_value_fn=_first_present(settings, "previousValueFn", "previous_value_fn"),
                log=settings.get("log"),
            )
        else:
            candidate = cls(
                rules=getattr(settings, "rules", None),
                satisfy=getattr(settings, "satisfy", None),
                transform_value_fn=getattr(settings, "transform_value_fn", None),
                previous_value_fn=getattr(settings, "previous_value_fn", None),
                log=getattr(settings, "log", None),
            )
        if not isinstance(candidate.rules, (list, tuple)):
            if require_rules:
                return None
            candidate.rules = []
        return candidate


@dataclass
class RuleResult:
    """Outcome of checking one rule."""
    index: int
    property: str
    operator: RuleOperator
    value: Any
    target_value: Any
    passed: bool
    required: bool = False
    previous_value: Any = None


@dataclass
class EvaluationResult:
    """Result of evaluating a rule set."""
    outcome: Optional[bool]
    trace: str = ""
    rule_results: List[RuleResult] = field(default_factory=list)
    normal_passed: int = 0
    normal_total: int = 0
    required_passed: int = 0
    required_total: int = 0
    satisfy: Satisfy = Satisfy.ANY
    evaluation_time_ms: float = 0.0

    @property
    def normal_satisfied(self) -> bool:
        if not self.normal_total:
            return True
        if self.satisfy == Satisfy.ALL:
            return self.normal_passed == self.normal_total
        return self.normal_passed > 0

    @property
    def required_satisfied(self) -> bool:
        return not self.required_total or self.required_passed == self.required_total


def _first_present(mapping: Mapping, *keys: str) -> Any:
    for key in keys:
        if mapping.get(key) is not None:
            return mapping[key]
    return None
