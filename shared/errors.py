"""
Shared error handling for the condition engine.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class ConditionsException(Exception):
    """Base exception for the condition engine."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class RuleAuthoringError(ConditionsException):
    """A rule in the rule set is malformed.

    Carries the offending rule and its position so authors can locate it.
    """

    def __init__(
        self,
        message: str,
        rule: Any = None,
        index: Optional[int] = None,
        code: str = "RULE_AUTHORING_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.rule = rule
        self.index = index
        merged = {"index": index, "rule": _describe_rule(rule)}
        merged.update(details or {})
        super().__init__(code, message, merged)


class MissingPropertyError(RuleAuthoringError):
    """Rule has no property path."""

    def __init__(self, rule: Any, index: int):
        super().__init__(
            f"Property not specified for rule {index}",
            rule=rule,
            index=index,
            code="MISSING_PROPERTY"
        )


class UnknownOperatorError(RuleAuthoringError):
    """Rule names an operator outside the vocabulary."""

    def __init__(self, rule: Any, index: int, operator: Any = None):
        super().__init__(
            f"Unknown comparison for rule {index} ({operator})",
            rule=rule,
            index=index,
            code="UNKNOWN_OPERATOR",
            details={"operator": None if operator is None else str(operator)}
        )


class ConfigurationError(ConditionsException):
    """Evaluation settings are missing something a rule needs."""

    def __init__(self, message: str = "Configuration error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class CrossesConfigurationError(ConfigurationError):
    """A ``crosses`` rule was evaluated without a previous-value function."""

    def __init__(self, rule: Any = None, index: Optional[int] = None):
        super().__init__(
            'Comparison "crosses" selected, but no function supplied to return previous value',
            {"index": index, "rule": _describe_rule(rule)}
        )
        self.code = "MISSING_PREVIOUS_VALUE_FN"
        self.rule = rule
        self.index = index


def _describe_rule(rule: Any) -> Any:
    """Render a rule for error details."""
    if rule is None:
        return None
    to_dict = getattr(rule, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(rule, dict):
        return dict(rule)
    return repr(rule)
