"""Rule-based validation for user-supplied values and route parameters."""

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Union

RuleType = Literal["required", "min_length", "max_length", "pattern", "custom"]

# A custom check returns True to accept, or a message (or False) to reject
CustomCheck = Callable[[Any], Union[bool, str]]


@dataclass(frozen=True)
class ValidationRule:
    type: RuleType
    value: Any = None
    message: Optional[str] = None


def _blank(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip() == ""
    return value is None or value is False or value == 0 or value == [] or value == {}


def validate(value: Any, rules: Iterable[ValidationRule]) -> List[str]:
    """Check value against every rule.

    Length and pattern rules only apply to strings; other types pass them.

    Returns:
        One message per failed rule, in rule order
    """
    errors = []
    for rule in rules:
        if rule.type == "required":
            if _blank(value):
                errors.append(rule.message or "Field is required")
        elif rule.type == "min_length":
            if isinstance(value, str) and len(value) < rule.value:
                errors.append(rule.message or f"Minimum length is {rule.value}")
        elif rule.type == "max_length":
            if isinstance(value, str) and len(value) > rule.value:
                errors.append(rule.message or f"Maximum length is {rule.value}")
        elif rule.type == "pattern":
            if isinstance(value, str) and not re.search(rule.value, value):
                errors.append(rule.message or "Invalid format")
        elif rule.type == "custom":
            result = rule.value(value)
            if result is not True:
                errors.append(result if isinstance(result, str) else rule.message or "Validation failed")
        else:
            raise ValueError(f"Unknown validation rule type: {rule.type}")
    return errors


class Rules:
    """Factories for common rules."""

    @staticmethod
    def required(message: Optional[str] = None) -> ValidationRule:
        return ValidationRule("required", message=message)

    @staticmethod
    def min_length(length: int) -> ValidationRule:
        return ValidationRule("min_length", length)

    @staticmethod
    def max_length(length: int) -> ValidationRule:
        return ValidationRule("max_length", length)

    @staticmethod
    def pattern(regex: str, message: Optional[str] = None) -> ValidationRule:
        return ValidationRule("pattern", regex, message)

    @staticmethod
    def custom(check: CustomCheck, message: Optional[str] = None) -> ValidationRule:
        return ValidationRule("custom", check, message)

    @staticmethod
    def email() -> ValidationRule:
        return ValidationRule("pattern", r"^[^\s@]+@[^\s@]+\.[^\s@]+$", "Invalid email format")

    @staticmethod
    def url() -> ValidationRule:
        return ValidationRule("pattern", r"^https?://.+", "Invalid URL format")

    @staticmethod
    def semver() -> ValidationRule:
        return ValidationRule("pattern", r"^\d+\.\d+\.\d+", "Invalid semantic version format")

    @staticmethod
    def plugin_name() -> ValidationRule:
        return ValidationRule(
            "pattern",
            r"^[a-z0-9_-]+$",
            "Plugin name must contain only lowercase letters, numbers, hyphens, and underscores",
        )


PARAMETER_TYPES = {
    "string": (str,),
    "number": (int, float),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list,),
}


def validate_parameters(params: Dict[str, Any], definitions: Iterable[Any]) -> List[str]:
    """Check request parameters against a route's parameter definitions.

    Args:
        params: Parameter name -> value
        definitions: Objects with ``name``, ``type`` and ``required``
            (``ParameterDefinition`` from a manifest's ``apis``)

    Returns:
        Messages prefixed with the parameter name, empty if params are valid
    """
    errors = []
    for definition in definitions:
        if definition.name not in params:
            if definition.required:
                errors.append(f"{definition.name}: Field is required")
            continue
        value = params[definition.name]
        expected = PARAMETER_TYPES.get(definition.type, (object,))
        # bool is an int subclass; only "boolean" accepts it
        if isinstance(value, bool) and definition.type != "boolean":
            errors.append(f"{definition.name}: expected {definition.type}, got boolean")
        elif not isinstance(value, expected):
            errors.append(f"{definition.name}: expected {definition.type}, got {type(value).__name__}")
    return errors
