"""Schema validation for payloads parsed out of model replies."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, TypeVar

from codestorm.exceptions import AgentException, ValidationException

T = TypeVar("T")


class Validator:
    """Base validator class."""

    def validate(self, value: Any) -> Any:
        """Validate and potentially transform the value."""
        raise NotImplementedError

    def __call__(self, value: Any) -> Any:
        return self.validate(value)


class StringValidator(Validator):
    """Validate string inputs."""

    def __init__(
        self,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
        strip_whitespace: bool = True,
    ):
        self.min_length = min_length
        self.max_length = max_length
        self.strip_whitespace = strip_whitespace

    def validate(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationException(
                f"Expected string, got {type(value).__name__}",
                validation_type="type",
            )

        if self.strip_whitespace:
            value = value.strip()

        if self.min_length and len(value) < self.min_length:
            raise ValidationException(
                f"String must be at least {self.min_length} characters long "
                f"(provided: {len(value)} characters)",
                validation_type="length",
            )

        if self.max_length and len(value) > self.max_length:
            raise ValidationException(
                f"String must be at most {self.max_length} characters long "
                f"(provided: {len(value)} characters)",
                validation_type="length",
            )

        return value


class ListValidator(Validator):
    """Validate list inputs."""

    def __init__(
        self,
        min_items: Optional[int] = None,
        max_items: Optional[int] = None,
        item_validator: Optional[Validator] = None,
    ):
        self.min_items = min_items
        self.max_items = max_items
        self.item_validator = item_validator

    def validate(self, value: Any) -> List[Any]:
        if not isinstance(value, (list, tuple)):
            raise ValidationException(
                f"Expected list, got {type(value).__name__}",
                validation_type="type",
            )

        value = list(value)

        if self.min_items and len(value) < self.min_items:
            raise ValidationException(
                f"List too short (min {self.min_items} items)",
                validation_type="length",
            )

        if self.max_items and len(value) > self.max_items:
            raise ValidationException(
                f"List too long (max {self.max_items} items)",
                validation_type="length",
            )

        if self.item_validator:
            validated_items = []
            for i, item in enumerate(value):
                try:
                    validated_items.append(self.item_validator.validate(item))
                except ValidationException as exc:
                    raise ValidationException(
                        f"Item {i} validation failed: {exc.message}",
                        validation_type="item",
                        failures=[{"index": i, "error": exc.message}],
                    )
            value = validated_items

        return value


class DictValidator(Validator):
    """Validate dictionary inputs.

    Keys listed in ``key_validators`` but absent from the value are only
    checked when they are also required.
    """

    def __init__(
        self,
        required_keys: Optional[List[str]] = None,
        key_validators: Optional[Dict[str, Validator]] = None,
    ):
        self.required_keys = list(required_keys or [])
        self.key_validators = key_validators or {}

    def validate(self, value: Any) -> Dict[str, Any]:
        if not isinstance(value, dict):
            raise ValidationException(
                f"Expected dict, got {type(value).__name__}",
                validation_type="type",
            )

        missing_keys = [key for key in self.required_keys if key not in value]
        if missing_keys:
            raise ValidationException(
                f"Missing required keys: {', '.join(missing_keys)}",
                validation_type="keys",
                failures=missing_keys,
            )

        validated = {}
        for key, val in value.items():
            if key in self.key_validators:
                try:
                    validated[key] = self.key_validators[key].validate(val)
                except ValidationException as exc:
                    raise ValidationException(
                        f"Key '{key}' validation failed: {exc.message}",
                        validation_type="value",
                        failures=[{"key": key, "error": exc.message}],
                    )
            else:
                validated[key] = val

        return validated


@dataclass
class ParseOutcome(Generic[T]):
    """Tagged result of validating an untrusted payload."""

    ok: bool
    value: Optional[T] = None
    error: Optional[AgentException] = None

    @classmethod
    def success(cls, value: T) -> "ParseOutcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: AgentException) -> "ParseOutcome[T]":
        return cls(ok=False, error=error)


def parse_payload(payload: Any, validator: Validator) -> ParseOutcome[Any]:
    """Run ``validator`` over ``payload`` without raising."""
    try:
        return ParseOutcome.success(validator.validate(payload))
    except ValidationException as exc:
        return ParseOutcome.failure(exc)


__all__ = [
    "Validator",
    "StringValidator",
    "ListValidator",
    "DictValidator",
    "ParseOutcome",
    "parse_payload",
]
