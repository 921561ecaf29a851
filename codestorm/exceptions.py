"""Custom exception types for Codestorm."""
from __future__ import annotations

from typing import Any, Dict, Optional


class AgentException(Exception):
    """Base exception for all agent-related errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


class ExtractionError(AgentException):
    """Raised when a model reply holds no parseable JSON payload."""

    def __init__(self, message: str, raw_text: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.raw_text = raw_text
        self.details["raw_length"] = len(raw_text)


class ValidationException(AgentException):
    """Exception raised during validation."""

    def __init__(
        self,
        message: str,
        validation_type: Optional[str] = None,
        failures: Optional[list] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.validation_type = validation_type
        self.failures = failures or []
        if validation_type:
            self.details["validation_type"] = validation_type
        if failures:
            self.details["failures"] = failures


class GatewayError(AgentException):
    """Completion capability returned an error unrelated to quota."""

    def __init__(self, message: str, capability: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.capability = capability
        if capability:
            self.details["capability"] = capability


class QuotaError(GatewayError):
    """Completion capability rejected the call for quota or availability."""

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        if retry_after:
            self.details["retry_after"] = retry_after


class ReconciliationConflict(AgentException):
    """Duplicate id detected after a merge; carries the applied remap."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_id: Optional[str] = None,
        new_id: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.path = path
        self.original_id = original_id
        self.new_id = new_id
        self.details.update(
            {"path": path, "original_id": original_id, "new_id": new_id}
        )


class TaskStateError(AgentException):
    """Raised when a task status would move backwards."""

    def __init__(
        self,
        message: str,
        task_id: Optional[str] = None,
        current: Optional[str] = None,
        requested: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.task_id = task_id
        self.details.update(
            {"task_id": task_id, "current": current, "requested": requested}
        )


class ConfigurationException(AgentException):
    """Exception raised for configuration errors."""

    def __init__(
        self,
        message: str,
        config_path: Optional[str] = None,
        missing_keys: Optional[list] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.config_path = config_path
        self.missing_keys = missing_keys or []
        if config_path:
            self.details["config_path"] = config_path
        if missing_keys:
            self.details["missing_keys"] = missing_keys


__all__ = [
    "AgentException",
    "ExtractionError",
    "ValidationException",
    "GatewayError",
    "QuotaError",
    "ReconciliationConflict",
    "TaskStateError",
    "ConfigurationException",
]
