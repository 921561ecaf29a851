"""Structured error handling for Codestorm.

Error codes are grouped in numeric ranges so that the category of an error
can be derived from its code alone. ``ErrorHandler`` keeps a bounded history
of handled errors and logs each one at a level matching its severity.
"""
from __future__ import annotations

import json
import logging
import time
import traceback
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ErrorSeverity(Enum):
    """Error severity levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class ErrorCategory(Enum):
    """Error categories for classification."""
    ORCHESTRATION = "orchestration"
    GATEWAY = "gateway"
    EXTRACTION = "extraction"
    VALIDATION = "validation"
    RECONCILIATION = "reconciliation"
    CONFIGURATION = "configuration"
    USER_INPUT = "user_input"
    SYSTEM = "system"


class ErrorCode(Enum):
    """Structured error codes for Codestorm operations."""

    # Orchestration errors (1000-1099)
    ORCHESTRATION_INIT_FAILED = 1000
    ORCHESTRATION_PIPELINE_FAILED = 1001
    ORCHESTRATION_TASK_FAILED = 1002

    # Gateway errors (1100-1199)
    GATEWAY_CALL_FAILED = 1100
    GATEWAY_CAPABILITY_UNAVAILABLE = 1101
    GATEWAY_TIMEOUT = 1102
    GATEWAY_QUOTA_EXCEEDED = 1103
    GATEWAY_AUTHENTICATION_FAILED = 1104
    GATEWAY_FALLBACK_FAILED = 1105
    GATEWAY_EMPTY_RESPONSE = 1106

    # Extraction errors (1200-1299)
    EXTRACTION_NO_PAYLOAD = 1200
    EXTRACTION_MALFORMED_JSON = 1201

    # Validation errors (1300-1399)
    VALIDATION_FAILED = 1300
    VALIDATION_MISSING_FIELD = 1301
    VALIDATION_CONTENT_QUALITY = 1302

    # Reconciliation errors (1400-1499)
    RECONCILIATION_DUPLICATE_PATH = 1400
    RECONCILIATION_DUPLICATE_ID = 1401

    # Configuration errors (1500-1599)
    CONFIG_FILE_NOT_FOUND = 1500
    CONFIG_PARSE_ERROR = 1501
    CONFIG_VALIDATION_FAILED = 1502

    # User input errors (1600-1699)
    INVALID_INSTRUCTION = 1600
    FILE_NOT_FOUND = 1601
    MISSING_REQUIRED_INPUT = 1602

    # System errors (1700-1799)
    SYSTEM_ERROR = 1700


@dataclass
class ErrorDetails:
    """Detailed error information."""
    code: ErrorCode
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    timestamp: float
    context: Dict[str, Any]
    stack_trace: Optional[str] = None
    recovery_suggestions: List[str] = field(default_factory=list)
    user_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        data["code"] = self.code.value
        data["category"] = self.category.value
        data["severity"] = self.severity.value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)


class CodestormError(Exception):
    """Base exception class carrying structured ``ErrorDetails``."""

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        category: Optional[ErrorCategory] = None,
        severity: Optional[ErrorSeverity] = None,
        context: Optional[Dict[str, Any]] = None,
        recovery_suggestions: Optional[List[str]] = None,
        user_message: Optional[str] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        if category is None:
            category = self._infer_category(error_code)
        if severity is None:
            severity = self._infer_severity(error_code)

        self.details = ErrorDetails(
            code=error_code,
            message=message,
            category=category,
            severity=severity,
            timestamp=time.time(),
            context=context or {},
            stack_trace=traceback.format_exc() if cause else None,
            recovery_suggestions=recovery_suggestions or [],
            user_message=user_message,
        )
        self.cause = cause

    def _infer_category(self, error_code: ErrorCode) -> ErrorCategory:
        """Infer error category from error code."""
        code_value = error_code.value

        if 1000 <= code_value < 1100:
            return ErrorCategory.ORCHESTRATION
        elif 1100 <= code_value < 1200:
            return ErrorCategory.GATEWAY
        elif 1200 <= code_value < 1300:
            return ErrorCategory.EXTRACTION
        elif 1300 <= code_value < 1400:
            return ErrorCategory.VALIDATION
        elif 1400 <= code_value < 1500:
            return ErrorCategory.RECONCILIATION
        elif 1500 <= code_value < 1600:
            return ErrorCategory.CONFIGURATION
        elif 1600 <= code_value < 1700:
            return ErrorCategory.USER_INPUT
        else:
            return ErrorCategory.SYSTEM

    def _infer_severity(self, error_code: ErrorCode) -> ErrorSeverity:
        """Infer error severity from error code."""
        critical_codes = {
            ErrorCode.ORCHESTRATION_INIT_FAILED,
            ErrorCode.SYSTEM_ERROR,
        }

        high_severity_codes = {
            ErrorCode.ORCHESTRATION_PIPELINE_FAILED,
            ErrorCode.GATEWAY_CAPABILITY_UNAVAILABLE,
            ErrorCode.GATEWAY_AUTHENTICATION_FAILED,
            ErrorCode.GATEWAY_FALLBACK_FAILED,
            ErrorCode.CONFIG_PARSE_ERROR,
        }

        # Recovered locally, only worth a trace in the logs
        low_severity_codes = {
            ErrorCode.EXTRACTION_NO_PAYLOAD,
            ErrorCode.EXTRACTION_MALFORMED_JSON,
            ErrorCode.VALIDATION_CONTENT_QUALITY,
            ErrorCode.RECONCILIATION_DUPLICATE_PATH,
            ErrorCode.RECONCILIATION_DUPLICATE_ID,
        }

        if error_code in critical_codes:
            return ErrorSeverity.CRITICAL
        elif error_code in high_severity_codes:
            return ErrorSeverity.HIGH
        elif error_code in low_severity_codes:
            return ErrorSeverity.LOW
        else:
            return ErrorSeverity.MEDIUM


class ErrorHandler:
    """Centralized error handler."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.error_history: List[ErrorDetails] = []
        self.error_counts: Dict[ErrorCode, int] = {}

    def handle_error(
        self,
        error: Union[Exception, CodestormError],
        context: Optional[Dict[str, Any]] = None,
        log_level: Optional[int] = None,
    ) -> ErrorDetails:
        """Handle an error with structured logging and tracking."""

        if isinstance(error, CodestormError):
            details = error.details
            if context:
                details.context.update(context)
        else:
            details = ErrorDetails(
                code=ErrorCode.SYSTEM_ERROR,
                message=str(error),
                category=ErrorCategory.SYSTEM,
                severity=ErrorSeverity.MEDIUM,
                timestamp=time.time(),
                context=context or {},
                stack_trace="".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                ),
            )

        self._track_error(details)
        self._log_error(details, log_level)
        return details

    def _track_error(self, details: ErrorDetails) -> None:
        self.error_history.append(details)
        self.error_counts[details.code] = self.error_counts.get(details.code, 0) + 1

        if len(self.error_history) > 1000:
            self.error_history = self.error_history[-500:]

    def _log_error(self, details: ErrorDetails, log_level: Optional[int] = None) -> None:
        """Log error with appropriate level."""
        if log_level is None:
            log_level = self._severity_to_log_level(details.severity)

        log_message = f"[{details.code.name}] {details.message}"

        if details.context:
            context_str = ", ".join(f"{k}={v}" for k, v in details.context.items())
            log_message += f" | Context: {context_str}"

        if details.recovery_suggestions:
            suggestions = "; ".join(details.recovery_suggestions)
            log_message += f" | Suggestions: {suggestions}"

        self.logger.log(log_level, log_message)

        if details.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.HIGH) and details.stack_trace:
            self.logger.debug(f"Stack trace for {details.code.name}:\n{details.stack_trace}")

    def _severity_to_log_level(self, severity: ErrorSeverity) -> int:
        severity_map = {
            ErrorSeverity.CRITICAL: logging.CRITICAL,
            ErrorSeverity.HIGH: logging.ERROR,
            ErrorSeverity.MEDIUM: logging.WARNING,
            ErrorSeverity.LOW: logging.INFO,
            ErrorSeverity.INFO: logging.INFO,
        }
        return severity_map.get(severity, logging.WARNING)

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of recent errors."""
        total_errors = len(self.error_history)
        if total_errors == 0:
            return {"total_errors": 0, "category_breakdown": {}}

        category_counts: Dict[str, int] = {}
        for error in self.error_history:
            category_counts[error.category.value] = category_counts.get(error.category.value, 0) + 1

        recent_errors = [
            {
                "code": error.code.name,
                "message": error.message,
                "category": error.category.value,
                "timestamp": error.timestamp,
            }
            for error in self.error_history[-10:]
        ]

        return {
            "total_errors": total_errors,
            "category_breakdown": category_counts,
            "most_common_errors": {
                code.name: count
                for code, count in sorted(
                    self.error_counts.items(), key=lambda x: x[1], reverse=True
                )[:5]
            },
            "recent_errors": recent_errors,
        }


_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def handle_error(
    error: Union[Exception, CodestormError],
    context: Optional[Dict[str, Any]] = None,
) -> ErrorDetails:
    """Convenience function to handle errors using the global handler."""
    return get_error_handler().handle_error(error, context)


def create_orchestration_error(
    message: str,
    error_code: ErrorCode = ErrorCode.ORCHESTRATION_PIPELINE_FAILED,
    context: Optional[Dict[str, Any]] = None,
    user_message: Optional[str] = None,
    cause: Optional[Exception] = None,
) -> CodestormError:
    return CodestormError(
        error_code=error_code,
        message=message,
        context=context,
        user_message=user_message,
        cause=cause,
    )


def create_model_error(
    message: str,
    capability: Optional[str] = None,
    error_code: ErrorCode = ErrorCode.GATEWAY_CALL_FAILED,
    context: Optional[Dict[str, Any]] = None,
    cause: Optional[Exception] = None,
) -> CodestormError:
    """Create a completion gateway error."""
    if context is None:
        context = {}
    if capability:
        context["capability"] = capability

    return CodestormError(
        error_code=error_code,
        message=message,
        context=context,
        cause=cause,
    )


def create_validation_error(
    message: str,
    validation_type: Optional[str] = None,
    error_code: ErrorCode = ErrorCode.VALIDATION_FAILED,
    context: Optional[Dict[str, Any]] = None,
    cause: Optional[Exception] = None,
) -> CodestormError:
    """Create a validation error."""
    if context is None:
        context = {}
    if validation_type:
        context["validation_type"] = validation_type

    return CodestormError(
        error_code=error_code,
        message=message,
        context=context,
        cause=cause,
    )


def create_config_error(
    message: str,
    config_path: Optional[str] = None,
    error_code: ErrorCode = ErrorCode.CONFIG_VALIDATION_FAILED,
    context: Optional[Dict[str, Any]] = None,
    recovery_suggestions: Optional[List[str]] = None,
    cause: Optional[Exception] = None,
) -> CodestormError:
    """Create a configuration error."""
    if context is None:
        context = {}
    if config_path:
        context["config_path"] = config_path

    return CodestormError(
        error_code=error_code,
        message=message,
        context=context,
        recovery_suggestions=recovery_suggestions,
        cause=cause,
    )


def create_input_error(
    message: str,
    error_code: ErrorCode = ErrorCode.MISSING_REQUIRED_INPUT,
    context: Optional[Dict[str, Any]] = None,
    user_message: Optional[str] = None,
) -> CodestormError:
    """Create an error for input the caller supplied or failed to supply."""
    return CodestormError(
        error_code=error_code,
        message=message,
        context=context,
        user_message=user_message or message,
    )


__all__ = [
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorCode",
    "ErrorDetails",
    "CodestormError",
    "ErrorHandler",
    "get_error_handler",
    "handle_error",
    "create_orchestration_error",
    "create_model_error",
    "create_validation_error",
    "create_config_error",
    "create_input_error",
]
