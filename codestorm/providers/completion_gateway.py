"""Completion gateway with a single quota fallback.

The gateway wraps an injected completion capability::

    async def capability(prompt: str, capability_id: str) -> dict

which returns ``{"content": str}`` or ``{"error": str}`` (optionally with a
``"status"`` code). Only quota and availability failures are retried, once,
on the alternate capability configured for the preferred one.
"""
from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from codestorm.models import CompletionEnvelope
from codestorm.utils.errors import ErrorCode, create_model_error, handle_error

logger = logging.getLogger(__name__)

CompletionCapability = Callable[[str, str], Awaitable[Dict[str, Any]]]

QUOTA_STATUS_CODES = {429, 503, 529}
QUOTA_MARKERS = (
    "quota",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "too many requests",
    "resource exhausted",
    "resource_exhausted",
    "overloaded",
)
_STATUS_IN_TEXT = re.compile(r"(?<![\w.-])(429|503|529)(?![\w.-])")


def is_quota_error(message: str, status: Optional[int] = None) -> bool:
    """True for quota or availability failures, the only ones worth a fallback."""
    if status in QUOTA_STATUS_CODES:
        return True
    lowered = (message or "").lower()
    if any(marker in lowered for marker in QUOTA_MARKERS):
        return True
    return _STATUS_IN_TEXT.search(lowered) is not None


def classify_error(message: str, status: Optional[int] = None) -> ErrorCode:
    lowered = (message or "").lower()
    if is_quota_error(message, status):
        return ErrorCode.GATEWAY_QUOTA_EXCEEDED
    if "empty response" in lowered:
        return ErrorCode.GATEWAY_EMPTY_RESPONSE
    if "timeout" in lowered or "timed out" in lowered:
        return ErrorCode.GATEWAY_TIMEOUT
    if status in (401, 403) or "auth" in lowered or "unauthorized" in lowered:
        return ErrorCode.GATEWAY_AUTHENTICATION_FAILED
    if "unavailable" in lowered or "unknown capability" in lowered:
        return ErrorCode.GATEWAY_CAPABILITY_UNAVAILABLE
    return ErrorCode.GATEWAY_CALL_FAILED


class CompletionGateway:
    """Send prompts to a capability, falling back once on quota errors."""

    def __init__(
        self,
        capability: CompletionCapability,
        primary_capability: str = "gpt-4o",
        fallbacks: Optional[Dict[str, str]] = None,
        default_alternate: Optional[str] = None,
    ) -> None:
        self._capability = capability
        self.primary_capability = primary_capability
        self.fallbacks = dict(fallbacks or {})
        self.default_alternate = default_alternate

    @classmethod
    def from_config(
        cls, capability: CompletionCapability, config: Dict[str, Any]
    ) -> "CompletionGateway":
        gateway_config = config.get("gateway", {})
        return cls(
            capability,
            primary_capability=gateway_config.get("primary_capability", "gpt-4o"),
            fallbacks=gateway_config.get("fallbacks"),
            default_alternate=gateway_config.get("default_alternate"),
        )

    def alternate_for(self, capability_id: str) -> Optional[str]:
        alternate = self.fallbacks.get(capability_id, self.default_alternate)
        if alternate == capability_id:
            return None
        return alternate

    async def _invoke(
        self, prompt: str, capability_id: str
    ) -> Tuple[Optional[str], Optional[str], Optional[int]]:
        """Return ``(content, error, status)`` for one capability call."""
        try:
            reply = await self._capability(prompt, capability_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return None, str(exc) or type(exc).__name__, getattr(exc, "status_code", None)

        if isinstance(reply, str):
            reply = {"content": reply}
        reply = reply or {}

        error = reply.get("error")
        if error:
            return None, str(error), reply.get("status")

        content = reply.get("content")
        if content is None or not str(content).strip():
            return None, f"Empty response from capability '{capability_id}'", None
        return str(content), None, None

    async def complete(
        self, prompt: str, preferred_capability: Optional[str] = None
    ) -> CompletionEnvelope:
        """Run ``prompt`` and return a unified envelope; never raises."""
        capability_id = preferred_capability or self.primary_capability
        started = time.perf_counter()

        def elapsed() -> float:
            return round((time.perf_counter() - started) * 1000, 2)

        content, error, status = await self._invoke(prompt, capability_id)
        if error is None:
            logger.debug("Capability %s answered in %sms", capability_id, elapsed())
            return CompletionEnvelope(
                content=content, capability=capability_id, execution_time_ms=elapsed()
            )

        if not is_quota_error(error, status):
            handle_error(
                create_model_error(
                    f"Completion failed: {error}",
                    capability=capability_id,
                    error_code=classify_error(error, status),
                    context={"prompt_length": len(prompt)},
                )
            )
            return CompletionEnvelope(
                error=error, capability=capability_id, execution_time_ms=elapsed()
            )

        alternate = self.alternate_for(capability_id)
        if alternate is None:
            logger.warning("Capability %s out of quota and no alternate is configured", capability_id)
            return CompletionEnvelope(
                error=error,
                capability=capability_id,
                execution_time_ms=elapsed(),
                quota_exhausted=True,
            )

        logger.warning(
            "Capability %s out of quota (%s); retrying on %s", capability_id, error, alternate
        )
        content, fallback_error, fallback_status = await self._invoke(prompt, alternate)
        if fallback_error is None:
            return CompletionEnvelope(
                content=content,
                capability=alternate,
                fallback_used=True,
                execution_time_ms=elapsed(),
            )

        message = f"{capability_id}: {error}; {alternate}: {fallback_error}"
        handle_error(
            create_model_error(
                f"Fallback capability failed as well: {message}",
                capability=alternate,
                error_code=ErrorCode.GATEWAY_FALLBACK_FAILED,
                context={"preferred": capability_id, "status": fallback_status},
            )
        )
        return CompletionEnvelope(
            error=message,
            capability=alternate,
            fallback_used=True,
            execution_time_ms=elapsed(),
            quota_exhausted=is_quota_error(fallback_error, fallback_status),
        )


__all__ = [
    "CompletionCapability",
    "CompletionGateway",
    "is_quota_error",
    "classify_error",
]
