"""Role primitives shared by every agent behavior."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from codestorm.exceptions import AgentException, ExtractionError, GatewayError, QuotaError
from codestorm.models import AgentResult, AgentTask, AgentType, ProgressEvent
from codestorm.utils.errors import (
    CodestormError,
    ErrorCode,
    create_validation_error,
    handle_error,
)
from codestorm.utils.extraction import extract_json
from codestorm.utils.validation import ParseOutcome, Validator, parse_payload

if TYPE_CHECKING:  # pragma: no cover - for linting only
    from codestorm.providers.completion_gateway import CompletionGateway

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class BaseRole:
    """Shared helpers for role implementations.

    Subclasses implement ``run``; callers use ``execute``, which turns every
    failure into ``AgentResult.fail`` so no exception leaves the role.
    Roles keep no state between calls.
    """

    agent_type: AgentType = AgentType.PLANNER
    name = "Agente"

    def __init__(
        self,
        gateway: "CompletionGateway",
        config: Optional[Dict[str, Any]] = None,
        capability: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.gateway = gateway
        self.config = config or {}
        self.capability = capability or self.config.get("roles", {}).get(self.agent_type.value)
        self.progress = progress

    async def run(self, task: AgentTask) -> AgentResult:
        raise NotImplementedError

    async def execute(self, task: AgentTask) -> AgentResult:
        context = {"task_id": task.id, "agent": self.agent_type.value}
        try:
            return await self.run(task)
        except CodestormError as exc:
            details = handle_error(exc, context)
            return AgentResult.fail(details.user_message or details.message)
        except AgentException as exc:
            logger.warning("%s failed on task %s: %s", self.name, task.id, exc.message)
            return AgentResult.fail(exc.message)
        except Exception as exc:
            logger.exception("Unexpected failure in %s on task %s", self.name, task.id)
            return AgentResult.fail(f"Error inesperado en {self.name}: {exc}")

    # ------------------------------------------------------------------ helpers
    async def call_model(self, prompt: str, operation: str) -> str:
        """Send ``prompt`` through the gateway and return the reply text.

        Raises:
            QuotaError: every capability tried was out of quota.
            GatewayError: any other completion failure.
        """
        logger.debug("%s/%s prompt (%d chars)", self.name, operation, len(prompt))
        envelope = await self.gateway.complete(prompt, self.capability)
        if envelope.ok:
            if envelope.fallback_used:
                logger.info(
                    "%s/%s answered by fallback capability %s",
                    self.name,
                    operation,
                    envelope.capability,
                )
            return envelope.content or ""

        details = {"operation": operation, "execution_time_ms": envelope.execution_time_ms}
        if envelope.quota_exhausted:
            raise QuotaError(envelope.error or "Quota exceeded", capability=envelope.capability, details=details)
        raise GatewayError(envelope.error or "Completion failed", capability=envelope.capability, details=details)

    def parse_reply(self, text: str, validator: Validator) -> ParseOutcome[Any]:
        """Extract and validate the JSON payload of a model reply.

        Extraction and schema failures are both reported through the
        returned outcome and logged at low severity.
        """
        try:
            payload = extract_json(text)
        except ExtractionError as exc:
            handle_error(
                create_validation_error(
                    f"{self.name}: {exc.message}",
                    validation_type="extraction",
                    error_code=ErrorCode.EXTRACTION_NO_PAYLOAD
                    if exc.cause is None
                    else ErrorCode.EXTRACTION_MALFORMED_JSON,
                    context={"raw_length": len(text or "")},
                    cause=exc,
                )
            )
            return ParseOutcome.failure(exc)

        outcome = parse_payload(payload, validator)
        if not outcome.ok:
            handle_error(
                create_validation_error(
                    f"{self.name}: {outcome.error.message}",
                    validation_type="schema",
                    error_code=ErrorCode.VALIDATION_MISSING_FIELD,
                )
            )
        return outcome

    def emit(self, stage: str, percent: float, message: str) -> None:
        if self.progress is None:
            return
        try:
            self.progress(ProgressEvent(stage=stage, percent=percent, message=message, agent_name=self.name))
        except Exception:
            logger.exception("Progress callback failed for %s", self.name)


__all__ = ["BaseRole", "ProgressCallback"]
