"""CODESTORM agent orchestration and response resolution."""
from codestorm.agent_orchestrator import AgentOrchestrator, InstructionOutcome, ProjectResult
from codestorm.models import AgentResult, AgentTask, AgentType, FileItem, TaskStatus
from codestorm.providers.completion_gateway import CompletionGateway

__version__ = "0.1.0"

__all__ = [
    "AgentOrchestrator",
    "AgentResult",
    "AgentTask",
    "AgentType",
    "CompletionGateway",
    "FileItem",
    "InstructionOutcome",
    "ProjectResult",
    "TaskStatus",
]
