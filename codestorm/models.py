"""Domain types shared by the roles, the gateway and the orchestrator."""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from codestorm.exceptions import TaskStateError


def now_ms() -> int:
    return int(time.time() * 1000)


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def _camelize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {_camel(str(k)): _camelize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_camelize(v) for v in value]
    return value


def to_camel_dict(obj: Any) -> Dict[str, Any]:
    """Serialize a dataclass into the camelCase mapping UI consumers expect."""
    if not is_dataclass(obj):
        raise TypeError(f"Expected dataclass instance, got {type(obj).__name__}")
    return _camelize(asdict(obj))


class AgentType(Enum):
    PLANNER = "planner"
    CODE_GENERATOR = "code_generator"
    DESIGN_ARCHITECT = "design_architect"
    CODE_MODIFIER = "code_modifier"
    CODE_CORRECTOR = "code_corrector"
    FILE_OBSERVER = "file_observer"
    FILE_SYNCHRONIZER = "file_synchronizer"
    CODE_SPLITTER = "code_splitter"


class TaskStatus(Enum):
    PENDING = "pending"
    WORKING = "working"
    COMPLETED = "completed"
    FAILED = "failed"


_STATUS_RANK = {
    TaskStatus.PENDING: 0,
    TaskStatus.WORKING: 1,
    TaskStatus.COMPLETED: 2,
    TaskStatus.FAILED: 2,
}


class StageStatus(Enum):
    IDLE = "idle"
    WORKING = "working"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# --------------------------------------------------------------------- files
@dataclass
class FileItem:
    id: str
    name: str
    path: str
    content: str = ""
    language: str = "text"
    size: Optional[int] = None
    timestamp: int = field(default_factory=now_ms)
    last_modified: Optional[int] = None
    is_new: bool = False
    is_modified: bool = False
    type: str = "file"

    @property
    def recency(self) -> int:
        return self.last_modified if self.last_modified is not None else self.timestamp

    def to_dict(self) -> Dict[str, Any]:
        return to_camel_dict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileItem":
        path = data.get("path") or data.get("name") or ""
        return cls(
            id=data.get("id") or "",
            name=data.get("name") or path.rsplit("/", 1)[-1],
            path=path,
            content=data.get("content") or "",
            language=data.get("language") or "text",
            size=data.get("size"),
            timestamp=data.get("timestamp") or now_ms(),
            last_modified=data.get("lastModified", data.get("last_modified")),
            is_new=bool(data.get("isNew", data.get("is_new", False))),
            is_modified=bool(data.get("isModified", data.get("is_modified", False))),
        )


@dataclass
class FileDescription:
    path: str
    description: str = ""
    dependencies: List[str] = field(default_factory=list)


@dataclass
class ProjectStep:
    id: str
    title: str
    description: str = ""
    files_to_create: List[str] = field(default_factory=list)


@dataclass
class ProjectPlan:
    id: str
    name: str
    description: str
    files: List[FileDescription] = field(default_factory=list)
    steps: List[ProjectStep] = field(default_factory=list)

    def describe(self, path: str) -> Optional[FileDescription]:
        for item in self.files:
            if item.path == path:
                return item
        return None


@dataclass
class FileSystemCommand:
    action: str  # create | update | delete | rename
    path: str
    content: Optional[str] = None
    new_path: Optional[str] = None


# -------------------------------------------------------------------- design
@dataclass
class DesignComponent:
    id: str
    name: str
    type: str = "section"
    description: str = ""
    html: str = ""
    css: str = ""
    js: Optional[str] = None


@dataclass
class DesignProposal:
    id: str
    title: str
    description: str = ""
    style: str = "modern"
    color_palette: Dict[str, Any] = field(default_factory=dict)
    typography: Dict[str, Any] = field(default_factory=dict)
    components: List[DesignComponent] = field(default_factory=list)
    layout: Dict[str, Any] = field(default_factory=dict)
    html_preview: str = ""
    css_preview: str = ""
    js_preview: Optional[str] = None
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return to_camel_dict(self)


# ---------------------------------------------------------------- correction
@dataclass
class CodeIssue:
    id: str
    type: str
    severity: str
    message: str
    line: Optional[int] = None
    suggestion: str = ""
    confidence: float = 0.5


@dataclass
class CorrectionChange:
    id: str
    line_number: Optional[int]
    original_code: str
    corrected_code: str
    reason: str
    type: str = "fix"  # fix | improvement | optimization
    confidence: float = 0.5


@dataclass
class CorrectionReport:
    language: str
    original_code: str
    corrected_code: str
    issues: List[CodeIssue] = field(default_factory=list)
    changes: List[CorrectionChange] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    stages: Dict[str, str] = field(default_factory=dict)


# ------------------------------------------------------------------ observer
@dataclass
class FileContext:
    path: str
    language: str
    imports: List[str] = field(default_factory=list)
    exports: List[str] = field(default_factory=list)
    functions: List[str] = field(default_factory=list)
    classes: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    line_count: int = 0
    description: str = ""


@dataclass
class FileObservation:
    kind: str  # structure | pattern | suggestion
    path: str
    message: str
    timestamp: int = field(default_factory=now_ms)


# ------------------------------------------------------------ orchestration
@dataclass
class AgentTask:
    id: str
    type: AgentType
    instruction: str
    status: TaskStatus = TaskStatus.PENDING
    start_time: int = field(default_factory=now_ms)
    end_time: Optional[int] = None
    plan: Optional[ProjectPlan] = None
    result: Any = None
    error: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    def transition(self, status: TaskStatus) -> None:
        """Move the task forward; backward or sideways moves raise."""
        if _STATUS_RANK[status] <= _STATUS_RANK[self.status]:
            raise TaskStateError(
                f"Task {self.id} cannot move from {self.status.value} to {status.value}",
                task_id=self.id,
                current=self.status.value,
                requested=status.value,
            )
        self.status = status
        if self.is_terminal:
            self.end_time = now_ms()

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "result"}
        data["plan"] = asdict(self.plan) if self.plan else None
        return _camelize(data)


@dataclass
class CompletionEnvelope:
    content: Optional[str] = None
    error: Optional[str] = None
    fallback_used: bool = False
    execution_time_ms: float = 0.0
    capability: Optional[str] = None
    quota_exhausted: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None


@dataclass
class AgentResult:
    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "AgentResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "AgentResult":
        return cls(success=False, data=data, error=error)


@dataclass
class ProgressEvent:
    stage: str
    percent: float
    message: str
    agent_name: Optional[str] = None

    def __post_init__(self) -> None:
        self.percent = max(0.0, min(100.0, float(self.percent)))

    def to_dict(self) -> Dict[str, Any]:
        return to_camel_dict(self)


@dataclass
class ChatMessage:
    id: str
    sender: str  # ai | user
    content: str
    timestamp: int = field(default_factory=now_ms)
    type: str = "text"  # text | success | error | notification

    def to_dict(self) -> Dict[str, Any]:
        return to_camel_dict(self)


__all__ = [
    "now_ms",
    "to_camel_dict",
    "AgentType",
    "TaskStatus",
    "StageStatus",
    "FileItem",
    "FileDescription",
    "ProjectStep",
    "ProjectPlan",
    "FileSystemCommand",
    "DesignComponent",
    "DesignProposal",
    "CodeIssue",
    "CorrectionChange",
    "CorrectionReport",
    "FileContext",
    "FileObservation",
    "AgentTask",
    "CompletionEnvelope",
    "AgentResult",
    "ProgressEvent",
    "ChatMessage",
]
