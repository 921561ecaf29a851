"""File observer role: local structural analysis of project files."""
from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from codestorm.models import (
    AgentResult,
    AgentTask,
    AgentType,
    FileContext,
    FileItem,
    FileObservation,
    now_ms,
)
from codestorm.utils.reconciliation import language_from_path

from .base import BaseRole

logger = logging.getLogger(__name__)

LARGE_FILE_LINES = 300

_JS_IMPORT = re.compile(
    r"import\s+(?:\{([^}]+)\}|\*\s+as\s+([\w$]+)|([\w$]+))\s+from\s+['\"]([^'\"]+)['\"]"
)
_JS_EXPORT = re.compile(r"export\s+(?:default\s+)?(?:class|function|const|let|var)?\s*([\w$]+)")
_JS_FUNCTION = re.compile(r"function\s+([\w$]+)\s*\(")
_JS_CLASS = re.compile(r"class\s+([\w$]+)(?:\s+extends\s+([\w$.]+))?")
_HTML_SCRIPT = re.compile(r"<script[^>]*src=['\"]([^'\"]+)['\"]", re.IGNORECASE)
_HTML_LINK = re.compile(r"<link[^>]*href=['\"]([^'\"]+)['\"]", re.IGNORECASE)
_CSS_IMPORT = re.compile(r"@import\s+(?:url\(['\"]?([^'\")]+)['\"]?\)|['\"]([^'\"]+)['\"])")
_PY_IMPORT = re.compile(r"^\s*(?:from\s+([\w.]+)\s+import\s+[\w*, ]+|import\s+([\w.]+))", re.MULTILINE)
_PY_DEF = re.compile(r"^\s*(?:async\s+)?def\s+(\w+)", re.MULTILINE)
_PY_CLASS = re.compile(r"^\s*class\s+(\w+)", re.MULTILINE)


@dataclass
class ObserverState:
    observed_files: List[str] = field(default_factory=list)
    contexts: Dict[str, FileContext] = field(default_factory=dict)
    observations: List[FileObservation] = field(default_factory=list)
    fingerprints: Dict[str, str] = field(default_factory=dict)
    is_active: bool = True
    last_scan: Optional[int] = None

    def copy(self) -> "ObserverState":
        return ObserverState(
            observed_files=list(self.observed_files),
            contexts=dict(self.contexts),
            observations=list(self.observations),
            fingerprints=dict(self.fingerprints),
            is_active=self.is_active,
            last_scan=self.last_scan,
        )


def _fingerprint(item: FileItem) -> str:
    return hashlib.sha1(item.content.encode("utf-8")).hexdigest()


def analyze_file(item: FileItem) -> FileContext:
    """Extract imports, exports, functions, classes and dependencies."""
    language = item.language if item.language != "text" else language_from_path(item.path)
    context = FileContext(path=item.path, language=language, line_count=len(item.content.splitlines()))
    content = item.content

    if language in ("javascript", "typescript"):
        for match in _JS_IMPORT.finditer(content):
            names = match.group(1) or match.group(2) or match.group(3)
            source = match.group(4)
            context.imports.append(f"{names.strip()} from {source}")
            if not source.startswith((".", "/")):
                context.dependencies.append(source)
        context.exports = [m.group(1) for m in _JS_EXPORT.finditer(content)]
        context.functions = [m.group(1) for m in _JS_FUNCTION.finditer(content)]
        context.classes = [
            f"{m.group(1)} extends {m.group(2)}" if m.group(2) else m.group(1)
            for m in _JS_CLASS.finditer(content)
        ]
    elif language == "html":
        context.dependencies = [m.group(1) for m in _HTML_SCRIPT.finditer(content)]
        context.dependencies += [m.group(1) for m in _HTML_LINK.finditer(content)]
    elif language == "css":
        context.dependencies = [m.group(1) or m.group(2) for m in _CSS_IMPORT.finditer(content)]
    elif language == "python":
        for match in _PY_IMPORT.finditer(content):
            module = match.group(1) or match.group(2)
            context.imports.append(module)
            if not module.startswith("."):
                context.dependencies.append(module.split(".")[0])
        context.functions = _PY_DEF.findall(content)
        context.classes = _PY_CLASS.findall(content)

    context.description = describe(context)
    return context


def describe(context: FileContext) -> str:
    parts = [f"Archivo {context.language.upper()}"]
    if context.exports:
        parts.append(f"exporta {len(context.exports)} elementos")
    elements = []
    if context.functions:
        elements.append(f"{len(context.functions)} funciones")
    if context.classes:
        elements.append(f"{len(context.classes)} clases")
    if elements:
        parts.append(f"contiene {' y '.join(elements)}")
    if context.imports:
        parts.append(f"importa de {len(context.imports)} módulos")
    return ", ".join(parts)


def observe(item: FileItem, context: FileContext) -> List[FileObservation]:
    observations = [FileObservation("structure", item.path, f"Archivo analizado: {context.description}")]

    if context.language in ("javascript", "typescript"):
        if "useState" in item.content or "useEffect" in item.content:
            observations.append(
                FileObservation(
                    "pattern",
                    item.path,
                    "Este archivo utiliza React Hooks para gestionar el estado y efectos secundarios.",
                )
            )
        if "React.FC" in item.content or "extends React.Component" in item.content:
            observations.append(FileObservation("pattern", item.path, "Este archivo contiene componentes de React."))
        if context.language == "javascript" and (len(context.classes) > 2 or len(context.functions) > 5):
            observations.append(
                FileObservation(
                    "suggestion",
                    item.path,
                    "Este archivo JavaScript contiene estructuras complejas. Considera migrar a TypeScript.",
                )
            )

    if context.line_count > LARGE_FILE_LINES:
        observations.append(
            FileObservation(
                "suggestion",
                item.path,
                "Este archivo es bastante grande. Considera dividirlo en módulos más pequeños.",
            )
        )
    return observations


def _drop_observations(state: ObserverState, file_id: str) -> None:
    previous = state.contexts.get(file_id)
    if previous is not None:
        state.observations = [obs for obs in state.observations if obs.path != previous.path]


def _forget(state: ObserverState, file_id: str) -> None:
    _drop_observations(state, file_id)
    state.contexts.pop(file_id, None)
    state.fingerprints.pop(file_id, None)
    state.observed_files.remove(file_id)


def scan(files: Iterable[FileItem], state: Optional[ObserverState] = None) -> ObserverState:
    """Analyze new or changed files and return the updated state.

    Files no longer present are forgotten, and a changed file's
    observations replace the ones from its previous scan. The given state
    is not modified.
    """
    items = list(files)
    updated = state.copy() if state is not None else ObserverState()

    present = {item.id for item in items}
    for file_id in [fid for fid in updated.observed_files if fid not in present]:
        _forget(updated, file_id)

    processed = 0
    for item in items:
        fingerprint = _fingerprint(item)
        if updated.fingerprints.get(item.id) == fingerprint:
            continue
        if item.id in updated.observed_files:
            _drop_observations(updated, item.id)
        else:
            updated.observed_files.append(item.id)
        context = analyze_file(item)
        updated.contexts[item.id] = context
        updated.fingerprints[item.id] = fingerprint
        updated.observations.extend(observe(item, context))
        processed += 1

    updated.last_scan = now_ms()
    logger.debug("Observer processed %d file(s)", processed)
    return updated


class FileObserver(BaseRole):
    agent_type = AgentType.FILE_OBSERVER
    name = "Observador de Archivos"

    async def run(self, task: AgentTask) -> AgentResult:
        files = task.context.get("files") or []
        state = scan(files, task.context.get("observer_state"))
        self.emit("observing", 100, f"{len(state.observed_files)} archivo(s) observados")
        return AgentResult.ok(state)


__all__ = ["FileObserver", "ObserverState", "analyze_file", "describe", "observe", "scan"]
