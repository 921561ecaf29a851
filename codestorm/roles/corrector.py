"""Code corrector role: analyze, detect and generate stages.

Each stage records its own status (idle, working, success, warning, error)
and reports progress. A failed detect stage degrades to locally detected
issues so that generate still runs; the corrected code is only reported,
never written back to the file.
"""
from __future__ import annotations

import difflib
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from codestorm.exceptions import GatewayError
from codestorm.models import (
    AgentResult,
    AgentTask,
    AgentType,
    CodeIssue,
    CorrectionChange,
    CorrectionReport,
    FileItem,
    StageStatus,
)
from codestorm.utils.errors import ErrorCode, create_input_error
from codestorm.utils.ids import generate_unique_id
from codestorm.utils.reconciliation import language_from_path
from codestorm.utils.validation import DictValidator, ListValidator, StringValidator

from .base import BaseRole

logger = logging.getLogger(__name__)

STAGES = ("analyze", "detect", "generate")

ISSUE_TYPES = ("syntax", "logic", "security", "performance", "style", "best_practice")
SEVERITIES = ("critical", "high", "medium", "low", "info")
CHANGE_TYPES = ("fix", "improvement", "optimization")

MAX_LINE_LENGTH = 120
PERCENT_THRESHOLD = 1.5

ISSUES_SCHEMA = DictValidator(
    required_keys=["issues"],
    key_validators={"issues": ListValidator(item_validator=DictValidator(required_keys=["message"]))},
)

CORRECTION_SCHEMA = DictValidator(
    required_keys=["correctedCode"],
    key_validators={
        "correctedCode": StringValidator(min_length=1, strip_whitespace=False),
        "changes": ListValidator(item_validator=DictValidator()),
    },
)

_LANGUAGE_HINTS = (
    ("python", re.compile(r"^\s*(def |class |import |from \w+ import )", re.MULTILINE)),
    ("html", re.compile(r"<(!DOCTYPE|html|div|body)\b", re.IGNORECASE)),
    ("typescript", re.compile(r":\s*(string|number|boolean)\b|\binterface \w+")),
    ("javascript", re.compile(r"\b(function|const|let|var)\b|=>")),
    ("css", re.compile(r"^[\w.#:\-\s,]+\{[^}]*:[^}]*\}", re.MULTILINE)),
)


def detect_language(code: str, hint: Optional[str] = None) -> str:
    if hint and hint != "text":
        return hint
    for language, pattern in _LANGUAGE_HINTS:
        if pattern.search(code):
            return language
    return "text"


def code_metrics(code: str, language: str) -> Dict[str, Any]:
    """Cheap structural metrics computed without a model call."""
    lines = code.splitlines()
    comment_prefix = "#" if language == "python" else "//"
    depth = max_depth = 0
    for char in code:
        if char in "{([":
            depth += 1
            max_depth = max(max_depth, depth)
        elif char in "})]":
            depth -= 1
    return {
        "line_count": len(lines),
        "non_empty_lines": sum(1 for line in lines if line.strip()),
        "comment_lines": sum(1 for line in lines if line.strip().startswith((comment_prefix, "/*", "*"))),
        "function_count": len(re.findall(r"\bdef \w+|\bfunction\b|=>", code)),
        "class_count": len(re.findall(r"\bclass \w+", code)),
        "max_line_length": max((len(line) for line in lines), default=0),
        "max_nesting": max_depth,
        "bracket_balance": depth,
    }


def basic_issues(code: str, language: str, metrics: Dict[str, Any]) -> List[CodeIssue]:
    """Local checks used when the model cannot enumerate issues."""
    issues: List[CodeIssue] = []

    def add(kind: str, severity: str, message: str, line: Optional[int], suggestion: str) -> None:
        issues.append(
            CodeIssue(
                id=generate_unique_id("issue"),
                type=kind,
                severity=severity,
                message=message,
                line=line,
                suggestion=suggestion,
                confidence=0.6,
            )
        )

    if metrics.get("bracket_balance"):
        add("syntax", "high", "Llaves, paréntesis o corchetes desbalanceados", None, "Revisa el cierre de los bloques")

    for number, line in enumerate(code.splitlines(), start=1):
        stripped = line.strip()
        if len(line) > MAX_LINE_LENGTH:
            add("style", "low", f"Línea de {len(line)} caracteres", number, "Divide la línea en varias")
        if language in ("javascript", "typescript"):
            if re.search(r"\bvar\s", stripped):
                add("best_practice", "medium", "Uso de 'var'", number, "Usa 'let' o 'const'")
            if re.search(r"[^=!]==[^=]", stripped):
                add("logic", "medium", "Comparación no estricta", number, "Usa '===' en lugar de '=='")
            if "console.log" in stripped:
                add("style", "info", "console.log olvidado", number, "Elimina los mensajes de depuración")
            if re.search(r"\beval\(", stripped):
                add("security", "high", "Uso de eval()", number, "Evita eval con datos externos")
        if language == "python" and re.match(r"except\s*:", stripped):
            add("best_practice", "medium", "except sin tipo de excepción", number, "Captura excepciones concretas")
        if re.search(r"\b(TODO|FIXME)\b", stripped):
            add("style", "info", "Tarea pendiente en el código", number, "Resuelve o registra la tarea pendiente")
    return issues


def _normalize_type(value: Any, allowed: Tuple[str, ...], default: str) -> str:
    text = str(value or "").strip()
    if not text.isupper():
        # bestPractice -> best_practice
        text = re.sub(r"(?<=[a-z])(?=[A-Z])", "_", text)
    text = text.lower().replace("-", "_").replace(" ", "_")
    return text if text in allowed else default


def normalize_confidence(value: Any, default: float = 0.5) -> float:
    """Accept 0-1 or 0-100 scores and return a value in [0, 1].

    Scores up to ``PERCENT_THRESHOLD`` are read as fractions that slightly
    overshoot and are clamped; larger ones are percentages.
    """
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score > PERCENT_THRESHOLD:
        score = score / 100
    return max(0.0, min(1.0, score))


def _line(value: Any) -> Optional[int]:
    return value if isinstance(value, int) and value > 0 else None


def diff_changes(original: str, corrected: str) -> List[CorrectionChange]:
    """Derive one change per differing hunk when the model lists none."""
    before = original.splitlines()
    after = corrected.splitlines()
    changes = []
    matcher = difflib.SequenceMatcher(a=before, b=after)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        changes.append(
            CorrectionChange(
                id=generate_unique_id("change"),
                line_number=i1 + 1,
                original_code="\n".join(before[i1:i2]),
                corrected_code="\n".join(after[j1:j2]),
                reason="Cambio detectado al comparar el código corregido",
                type="improvement",
                confidence=0.5,
            )
        )
    return changes


class CodeCorrector(BaseRole):
    agent_type = AgentType.CODE_CORRECTOR
    name = "Corrector de Código"

    def _stage(self, report: CorrectionReport, stage: str, status: StageStatus, message: str) -> None:
        report.stages[stage] = status.value
        percent = (STAGES.index(stage) + (1 if status is not StageStatus.WORKING else 0)) * 100 / len(STAGES)
        self.emit(stage, percent, message)

    def _detect_prompt(self, code: str, language: str) -> str:
        prompt_parts = [
            "TAREA: ANÁLISIS DE CÓDIGO",
            "",
            f"Analiza el siguiente código en {language} e identifica errores y problemas.",
            f"```{language}",
            code,
            "```",
            "",
            "Tipos: syntax, logic, security, performance, style, best_practice.",
            "Severidades: critical, high, medium, low, info.",
            "",
            "Responde ÚNICAMENTE con un JSON válido:",
            '{"issues": [{"type": "...", "severity": "...", "message": "...", "line": 1,',
            '  "suggestion": "...", "confidence": 0.9}]}',
        ]
        return "\n".join(prompt_parts)

    def _generate_prompt(self, code: str, language: str, issues: List[CodeIssue]) -> str:
        listed = [
            f"- [{issue.severity}/{issue.type}] línea {issue.line or '?'}: {issue.message}"
            for issue in issues
        ] or ["- No se detectaron problemas concretos; aplica mejoras de estilo si procede."]
        prompt_parts = [
            "TAREA: CORRECCIÓN DE CÓDIGO",
            "",
            f"Corrige el siguiente código en {language}:",
            f"```{language}",
            code,
            "```",
            "",
            "Problemas detectados:",
            *listed,
            "",
            "Responde ÚNICAMENTE con un JSON válido:",
            '{"correctedCode": "código completo corregido",',
            ' "changes": [{"lineNumber": 1, "originalCode": "...", "correctedCode": "...",',
            '   "reason": "...", "type": "fix|improvement|optimization", "confidence": 0.9}]}',
        ]
        return "\n".join(prompt_parts)

    async def run(self, task: AgentTask) -> AgentResult:
        target: Optional[FileItem] = task.context.get("file")
        code = task.context.get("code")
        if code is None and target is None and task.context.get("file_id"):
            raise create_input_error(
                f"Unknown file id {task.context['file_id']}",
                ErrorCode.FILE_NOT_FOUND,
                context={"task_id": task.id},
                user_message=f"No se encontró el archivo con ID {task.context['file_id']}",
            )
        if code is None and target is not None:
            code = target.content
        if not code or not code.strip():
            raise create_input_error(
                "Nothing to analyze",
                context={"task_id": task.id},
                user_message="El código a analizar está vacío",
            )

        hint = task.context.get("language") or (target.language if target else None)
        if not hint and target is not None:
            hint = language_from_path(target.path)

        report = CorrectionReport(language="text", original_code=code, corrected_code=code)
        report.stages = {stage: StageStatus.IDLE.value for stage in STAGES}

        # analyze
        self._stage(report, "analyze", StageStatus.WORKING, "Analizando estructura del código")
        report.language = detect_language(code, hint)
        report.metrics = code_metrics(code, report.language)
        self._stage(report, "analyze", StageStatus.SUCCESS, f"Lenguaje detectado: {report.language}")

        # detect
        self._stage(report, "detect", StageStatus.WORKING, "Detectando problemas")
        report.issues, detect_status = await self._detect(code, report)
        self._stage(report, "detect", detect_status, f"{len(report.issues)} problema(s) detectado(s)")

        # generate
        self._stage(report, "generate", StageStatus.WORKING, "Generando código corregido")
        try:
            generate_status = await self._generate(code, report)
        except GatewayError:
            self._stage(report, "generate", StageStatus.ERROR, "No se pudo generar la corrección")
            raise
        self._stage(report, "generate", generate_status, f"{len(report.changes)} cambio(s) propuesto(s)")

        if not report.issues and report.corrected_code != code:
            report.issues.append(
                CodeIssue(
                    id=generate_unique_id("issue"),
                    type="style",
                    severity="info",
                    message="Mejoras de código aplicadas",
                    line=1,
                    suggestion="Revisa el código corregido para ver las mejoras aplicadas",
                    confidence=0.5,
                )
            )

        report.metrics["summary"] = _summary(report.issues)
        return AgentResult.ok(report)

    async def _detect(self, code: str, report: CorrectionReport) -> Tuple[List[CodeIssue], StageStatus]:
        try:
            reply = await self.call_model(self._detect_prompt(code, report.language), "detect")
        except GatewayError as exc:
            logger.warning("Issue detection failed (%s); using local checks", exc.message)
            return basic_issues(code, report.language, report.metrics), StageStatus.ERROR

        outcome = self.parse_reply(reply, _IssueList())
        if not outcome.ok:
            return basic_issues(code, report.language, report.metrics), StageStatus.WARNING

        issues = [
            CodeIssue(
                id=str(item.get("id") or generate_unique_id("issue")),
                type=_normalize_type(item.get("type"), ISSUE_TYPES, "logic"),
                severity=_normalize_type(item.get("severity"), SEVERITIES, "medium"),
                message=str(item["message"]),
                line=_line(item.get("line", item.get("lineStart"))),
                suggestion=str(item.get("suggestion") or ""),
                confidence=normalize_confidence(item.get("confidence"), 0.8),
            )
            for item in outcome.value["issues"]
        ]
        return issues, StageStatus.SUCCESS

    async def _generate(self, code: str, report: CorrectionReport) -> StageStatus:
        reply = await self.call_model(self._generate_prompt(code, report.language, report.issues), "generate")
        outcome = self.parse_reply(reply, CORRECTION_SCHEMA)
        if not outcome.ok:
            report.corrected_code = code
            return StageStatus.WARNING

        report.corrected_code = outcome.value["correctedCode"]
        changes = [
            CorrectionChange(
                id=str(item.get("id") or generate_unique_id("change")),
                line_number=_line(item.get("lineNumber")),
                original_code=str(item.get("originalCode") or ""),
                corrected_code=str(item.get("correctedCode") or ""),
                reason=str(item.get("reason") or "Corrección sugerida"),
                type=_normalize_type(item.get("type"), CHANGE_TYPES, "fix"),
                confidence=normalize_confidence(item.get("confidence")),
            )
            for item in outcome.value.get("changes") or []
        ]
        if not changes and report.corrected_code != code:
            changes = diff_changes(code, report.corrected_code)
        report.changes = changes
        return StageStatus.SUCCESS


class _IssueList(DictValidator):
    """``{"issues": [...]}``, also accepting ``errors`` or a bare list."""

    def __init__(self) -> None:
        super().__init__(required_keys=ISSUES_SCHEMA.required_keys, key_validators=ISSUES_SCHEMA.key_validators)

    def validate(self, value: Any) -> Dict[str, Any]:
        if isinstance(value, list):
            value = {"issues": value}
        elif isinstance(value, dict) and "issues" not in value and isinstance(value.get("errors"), list):
            value = {"issues": value["errors"]}
        return super().validate(value)


def _summary(issues: List[CodeIssue]) -> Dict[str, Any]:
    by_type = {kind: 0 for kind in ISSUE_TYPES}
    by_severity = {level: 0 for level in SEVERITIES}
    for issue in issues:
        by_type[issue.type] = by_type.get(issue.type, 0) + 1
        by_severity[issue.severity] = by_severity.get(issue.severity, 0) + 1
    return {"total": len(issues), "by_type": by_type, "by_severity": by_severity}


__all__ = [
    "CodeCorrector",
    "detect_language",
    "code_metrics",
    "basic_issues",
    "normalize_confidence",
    "diff_changes",
]
