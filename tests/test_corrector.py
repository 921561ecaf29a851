"""Tests for the three-stage code corrector."""
import json
from unittest.mock import AsyncMock

import pytest

from codestorm.models import AgentTask, AgentType, StageStatus
from codestorm.roles import CodeCorrector
from codestorm.roles.corrector import (
    basic_issues,
    code_metrics,
    detect_language,
    diff_changes,
    normalize_confidence,
)
from codestorm.utils.errors import ErrorCode, get_error_handler
from codestorm.utils.reconciliation import create_file_item

from tests.helpers import scripted_capability

BUGGY_JS = "var total = 0\nif (total == 0) {\n  console.log('cero')\n}\n"
FIXED_JS = "let total = 0;\nif (total === 0) {\n  console.log('cero');\n}\n"

ISSUES_REPLY = json.dumps(
    {
        "issues": [
            {"type": "bestPractice", "severity": "MEDIUM", "message": "Uso de var", "line": 1, "confidence": 90},
            {"type": "logic", "severity": "high", "message": "Comparación no estricta", "line": 2},
        ]
    }
)

CORRECTION_REPLY = json.dumps(
    {
        "correctedCode": FIXED_JS,
        "changes": [
            {
                "lineNumber": 1,
                "originalCode": "var total = 0",
                "correctedCode": "let total = 0;",
                "reason": "let en lugar de var",
                "type": "Improvement",
                "confidence": 0.95,
            }
        ],
    }
)


def correction_task(**context):
    return AgentTask(id="task-fix", type=AgentType.CODE_CORRECTOR, instruction="Corrige el código", context=context)


class TestCodeCorrector:
    """Analyze, detect and generate stages."""

    @pytest.mark.asyncio
    async def test_full_pipeline(self, make_gateway, config):
        capability = scripted_capability([("ANÁLISIS DE CÓDIGO", ISSUES_REPLY), ("CORRECCIÓN DE CÓDIGO", CORRECTION_REPLY)])
        events = []
        corrector = CodeCorrector(make_gateway(capability), config=config, progress=events.append)
        source = create_file_item("app.js", BUGGY_JS)

        result = await corrector.execute(correction_task(file=source))

        report = result.data
        assert result.success
        assert report.language == "javascript"
        assert report.stages == {"analyze": "success", "detect": "success", "generate": "success"}
        assert [issue.type for issue in report.issues] == ["best_practice", "logic"]
        assert report.issues[0].severity == "medium"
        assert report.issues[0].confidence == 0.9
        assert report.changes[0].type == "improvement"
        assert report.changes[0].line_number == 1
        assert report.corrected_code == FIXED_JS
        assert report.metrics["summary"]["total"] == 2
        assert source.content == BUGGY_JS
        assert events[-1].percent == 100

    @pytest.mark.asyncio
    async def test_detect_failure_uses_local_checks(self, make_gateway, config):
        async def answer(prompt, capability_id):
            if "ANÁLISIS DE CÓDIGO" in prompt:
                return {"error": "invalid request"}
            return {"content": CORRECTION_REPLY}

        corrector = CodeCorrector(make_gateway(AsyncMock(side_effect=answer)), config=config)
        result = await corrector.execute(correction_task(code=BUGGY_JS, language="javascript"))

        report = result.data
        assert result.success
        assert report.stages["detect"] == StageStatus.ERROR.value
        assert report.stages["generate"] == StageStatus.SUCCESS.value
        messages = [issue.message for issue in report.issues]
        assert "Uso de 'var'" in messages
        assert "Comparación no estricta" in messages

    @pytest.mark.asyncio
    async def test_unparsable_correction_leaves_code(self, make_gateway, config):
        capability = scripted_capability([("ANÁLISIS DE CÓDIGO", ISSUES_REPLY)], default="No puedo corregirlo")
        corrector = CodeCorrector(make_gateway(capability), config=config)

        result = await corrector.execute(correction_task(code=BUGGY_JS))

        report = result.data
        assert report.stages["generate"] == StageStatus.WARNING.value
        assert report.corrected_code == BUGGY_JS
        assert report.changes == []

    @pytest.mark.asyncio
    async def test_generate_gateway_error_fails_task(self, make_gateway, config):
        async def answer(prompt, capability_id):
            if "ANÁLISIS DE CÓDIGO" in prompt:
                return {"content": ISSUES_REPLY}
            return {"error": "invalid request"}

        corrector = CodeCorrector(make_gateway(AsyncMock(side_effect=answer)), config=config)
        result = await corrector.execute(correction_task(code=BUGGY_JS))

        assert not result.success
        assert result.error == "invalid request"

    @pytest.mark.asyncio
    async def test_changes_derived_from_diff(self, make_gateway, config):
        reply = json.dumps({"correctedCode": FIXED_JS})
        capability = scripted_capability([("ANÁLISIS DE CÓDIGO", '{"issues": []}')], default=reply)
        corrector = CodeCorrector(make_gateway(capability), config=config)

        result = await corrector.execute(correction_task(code=BUGGY_JS))

        report = result.data
        assert report.changes
        assert report.changes[0].line_number == 1
        assert report.issues[0].message == "Mejoras de código aplicadas"

    @pytest.mark.asyncio
    async def test_empty_code(self, make_gateway, config):
        corrector = CodeCorrector(make_gateway(AsyncMock()), config=config)
        result = await corrector.execute(correction_task(code="   "))
        assert result.error == "El código a analizar está vacío"
        assert get_error_handler().error_history[-1].code == ErrorCode.MISSING_REQUIRED_INPUT

    @pytest.mark.asyncio
    async def test_unknown_file(self, make_gateway, config):
        corrector = CodeCorrector(make_gateway(AsyncMock()), config=config)
        result = await corrector.execute(correction_task(file=None, file_id="file-404"))
        assert result.error == "No se encontró el archivo con ID file-404"
        assert get_error_handler().error_history[-1].code == ErrorCode.FILE_NOT_FOUND


class TestLocalAnalysis:
    def test_detect_language(self):
        assert detect_language("def main():\n    pass") == "python"
        assert detect_language("<!DOCTYPE html><html></html>") == "html"
        assert detect_language("const a = () => 1;") == "javascript"
        assert detect_language("anything", "rust") == "rust"
        assert detect_language("plain words") == "text"

    def test_metrics(self):
        metrics = code_metrics("function a() {\n  // nota\n  return [1, 2];\n", "javascript")
        assert metrics["line_count"] == 3
        assert metrics["comment_lines"] == 1
        assert metrics["function_count"] == 1
        assert metrics["bracket_balance"] == 1

    def test_basic_issues(self):
        code = "try:\n    x = 1\nexcept:\n    pass  # TODO limpiar\n"
        issues = basic_issues(code, "python", code_metrics(code, "python"))
        assert {issue.type for issue in issues} == {"best_practice", "style"}
        assert [issue.line for issue in issues] == [3, 4]

    @pytest.mark.parametrize(
        "raw, expected",
        [(0.7, 0.7), (1.0, 1.0), (1.2, 1.0), (1.5, 1.0), (2, 0.02), (85, 0.85), (150, 1.0), (-1, 0.0), ("x", 0.5), (None, 0.5)],
    )
    def test_normalize_confidence(self, raw, expected):
        assert normalize_confidence(raw) == pytest.approx(expected)

    def test_diff_changes(self):
        changes = diff_changes("a\nb\nc", "a\nB\nc")
        assert len(changes) == 1
        assert changes[0].line_number == 2
        assert changes[0].original_code == "b"
        assert changes[0].corrected_code == "B"
