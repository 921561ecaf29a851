"""End-to-end tests for the agent orchestrator with scripted completions."""
import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from codestorm.agent_orchestrator import AgentOrchestrator, ProjectResult
from codestorm.models import AgentType, TaskStatus
from codestorm.orchestration.classifier import Intent
from codestorm.utils.config import load_config
from codestorm.utils.errors import CodestormError, ErrorCode, get_error_handler
from codestorm.utils.reconciliation import create_file_item, find_by_path, validate_keys

from tests.helpers import scripted_capability

PLAN_REPLY = json.dumps(
    {
        "projectStructure": {
            "name": "Restaurante",
            "description": "Sitio web de un restaurante",
            "files": [
                {"path": "index.html", "description": "Página principal"},
                {"path": "styles.css", "description": "Estilos"},
                {"path": "app.js", "description": "Reservas"},
            ],
        },
        "implementationSteps": [],
    }
)

PROPOSAL_REPLY = json.dumps(
    {
        "designProposal": {
            "title": "La Marea",
            "description": "Restaurante de cocina mediterránea",
            "components": [{"name": "Hero", "type": "hero", "html": "<section>La Marea</section>"}],
            "htmlPreview": "<!DOCTYPE html><html><head><title>La Marea</title></head><body></body></html>",
            "cssPreview": "body { color: #333333; }",
            "jsPreview": "console.log('reservas');",
        }
    }
)

CODE_REPLY = "```javascript\nconsole.log('app');\n```"

PLANNER_MARKER = "arquitecto de software"
DESIGN_MARKER = "experto diseñador web"
CODER_MARKER = "Archivo a generar"

BUGGY_JS = "var total = 0\nif (total == 0) {\n  console.log('cero')\n}\n"
FIXED_JS = "let total = 0;\nif (total === 0) {\n  console.log('cero');\n}\n"


def project_routes(design_reply=PROPOSAL_REPLY):
    return [(PLANNER_MARKER, PLAN_REPLY), (DESIGN_MARKER, design_reply), (CODER_MARKER, CODE_REPLY)]


def build(make_gateway, config, capability, **kwargs):
    return AgentOrchestrator(gateway=make_gateway(capability), config=config, **kwargs)


class TestProjectGeneration:
    """Planner, design, coder and synchronizer chained over the file list."""

    @pytest.mark.asyncio
    async def test_restaurant_in_blue(self, make_gateway, config):
        events = []
        orchestrator = build(make_gateway, config, scripted_capability(project_routes()), on_progress=events.append)

        outcome = await orchestrator.process_instruction("Crea una página web para un restaurante azul")

        assert outcome.intent == Intent.CREATE_PROJECT
        assert outcome.result.success
        assert isinstance(outcome.result.data, ProjectResult)
        assert outcome.result.data.design.palette.name == "Tech Blue"

        paths = [item.path for item in outcome.files]
        assert paths == ["index.html", "styles.css", "script.js", "app.js"]
        assert "#2563eb" in find_by_path(outcome.files, "styles.css").content
        assert find_by_path(outcome.files, "app.js").content == "console.log('app');"
        assert validate_keys(outcome.files).is_valid

        types = [task.type for task in outcome.tasks]
        assert types == [
            AgentType.PLANNER,
            AgentType.DESIGN_ARCHITECT,
            AgentType.CODE_GENERATOR,
            AgentType.FILE_SYNCHRONIZER,
            AgentType.FILE_OBSERVER,
        ]
        assert all(task.status == TaskStatus.COMPLETED for task in outcome.tasks)
        assert orchestrator.observer_state is not None
        assert events[-1].percent == 100
        assert orchestrator.chat_history[-1].content == "Proyecto generado con 4 archivos"

    @pytest.mark.asyncio
    async def test_bundled_code_is_split_before_sync(self, make_gateway, config):
        bundled = "// app.js\nconsole.log('app');\n// utils/helpers.js\nexport const sum = (a, b) => a + b;\n"
        routes = [(PLANNER_MARKER, PLAN_REPLY), (DESIGN_MARKER, PROPOSAL_REPLY), (CODER_MARKER, bundled)]
        orchestrator = build(make_gateway, config, scripted_capability(routes))

        outcome = await orchestrator.process_instruction("Crea una página web para un restaurante azul")

        assert outcome.result.success
        assert [item.path for item in outcome.files] == [
            "index.html",
            "styles.css",
            "script.js",
            "app.js",
            "utils/helpers.js",
        ]
        assert find_by_path(outcome.files, "app.js").content == "console.log('app');\n"
        assert validate_keys(outcome.files).is_valid
        types = [task.type for task in outcome.tasks]
        assert types.index(AgentType.CODE_SPLITTER) == types.index(AgentType.CODE_GENERATOR) + 1
        assert types.index(AgentType.CODE_SPLITTER) < types.index(AgentType.FILE_SYNCHRONIZER)

    @pytest.mark.asyncio
    async def test_malformed_design_reply_falls_back(self, make_gateway, config):
        instruction = "Crea una landing para una panadería artesanal de barrio con pedidos online"
        capability = scripted_capability(project_routes('{"title": "Panadería", "htmlPreview": "<div>'))
        orchestrator = build(make_gateway, config, capability)

        outcome = await orchestrator.process_instruction(instruction)

        assert outcome.result.success
        proposal = outcome.result.data.design.proposal
        assert proposal.is_fallback
        page = find_by_path(outcome.files, "index.html")
        assert f"<title>{instruction[:50]}...</title>" in page.content
        assert find_by_path(outcome.files, "app.js") is not None

    @pytest.mark.asyncio
    async def test_quota_errors_fall_back_to_alternate(self, make_gateway, config):
        routes = project_routes()

        async def answer(prompt, capability_id):
            if capability_id == "gpt-4o":
                return {"error": "429 You exceeded your current quota"}
            for marker, content in routes:
                if marker in prompt:
                    return {"content": content}
            return {"content": ""}

        capability = AsyncMock(side_effect=answer)
        orchestrator = build(make_gateway, config, capability)

        outcome = await orchestrator.process_instruction("Crea una página web para un restaurante azul")

        assert outcome.result.success
        assert outcome.result.data.plan.name == "Restaurante"
        used = [call.args[1] for call in capability.await_args_list]
        assert "gpt-4o" in used
        assert "claude-3-5-sonnet" in used

    @pytest.mark.asyncio
    async def test_planner_failure_leaves_files(self, make_gateway, config):
        existing = create_file_item("notes.md", "# Notas", is_new=False)
        capability = AsyncMock(return_value={"error": "invalid request"})
        orchestrator = build(make_gateway, config, capability, files=[existing])

        outcome = await orchestrator.process_instruction("Crea una calculadora")

        assert not outcome.result.success
        assert outcome.files == [existing]
        assert [task.status for task in outcome.tasks] == [TaskStatus.FAILED]
        assert outcome.tasks[0].error == "invalid request"
        assert orchestrator.chat_history[-1].type == "error"
        assert get_error_handler().error_history[-1].code == ErrorCode.ORCHESTRATION_TASK_FAILED


class TestFileOperations:
    @pytest.mark.asyncio
    async def test_modify_unknown_file_leaves_files(self, make_gateway, config):
        page = create_file_item("index.html", "<h1>Hola</h1>", is_new=False)
        capability = AsyncMock()
        orchestrator = build(make_gateway, config, capability, files=[page])

        outcome = await orchestrator.process_instruction("Cambia el título", selected_file_id="file-404")

        assert outcome.intent == Intent.MODIFY_FILE
        assert not outcome.result.success
        assert outcome.result.error == "No se encontró el archivo con ID file-404"
        assert outcome.files == [page]
        assert capability.await_count == 0

    @pytest.mark.asyncio
    async def test_modify_file_named_in_instruction(self, make_gateway, config):
        page = create_file_item("index.html", "<h1>Hola</h1>", is_new=False)
        script = create_file_item("app.js", "let a = 1;", is_new=False)
        capability = scripted_capability([("Modifica el archivo", "```html\n<h1>Hola mundo</h1>\n```")])
        orchestrator = build(make_gateway, config, capability, files=[script, page])

        outcome = await orchestrator.process_instruction("Cambia el título en index.html")

        modified = find_by_path(outcome.files, "index.html")
        assert outcome.result.success
        assert modified.id == page.id
        assert modified.content == "<h1>Hola mundo</h1>"
        assert find_by_path(outcome.files, "app.js") == script

    @pytest.mark.asyncio
    async def test_style_change_keeps_ids(self, make_gateway, config):
        page = create_file_item("index.html", "<html><body></body></html>", is_new=False)
        css = create_file_item("styles.css", ":root {\n  --color-primary: #000000;\n}\n\nbody { margin: 0; }", is_new=False)
        capability = AsyncMock()
        orchestrator = build(make_gateway, config, capability, files=[page, css])

        outcome = await orchestrator.process_instruction("Cambia los colores a verde")

        assert outcome.intent == Intent.CHANGE_STYLES
        updated = find_by_path(outcome.files, "styles.css")
        assert updated.id == css.id
        assert "#059669" in updated.content
        assert "#000000" not in updated.content
        assert [item.id for item in outcome.files] == [page.id, css.id]
        assert capability.await_count == 0

    @pytest.mark.asyncio
    async def test_correction_is_applied_only_on_request(self, make_gateway, config):
        source = create_file_item("app.js", BUGGY_JS, is_new=False)
        issues = json.dumps({"issues": [{"type": "logic", "severity": "high", "message": "Comparación no estricta", "line": 2}]})
        correction = json.dumps({"correctedCode": FIXED_JS, "changes": []})
        capability = scripted_capability([("ANÁLISIS DE CÓDIGO", issues), ("CORRECCIÓN DE CÓDIGO", correction)])
        orchestrator = build(make_gateway, config, capability, files=[source])

        outcome = await orchestrator.process_instruction("Corrige los errores", selected_file_id=source.id)

        assert outcome.intent == Intent.CORRECT_CODE
        report = outcome.result.data
        assert report.corrected_code == FIXED_JS
        assert orchestrator.files[0].content == BUGGY_JS

        applied = await orchestrator.apply_correction(source.id, report.corrected_code)

        assert applied.success
        assert applied.data.id == source.id
        assert orchestrator.files[0].content == FIXED_JS
        assert orchestrator.tasks[-1].type == AgentType.FILE_SYNCHRONIZER

    @pytest.mark.asyncio
    async def test_apply_correction_unknown_file(self, make_gateway, config):
        orchestrator = build(make_gateway, config, AsyncMock())
        result = await orchestrator.apply_correction("file-404", "x")
        assert result.error == "No se encontró el archivo con ID file-404"
        assert get_error_handler().error_history[-1].code == ErrorCode.FILE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_current_files_replace_state(self, make_gateway, config):
        orchestrator = build(make_gateway, config, scripted_capability([], default="Hola"))
        given = [create_file_item("a.js", "1"), create_file_item("a.js", "2")]

        outcome = await orchestrator.process_instruction("¿Qué opinas?", current_files=given)

        assert [item.path for item in outcome.files] == ["a.js"]
        assert validate_keys(outcome.files).is_valid


class TestChatAndEvents:
    """Chat answers, listeners and instruction serialization."""

    @pytest.mark.asyncio
    async def test_chat_answer(self, make_gateway, config):
        messages = []
        capability = scripted_capability([("Mensaje del usuario", "CSS define la presentación.")])
        orchestrator = build(make_gateway, config, capability, on_chat=messages.append)

        outcome = await orchestrator.process_instruction("¿Qué es CSS?")

        assert outcome.intent == Intent.CHAT
        assert outcome.result.data == "CSS define la presentación."
        assert outcome.tasks == []
        assert [(m.sender, m.content) for m in messages] == [
            ("user", "¿Qué es CSS?"),
            ("ai", "CSS define la presentación."),
        ]
        assert all(m.id.startswith("msg-") for m in messages)

    @pytest.mark.asyncio
    async def test_empty_instruction(self, make_gateway, config):
        capability = AsyncMock()
        orchestrator = build(make_gateway, config, capability)

        outcome = await orchestrator.process_instruction("   ")

        assert not outcome.result.success
        assert outcome.result.error == "La instrucción está vacía"
        assert orchestrator.chat_history[-1].type == "error"
        assert capability.await_count == 0

    @pytest.mark.asyncio
    async def test_listener_failures_are_contained(self, make_gateway, config):
        def broken(_):
            raise RuntimeError("listener down")

        orchestrator = build(
            make_gateway,
            config,
            scripted_capability(project_routes()),
            on_progress=broken,
            on_chat=broken,
        )
        outcome = await orchestrator.process_instruction("Crea una página web para un restaurante azul")
        assert outcome.result.success

    @pytest.mark.asyncio
    async def test_instructions_are_serialized(self, make_gateway, config):
        async def answer(prompt, capability_id):
            await asyncio.sleep(0.01)
            return {"content": "respuesta"}

        orchestrator = build(make_gateway, config, AsyncMock(side_effect=answer))

        await asyncio.gather(
            orchestrator.process_instruction("Hola"),
            orchestrator.process_instruction("¿Sigues ahí?"),
        )

        senders = [message.sender for message in orchestrator.chat_history]
        assert senders == ["user", "ai", "user", "ai"]

    def test_error_summary(self, make_gateway, config):
        orchestrator = build(make_gateway, config, AsyncMock())
        assert orchestrator.get_error_summary()["total_errors"] == 0


class TestInitialization:
    def test_invalid_config_section(self, make_gateway, config):
        config["classifier"] = 5
        with pytest.raises(AttributeError):
            build(make_gateway, config, AsyncMock())
        assert get_error_handler().error_history[-1].code == ErrorCode.ORCHESTRATION_INIT_FAILED

    def test_unparsable_config_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CODESTORM_CONFIG", raising=False)
        broken = tmp_path / "broken.yaml"
        broken.write_text("gateway: [unclosed", encoding="utf-8")

        with pytest.raises(CodestormError) as excinfo:
            AgentOrchestrator(capability=AsyncMock(), config_path=str(broken))
        assert excinfo.value.details.code == ErrorCode.CONFIG_PARSE_ERROR

    def test_loads_shipped_config(self, monkeypatch):
        monkeypatch.delenv("CODESTORM_CONFIG", raising=False)
        orchestrator = AgentOrchestrator(capability=AsyncMock())
        assert orchestrator.config["gateway"] == load_config()["gateway"]
        assert orchestrator.files == []
