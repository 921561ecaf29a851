"""Tests for the planner, code generator, design architect and modifier roles."""
import json
from unittest.mock import AsyncMock

import pytest

from codestorm.models import AgentTask, AgentType, FileDescription, ProjectPlan
from codestorm.roles import CodeGenerator, CodeModifier, DesignArchitect, Planner
from codestorm.roles.design_architect import DesignMode, replace_root_variables
from codestorm.utils.errors import ErrorCode, get_error_handler
from codestorm.utils.palettes import palette_by_name
from codestorm.utils.reconciliation import create_file_item, find_by_path

from tests.helpers import scripted_capability

PLAN_REPLY = json.dumps(
    {
        "projectStructure": {
            "name": "Calculadora",
            "description": "Calculadora web sencilla",
            "files": [
                {"path": "index.html", "description": "Estructura", "dependencies": ["styles.css"]},
                {"path": "styles.css", "description": "Estilos"},
                {"path": "app.js", "description": "Lógica"},
            ],
        },
        "implementationSteps": [{"title": "Crear archivos", "filesToCreate": ["index.html"]}],
    }
)


def task(agent_type, instruction="Crea una calculadora", plan=None, **context):
    return AgentTask(id="task-test", type=agent_type, instruction=instruction, plan=plan, context=context)


def sample_plan():
    return ProjectPlan(
        id="plan-1",
        name="Calculadora",
        description="Calculadora web sencilla",
        files=[
            FileDescription("index.html", "Estructura"),
            FileDescription("styles.css", "Estilos"),
            FileDescription("app.js", "Lógica"),
        ],
    )


class TestPlanner:
    """Planner turns a reply into a ProjectPlan or the default web plan."""

    @pytest.mark.asyncio
    async def test_plan_from_reply(self, make_gateway, config):
        events = []
        capability = AsyncMock(return_value={"content": f"Aquí tienes:\n```json\n{PLAN_REPLY}\n```"})
        planner = Planner(make_gateway(capability), config=config, progress=events.append)

        result = await planner.execute(task(AgentType.PLANNER))

        assert result.success
        plan = result.data
        assert plan.name == "Calculadora"
        assert [f.path for f in plan.files] == ["index.html", "styles.css", "app.js"]
        assert plan.files[0].dependencies == ["styles.css"]
        assert plan.steps[0].id == "step-1"
        assert plan.id.startswith("plan-")
        assert capability.await_args.args[1] == "gpt-4o"
        assert [e.percent for e in events] == [10, 100]
        assert events[0].agent_name == "Planificador"

    @pytest.mark.asyncio
    async def test_unusable_reply_uses_default_plan(self, make_gateway, config):
        capability = AsyncMock(return_value={"content": "No sé qué responder"})
        result = await Planner(make_gateway(capability), config=config).execute(task(AgentType.PLANNER))

        assert result.success
        assert [f.path for f in result.data.files] == ["index.html", "styles.css", "script.js", "README.md"]
        assert get_error_handler().error_history[-1].code == ErrorCode.EXTRACTION_NO_PAYLOAD

    @pytest.mark.asyncio
    async def test_plan_without_files_uses_default_plan(self, make_gateway, config):
        reply = json.dumps({"projectStructure": {"files": []}, "implementationSteps": []})
        capability = AsyncMock(return_value={"content": reply})
        result = await Planner(make_gateway(capability), config=config).execute(task(AgentType.PLANNER))

        assert result.success
        assert result.data.name == "Proyecto web"
        assert get_error_handler().error_history[-1].code == ErrorCode.VALIDATION_MISSING_FIELD

    @pytest.mark.asyncio
    async def test_paths_escaping_project_are_dropped(self, make_gateway, config):
        reply = json.dumps(
            {
                "projectStructure": {
                    "name": "Demo",
                    "files": [
                        {"path": "../../.bashrc"},
                        {"path": "src/../../escape.js"},
                        {"path": "C:/Windows/x.txt"},
                        {"path": "index.html"},
                    ],
                },
                "implementationSteps": [],
            }
        )
        capability = AsyncMock(return_value={"content": reply})
        result = await Planner(make_gateway(capability), config=config).execute(task(AgentType.PLANNER))

        assert [f.path for f in result.data.files] == ["index.html"]

    @pytest.mark.asyncio
    async def test_only_escaping_paths_uses_default_plan(self, make_gateway, config):
        reply = json.dumps({"projectStructure": {"files": [{"path": "../x.js"}]}, "implementationSteps": []})
        capability = AsyncMock(return_value={"content": reply})
        result = await Planner(make_gateway(capability), config=config).execute(task(AgentType.PLANNER))

        assert result.data.name == "Proyecto web"

    @pytest.mark.asyncio
    async def test_gateway_error_fails_task(self, make_gateway, config):
        capability = AsyncMock(return_value={"error": "invalid request"})
        result = await Planner(make_gateway(capability), config=config).execute(task(AgentType.PLANNER))

        assert not result.success
        assert result.error == "invalid request"

    @pytest.mark.asyncio
    async def test_progress_callback_errors_are_contained(self, make_gateway, config):
        def broken(event):
            raise RuntimeError("listener down")

        capability = AsyncMock(return_value={"content": PLAN_REPLY})
        planner = Planner(make_gateway(capability), config=config, progress=broken)
        assert (await planner.execute(task(AgentType.PLANNER))).success


class TestCodeGenerator:
    @pytest.mark.asyncio
    async def test_generates_unskipped_plan_files(self, make_gateway, config):
        capability = scripted_capability([("app.js", "```javascript\nconsole.log('hola');\n```")])
        coder = CodeGenerator(make_gateway(capability), config=config)

        result = await coder.execute(
            task(AgentType.CODE_GENERATOR, plan=sample_plan(), skip_paths=["./index.html", "styles.css"])
        )

        assert result.success
        assert [f.path for f in result.data] == ["app.js"]
        generated = result.data[0]
        assert generated.content == "console.log('hola');"
        assert generated.language == "javascript"
        assert generated.is_new
        assert capability.await_count == 1

    @pytest.mark.asyncio
    async def test_reply_without_block_is_used_verbatim(self, make_gateway, config):
        capability = AsyncMock(return_value={"content": "body { margin: 0; }"})
        coder = CodeGenerator(make_gateway(capability), config=config)

        result = await coder.execute(
            task(AgentType.CODE_GENERATOR, file_description=FileDescription("styles.css", "Estilos"))
        )
        assert result.data[0].content == "body { margin: 0; }"

    @pytest.mark.asyncio
    async def test_bundled_reply_is_kept_whole(self, make_gateway, config):
        reply = "### index.html\n```html\n<p>hola</p>\n```\n### styles.css\n```css\np { color: red; }\n```"
        capability = AsyncMock(return_value={"content": reply})
        coder = CodeGenerator(make_gateway(capability), config=config)

        result = await coder.execute(
            task(AgentType.CODE_GENERATOR, file_description=FileDescription("index.html", "Página"))
        )
        assert result.data[0].content == reply

    @pytest.mark.asyncio
    async def test_failed_file_is_skipped(self, make_gateway, config):
        async def answer(prompt, capability_id):
            if "Archivo a generar: styles.css" in prompt:
                return {"error": "invalid request"}
            return {"content": "```\ncontenido\n```"}

        coder = CodeGenerator(make_gateway(AsyncMock(side_effect=answer)), config=config)
        result = await coder.execute(task(AgentType.CODE_GENERATOR, plan=sample_plan()))

        assert result.success
        assert [f.path for f in result.data] == ["index.html", "app.js"]

    @pytest.mark.asyncio
    async def test_all_files_failing_fails_task(self, make_gateway, config):
        coder = CodeGenerator(make_gateway(AsyncMock(return_value={"error": "invalid request"})), config=config)
        result = await coder.execute(task(AgentType.CODE_GENERATOR, plan=sample_plan()))

        assert not result.success
        assert result.error == "No se pudo generar ningún archivo del plan"

    @pytest.mark.asyncio
    async def test_requires_plan_or_description(self, make_gateway, config):
        coder = CodeGenerator(make_gateway(AsyncMock()), config=config)
        result = await coder.execute(task(AgentType.CODE_GENERATOR))
        assert not result.success
        assert "Se requiere un plan" in result.error
        assert get_error_handler().error_history[-1].code == ErrorCode.MISSING_REQUIRED_INPUT


PROPOSAL = {
    "title": "Sabores del Mar",
    "description": "Sitio para un restaurante de mariscos",
    "components": [{"name": "Hero", "type": "hero", "html": "<section></section>"}],
    "htmlPreview": "<!DOCTYPE html><html><head><title>Sabores del Mar</title></head><body></body></html>",
    "cssPreview": "body { color: #333333; }",
    "jsPreview": "console.log('menu');",
}


class TestDesignArchitect:
    """Design proposals always produce usable files."""

    @pytest.mark.asyncio
    async def test_valid_proposal(self, make_gateway, config):
        capability = AsyncMock(return_value={"content": json.dumps({"designProposal": PROPOSAL})})
        architect = DesignArchitect(make_gateway(capability), config=config)

        result = await architect.execute(
            task(
                AgentType.DESIGN_ARCHITECT,
                "Generar propuesta de diseño para: restaurante azul",
                user_instruction="Crea una página web para un restaurante azul",
            )
        )

        outcome = result.data
        assert result.success
        assert outcome.mode == DesignMode.PROPOSAL
        assert outcome.palette.name == "Tech Blue"
        proposal = outcome.proposal
        assert not proposal.is_fallback
        assert proposal.id.startswith("design-proposal-")
        assert proposal.components[0].id.startswith("component-")
        assert proposal.css_preview.startswith("/* Tech Blue")
        assert proposal.color_palette["primary"] == "#2563eb"
        assert [f.path for f in outcome.files] == ["index.html", "styles.css", "script.js"]
        assert any("HTML demasiado corto" in warning for warning in outcome.warnings)
        assert ErrorCode.VALIDATION_CONTENT_QUALITY in get_error_handler().error_counts
        assert capability.await_args.args[1] == "claude-3-5-sonnet"

    @pytest.mark.asyncio
    async def test_malformed_reply_falls_back(self, make_gateway, config):
        instruction = "Crea una landing para una panadería artesanal de barrio con pedidos online"
        capability = AsyncMock(return_value={"content": '{"title": "Panadería", "htmlPreview": "<div>'})
        architect = DesignArchitect(make_gateway(capability), config=config)

        result = await architect.execute(
            task(AgentType.DESIGN_ARCHITECT, "Propuesta de diseño", user_instruction=instruction)
        )

        proposal = result.data.proposal
        assert result.success
        assert proposal.is_fallback
        assert proposal.id
        assert all(component.id for component in proposal.components)
        assert f"<title>{instruction[:50]}...</title>" in proposal.html_preview
        assert find_by_path(result.data.files, "styles.css") is not None

    @pytest.mark.asyncio
    async def test_link_before_proposal_is_not_discarded(self, make_gateway, config):
        reply = (
            "Basado en [la guía](https://x.y), aquí está:\n"
            '{"title": "T", "htmlPreview": "<html>real</html>", "cssPreview": "body{}"}'
        )
        architect = DesignArchitect(make_gateway(AsyncMock(return_value={"content": reply})), config=config)

        result = await architect.execute(task(AgentType.DESIGN_ARCHITECT, "Propuesta de diseño"))

        proposal = result.data.proposal
        assert not proposal.is_fallback
        assert proposal.html_preview == "<html>real</html>"

    @pytest.mark.asyncio
    async def test_gateway_error_falls_back(self, make_gateway, config):
        capability = AsyncMock(return_value={"error": "invalid request"})
        architect = DesignArchitect(make_gateway(capability), config=config)
        result = await architect.execute(task(AgentType.DESIGN_ARCHITECT, "mockup de una tienda"))

        assert result.success
        assert result.data.proposal.is_fallback

    @pytest.mark.asyncio
    async def test_color_change_keeps_ids_and_skips_model(self, make_gateway, config):
        html = create_file_item("index.html", "<html><head></head><body>Hola</body></html>")
        css = create_file_item("styles.css", ":root {\n  --color-primary: #000000;\n}\n\nbody { margin: 0; }")
        capability = AsyncMock()
        architect = DesignArchitect(make_gateway(capability), config=config)

        result = await architect.execute(
            task(
                AgentType.DESIGN_ARCHITECT,
                "Cambia los colores a verde",
                design_mode=DesignMode.COLOR_CHANGE,
                files=[html, css],
            )
        )

        outcome = result.data
        assert outcome.palette.name == "Medical Green"
        assert capability.await_count == 0
        new_css = find_by_path(outcome.files, "styles.css")
        assert new_css.id == css.id
        assert "--color-primary: #059669;" in new_css.content
        assert "#000000" not in new_css.content
        assert "body { margin: 0; }" in new_css.content
        assert find_by_path(outcome.files, "index.html").content == html.content
        assert outcome.proposal.title == "Aplicación de Paleta Medical Green"

    @pytest.mark.asyncio
    async def test_components_accepts_bare_list(self, make_gateway, config):
        reply = json.dumps([{"name": "Header", "html": "<header>Hola</header>", "css": "header { }", "js": "init();"}])
        architect = DesignArchitect(make_gateway(AsyncMock(return_value={"content": reply})), config=config)

        result = await architect.execute(task(AgentType.DESIGN_ARCHITECT, "Necesito un formulario de contacto"))

        outcome = result.data
        assert outcome.mode == DesignMode.COMPONENTS
        assert "<header>Hola</header>" in outcome.proposal.html_preview
        assert '<script src="script.js"></script>' in outcome.proposal.html_preview
        assert "--color-primary" in outcome.proposal.css_preview
        assert outcome.proposal.js_preview == "init();"

    @pytest.mark.asyncio
    async def test_enhancement_maps_blocks_to_files(self, make_gateway, config):
        page = create_file_item("index.html", "<html><head></head><body></body></html>")
        reply = "```html\n<html><body class='nice'></body></html>\n```\n```css\n.nice { color: red; }\n```"
        architect = DesignArchitect(make_gateway(AsyncMock(return_value={"content": reply})), config=config)

        result = await architect.execute(
            task(AgentType.DESIGN_ARCHITECT, "Mejora el HTML con animaciones", files=[page])
        )

        outcome = result.data
        assert outcome.mode == DesignMode.ENHANCEMENT
        enhanced = find_by_path(outcome.files, "index.html")
        assert enhanced.id == page.id
        assert "class='nice'" in enhanced.content
        assert ".nice { color: red; }" in find_by_path(outcome.files, "styles.css").content

    @pytest.mark.asyncio
    async def test_enhancement_failure_links_stylesheet(self, make_gateway, config):
        page = create_file_item("index.html", "<html><head></head><body></body></html>")
        architect = DesignArchitect(make_gateway(AsyncMock(return_value={"error": "boom"})), config=config)

        result = await architect.execute(task(AgentType.DESIGN_ARCHITECT, "Añade estilos al HTML", files=[page]))

        enhanced = find_by_path(result.data.files, "index.html")
        assert '<link rel="stylesheet" href="styles.css">' in enhanced.content
        assert find_by_path(result.data.files, "styles.css").is_new

    def test_classify(self, make_gateway, config):
        architect = DesignArchitect(make_gateway(AsyncMock()), config=config)
        assert architect.classify("Genera un wireframe") == DesignMode.PROPOSAL
        assert architect.classify("Mejora los estilos") == DesignMode.ENHANCEMENT
        assert architect.classify("Cambiar a tonos cálidos") == DesignMode.COLOR_CHANGE
        assert architect.classify("Una tabla de precios") == DesignMode.COMPONENTS

    def test_replace_root_variables(self):
        palette = palette_by_name("Energy Red")
        css = "/* old */\n:root {\n  --color-primary: #111;\n}\n.a { color: var(--color-primary); }"
        replaced = replace_root_variables(css, palette)
        assert replaced.count(":root") == 1
        assert "#111" not in replaced
        assert replaced.endswith(".a { color: var(--color-primary); }")
        assert replace_root_variables(".a {}", palette).startswith("/* Energy Red")


class TestCodeModifier:
    @pytest.mark.asyncio
    async def test_modifies_content_and_keeps_id(self, make_gateway, config):
        original = create_file_item("index.html", "<h1>Hola</h1>")
        reply = (
            "```html\n<h1>Hola mundo</h1>\n```\n"
            '```json\n{"changes": [{"type": "modify", "description": "Título ampliado", "lineNumbers": [1]}]}\n```'
        )
        modifier = CodeModifier(make_gateway(AsyncMock(return_value={"content": reply})), config=config)

        result = await modifier.execute(task(AgentType.CODE_MODIFIER, "Cambia el título", file=original))

        modification = result.data
        assert modification.modified_file.id == original.id
        assert modification.modified_file.content == "<h1>Hola mundo</h1>"
        assert modification.modified_file.is_modified
        assert modification.original_file is original
        assert modification.changes[0].description == "Título ampliado"
        assert modification.changes[0].line_numbers == [1]

    @pytest.mark.asyncio
    async def test_reply_without_code_keeps_content(self, make_gateway, config):
        original = create_file_item("app.js", "let a = 1;")
        modifier = CodeModifier(make_gateway(AsyncMock(return_value={"content": "Listo."})), config=config)

        result = await modifier.execute(task(AgentType.CODE_MODIFIER, "Renombra a", file=original))

        assert result.data.modified_file.content == "let a = 1;"
        assert result.data.changes[0].type == "modify"

    @pytest.mark.asyncio
    async def test_missing_file(self, make_gateway, config):
        capability = AsyncMock()
        modifier = CodeModifier(make_gateway(capability), config=config)

        result = await modifier.execute(task(AgentType.CODE_MODIFIER, "Cambia algo", file=None, file_id="file-404"))

        assert not result.success
        assert result.error == "No se encontró el archivo con ID file-404"
        assert get_error_handler().error_history[-1].code == ErrorCode.FILE_NOT_FOUND
        assert capability.await_count == 0
