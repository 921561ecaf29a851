"""Design architect role: proposals, HTML enhancement and palette changes.

Color and industry detection always runs first. The instruction is then
routed by an ordered keyword classifier (design proposal, enhancement,
color change, generic components; first match wins). Model failures on the
generative paths fall back to a locally built proposal, so this role only
fails on unexpected errors.
"""
from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from codestorm.exceptions import GatewayError
from codestorm.models import (
    AgentResult,
    AgentTask,
    AgentType,
    DesignComponent,
    DesignProposal,
    FileItem,
    ProjectPlan,
)
from codestorm.orchestration.classifier import Rule, RuleClassifier, keyword_predicate
from codestorm.utils.errors import ErrorCode, create_validation_error, handle_error
from codestorm.utils.extraction import extract_code_blocks
from codestorm.utils.fallbacks import (
    DEFAULT_TYPOGRAPHY,
    extract_keywords,
    fallback_html,
    fallback_proposal,
    site_css,
    truncate_title,
)
from codestorm.utils.ids import generate_unique_id
from codestorm.utils.palettes import (
    ColorDetection,
    ColorPalette,
    detect_colors,
    generate_css_variables,
    suggest_palette,
)
from codestorm.utils.reconciliation import create_file_item, find_main_files
from codestorm.utils.validation import DictValidator, ListValidator, StringValidator

from .base import BaseRole

logger = logging.getLogger(__name__)

_ROOT_BLOCK = re.compile(r"(?:/\*[^*]*\*/\s*)?:root\s*\{[^}]*\}", re.DOTALL)
_STYLESHEET_LINK = '<link rel="stylesheet" href="styles.css">'

PROPOSAL_SCHEMA = DictValidator(
    required_keys=["htmlPreview", "cssPreview"],
    key_validators={
        "htmlPreview": StringValidator(min_length=1),
        "cssPreview": StringValidator(min_length=1),
    },
)

COMPONENTS_SCHEMA = DictValidator(
    required_keys=["components"],
    key_validators={"components": ListValidator(min_items=1, item_validator=DictValidator())},
)


class DesignMode:
    PROPOSAL = "design_proposal"
    ENHANCEMENT = "enhancement"
    COLOR_CHANGE = "color_change"
    COMPONENTS = "components"


@dataclass
class DesignOutcome:
    mode: str
    palette: ColorPalette
    detection: ColorDetection
    proposal: Optional[DesignProposal] = None
    files: List[FileItem] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class DesignArchitect(BaseRole):
    agent_type = AgentType.DESIGN_ARCHITECT
    name = "Arquitecto de Diseño"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        design = self.config.get("design", {})
        self.generic_terms = [term.lower() for term in design.get("generic_terms", [])]
        self.min_html_length = int(design.get("min_html_length", 500))
        self.modes = RuleClassifier(
            [
                Rule(DesignMode.PROPOSAL, keyword_predicate(design.get("proposal_keywords", ["mockup", "wireframe", "diseño"]))),
                Rule(DesignMode.ENHANCEMENT, keyword_predicate(design.get("enhancement_keywords", ["HTML", "estilos", "animaciones"]))),
                Rule(DesignMode.COLOR_CHANGE, keyword_predicate(design.get("color_keywords", ["color", "cambiar"]))),
            ],
            default=Rule(DesignMode.COMPONENTS, lambda text: True),
        )

    def classify(self, instruction: str) -> str:
        return self.modes.match(instruction).name

    async def run(self, task: AgentTask) -> AgentResult:
        source = task.context.get("user_instruction") or task.instruction
        detection = detect_colors(source)
        palette = suggest_palette(detection)
        logger.info(
            "Palette %s suggested (colors=%s, category=%s, confidence=%s)",
            palette.name,
            detection.detected_colors,
            detection.suggested_category,
            detection.confidence,
        )
        self.emit("design", 10, f"Paleta seleccionada: {palette.name}")

        mode = task.context.get("design_mode") or self.classify(task.instruction)
        outcome = DesignOutcome(mode=mode, palette=palette, detection=detection)
        files: List[FileItem] = list(task.context.get("files") or [])

        if mode == DesignMode.COLOR_CHANGE:
            self._apply_colors(outcome, source, files)
        elif mode == DesignMode.ENHANCEMENT and any(_is_html(item) for item in files):
            await self._enhance(outcome, task.instruction, source, files)
        elif mode == DesignMode.COMPONENTS:
            await self._components(outcome, source, task.plan)
        else:
            outcome.mode = DesignMode.PROPOSAL
            await self._propose(outcome, source, task.plan)

        self.emit("design", 100, "Propuesta de diseño generada")
        return AgentResult.ok(outcome)

    # ---------------------------------------------------------------- proposal
    def _proposal_prompt(self, instruction: str, plan: Optional[ProjectPlan], outcome: DesignOutcome) -> str:
        palette = outcome.palette
        prompt_parts = [
            "Eres un experto diseñador web especializado en sitios web estáticos con HTML5,",
            "CSS3 y JavaScript vanilla, sin frameworks ni librerías externas.",
            "",
            f"INSTRUCCIÓN DEL USUARIO: {instruction}",
        ]
        if plan is not None:
            prompt_parts.extend([f"NOMBRE DEL PROYECTO: {plan.name}", f"DESCRIPCIÓN: {plan.description}"])

        prompt_parts.extend(
            [
                "",
                f"PALETA DE COLORES: {palette.name} ({palette.description})",
                f"- primario {palette.primary}, secundario {palette.secondary}, acento {palette.accent}",
                f"- fondo {palette.background}, superficie {palette.surface}",
                f"Categoría detectada: {outcome.detection.suggested_category}",
                "Usa estos colores mediante variables CSS (--color-primary, --color-secondary, ...).",
                "",
                "El contenido debe ser específico para la solicitud: nada de lorem ipsum ni",
                "textos genéricos. HTML semántico, responsive y accesible.",
                "",
                "Responde ÚNICAMENTE con un JSON válido:",
                "{",
                '  "title": "...", "description": "...", "style": "...",',
                '  "typography": {"headingFont": "...", "bodyFont": "..."},',
                '  "components": [{"name": "...", "type": "...", "description": "...", "html": "...", "css": "..."}],',
                '  "layout": {"type": "...", "responsive": true},',
                '  "htmlPreview": "<!DOCTYPE html>...",',
                '  "cssPreview": "...",',
                '  "jsPreview": "..."',
                "}",
            ]
        )
        return "\n".join(prompt_parts)

    async def _propose(self, outcome: DesignOutcome, instruction: str, plan: Optional[ProjectPlan]) -> None:
        proposal = None
        try:
            reply = await self.call_model(self._proposal_prompt(instruction, plan, outcome), "design_proposal")
        except GatewayError as exc:
            logger.warning("Design proposal call failed (%s); using fallback proposal", exc.message)
        else:
            parsed = self.parse_reply(reply, _ProposalPayload())
            if parsed.ok:
                proposal = self._to_proposal(parsed.value, outcome.palette)
                outcome.warnings = self.quality_warnings(proposal)
                if outcome.warnings:
                    handle_error(
                        create_validation_error(
                            f"Design quality: {'; '.join(outcome.warnings)}",
                            validation_type="content_quality",
                            error_code=ErrorCode.VALIDATION_CONTENT_QUALITY,
                        )
                    )

        if proposal is None:
            logger.warning("Falling back to the local design proposal")
            proposal = fallback_proposal(instruction, outcome.palette)
        outcome.proposal = proposal
        outcome.files = proposal_files(proposal)

    def _to_proposal(self, payload: Dict[str, Any], palette: ColorPalette) -> DesignProposal:
        css = payload["cssPreview"]
        if "--color-primary" not in css:
            css = f"{generate_css_variables(palette)}\n\n{css}"

        return DesignProposal(
            id=str(payload.get("id") or generate_unique_id("design-proposal")),
            title=str(payload.get("title") or "Propuesta de diseño"),
            description=str(payload.get("description") or ""),
            style=str(payload.get("style") or "modern"),
            color_palette=palette.to_proposal_colors(),
            typography=payload.get("typography") if isinstance(payload.get("typography"), dict) else dict(DEFAULT_TYPOGRAPHY),
            components=[_to_component(item) for item in payload.get("components") or [] if isinstance(item, dict)],
            layout=payload.get("layout") if isinstance(payload.get("layout"), dict) else {},
            html_preview=payload["htmlPreview"],
            css_preview=css,
            js_preview=payload.get("jsPreview") or None,
        )

    def quality_warnings(self, proposal: DesignProposal) -> List[str]:
        """Heuristic checks that are reported but never fail the proposal."""
        warnings = []
        lowered = proposal.html_preview.lower()
        found = [term for term in self.generic_terms if term in lowered]
        if found:
            warnings.append(f"Contenido genérico detectado: {', '.join(found)}")
        if len(proposal.html_preview) < self.min_html_length:
            warnings.append(
                f"HTML demasiado corto ({len(proposal.html_preview)} < {self.min_html_length} caracteres)"
            )
        return warnings

    # -------------------------------------------------------------- components
    def _components_prompt(self, instruction: str, plan: Optional[ProjectPlan]) -> str:
        prompt_parts = [
            "Eres un diseñador de interfaces. Genera los componentes de UI necesarios para:",
            instruction,
        ]
        if plan is not None:
            prompt_parts.append(f"Proyecto: {plan.name} - {plan.description}")
        prompt_parts.extend(
            [
                "",
                "Responde ÚNICAMENTE con un JSON válido:",
                '{"components": [{"name": "...", "type": "header|hero|section|footer|form",',
                '  "description": "...", "html": "...", "css": "...", "js": "..."}]}',
            ]
        )
        return "\n".join(prompt_parts)

    async def _components(self, outcome: DesignOutcome, instruction: str, plan: Optional[ProjectPlan]) -> None:
        proposal = None
        try:
            reply = await self.call_model(self._components_prompt(instruction, plan), "ui_components")
        except GatewayError as exc:
            logger.warning("Component generation failed (%s); using fallback proposal", exc.message)
        else:
            parsed = self.parse_reply(reply, _ComponentList())
            if parsed.ok:
                components = [_to_component(item) for item in parsed.value["components"]]
                proposal = self._proposal_from_components(components, instruction, outcome.palette)

        if proposal is None:
            proposal = fallback_proposal(instruction, outcome.palette)
        outcome.proposal = proposal
        outcome.files = proposal_files(proposal)

    def _proposal_from_components(
        self, components: List[DesignComponent], instruction: str, palette: ColorPalette
    ) -> DesignProposal:
        title = truncate_title(instruction)
        body = "\n".join(component.html for component in components if component.html)
        styles = "\n\n".join(component.css for component in components if component.css)
        scripts = "\n\n".join(component.js for component in components if component.js)
        return DesignProposal(
            id=generate_unique_id("design-proposal"),
            title=title,
            description=f"Componentes de UI para: {instruction}",
            color_palette=palette.to_proposal_colors(),
            typography=dict(DEFAULT_TYPOGRAPHY),
            components=components,
            layout={"responsive": True},
            html_preview=_page(title, body, with_script=bool(scripts)),
            css_preview=f"{generate_css_variables(palette)}\n\n{styles}".rstrip() + "\n",
            js_preview=scripts or None,
        )

    # ------------------------------------------------------------- enhancement
    def _enhance_prompt(self, instruction: str, html_files: List[FileItem]) -> str:
        prompt_parts = [
            "Eres un experto diseñador frontend. Mejora los siguientes archivos HTML con",
            "estilos visuales y animaciones sutiles, responsive y accesibles, usando",
            "variables CSS para los colores.",
            "",
            f"INSTRUCCIÓN: {instruction}",
        ]
        for item in html_files:
            prompt_parts.extend(["", f"ARCHIVO: {item.path}", "```html", item.content, "```"])
        prompt_parts.extend(
            [
                "",
                "Devuelve cada archivo HTML mejorado en su propio bloque ```html, en el mismo",
                "orden, y todos los estilos en un único bloque ```css.",
            ]
        )
        return "\n".join(prompt_parts)

    async def _enhance(
        self, outcome: DesignOutcome, instruction: str, source: str, files: List[FileItem]
    ) -> None:
        html_files = [item for item in files if _is_html(item)]
        css_file = find_main_files(files)["css"]
        css_path = css_file.path if css_file else "styles.css"
        blocks: List[Any] = []
        try:
            reply = await self.call_model(self._enhance_prompt(instruction, html_files), "enhance_html")
            blocks = extract_code_blocks(reply)
        except GatewayError as exc:
            logger.warning("HTML enhancement failed (%s); linking palette stylesheet instead", exc.message)

        html_blocks = [body for tag, body in blocks if tag in ("html", "htm")]
        css_blocks = [body for tag, body in blocks if tag == "css"]

        if not html_blocks:
            if css_file is not None:
                css = replace_root_variables(css_file.content, outcome.palette)
            else:
                css = site_css(truncate_title(source), outcome.palette)
            outcome.files = [
                create_file_item(item.path, _link_stylesheet(item.content), file_id=item.id, is_new=False)
                for item in html_files
            ]
            outcome.files.append(create_file_item(css_path, css, is_new=css_file is None))
            return

        enhanced = []
        for item, body in zip(html_files, html_blocks):
            enhanced.append(create_file_item(item.path, body.strip(), file_id=item.id, is_new=False))
        if css_blocks:
            css = css_blocks[0].strip()
            if "--color-primary" not in css:
                css = f"{generate_css_variables(outcome.palette)}\n\n{css}"
            enhanced.append(create_file_item(css_path, css, is_new=css_file is None))
        outcome.files = enhanced

    # ------------------------------------------------------------ color change
    def _apply_colors(self, outcome: DesignOutcome, instruction: str, files: List[FileItem]) -> None:
        """Swap the palette into the stylesheet without calling the model."""
        palette = outcome.palette
        main = find_main_files(files)
        title = truncate_title(instruction)

        html_file = main["html"]
        html_content = html_file.content if html_file else fallback_html(title, instruction, extract_keywords(instruction))
        css_file = main["css"]
        if css_file is not None:
            css_content = replace_root_variables(css_file.content, palette)
        else:
            css_content = site_css(title, palette)

        outcome.proposal = DesignProposal(
            id=generate_unique_id("design-proposal"),
            title=f"Aplicación de Paleta {palette.name}",
            description=f'Se ha aplicado la paleta de colores "{palette.name}" ({palette.description}).',
            color_palette=palette.to_proposal_colors(),
            typography=dict(DEFAULT_TYPOGRAPHY),
            html_preview=html_content,
            css_preview=css_content,
        )
        outcome.files = [
            create_file_item(
                html_file.path if html_file else "index.html",
                html_content,
                file_id=html_file.id if html_file else None,
                is_new=html_file is None,
            ),
            create_file_item(
                css_file.path if css_file else "styles.css",
                css_content,
                file_id=css_file.id if css_file else None,
                is_new=css_file is None,
            ),
        ]


class _ComponentList(DictValidator):
    """Accept either ``{"components": [...]}`` or a bare list."""

    def __init__(self) -> None:
        super().__init__(
            required_keys=COMPONENTS_SCHEMA.required_keys,
            key_validators=COMPONENTS_SCHEMA.key_validators,
        )

    def validate(self, value: Any) -> Dict[str, Any]:
        if isinstance(value, list):
            value = {"components": value}
        return super().validate(value)


class _ProposalPayload(DictValidator):
    """Proposal fields, also when nested under ``designProposal``/``proposal``."""

    def __init__(self) -> None:
        super().__init__(
            required_keys=PROPOSAL_SCHEMA.required_keys,
            key_validators=PROPOSAL_SCHEMA.key_validators,
        )

    def validate(self, value: Any) -> Dict[str, Any]:
        if isinstance(value, dict):
            for key in ("designProposal", "proposal"):
                if isinstance(value.get(key), dict):
                    value = value[key]
                    break
        return super().validate(value)


def _to_component(data: Dict[str, Any]) -> DesignComponent:
    return DesignComponent(
        id=str(data.get("id") or generate_unique_id("component")),
        name=str(data.get("name") or "Componente"),
        type=str(data.get("type") or "section"),
        description=str(data.get("description") or ""),
        html=str(data.get("html") or ""),
        css=str(data.get("css") or ""),
        js=data.get("js") or None,
    )


def _is_html(item: FileItem) -> bool:
    return item.path.lower().endswith((".html", ".htm")) or item.language == "html"


def _link_stylesheet(content: str) -> str:
    if "styles.css" in content:
        return content
    if "</head>" in content:
        return content.replace("</head>", f"    {_STYLESHEET_LINK}\n</head>", 1)
    return f"{_STYLESHEET_LINK}\n{content}"


def _page(title: str, body: str, with_script: bool = False) -> str:
    script = '\n    <script src="script.js"></script>' if with_script else ""
    return f"""<!DOCTYPE html>
<html lang="es">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(title)}</title>
    {_STYLESHEET_LINK}
</head>
<body>
{body}{script}
</body>
</html>"""


def replace_root_variables(css: str, palette: ColorPalette) -> str:
    """Replace the first ``:root`` block (and its leading comment) with the palette."""
    variables = generate_css_variables(palette)
    if _ROOT_BLOCK.search(css):
        return _ROOT_BLOCK.sub(lambda _: variables, css, count=1)
    return f"{variables}\n\n{css}"


def proposal_files(proposal: DesignProposal) -> List[FileItem]:
    """One file per artifact: markup, stylesheet and, when present, script."""
    files = [
        create_file_item("index.html", proposal.html_preview),
        create_file_item("styles.css", proposal.css_preview),
    ]
    if proposal.js_preview:
        files.append(create_file_item("script.js", proposal.js_preview))
    return files


__all__ = [
    "DesignArchitect",
    "DesignMode",
    "DesignOutcome",
    "proposal_files",
    "replace_root_variables",
]
