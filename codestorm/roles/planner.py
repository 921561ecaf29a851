"""Planner role for decomposing an instruction into a project plan."""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from codestorm.models import (
    AgentResult,
    AgentTask,
    AgentType,
    FileDescription,
    ProjectPlan,
    ProjectStep,
)
from codestorm.utils.ids import generate_unique_id
from codestorm.utils.reconciliation import is_safe_relative_path
from codestorm.utils.validation import DictValidator, ListValidator, StringValidator

from .base import BaseRole

logger = logging.getLogger(__name__)

FILE_SCHEMA = DictValidator(required_keys=["path"], key_validators={"path": StringValidator(min_length=1)})

PLAN_SCHEMA = DictValidator(
    required_keys=["projectStructure", "implementationSteps"],
    key_validators={
        "projectStructure": DictValidator(
            required_keys=["files"],
            key_validators={"files": ListValidator(min_items=1, item_validator=FILE_SCHEMA)},
        ),
        "implementationSteps": ListValidator(item_validator=DictValidator()),
    },
)


class Planner(BaseRole):
    agent_type = AgentType.PLANNER
    name = "Planificador"

    def _build_prompt(self, instruction: str) -> str:
        prompt_parts = [
            "Actúa como un arquitecto de software experto. Analiza la siguiente solicitud",
            "y genera un plan detallado para implementar el proyecto.",
            "",
            f'SOLICITUD DEL USUARIO: "{instruction}"',
            "",
            "1. Determina la estructura del proyecto.",
            "2. Identifica todos los archivos necesarios, con su propósito y dependencias.",
            "3. Define los pasos de implementación en orden lógico.",
            "",
            "Para proyectos web incluye archivos HTML, CSS y JavaScript.",
            "Para proyectos Python incluye archivos .py y requirements.txt.",
            "",
            "Responde ÚNICAMENTE con un JSON válido con esta forma:",
            "{",
            '  "projectStructure": {',
            '    "name": "Nombre del proyecto",',
            '    "description": "Descripción detallada del proyecto",',
            '    "files": [{"path": "ruta/archivo.ext", "description": "...", "dependencies": []}]',
            "  },",
            '  "implementationSteps": [',
            '    {"id": "step-1", "title": "...", "description": "...", "filesToCreate": ["ruta/archivo.ext"]}',
            "  ]",
            "}",
            "",
            "Usa siempre comillas dobles y no incluyas comentarios dentro del JSON.",
        ]
        return "\n".join(prompt_parts)

    async def run(self, task: AgentTask) -> AgentResult:
        self.emit("planning", 10, "Analizando la solicitud")
        reply = await self.call_model(self._build_prompt(task.instruction), "plan")

        outcome = self.parse_reply(reply, PLAN_SCHEMA)
        plan = None
        if outcome.ok:
            plan = self._to_plan(outcome.value)
            if not plan.files:
                logger.warning("Planner reply named no usable files; using the default web plan")
                plan = None
        else:
            logger.warning("Planner reply unusable (%s); using the default web plan", outcome.error)
        if plan is None:
            plan = fallback_plan(task.instruction)

        self.emit("planning", 100, f"Plan listo: {len(plan.files)} archivos")
        return AgentResult.ok(plan)

    def _to_plan(self, payload: Dict[str, Any]) -> ProjectPlan:
        structure = payload["projectStructure"]
        files = []
        for item in structure["files"]:
            if not is_safe_relative_path(item["path"]):
                logger.warning("Dropping planned file outside the project: %s", item["path"])
                continue
            files.append(
                FileDescription(
                    path=item["path"],
                    description=str(item.get("description") or ""),
                    dependencies=[str(dep) for dep in item.get("dependencies") or []],
                )
            )

        steps: List[ProjectStep] = []
        for index, step in enumerate(payload["implementationSteps"], start=1):
            steps.append(
                ProjectStep(
                    id=str(step.get("id") or f"step-{index}"),
                    title=str(step.get("title") or f"Paso {index}"),
                    description=str(step.get("description") or ""),
                    files_to_create=[str(path) for path in step.get("filesToCreate") or []],
                )
            )

        return ProjectPlan(
            id=generate_unique_id("plan"),
            name=str(structure.get("name") or "Proyecto sin nombre"),
            description=str(structure.get("description") or ""),
            files=files,
            steps=steps,
        )


def fallback_plan(instruction: str) -> ProjectPlan:
    """Plain web project used when the planner reply cannot be parsed."""
    files = [
        FileDescription("index.html", "Estructura principal de la página", ["styles.css", "script.js"]),
        FileDescription("styles.css", "Estilos de la página"),
        FileDescription("script.js", "Interactividad de la página"),
        FileDescription("README.md", "Documentación del proyecto"),
    ]
    return ProjectPlan(
        id=generate_unique_id("plan"),
        name="Proyecto web",
        description=f"Plan básico generado para: {instruction}",
        files=files,
        steps=[
            ProjectStep(
                id="step-1",
                title="Crear estructura básica",
                description="Crear los archivos principales del proyecto",
                files_to_create=[item.path for item in files],
            )
        ],
    )


__all__ = ["Planner", "fallback_plan", "PLAN_SCHEMA"]
