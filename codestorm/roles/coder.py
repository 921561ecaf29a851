"""Code generator role: one model call per planned file."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from codestorm.exceptions import AgentException, GatewayError
from codestorm.models import AgentResult, AgentTask, AgentType, FileDescription, FileItem
from codestorm.utils.errors import create_input_error
from codestorm.utils.extraction import extract_code_block
from codestorm.utils.fallbacks import default_file_content
from codestorm.utils.reconciliation import create_file_item, language_from_path, normalize_path

from .base import BaseRole
from .splitter import has_file_markers

logger = logging.getLogger(__name__)

_WEB_LANGUAGES = {"html", "css", "javascript"}


class CodeGenerator(BaseRole):
    agent_type = AgentType.CODE_GENERATOR
    name = "Generador de Código"

    def _build_prompt(self, description: FileDescription, project_context: str) -> str:
        language = language_from_path(description.path)
        prompt_parts = [
            "Eres un desarrollador experto especializado en generar código de alta calidad.",
            "",
            f"## Contexto del proyecto\n{project_context}",
            "",
            f"## Archivo a generar: {description.path}",
            f"Lenguaje: {language}",
            f"Propósito: {description.description or 'Sin descripción'}",
        ]

        if description.dependencies:
            prompt_parts.extend(["", "Depende de: " + ", ".join(description.dependencies)])

        if language in _WEB_LANGUAGES:
            prompt_parts.extend(
                [
                    "",
                    "## Requisitos web",
                    "- HTML semántico y accesible, enlazando styles.css y script.js cuando existan",
                    "- CSS responsive que use variables CSS para los colores",
                    "- JavaScript sin dependencias externas",
                ]
            )

        prompt_parts.extend(
            [
                "",
                "## Formato de salida",
                f"Devuelve el contenido completo del archivo en un único bloque ```{language}.",
                "No omitas partes ni uses marcadores como '...'.",
            ]
        )
        return "\n".join(prompt_parts)

    def extract_content(self, reply: str, description: FileDescription) -> str:
        """Code block first, then the whole reply, then a stub for the language.

        Replies that bundle several files are kept whole for the splitter.
        """
        language = language_from_path(description.path)
        if has_file_markers(reply):
            return reply.strip()
        block = extract_code_block(reply or "", language=language)
        if block and block.strip():
            return block.strip()
        if reply and reply.strip():
            return reply.strip()
        logger.warning("No usable content for %s; writing a default stub", description.path)
        return default_file_content(language, description.description)

    async def _generate(self, description: FileDescription, project_context: str) -> FileItem:
        reply = await self.call_model(self._build_prompt(description, project_context), "generate")
        return create_file_item(description.path, self.extract_content(reply, description))

    async def run(self, task: AgentTask) -> AgentResult:
        single: Optional[FileDescription] = task.context.get("file_description")
        if task.plan is None and single is None:
            raise create_input_error(
                "Code generation needs a plan or a file description",
                context={"task_id": task.id},
                user_message="Se requiere un plan o una descripción de archivo para generar código",
            )

        if single is not None:
            project_context = task.context.get("project_context") or task.instruction
            generated = await self._generate(single, project_context)
            return AgentResult.ok([generated])

        skip = {normalize_path(path) for path in task.context.get("skip_paths", [])}
        targets = [item for item in task.plan.files if normalize_path(item.path) not in skip]
        project_context = task.plan.description or task.instruction
        files = await self._generate_all(targets, project_context)

        if targets and not files:
            raise AgentException("No se pudo generar ningún archivo del plan")
        return AgentResult.ok(files)

    async def _generate_all(self, targets: Iterable[FileDescription], project_context: str) -> List[FileItem]:
        targets = list(targets)
        files: List[FileItem] = []
        for position, description in enumerate(targets, start=1):
            self.emit("generating", position * 100 / len(targets), f"Generando {description.path}")
            try:
                files.append(await self._generate(description, project_context))
            except GatewayError as exc:
                # One failed file does not sink the rest of the plan
                logger.warning("Generation of %s failed: %s", description.path, exc.message)
        return files


__all__ = ["CodeGenerator"]
