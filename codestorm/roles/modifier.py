"""Code modifier role: rewrite one existing file per instruction."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, List, Optional, Tuple

from codestorm.models import AgentResult, AgentTask, AgentType, FileItem, now_ms
from codestorm.utils.errors import ErrorCode, create_input_error
from codestorm.utils.extraction import extract_code_block, extract_json_block

from .base import BaseRole

logger = logging.getLogger(__name__)


@dataclass
class FileChange:
    type: str  # add | remove | modify
    description: str
    line_numbers: List[int] = field(default_factory=list)


@dataclass
class ModificationResult:
    original_file: FileItem
    modified_file: FileItem
    changes: List[FileChange] = field(default_factory=list)


GENERIC_CHANGE = "Modificación del archivo según la instrucción del usuario"


class CodeModifier(BaseRole):
    agent_type = AgentType.CODE_MODIFIER
    name = "Modificador de Código"

    def _build_prompt(self, instruction: str, target: FileItem) -> str:
        prompt_parts = [
            f"Actúa como un desarrollador experto en {target.language}. Modifica el archivo",
            "existente según la instrucción del usuario.",
            "",
            f"Ruta: {target.path}",
            f"Lenguaje: {target.language}",
            "",
            f"INSTRUCCIÓN DEL USUARIO:\n{instruction}",
            "",
            "CÓDIGO ACTUAL:",
            f"```{target.language}",
            target.content,
            "```",
            "",
            "Mantén la estructura, el estilo y la funcionalidad existente salvo que se",
            "indique lo contrario; los cambios deben ser mínimos y enfocados.",
            "",
            "Responde con:",
            f"1. El código completo modificado en un bloque ```{target.language}.",
            "2. Un resumen de los cambios en un bloque ```json:",
            '{"changes": [{"type": "add|remove|modify", "description": "...", "lineNumbers": [1, 2]}]}',
        ]
        return "\n".join(prompt_parts)

    async def run(self, task: AgentTask) -> AgentResult:
        target: Optional[FileItem] = task.context.get("file")
        if target is None:
            raise create_input_error(
                f"Unknown file id {task.context.get('file_id')}",
                ErrorCode.FILE_NOT_FOUND,
                context={"task_id": task.id},
                user_message=f"No se encontró el archivo con ID {task.context.get('file_id')}",
            )

        self.emit("modifying", 20, f"Modificando {target.path}")
        reply = await self.call_model(self._build_prompt(task.instruction, target), "modify")
        content, changes = self.extract_modifications(reply, target.content)

        modified = replace(
            target,
            content=content,
            size=len(content),
            last_modified=now_ms(),
            is_modified=content != target.content or target.is_modified,
        )
        self.emit("modifying", 100, f"{len(changes)} cambio(s) en {target.path}")
        return AgentResult.ok(ModificationResult(original_file=target, modified_file=modified, changes=changes))

    def extract_modifications(self, reply: str, original: str) -> Tuple[str, List[FileChange]]:
        """First non-json fenced block is the new content; a json block lists the changes."""
        block = extract_code_block(reply, skip_json=True)
        content = block.strip() if block and block.strip() else original
        if block is None:
            logger.warning("Modifier reply has no code block; content left unchanged")

        changes = _parse_changes(extract_json_block(reply))
        if not changes:
            changes = [FileChange(type="modify", description=GENERIC_CHANGE)]
        return content, changes


def _parse_changes(payload: Any) -> List[FileChange]:
    if not isinstance(payload, dict) or not isinstance(payload.get("changes"), list):
        return []
    changes = []
    for item in payload["changes"]:
        if not isinstance(item, dict):
            continue
        lines = item.get("lineNumbers")
        if not isinstance(lines, list):
            lines = []
        changes.append(
            FileChange(
                type=str(item.get("type") or "modify"),
                description=str(item.get("description") or GENERIC_CHANGE),
                line_numbers=[int(n) for n in lines if isinstance(n, int)],
            )
        )
    return changes


__all__ = ["CodeModifier", "FileChange", "ModificationResult"]
