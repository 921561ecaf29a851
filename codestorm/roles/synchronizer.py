"""File synchronizer role: apply file-system commands to the project files."""
from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List

from codestorm.exceptions import ValidationException
from codestorm.models import AgentResult, AgentTask, AgentType, FileItem, FileSystemCommand, now_ms
from codestorm.utils.reconciliation import (
    create_file_item,
    find_by_path,
    language_from_path,
    normalize_path,
    reconcile,
    update_file,
)

from .base import BaseRole

logger = logging.getLogger(__name__)

ACTIONS = ("create", "update", "delete", "rename")


@dataclass
class SyncResult:
    files: List[FileItem]
    stats: Dict[str, int] = field(default_factory=dict)
    terminal_commands: List[str] = field(default_factory=list)


def terminal_commands(commands: Iterable[FileSystemCommand]) -> List[str]:
    """Echo lines describing each command, for a terminal-style view."""
    lines = []
    for command in commands:
        if command.action == "create":
            lines.append(f'echo "Creando archivo {command.path}..."')
        elif command.action == "update":
            lines.append(f'echo "Actualizando archivo {command.path}..."')
        elif command.action == "delete":
            lines.append(f'echo "Eliminando archivo {command.path}..."')
        elif command.action == "rename":
            lines.append(f'echo "Renombrando archivo {command.path} a {command.new_path}..."')
        else:
            lines.append(f'echo "Operación desconocida en {command.path}..."')
    return lines


def change_stats(commands: Iterable[FileSystemCommand]) -> Dict[str, int]:
    counts = {action: 0 for action in ACTIONS}
    for command in commands:
        if command.action in counts:
            counts[command.action] += 1
    return {
        "files_added": counts["create"],
        "files_modified": counts["update"],
        "files_deleted": counts["delete"],
        "files_renamed": counts["rename"],
        "total_changes": sum(counts.values()),
    }


def apply_commands(files: Iterable[FileItem], commands: Iterable[FileSystemCommand]) -> List[FileItem]:
    """Apply commands in order; every step goes through reconciliation."""
    current = reconcile(files)
    for command in commands:
        if command.action not in ACTIONS:
            raise ValidationException(
                f"Acción de archivo no soportada: {command.action}",
                validation_type="file_command",
                failures=[command.path],
            )
        path = normalize_path(command.path)
        existing = find_by_path(current, path)

        if command.action in ("create", "update"):
            content = command.content or ""
            if existing is None:
                current = reconcile(current, [create_file_item(path, content)])
            else:
                current = update_file(current, replace(existing, content=content))
        elif command.action == "delete":
            if existing is None:
                logger.warning("Delete of missing file %s ignored", path)
                continue
            current = [item for item in current if item.id != existing.id]
        else:
            if existing is None or not command.new_path:
                logger.warning("Rename of %s skipped (missing file or target)", path)
                continue
            target = normalize_path(command.new_path)
            renamed = replace(
                existing,
                path=target,
                name=posixpath.basename(target),
                language=language_from_path(target),
                last_modified=now_ms(),
                is_modified=True,
            )
            remaining = [item for item in current if item.id != existing.id]
            current = reconcile(remaining, [renamed])
    return current


def files_to_commands(existing: Iterable[FileItem], produced: Iterable[FileItem]) -> List[FileSystemCommand]:
    """Create commands for new paths and update commands for changed ones."""
    known = {normalize_path(item.path): item for item in existing}
    commands = []
    for item in produced:
        path = normalize_path(item.path)
        current = known.get(path)
        if current is None:
            commands.append(FileSystemCommand("create", path, item.content))
        elif current.content != item.content:
            commands.append(FileSystemCommand("update", path, item.content))
    return commands


class FileSynchronizer(BaseRole):
    agent_type = AgentType.FILE_SYNCHRONIZER
    name = "Sincronizador de Archivos"

    async def run(self, task: AgentTask) -> AgentResult:
        commands: List[FileSystemCommand] = list(task.context.get("commands") or [])
        files = apply_commands(task.context.get("files") or [], commands)
        stats = change_stats(commands)
        self.emit("syncing", 100, f"{stats['total_changes']} cambio(s) aplicados")
        return AgentResult.ok(SyncResult(files=files, stats=stats, terminal_commands=terminal_commands(commands)))


__all__ = [
    "FileSynchronizer",
    "SyncResult",
    "apply_commands",
    "change_stats",
    "files_to_commands",
    "terminal_commands",
]
