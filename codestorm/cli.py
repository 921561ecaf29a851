#!/usr/bin/env python
"""Codestorm CLI - run one instruction against a project directory."""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from codestorm.agent_orchestrator import AgentOrchestrator, InstructionOutcome
from codestorm.models import ChatMessage, FileItem, ProgressEvent
from codestorm.utils.errors import CodestormError
from codestorm.utils.reconciliation import (
    create_file_item,
    find_by_path,
    is_safe_relative_path,
    normalize_path,
)

logger = logging.getLogger("codestorm.cli")

TEXT_SUFFIXES = {".html", ".htm", ".css", ".js", ".jsx", ".ts", ".tsx", ".py", ".json", ".md", ".txt"}


def load_project(project_dir: Path) -> List[FileItem]:
    """Read text files under ``project_dir`` as project files."""
    files = []
    for path in sorted(project_dir.rglob("*")):
        if not path.is_file() or path.suffix.lower() not in TEXT_SUFFIXES:
            continue
        relative = path.relative_to(project_dir).as_posix()
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning("Skipping non UTF-8 file %s", relative)
            continue
        files.append(create_file_item(relative, content, is_new=False))
    return files


def write_project(output_dir: Path, files: List[FileItem]) -> int:
    """Write changed files under ``output_dir``; paths escaping it are skipped."""
    root = output_dir.resolve()
    written = 0
    for item in files:
        target = (root / normalize_path(item.path)).resolve()
        if not is_safe_relative_path(item.path) or root not in target.parents:
            logger.warning("Refusing to write %s outside %s", item.path, root)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists() and target.read_text(encoding="utf-8") == item.content:
            continue
        target.write_text(item.content, encoding="utf-8")
        written += 1
    return written


def _print_progress(event: ProgressEvent) -> None:
    logger.info("[%3d%%] %s: %s", int(event.percent), event.stage, event.message)


def _print_chat(message: ChatMessage) -> None:
    if message.sender == "ai":
        print(f"[{message.type}] {message.content}")


def _print_outcome(outcome: InstructionOutcome, as_json: bool) -> None:
    if as_json:
        payload = {
            "intent": outcome.intent,
            "success": outcome.result.success,
            "error": outcome.result.error,
            "tasks": [task.to_dict() for task in outcome.tasks],
            "files": [item.path for item in outcome.files],
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))
        return
    for task in outcome.tasks:
        print(f"  - {task.type.value}: {task.status.value}")


async def run(args: argparse.Namespace) -> int:
    project_dir: Path = args.project_dir
    files = load_project(project_dir) if project_dir.is_dir() else []

    selected_id: Optional[str] = None
    if args.select:
        selected = find_by_path(files, args.select)
        if selected is None:
            print(f"No existe el archivo {args.select} en {project_dir}", file=sys.stderr)
            return 2
        selected_id = selected.id

    orchestrator = AgentOrchestrator(
        config_path=str(args.config) if args.config else None,
        on_progress=_print_progress,
        on_chat=None if args.json else _print_chat,
        files=files,
    )
    outcome = await orchestrator.process_instruction(args.instruction, selected_file_id=selected_id)
    _print_outcome(outcome, args.json)

    if outcome.result.success and not args.dry_run:
        output_dir: Path = args.output or project_dir
        written = write_project(output_dir, outcome.files)
        logger.info("%d archivo(s) escritos en %s", written, output_dir)
    return 0 if outcome.result.success else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Codestorm - multi-agent code generation from natural language",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  codestorm "Crea una página web para un restaurante azul" --project-dir ./site
  codestorm "Cambia el título" --project-dir ./site --select index.html
  codestorm "Corrige el código" --project-dir ./app --select main.js --json
        """,
    )
    parser.add_argument("instruction", help="Instruction in natural language")
    parser.add_argument("--project-dir", "-p", type=Path, default=Path("."), help="Project directory")
    parser.add_argument("--output", "-o", type=Path, help="Output directory (default: project directory)")
    parser.add_argument("--select", "-s", help="Path of the selected file, relative to the project")
    parser.add_argument("--config", "-c", type=Path, help="Custom config file")
    parser.add_argument("--dry-run", action="store_true", help="Do not write files")
    parser.add_argument("--json", action="store_true", help="Print the outcome as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return asyncio.run(run(args))
    except CodestormError as exc:
        print(f"Error: {exc.details.user_message or exc.details.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nOperación cancelada")
        return 130


if __name__ == "__main__":
    sys.exit(main())
