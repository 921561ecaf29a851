"""Code splitter role: break generated files that bundle several files.

Models sometimes answer a single-file request with a whole project glued
together, separated by marker lines such as ``// styles.css``,
``<!-- File: index.html -->`` or ``### src/app.js``, or as a run of fenced
blocks in different languages. The splitter cuts those replies back into
one FileItem per file. Anything it cannot split cleanly is kept as is.
"""
from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import replace
from typing import Dict, List, Tuple

from codestorm.models import AgentResult, AgentTask, AgentType, FileItem
from codestorm.utils.extraction import extract_code_blocks
from codestorm.utils.reconciliation import (
    create_file_item,
    is_safe_relative_path,
    language_from_path,
    normalize_path,
)

from .base import BaseRole

logger = logging.getLogger(__name__)

SPLITTABLE_EXTENSIONS = (
    "html", "htm", "css", "scss", "js", "jsx", "ts", "tsx", "json", "md", "py", "txt",
)

# fence tag -> extension
BLOCK_EXTENSIONS = {
    "html": "html",
    "css": "css",
    "scss": "scss",
    "js": "js",
    "javascript": "js",
    "jsx": "jsx",
    "ts": "ts",
    "typescript": "ts",
    "tsx": "tsx",
    "json": "json",
    "python": "py",
    "py": "py",
}

# sibling names for blocks split out of a file of another type
SIBLING_STEMS = {"css": "styles", "scss": "styles", "js": "script", "html": "index"}

_EXTENSIONS = "|".join(sorted(SPLITTABLE_EXTENSIONS, key=len, reverse=True))
_MARKER = re.compile(
    rf"^[ \t]*(?P<open>//|/\*|<!--|\*\*|#{{1,3}})?[ \t]*"
    rf"(?P<label>(?:file|archivo)[ \t]*:)?[ \t]*"
    rf"(?P<path>[\w@./\\-]*\.(?:{_EXTENSIONS}))[ \t]*"
    rf"(?:\*/|-->|\*\*)?[ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)
_FENCE_OPEN = re.compile(r"^\s*```[\w#+.\-]*[ \t]*\n")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def _markers(content: str) -> List["re.Match[str]"]:
    return [m for m in _MARKER.finditer(content) if m.group("open") or m.group("label")]


def has_file_markers(content: str) -> bool:
    """True when ``content`` names two or more files on marker lines."""
    return len(_markers(content or "")) >= 2


def needs_segmentation(content: str) -> bool:
    """Cheap check: two or more file markers, or two or more fenced blocks."""
    if not content:
        return False
    return has_file_markers(content) or len(extract_code_blocks(content)) >= 2


def clean_section(body: str) -> str:
    body = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", body.strip(), count=1)).strip()
    return f"{body}\n" if body else ""


def _marked_sections(item: FileItem) -> List[Tuple[str, str]]:
    markers = _markers(item.content)
    if len(markers) < 2:
        return []

    sections = []
    for position, marker in enumerate(markers):
        end = markers[position + 1].start() if position + 1 < len(markers) else len(item.content)
        path = marker.group("path").replace("\\", "/")
        sections.append((path, clean_section(item.content[marker.end() : end])))

    # Text ahead of the first marker belongs to the file itself unless a
    # marker claims that path, in which case it is prose.
    preamble = clean_section(item.content[: markers[0].start()])
    original = normalize_path(item.path)
    if preamble and all(normalize_path(path) != original for path, _ in sections):
        sections.insert(0, (item.path, preamble))
    return sections


def _fenced_sections(item: FileItem) -> List[Tuple[str, str]]:
    blocks = extract_code_blocks(item.content)
    if len(blocks) < 2:
        return []

    folder = posixpath.dirname(item.path)
    stem, _, own_extension = posixpath.basename(item.path).rpartition(".")
    sections = []
    for tag, body in blocks:
        extension = BLOCK_EXTENSIONS.get(tag)
        if extension is None:
            return []
        if extension == own_extension.lower():
            path = item.path
        else:
            path = posixpath.join(folder, f"{SIBLING_STEMS.get(extension, stem or 'file')}.{extension}")
        sections.append((path, clean_section(body)))
    return sections


def split_file(item: FileItem) -> List[FileItem]:
    """Return the files bundled in ``item``, or ``[item]`` when it is a single file.

    The section that lands on the original path keeps the original id.
    Sections with unsafe paths or no content are dropped; if fewer than
    two remain the original file is returned untouched.
    """
    sections = _marked_sections(item) or _fenced_sections(item)

    merged: Dict[str, str] = {}
    for path, body in sections:
        if not body:
            continue
        if not is_safe_relative_path(path):
            logger.warning("Ignoring section %s of %s: path leaves the project", path, item.path)
            continue
        key = normalize_path(path)
        merged[key] = f"{merged[key]}\n{body}" if key in merged else body

    if len(merged) < 2:
        return [item]

    original = normalize_path(item.path)
    files = []
    for path, body in merged.items():
        if path == original:
            files.append(
                replace(item, content=body, size=len(body), language=language_from_path(path))
            )
        else:
            files.append(create_file_item(path, body))
    return files


class CodeSplitter(BaseRole):
    """Local role; it never calls the completion gateway."""

    agent_type = AgentType.CODE_SPLITTER
    name = "Separador de Código"

    async def run(self, task: AgentTask) -> AgentResult:
        files: List[FileItem] = list(task.context.get("files") or [])
        result: List[FileItem] = []
        for item in files:
            if not needs_segmentation(item.content):
                result.append(item)
                continue
            pieces = split_file(item)
            if len(pieces) > 1:
                logger.info("Split %s into %d file(s)", item.path, len(pieces))
            result.extend(pieces)

        self.emit("splitting", 100, f"{len(files)} archivo(s) -> {len(result)} archivo(s)")
        return AgentResult.ok(result)


__all__ = [
    "CodeSplitter",
    "clean_section",
    "has_file_markers",
    "needs_segmentation",
    "split_file",
]
