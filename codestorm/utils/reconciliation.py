"""File collection reconciliation.

Every change to project files passes through these functions. Identity
follows the normalized ``path`` (``/index.html`` and ``./index.html`` name
the same file): when a file at an existing path is replaced its ``id`` is
kept so that references held by callers stay valid. Content follows
recency: the entry with the greatest ``last_modified`` (or ``timestamp``)
wins. All functions return new lists and never mutate their inputs.
"""
from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional

from codestorm.exceptions import ReconciliationConflict
from codestorm.models import FileItem, now_ms
from codestorm.utils.errors import CodestormError, ErrorCode, handle_error
from codestorm.utils.ids import generate_file_id

logger = logging.getLogger(__name__)

_EXTENSION_LANGUAGES = {
    "html": "html",
    "htm": "html",
    "css": "css",
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "json": "json",
    "md": "markdown",
    "py": "python",
    "java": "java",
    "cpp": "cpp",
    "c": "cpp",
}


@dataclass
class KeyValidationReport:
    is_valid: bool
    duplicate_paths: List[str] = field(default_factory=list)
    duplicate_ids: List[str] = field(default_factory=list)


def language_from_path(path: str) -> str:
    name = posixpath.basename(path or "")
    if "." not in name:
        return "text"
    return _EXTENSION_LANGUAGES.get(name.rsplit(".", 1)[-1].lower(), "text")


def create_file_item(
    path: str,
    content: str,
    language: Optional[str] = None,
    file_id: Optional[str] = None,
    is_new: bool = True,
) -> FileItem:
    """Build a FileItem with size and timestamp metadata filled in."""
    stamp = now_ms()
    return FileItem(
        id=file_id or generate_file_id(),
        name=posixpath.basename(path) or path,
        path=path,
        content=content,
        language=language or language_from_path(path),
        size=len(content),
        timestamp=stamp,
        last_modified=stamp,
        is_new=is_new,
    )


def dedupe(files: Iterable[FileItem]) -> List[FileItem]:
    """Collapse entries sharing a path.

    The most recent entry supplies content and metadata; the id comes from
    the first entry seen for that path. Output keeps first-seen order, and
    ``dedupe(dedupe(x)) == dedupe(x)``.
    """
    winners: Dict[str, FileItem] = {}
    first_ids: Dict[str, str] = {}
    collapsed: List[str] = []

    for item in files:
        key = normalize_path(item.path)
        if key not in winners:
            winners[key] = item
            first_ids[key] = item.id
            continue
        if key not in collapsed:
            collapsed.append(key)
        if not first_ids[key] and item.id:
            first_ids[key] = item.id
        if item.recency > winners[key].recency:
            winners[key] = item

    if collapsed:
        handle_error(
            CodestormError(
                ErrorCode.RECONCILIATION_DUPLICATE_PATH,
                "Duplicate paths collapsed",
                context={"paths": collapsed},
            )
        )

    result = []
    for key, winner in winners.items():
        identity = first_ids[key] or generate_file_id()
        result.append(winner if winner.id == identity else replace(winner, id=identity))
    return result


def merge(existing: Iterable[FileItem], incoming: Iterable[FileItem]) -> List[FileItem]:
    """Merge ``incoming`` into ``existing`` keyed by path.

    A matching path keeps its id and takes the incoming content unless the
    incoming entry is older than what is already stored. New paths are
    appended, with a generated id when none was supplied.
    """
    result = dedupe(existing)
    index = {normalize_path(item.path): position for position, item in enumerate(result)}

    for item in incoming:
        key = normalize_path(item.path)
        position = index.get(key)
        if position is None:
            added = item if item.id else replace(item, id=generate_file_id())
            index[key] = len(result)
            result.append(added)
            continue

        current = result[position]
        if item.recency < current.recency:
            logger.debug(
                "Skipping stale update for %s (%s < %s)",
                item.path,
                item.recency,
                current.recency,
            )
            continue

        result[position] = replace(
            item,
            id=current.id,
            path=current.path,
            size=len(item.content),
            is_new=current.is_new and item.is_new,
            is_modified=item.content != current.content or current.is_modified,
        )

    return result


def validate_keys(files: Iterable[FileItem]) -> KeyValidationReport:
    """Report path and id collisions without changing anything."""
    seen_paths: Dict[str, int] = {}
    seen_ids: Dict[str, int] = {}
    for item in files:
        key = normalize_path(item.path)
        seen_paths[key] = seen_paths.get(key, 0) + 1
        seen_ids[item.id] = seen_ids.get(item.id, 0) + 1

    duplicate_paths = [path for path, count in seen_paths.items() if count > 1]
    duplicate_ids = [file_id for file_id, count in seen_ids.items() if count > 1]
    return KeyValidationReport(
        is_valid=not duplicate_paths and not duplicate_ids,
        duplicate_paths=duplicate_paths,
        duplicate_ids=duplicate_ids,
    )


def fix_duplicate_ids(files: Iterable[FileItem]) -> List[FileItem]:
    """Give every repeated id a deterministic replacement.

    The first holder of an id keeps it; later holders get ``{id}-{n}`` with
    the smallest ``n`` not already in use. Each remap is recorded with the
error handler.
    """
    items = list(files)
    used = {item.id for item in items}
    claimed = set()
    result = []

    for item in items:
        if item.id and item.id not in claimed:
            claimed.add(item.id)
            result.append(item)
            continue

        base = item.id or "file"
        suffix = 1
        while f"{base}-{suffix}" in used:
            suffix += 1
        new_id = f"{base}-{suffix}"
        used.add(new_id)
        claimed.add(new_id)

        conflict = ReconciliationConflict(
            "Duplicate file id remapped",
            path=item.path,
            original_id=item.id,
            new_id=new_id,
        )
        handle_error(
            CodestormError(
                ErrorCode.RECONCILIATION_DUPLICATE_ID,
                conflict.message,
                context=dict(conflict.details),
                cause=conflict,
            )
        )
        result.append(replace(item, id=new_id))

    return result


def reconcile(
    existing: Iterable[FileItem], incoming: Iterable[FileItem] = ()
) -> List[FileItem]:
    """Merge, dedupe and repair ids; the result has unique paths and ids."""
    merged = merge(existing, incoming)
    report = validate_keys(merged)
    if not report.is_valid:
        logger.info(
            "Repairing file collection: %d duplicate path(s), %d duplicate id(s)",
            len(report.duplicate_paths),
            len(report.duplicate_ids),
        )
        merged = fix_duplicate_ids(dedupe(merged))
    return merged


def find_file(files: Iterable[FileItem], file_id: str) -> Optional[FileItem]:
    for item in files:
        if item.id == file_id:
            return item
    return None


def find_by_path(files: Iterable[FileItem], path: str) -> Optional[FileItem]:
    normalized = normalize_path(path)
    for item in files:
        if normalize_path(item.path) == normalized:
            return item
    return None


def normalize_path(path: str) -> str:
    normalized = (path or "").strip()
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


def is_safe_relative_path(path: str) -> bool:
    """True when ``path`` stays inside the project root.

    Absolute paths, drive letters and ``..`` segments are rejected; a
    leading ``/`` or ``./`` is tolerated since ``normalize_path`` strips it.
    """
    normalized = normalize_path((path or "").replace("\\", "/"))
    if not normalized or ":" in normalized.split("/", 1)[0]:
        return False
    return ".." not in normalized.split("/")


def update_file(files: Iterable[FileItem], updated: FileItem) -> List[FileItem]:
    """Replace the entry with ``updated.id`` (or, failing that, its path)."""
    items = list(files)
    by_id = updated.id in {item.id for item in items}
    for position, item in enumerate(items):
        matches = (
            item.id == updated.id
            if by_id
            else normalize_path(item.path) == normalize_path(updated.path)
        )
        if matches:
            items[position] = replace(
                updated,
                id=item.id,
                size=len(updated.content),
                last_modified=now_ms(),
                is_modified=updated.content != item.content or item.is_modified,
            )
            return items
    return reconcile(items, [updated])


def find_main_files(files: Iterable[FileItem]) -> Dict[str, Optional[FileItem]]:
    """Return the first html, css and js file of the project."""
    found: Dict[str, Optional[FileItem]] = {"html": None, "css": None, "js": None}
    for item in files:
        lowered = item.path.lower()
        if found["html"] is None and lowered.endswith((".html", ".htm")):
            found["html"] = item
        elif found["css"] is None and lowered.endswith(".css"):
            found["css"] = item
        elif found["js"] is None and lowered.endswith(".js"):
            found["js"] = item
    return found


__all__ = [
    "KeyValidationReport",
    "language_from_path",
    "create_file_item",
    "dedupe",
    "merge",
    "validate_keys",
    "fix_duplicate_ids",
    "reconcile",
    "find_file",
    "find_by_path",
    "normalize_path",
    "is_safe_relative_path",
    "update_file",
    "find_main_files",
]
