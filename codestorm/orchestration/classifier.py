"""Keyword-priority intent classification.

Classification is an ordered list of ``(predicate, handler)`` rules checked
top to bottom; the first rule whose predicate accepts the input wins. Keyword
sets come from configuration so other locales can be plugged in without
touching the rules.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_KEYWORDS: Dict[str, List[str]] = {
    "project_verbs": [
        "crea", "crear", "creame", "genera", "generar", "construye", "desarrolla",
        "create", "build", "make", "generate",
    ],
    "project_nouns": [
        "proyecto", "aplicación", "aplicacion", "programa", "calculadora", "juego",
        "web", "sitio", "página", "landing", "project", "app", "application",
        "program", "calculator", "game", "website", "site", "page",
    ],
    "modification": [
        "modifica", "cambia", "actualiza", "edita", "añade", "agrega", "incluye",
        "elimina", "borra", "quita", "renombra", "modify", "change", "update",
        "edit", "add", "include", "remove", "delete", "rename",
    ],
    "style": [
        "color", "colores", "paleta", "estilo", "estilos", "tema", "colors",
        "palette", "style", "styles", "theme",
    ],
    "correction": [
        "corrige", "corregir", "arregla", "depura", "revisa", "errores", "error",
        "bug", "fix", "correct", "debug", "review",
    ],
}


def mentions_any(text: str, keywords: Iterable[str]) -> bool:
    """Case-insensitive keyword test anchored at word starts."""
    lowered = (text or "").lower()
    for keyword in keywords:
        if re.search(rf"(?<!\w){re.escape(keyword.lower())}", lowered):
            return True
    return False


def keyword_predicate(keywords: Sequence[str]) -> Callable[[str], bool]:
    words = list(keywords)
    return lambda text: mentions_any(text, words)


@dataclass
class Rule(Generic[T]):
    name: str
    predicate: Callable[[T], bool]
    handler: Any = None


class RuleClassifier(Generic[T]):
    """First-match classifier over an ordered rule list."""

    def __init__(self, rules: Sequence[Rule[T]], default: Rule[T]) -> None:
        self.rules = list(rules)
        self.default = default

    def match(self, subject: T) -> Rule[T]:
        for rule in self.rules:
            if rule.predicate(subject):
                return rule
        return self.default

    @property
    def order(self) -> List[str]:
        return [rule.name for rule in self.rules] + [self.default.name]


class Intent:
    CREATE_PROJECT = "create_project"
    MODIFY_FILE = "modify_file"
    CHANGE_STYLES = "change_styles"
    CORRECT_CODE = "correct_code"
    CHAT = "chat"


@dataclass
class IntentContext:
    instruction: str
    has_files: bool = False
    has_selection: bool = False


class IntentClassifier:
    """Top-level instruction router.

    Order: code correction on a selected file, project creation, style
    change on an existing project, then any other instruction about a
    selected file is a modification. Everything else is answered as chat.
    """

    def __init__(self, keywords: Optional[Dict[str, List[str]]] = None) -> None:
        self.keywords = dict(DEFAULT_KEYWORDS)
        self.keywords.update(keywords or {})
        self._classifier = self._build()

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "IntentClassifier":
        return cls({k: list(v) for k, v in (config or {}).items() if isinstance(v, list)})

    def _has(self, group: str) -> Callable[[IntentContext], bool]:
        words = self.keywords.get(group, [])
        return lambda ctx: mentions_any(ctx.instruction, words)

    def _build(self) -> RuleClassifier[IntentContext]:
        correction = self._has("correction")
        verbs = self._has("project_verbs")
        nouns = self._has("project_nouns")
        style = self._has("style")
        modification = self._has("modification")

        rules = [
            Rule(Intent.CORRECT_CODE, lambda ctx: ctx.has_selection and correction(ctx)),
            Rule(Intent.CREATE_PROJECT, lambda ctx: verbs(ctx) and nouns(ctx)),
            Rule(Intent.CHANGE_STYLES, lambda ctx: ctx.has_files and style(ctx) and not ctx.has_selection),
            Rule(Intent.MODIFY_FILE, lambda ctx: ctx.has_selection and modification(ctx)),
            Rule(Intent.MODIFY_FILE, lambda ctx: ctx.has_selection),
            Rule(Intent.MODIFY_FILE, lambda ctx: ctx.has_files and modification(ctx)),
        ]
        return RuleClassifier(rules, default=Rule(Intent.CHAT, lambda ctx: True))

    def classify(self, context: IntentContext) -> str:
        intent = self._classifier.match(context).name
        logger.debug("Instruction classified as %s", intent)
        return intent


__all__ = [
    "DEFAULT_KEYWORDS",
    "mentions_any",
    "keyword_predicate",
    "Rule",
    "RuleClassifier",
    "Intent",
    "IntentContext",
    "IntentClassifier",
]
