"""Tests for keyword-priority intent classification."""
import pytest

from codestorm.orchestration.classifier import (
    Intent,
    IntentClassifier,
    IntentContext,
    Rule,
    RuleClassifier,
    keyword_predicate,
    mentions_any,
)


@pytest.fixture
def classifier():
    return IntentClassifier()


class TestIntentClassifier:
    @pytest.mark.parametrize(
        "instruction, has_files, has_selection, expected",
        [
            ("Crea una página web para un restaurante azul", False, False, Intent.CREATE_PROJECT),
            ("Build a calculator app", True, False, Intent.CREATE_PROJECT),
            ("Corrige los errores de este archivo", True, True, Intent.CORRECT_CODE),
            ("Cambia los colores a una paleta verde", True, False, Intent.CHANGE_STYLES),
            ("Añade un botón de contacto", True, True, Intent.MODIFY_FILE),
            ("Haz que el título sea más grande", True, True, Intent.MODIFY_FILE),
            ("Añade un pie de página al index.html", True, False, Intent.MODIFY_FILE),
            ("¿Qué es un closure en JavaScript?", False, False, Intent.CHAT),
            ("Cambia el título", False, False, Intent.CHAT),
        ],
    )
    def test_routes(self, classifier, instruction, has_files, has_selection, expected):
        context = IntentContext(instruction, has_files=has_files, has_selection=has_selection)
        assert classifier.classify(context) == expected

    def test_correction_needs_selection(self, classifier):
        context = IntentContext("Revisa el código, hay un bug", has_files=True, has_selection=False)
        assert classifier.classify(context) != Intent.CORRECT_CODE

    def test_style_with_selection_is_modification(self, classifier):
        context = IntentContext("Cambia el color del botón", has_files=True, has_selection=True)
        assert classifier.classify(context) == Intent.MODIFY_FILE

    def test_keyword_sets_are_pluggable(self):
        classifier = IntentClassifier.from_config({"project_verbs": ["erstelle"], "project_nouns": ["webseite"]})
        context = IntentContext("Erstelle eine Webseite")
        assert classifier.classify(context) == Intent.CREATE_PROJECT
        assert classifier.classify(IntentContext("Crea una web")) == Intent.CHAT

    def test_from_config_ignores_non_lists(self):
        classifier = IntentClassifier.from_config({"style": "color", "correction": ["fix"]})
        assert "color" in classifier.keywords["style"]
        assert classifier.keywords["correction"] == ["fix"]


class TestRuleClassifier:
    def test_first_match_wins(self):
        rules = RuleClassifier(
            [Rule("a", lambda x: x > 10), Rule("b", lambda x: x > 5)],
            default=Rule("c", lambda x: True),
        )
        assert rules.match(20).name == "a"
        assert rules.match(7).name == "b"
        assert rules.match(1).name == "c"
        assert rules.order == ["a", "b", "c"]

    def test_mentions_any_word_start(self):
        assert mentions_any("Crea una App", ["app"])
        assert not mentions_any("Aplicar happy path", ["app"])
        assert keyword_predicate(["diseño"])("Propuesta de DISEÑO")
