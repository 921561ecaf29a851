"""Color and industry detection plus palette suggestion.

Palettes and keyword tables live in ``codestorm/data/palettes.yaml``.
"""
from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from codestorm.exceptions import ConfigurationException

logger = logging.getLogger(__name__)

PALETTE_DATA_PATH = Path(__file__).resolve().parents[1] / "data" / "palettes.yaml"
DEFAULT_CATEGORY = "tecnologia"


@dataclass
class ColorPalette:
    name: str
    category: str
    description: str
    primary: str
    secondary: str
    accent: str
    background: str
    surface: str
    text: Dict[str, str] = field(default_factory=dict)
    neutral: Dict[str, str] = field(default_factory=dict)
    semantic: Dict[str, str] = field(default_factory=dict)
    variations: Dict[str, str] = field(default_factory=dict)

    def to_proposal_colors(self) -> Dict[str, Any]:
        """Shape used for ``DesignProposal.color_palette``."""
        colors = asdict(self)
        colors.pop("description")
        return colors

    def hex_values(self) -> List[str]:
        values = [self.primary, self.secondary, self.accent, self.background, self.surface]
        for group in (self.text, self.neutral, self.semantic, self.variations):
            values.extend(group.values())
        return values


@dataclass
class ColorDetection:
    detected_colors: List[str] = field(default_factory=list)
    color_descriptions: List[str] = field(default_factory=list)
    suggested_category: str = DEFAULT_CATEGORY
    industry_detected: bool = False
    confidence: float = 0.0


@lru_cache(maxsize=None)
def _load_palette_data(path: str = str(PALETTE_DATA_PATH)) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationException(
            f"Cannot load palette data: {exc}", config_path=path, cause=exc
        )
    if not data.get("palettes"):
        raise ConfigurationException(
            "Palette data defines no palettes",
            config_path=path,
            missing_keys=["palettes"],
        )
    return data


def all_palettes() -> List[ColorPalette]:
    return [ColorPalette(**entry) for entry in _load_palette_data()["palettes"]]


def palettes_by_category(category: str) -> List[ColorPalette]:
    return [palette for palette in all_palettes() if palette.category == category]


def palette_by_name(name: str) -> Optional[ColorPalette]:
    for palette in all_palettes():
        if palette.name == name:
            return palette
    return None


def available_categories() -> List[str]:
    seen: List[str] = []
    for palette in all_palettes():
        if palette.category not in seen:
            seen.append(palette.category)
    return seen


def _mentions(text: str, keyword: str) -> bool:
    # Word-start match so "red" does not fire inside "credito"
    return re.search(rf"(?<!\w){re.escape(keyword.lower())}", text) is not None


def detect_colors(instruction: str) -> ColorDetection:
    """Scan an instruction for color names, color moods and an industry.

    Each color adds 0.3 to the confidence, each descriptor 0.2 and each
    industry 0.4, capped at 1.0. When several industries match the last one
    listed in the data file wins.
    """
    data = _load_palette_data()
    text = (instruction or "").lower()
    detection = ColorDetection()
    confidence = 0.0

    for color, keywords in data.get("color_keywords", {}).items():
        if any(_mentions(text, keyword) for keyword in keywords):
            detection.detected_colors.append(color)
            confidence += 0.3

    for descriptor, keywords in data.get("color_descriptors", {}).items():
        if any(_mentions(text, keyword) for keyword in keywords):
            detection.color_descriptions.append(descriptor)
            confidence += 0.2

    for industry, keywords in data.get("industries", {}).items():
        if any(_mentions(text, keyword) for keyword in keywords):
            detection.suggested_category = industry
            detection.industry_detected = True
            confidence += 0.4

    detection.confidence = min(round(confidence, 2), 1.0)
    return detection


def suggest_palette(detection: ColorDetection) -> ColorPalette:
    """Pick the palette for a detection result.

    An explicitly requested color wins over the industry default; otherwise
    the first palette of the detected category is used, and Tech Blue when
    the category has none.
    """
    data = _load_palette_data()
    palettes = all_palettes()

    for color in detection.detected_colors:
        name = data.get("color_palettes", {}).get(color)
        palette = palette_by_name(name) if name else None
        if palette:
            logger.debug("Palette %s chosen for requested color %s", palette.name, color)
            return palette

    category_palettes = palettes_by_category(detection.suggested_category)
    if category_palettes:
        return category_palettes[0]
    return palettes[0]


def generate_css_variables(palette: ColorPalette) -> str:
    """Render the palette as a ``:root`` block of CSS custom properties."""
    lines = [
        f"/* {palette.name} - {palette.description} */",
        ":root {",
        f"  --color-primary: {palette.primary};",
        f"  --color-secondary: {palette.secondary};",
        f"  --color-accent: {palette.accent};",
        f"  --color-background: {palette.background};",
        f"  --color-surface: {palette.surface};",
    ]
    for group, values in (
        ("text", palette.text),
        ("neutral", palette.neutral),
    ):
        for key, value in values.items():
            lines.append(f"  --color-{group}-{key}: {value};")
    for key, value in palette.semantic.items():
        lines.append(f"  --color-{key}: {value};")
    for key, value in palette.variations.items():
        lines.append(f"  --color-{key.replace('_', '-')}: {value};")
    lines.append("}")
    return "\n".join(lines)


__all__ = [
    "ColorPalette",
    "ColorDetection",
    "DEFAULT_CATEGORY",
    "all_palettes",
    "palettes_by_category",
    "palette_by_name",
    "available_categories",
    "detect_colors",
    "suggest_palette",
    "generate_css_variables",
]
