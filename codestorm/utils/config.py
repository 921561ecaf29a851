"""YAML configuration loading with built-in defaults."""
from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from codestorm.utils.errors import ErrorCode, create_config_error

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = "configs/codestorm.yaml"
CONFIG_ENV_VAR = "CODESTORM_CONFIG"

DEFAULT_CONFIG: Dict[str, Any] = {
    "gateway": {
        "primary_capability": "gpt-4o",
        "default_alternate": "claude-3-5-sonnet",
        "fallbacks": {
            "gpt-4o": "claude-3-5-sonnet",
            "claude-3-5-sonnet": "gpt-4o",
            "gpt-4o-mini": "claude-3-5-sonnet",
        },
        "timeout_seconds": 120,
        "capabilities": {
            "gpt-4o": {"provider": "openai", "model": "gpt-4o", "max_tokens": 4096},
            "gpt-4o-mini": {"provider": "openai", "model": "gpt-4o-mini", "max_tokens": 4096},
            "claude-3-5-sonnet": {
                "provider": "anthropic",
                "model": "claude-3-5-sonnet-20241022",
                "max_tokens": 8192,
            },
        },
    },
    "roles": {
        "planner": "gpt-4o",
        "code_generator": "gpt-4o",
        "design_architect": "claude-3-5-sonnet",
        "code_modifier": "gpt-4o",
        "code_corrector": "gpt-4o",
    },
    "classifier": {},
    "design": {
        "proposal_keywords": ["mockup", "wireframe", "diseño", "design"],
        "enhancement_keywords": ["HTML", "estilos", "animaciones", "styles", "animations"],
        "color_keywords": ["color", "cambiar", "change"],
        "generic_terms": [
            "lorem ipsum",
            "empresa xyz",
            "tu empresa",
            "ejemplo",
            "placeholder",
            "demo",
        ],
        "min_html_length": 500,
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def resolve_config_path(config_path: Optional[str] = None) -> Path:
    """Apply the environment override and resolve relative paths."""
    override = os.getenv(CONFIG_ENV_VAR)
    path = Path(override or config_path or DEFAULT_CONFIG_PATH)
    if not path.is_absolute():
        candidate = PROJECT_ROOT / path
        path = candidate if candidate.exists() else (Path.cwd() / path).resolve()
    return path


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load the ``codestorm`` section merged over the defaults.

    A missing file is not an error; an unreadable or malformed one is.
    """
    path = resolve_config_path(config_path)
    if not path.exists():
        logger.info("No configuration at %s; using built-in defaults", path)
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise create_config_error(
            f"Failed to parse configuration file: {exc}",
            config_path=str(path),
            error_code=ErrorCode.CONFIG_PARSE_ERROR,
            recovery_suggestions=[
                "Check YAML syntax in configuration file",
                f"Point {CONFIG_ENV_VAR} at a valid file",
            ],
            cause=exc,
        )
    except OSError as exc:
        raise create_config_error(
            f"Failed to read configuration file: {exc}",
            config_path=str(path),
            error_code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            cause=exc,
        )

    if not isinstance(raw, dict):
        raise create_config_error(
            "Configuration root must be a mapping",
            config_path=str(path),
            error_code=ErrorCode.CONFIG_VALIDATION_FAILED,
        )

    section = raw.get("codestorm", raw)
    logger.debug("Loaded configuration from %s", path)
    return _deep_merge(DEFAULT_CONFIG, section)


__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_PATH",
    "CONFIG_ENV_VAR",
    "resolve_config_path",
    "load_config",
]
