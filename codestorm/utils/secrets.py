"""Provider credentials from .env files and the environment."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

KEY_NAMES = ("OPENAI_API_KEY", "ANTHROPIC_API_KEY")


def load_secrets() -> Dict[str, Optional[str]]:
    """Load API keys; missing keys map to ``None`` and are logged."""

    project_root = Path(__file__).resolve().parents[2]
    dotenv_override = os.getenv("CODESTORM_DOTENV")
    dotenv_candidates = []
    if dotenv_override:
        override_path = Path(dotenv_override)
        if not override_path.is_absolute():
            override_path = project_root / override_path
        dotenv_candidates.append(override_path)
    dotenv_candidates.append(project_root / ".env")
    dotenv_candidates.append(project_root / ".env.local")
    for candidate in dotenv_candidates:
        if candidate.exists():
            load_dotenv(str(candidate))

    secrets: Dict[str, Optional[str]] = {}
    for key in KEY_NAMES:
        value = os.getenv(key)
        if not value:
            logger.warning("Missing %s; the matching capabilities are disabled.", key)
        secrets[key] = value or None
    return secrets


__all__ = ["KEY_NAMES", "load_secrets"]
