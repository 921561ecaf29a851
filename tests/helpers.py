"""Scripted completion capabilities for role and orchestrator tests."""
from typing import Dict, List, Tuple
from unittest.mock import AsyncMock


def scripted_capability(routes: List[Tuple[str, str]], default: str = "") -> AsyncMock:
    """Capability answering with the first route whose marker is in the prompt."""

    async def answer(prompt: str, capability_id: str) -> Dict[str, str]:
        for marker, content in routes:
            if marker in prompt:
                return {"content": content}
        return {"content": default}

    return AsyncMock(side_effect=answer)
