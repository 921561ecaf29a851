"""Completion capability backed by the Anthropic and OpenAI SDKs."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from codestorm.utils.secrets import load_secrets

try:
    from anthropic import AsyncAnthropic
except ImportError:  # pragma: no cover - optional provider
    AsyncAnthropic = None

try:
    from openai import AsyncOpenAI
except ImportError:  # pragma: no cover - optional provider
    AsyncOpenAI = None

logger = logging.getLogger(__name__)


class ModelCapabilityRouter:
    """Map capability ids from the configuration onto provider clients.

    Instances are callables matching the gateway's capability signature.
    Provider failures are reported as ``{"error", "status"}`` so that the
    gateway can decide whether a fallback applies.
    """

    def __init__(
        self,
        capabilities: Dict[str, Dict[str, Any]],
        secrets: Optional[Dict[str, Optional[str]]] = None,
        timeout_seconds: float = 120.0,
    ) -> None:
        self.capabilities = capabilities
        self.secrets = secrets if secrets is not None else load_secrets()
        self.timeout_seconds = timeout_seconds
        self._clients: Dict[str, Any] = {}

    @classmethod
    def from_config(cls, config: Dict[str, Any], **kwargs: Any) -> "ModelCapabilityRouter":
        gateway_config = config.get("gateway", {})
        return cls(
            gateway_config.get("capabilities", {}),
            timeout_seconds=float(gateway_config.get("timeout_seconds", 120)),
            **kwargs,
        )

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout_seconds, connect=10.0)

    def _client(self, provider: str) -> Any:
        if provider in self._clients:
            return self._clients[provider]

        client = None
        if provider == "openai":
            key = self.secrets.get("OPENAI_API_KEY")
            if AsyncOpenAI and key:
                client = AsyncOpenAI(api_key=key, timeout=self._timeout())
        elif provider == "anthropic":
            key = self.secrets.get("ANTHROPIC_API_KEY")
            if AsyncAnthropic and key:
                client = AsyncAnthropic(
                    api_key=key,
                    http_client=httpx.AsyncClient(
                        timeout=self._timeout(),
                        limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                    ),
                )

        if client is None:
            logger.warning("No %s client available", provider)
        self._clients[provider] = client
        return client

    async def __call__(self, prompt: str, capability_id: str) -> Dict[str, Any]:
        settings = self.capabilities.get(capability_id)
        if not settings:
            return {"error": f"Unknown capability '{capability_id}'"}

        provider = settings.get("provider", "")
        client = self._client(provider)
        if client is None:
            return {"error": f"Capability '{capability_id}' unavailable: {provider} client not configured"}

        max_tokens = int(settings.get("max_tokens", 4096))
        try:
            if provider == "openai":
                response = await client.chat.completions.create(
                    model=settings["model"],
                    messages=[{"role": "user", "content": prompt}],
                    max_tokens=max_tokens,
                )
                return {"content": response.choices[0].message.content or ""}

            response = await client.messages.create(
                model=settings["model"],
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": [{"type": "text", "text": prompt}]}],
            )
            parts = [getattr(block, "text", None) for block in (response.content or [])]
            return {"content": "".join(part for part in parts if part)}
        except Exception as exc:
            status = getattr(exc, "status_code", None)
            logger.warning("%s call for %s failed (status=%s): %s", provider, capability_id, status, exc)
            return {"error": str(exc), "status": status}

    async def close(self) -> None:
        for client in self._clients.values():
            if client is not None:
                await client.close()
        self._clients.clear()


__all__ = ["ModelCapabilityRouter"]
