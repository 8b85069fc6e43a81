"""
Async client for OpenAI chat completions with structured (json_schema) output.
Used by the proposal writer for Hebrew marketing copy.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

import httpx

from docmaker.config import settings

logger = logging.getLogger(__name__)


class OpenAIClient:
    """Minimal chat-completions client; raises RuntimeError on any failure."""

    def __init__(self) -> None:
        self.base_url = settings.OPENAI_BASE_URL.rstrip("/")
        self.api_key = settings.OPENAI_API_KEY
        self.model = settings.OPENAI_MODEL
        self.timeout = httpx.Timeout(float(settings.LLM_TIMEOUT), connect=10.0)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def chat_json(
        self,
        system: str,
        user: str,
        schema_name: str,
        schema: Dict[str, Any],
        temperature: float = 0.7,
    ) -> Dict[str, Any]:
        """Return the parsed JSON object produced under *schema*."""
        if not self.is_configured:
            raise RuntimeError("OPENAI_API_KEY is not set")

        body = {
            "model": self.model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": schema_name, "strict": True, "schema": schema},
            },
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=body,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.TimeoutException as exc:
            raise RuntimeError("OpenAI request timed out") from exc
        except httpx.HTTPError as exc:
            raise RuntimeError(f"OpenAI connection error: {exc}") from exc

        if resp.status_code != 200:
            logger.error("OpenAI returned HTTP %d: %s", resp.status_code, resp.text[:300])
            raise RuntimeError(f"OpenAI returned HTTP {resp.status_code}")

        try:
            content = resp.json()["choices"][0]["message"]["content"]
            return json.loads(content)
        except (KeyError, IndexError, TypeError, json.JSONDecodeError) as exc:
            raise RuntimeError(f"OpenAI returned an unexpected payload: {exc}") from exc
