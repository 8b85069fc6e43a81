"""
Thin async client for the Google Gemini ``generateContent`` REST API.

All DocMaker LLM, vision and image-generation calls go through this class.
Transport errors never raise out of :meth:`GeminiClient.generate`; they are
logged and an empty string is returned so callers can fall back.

Public API
----------
GeminiClient.generate(prompt, ...)        -> str
GeminiClient.generate_json(prompt, ...)   -> Any   (RuntimeError after all models fail)
GeminiClient.generate_image(prompt, ...)  -> Optional[GeneratedImage]
GeminiClient.ping()                       -> bool
"""
from __future__ import annotations

import asyncio
import base64
import dataclasses
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from docmaker.config import settings
from docmaker.utils.json_cleanup import parse_llm_json

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class InlineImage:
    """Image bytes attached to a prompt (vision input)."""

    data: bytes
    mime_type: str = "image/png"


@dataclasses.dataclass
class GeneratedImage:
    """Image returned by the image model."""

    data: bytes
    mime_type: str = "image/png"

    @property
    def extension(self) -> str:
        return {"image/jpeg": "jpg", "image/webp": "webp"}.get(self.mime_type, "png")


class GeminiClient:
    """
    Gemini REST client.

    Limits concurrency to MAX_CONCURRENT simultaneous requests across all
    instances in the process.
    """

    MAX_CONCURRENT: int = 4
    RETRY_DELAY: float = 2.0

    _semaphore: Optional[asyncio.Semaphore] = None

    def __init__(self) -> None:
        self.base_url = settings.GEMINI_BASE_URL.rstrip("/")
        self.api_key = settings.GEMINI_API_KEY
        self.flash_model = settings.GEMINI_FLASH_MODEL
        self.pro_model = settings.GEMINI_PRO_MODEL
        self.image_model = settings.GEMINI_IMAGE_MODEL
        self.timeout = httpx.Timeout(float(settings.LLM_TIMEOUT), connect=10.0)
        self.image_timeout = httpx.Timeout(float(settings.IMAGE_TIMEOUT), connect=10.0)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def _get_semaphore(cls) -> asyncio.Semaphore:
        if cls._semaphore is None:
            cls._semaphore = asyncio.Semaphore(cls.MAX_CONCURRENT)
        return cls._semaphore

    # ------------------------------------------------------------------
    # Text / JSON generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        system_instruction: Optional[str] = None,
        temperature: float = 0.7,
        json_mode: bool = False,
        response_schema: Optional[Dict[str, Any]] = None,
        google_search: bool = False,
        images: Optional[Sequence[InlineImage]] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        """
        Run one ``generateContent`` call and return the concatenated text parts.

        Returns an empty string on any error (missing key, timeout,
        connection failure, non-200 response, blocked candidate).
        """
        model = model or self.flash_model
        generation_config: Dict[str, Any] = {"temperature": temperature}
        if max_output_tokens:
            generation_config["maxOutputTokens"] = max_output_tokens
        # The search tool cannot be combined with a JSON response mime type
        if (json_mode or response_schema) and not google_search:
            generation_config["responseMimeType"] = "application/json"
            if response_schema:
                generation_config["responseSchema"] = response_schema

        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": self._build_parts(prompt, images)}],
            "generationConfig": generation_config,
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if google_search:
            body["tools"] = [{"google_search": {}}]

        data = await self._post(model, body, self.timeout)
        if data is None:
            return ""
        return "".join(
            part.get("text", "")
            for part in self._first_candidate_parts(data)
            if not part.get("thought")
        )

    async def generate_json(
        self,
        prompt: str,
        *,
        models: Optional[List[str]] = None,
        system_instruction: Optional[str] = None,
        temperature: float = 0.7,
        json_mode: bool = True,
        response_schema: Optional[Dict[str, Any]] = None,
        google_search: bool = False,
        images: Optional[Sequence[InlineImage]] = None,
        max_output_tokens: Optional[int] = None,
    ) -> Any:
        """
        Call each model in *models* until one returns parseable JSON.

        Waits ``RETRY_DELAY * attempt`` seconds between attempts.

        Raises:
            RuntimeError: every model failed or returned unparseable output.
        """
        models = models or [self.flash_model]
        last_error = "no attempts made"

        for attempt, model in enumerate(models, start=1):
            text = await self.generate(
                prompt,
                model=model,
                system_instruction=system_instruction,
                temperature=temperature,
                json_mode=json_mode,
                response_schema=response_schema,
                google_search=google_search,
                images=images,
                max_output_tokens=max_output_tokens,
            )
            if text:
                try:
                    return parse_llm_json(text)
                except ValueError as exc:
                    last_error = f"{model}: {exc}"
            else:
                last_error = f"{model}: empty response"

            logger.warning(
                "generate_json: attempt %d/%d failed (%s)", attempt, len(models), last_error
            )
            if attempt < len(models):
                await asyncio.sleep(self.RETRY_DELAY * attempt)

        raise RuntimeError(f"All Gemini models failed: {last_error}")

    # ------------------------------------------------------------------
    # Image generation
    # ------------------------------------------------------------------

    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: str = "16:9",
        model: Optional[str] = None,
    ) -> Optional[GeneratedImage]:
        """Generate a single image.  Returns None when the model produced none."""
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseModalities": ["IMAGE", "TEXT"],
                "imageConfig": {"aspectRatio": aspect_ratio},
            },
        }
        data = await self._post(model or self.image_model, body, self.image_timeout)
        if data is None:
            return None

        for part in self._first_candidate_parts(data):
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                try:
                    raw = base64.b64decode(inline["data"])
                except (ValueError, TypeError) as exc:
                    logger.error("generate_image: bad base64 payload — %s", exc)
                    return None
                return GeneratedImage(
                    data=raw,
                    mime_type=inline.get("mimeType") or inline.get("mime_type") or "image/png",
                )

        logger.warning("generate_image: response contained no image part")
        return None

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        """Return True when the API key is accepted by the models endpoint."""
        if not self.is_configured:
            return False
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.get(
                    f"{self.base_url}/models",
                    headers={"x-goog-api-key": self.api_key},
                )
            return resp.status_code == 200
        except httpx.HTTPError as exc:
            logger.warning("Gemini ping failed: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _build_parts(
        prompt: str, images: Optional[Sequence[InlineImage]]
    ) -> List[Dict[str, Any]]:
        parts: List[Dict[str, Any]] = []
        for image in images or ():
            parts.append({
                "inline_data": {
                    "mime_type": image.mime_type,
                    "data": base64.b64encode(image.data).decode("ascii"),
                }
            })
        parts.append({"text": prompt})
        return parts

    @staticmethod
    def _first_candidate_parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback")
            logger.warning("Gemini returned no candidates (feedback=%s)", feedback)
            return []
        content = candidates[0].get("content") or {}
        return content.get("parts") or []

    async def _post(
        self, model: str, body: Dict[str, Any], timeout: httpx.Timeout
    ) -> Optional[Dict[str, Any]]:
        """POST to ``models/{model}:generateContent``; None on any failure."""
        if not self.is_configured:
            logger.error("Gemini call skipped: GEMINI_API_KEY is not set")
            return None

        url = f"{self.base_url}/models/{model}:generateContent"
        async with self._get_semaphore():
            try:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    resp = await client.post(
                        url, json=body, headers={"x-goog-api-key": self.api_key}
                    )
                if resp.status_code == 200:
                    return resp.json()

                logger.error(
                    "Gemini %s returned HTTP %d: %s",
                    model,
                    resp.status_code,
                    resp.text[:300],
                )
                return None

            except httpx.TimeoutException:
                logger.error("Gemini %s request timed out", model)
                return None
            except httpx.ConnectError as exc:
                logger.error("Gemini %s connection error — %s", model, exc)
                return None
            except Exception as exc:
                logger.error("Gemini %s unexpected error — %s", model, exc)
                return None
