# services/openai_service.py
from __future__ import annotations

import time
from typing import Optional, Protocol

from openai import AsyncOpenAI, OpenAIError

from app.config import require_openai, settings
from app.core.logging import get_logger

logger = get_logger().bind(module="openai_service")


class OracleError(RuntimeError):
    """The text-generation call failed or returned nothing usable."""


class TextOracle(Protocol):
    async def generate_text(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_tokens: int,
    ) -> str: ...


class OpenAIService:
    """
    Chat-completion oracle: system + user prompt in, free text out.
    Callers treat the output as untrusted (JSON extraction happens upstream).
    """

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        timeout_s: Optional[int] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model or settings.OPENAI_MODEL
        self.timeout_s = timeout_s or settings.OPENAI_TIMEOUT_S
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """Built on first use; the key is only required once a call is made."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key or require_openai(), timeout=self.timeout_s)
        return self._client

    async def generate_text(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        try:
            client = self.client
        except RuntimeError as exc:
            raise OracleError(str(exc)) from exc

        t0 = time.perf_counter()
        try:
            completion = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            logger.warning("openai_call_failed", model=self.model, error=str(exc))
            raise OracleError(f"OpenAI call failed: {exc}") from exc

        choices = getattr(completion, "choices", None) or []
        text = (choices[0].message.content or "") if choices else ""
        usage = getattr(completion, "usage", None)
        logger.info(
            "openai_call_ok",
            model=self.model,
            duration_ms=int((time.perf_counter() - t0) * 1000),
            prompt_tokens=getattr(usage, "prompt_tokens", None),
            completion_tokens=getattr(usage, "completion_tokens", None),
            chars=len(text),
        )
        return text.strip()
