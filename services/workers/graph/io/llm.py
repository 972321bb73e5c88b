"""Text-generation collaborator used by the delegated task classifier."""
from __future__ import annotations
from typing import Optional, Protocol
import asyncio
import logging

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    async def complete(self, prompt: str, *, system: Optional[str] = None, max_tokens: int = 500) -> str:
        ...


class OpenAIChatGenerator:
    """Chat-completions backed :class:`TextGenerator`."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-3.5-turbo",
        timeout: float = 30.0,
        temperature: float = 0.1,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def complete(self, prompt: str, *, system: Optional[str] = None, max_tokens: int = 500) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        response = await asyncio.wait_for(
            self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=max_tokens,
            ),
            timeout=self.timeout,
        )
        content = response.choices[0].message.content or ""
        logger.debug("llm response", extra={"model": self.model, "chars": len(content)})
        return content.strip()

    async def aclose(self) -> None:
        await self._client.close()
