from __future__ import annotations

import logging

from content_studio.config import settings
from content_studio.errors import ProviderError
from content_studio.providers.base import ReferenceImage

logger = logging.getLogger(__name__)


class OpenAITextProvider:
    name = "openai"

    def __init__(self, api_key: str) -> None:
        from openai import AsyncOpenAI, OpenAIError  # type: ignore

        self._openai_error = OpenAIError
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = settings.openai_text_model

    async def generate_text(self, prompt: str, temperature: float = 0.7) -> str:
        # The Responses API is the forward path; keep it minimal.
        try:
            resp = await self.client.responses.create(
                model=self.model,
                input=prompt,
                temperature=temperature,
                max_output_tokens=settings.max_output_tokens,
            )
        except self._openai_error as exc:
            logger.error("OpenAI request failed (%s): %s", self.model, exc)
            raise ProviderError(f"AI generation failed: {exc}", details={"model": self.model}) from exc
        return getattr(resp, "output_text", "") or ""

    async def analyze_video(self, prompt: str, video_url: str, temperature: float = 0.7) -> str:
        raise ProviderError("Video analysis requires the gemini text provider", details={"model": self.model})

    async def analyze_images(self, prompt: str, images: list[ReferenceImage]) -> str:
        raise ProviderError("Image analysis requires the gemini text provider", details={"model": self.model})
