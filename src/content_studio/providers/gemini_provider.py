from __future__ import annotations

import asyncio
import logging
from io import BytesIO
from typing import Any, Awaitable

import httpx
from PIL import Image

from content_studio.config import settings
from content_studio.errors import ProviderError
from content_studio.providers.base import GeneratedImage, ReferenceImage

logger = logging.getLogger(__name__)

_REFERENCE_PREAMBLE = (
    "[REFERENCE IMAGES PROVIDED ABOVE]\n\n"
    "Study the reference images carefully and reproduce:\n"
    "1. The exact style, colors and visual aesthetic\n"
    "2. The font style, size and effects if text is present\n"
    "3. The person's appearance, pose, expression and positioning\n"
    "4. The lighting, shadows and color grading\n"
    "5. The overall composition and layout\n\n"
    "[YOUR TASK]\n"
)


class GeminiProvider:
    name = "gemini"

    def __init__(self, api_key: str) -> None:
        # Imported lazily so the app can start without the dependency installed.
        from google import genai  # type: ignore
        from google.genai import errors, types  # type: ignore

        self._types = types
        self._api_error = errors.APIError
        self.client = genai.Client(api_key=api_key)
        self.model = settings.gemini_text_model
        self.image_model = settings.gemini_image_model

    async def generate_text(self, prompt: str, temperature: float = 0.7) -> str:
        resp = await self._generate_content(self.model, [prompt], temperature)
        return getattr(resp, "text", "") or ""

    async def analyze_video(self, prompt: str, video_url: str, temperature: float = 0.7) -> str:
        """
        Gemini reads public YouTube URLs directly when they are passed as file data.
        """
        types = self._types
        logger.info("Analyzing video %s with %s", video_url, self.model)
        contents: list[Any] = [
            types.Part(file_data=types.FileData(file_uri=video_url)),
            f"Analyze the video above ({video_url}).\n\n---\n\n{prompt}",
        ]
        resp = await self._generate_content(self.model, contents, temperature)
        return getattr(resp, "text", "") or ""

    async def analyze_images(self, prompt: str, images: list[ReferenceImage]) -> str:
        types = self._types
        contents: list[Any] = [prompt]
        for ref in images:
            contents.append(types.Part.from_bytes(data=ref.data, mime_type=ref.mime_type))
        resp = await self._generate_content(self.model, contents, temperature=0.4)
        return getattr(resp, "text", "") or ""

    async def generate(
        self,
        prompt: str,
        reference_images: list[ReferenceImage],
        n: int,
        aspect_ratio: str,
    ) -> list[GeneratedImage]:
        """
        Two paths depending on model family:
        - Imagen models: `models.generate_images(...)` (text-to-image, no references)
        - Gemini image preview models: `models.generate_content(...)` with image response modality
        """
        types = self._types
        model = self.image_model
        out: list[GeneratedImage] = []

        if model.startswith("imagen-"):
            resp = await self._call(
                model,
                self.client.aio.models.generate_images(
                    model=model,
                    prompt=prompt,
                    config=types.GenerateImagesConfig(number_of_images=n, aspect_ratio=aspect_ratio),
                ),
                timeout=settings.image_timeout_seconds,
            )
            for gi in getattr(resp, "generated_images", []) or []:
                img_bytes = getattr(getattr(gi, "image", None), "image_bytes", None)
                if not img_bytes:
                    continue
                out.append(
                    GeneratedImage(
                        image=Image.open(BytesIO(img_bytes)),
                        prompt_used=prompt,
                        provider=self.name,
                        model=model,
                        raw_metadata={},
                    )
                )
            return out

        enriched = f"{_REFERENCE_PREAMBLE}{prompt}" if reference_images else prompt
        # Image-preview models return one image per call, so loop until we hit n.
        for _ in range(max(1, n)):
            contents: list[Any] = [types.Part.from_bytes(data=r.data, mime_type=r.mime_type) for r in reference_images]
            contents.append(f"{enriched}\nDesired aspect ratio: {aspect_ratio}.")
            resp = await self._call(
                model,
                self.client.aio.models.generate_content(
                    model=model,
                    contents=contents,
                    config=types.GenerateContentConfig(
                        response_modalities=["IMAGE", "TEXT"],
                        image_config=types.ImageConfig(aspect_ratio=aspect_ratio),
                    ),
                ),
                timeout=settings.image_timeout_seconds,
            )

            extracted = _extract_images_from_generate_content(resp)
            for img, meta in extracted:
                out.append(
                    GeneratedImage(
                        image=img,
                        prompt_used=enriched,
                        provider=self.name,
                        model=model,
                        raw_metadata=meta | {"aspect_ratio": aspect_ratio},
                    )
                )
                if len(out) >= n:
                    return out

            # Stop early if we didn't get anything back this attempt.
            if not extracted:
                break
        return out

    async def _generate_content(self, model: str, contents: list[Any], temperature: float) -> Any:
        types = self._types
        return await self._call(
            model,
            self.client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=types.GenerateContentConfig(
                    temperature=temperature,
                    max_output_tokens=settings.max_output_tokens,
                ),
            ),
        )

    async def _call(self, model: str, request: Awaitable[Any], timeout: float | None = None) -> Any:
        try:
            if timeout is None:
                return await request
            return await asyncio.wait_for(request, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderError(f"image generation timed out ({timeout:.0f}s)", details={"model": model}) from exc
        except self._api_error as exc:
            raise _wrap_api_error(exc, model) from exc
        except httpx.HTTPError as exc:
            logger.error("Gemini request failed (%s): %s", model, exc)
            raise ProviderError(f"Could not reach the Gemini API: {exc}", details={"model": model}) from exc


def _wrap_api_error(exc: Exception, model: str) -> ProviderError:
    message = str(getattr(exc, "message", None) or exc)
    logger.error("Gemini request failed (%s): %s", model, message)
    lowered = message.lower()
    if "api key" in lowered:
        return ProviderError("The Gemini API key is invalid or missing.", details={"model": model})
    if "quota" in lowered or getattr(exc, "code", None) == 429:
        return ProviderError("The Gemini API quota has been exceeded.", details={"model": model})
    if "not found" in lowered or getattr(exc, "code", None) == 404:
        return ProviderError(f"Model '{model}' is not available.", details={"model": model})
    return ProviderError(f"AI generation failed: {message}", details={"model": model})


def _extract_images_from_generate_content(resp: Any) -> list[tuple[Image.Image, dict[str, Any]]]:
    out: list[tuple[Image.Image, dict[str, Any]]] = []
    for cand in getattr(resp, "candidates", []) or []:
        content = getattr(cand, "content", None)
        parts = getattr(content, "parts", None) or []
        for part in parts:
            inline = getattr(part, "inline_data", None)
            if not inline:
                continue
            mime = getattr(inline, "mime_type", None) or ""
            data = getattr(inline, "data", None)
            if not data:
                continue
            if mime and not mime.startswith("image/"):
                continue
            try:
                img = Image.open(BytesIO(data))
                img.load()
            except OSError:
                logger.warning("Skipping undecodable image part (%s)", mime)
                continue
            out.append((img, {"mime_type": mime}))
    return out
