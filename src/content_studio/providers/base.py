from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from PIL import Image


@dataclass(frozen=True)
class GeneratedImage:
    image: Image.Image
    prompt_used: str
    provider: str
    model: str
    raw_metadata: dict[str, Any]


@dataclass(frozen=True)
class ReferenceImage:
    data: bytes
    mime_type: str = "image/jpeg"


class TextProvider(Protocol):
    name: str
    model: str

    async def generate_text(self, prompt: str, temperature: float = 0.7) -> str: ...

    async def analyze_video(self, prompt: str, video_url: str, temperature: float = 0.7) -> str: ...

    async def analyze_images(self, prompt: str, images: list[ReferenceImage]) -> str: ...


class ImageProvider(Protocol):
    name: str
    model: str

    async def generate(
        self,
        prompt: str,
        reference_images: list[ReferenceImage],
        n: int,
        aspect_ratio: str,
    ) -> list[GeneratedImage]: ...
