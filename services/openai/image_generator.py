"""Detoxified image generation via the OpenAI Images API."""

from __future__ import annotations

import base64
import logging
import time
from typing import Any, Optional

import aiohttp
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class ImageGenerator:
    """Turn a text prompt into image bytes.

    The Images API answers with either a temporary URL or inline base64
    data; URLs are downloaded immediately since they expire.

    Args:
        client: Shared AsyncOpenAI client.
        model: Image model name.
        size: Output resolution.
        quality: Model quality setting.
        http_session: Optional aiohttp session reused for downloads.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "dall-e-3",
        size: str = "1024x1024",
        quality: str = "hd",
        http_session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model
        self.size = size
        self.quality = quality
        self.http_session = http_session

    async def generate(self, prompt: str) -> bytes:
        """Generate one image for `prompt` and return its bytes."""
        if not prompt or not prompt.strip():
            raise ValueError("A generation prompt is required.")

        start = time.time()
        try:
            response = await self.client.images.generate(
                model=self.model,
                prompt=prompt,
                n=1,
                size=self.size,
                quality=self.quality,
            )
        except Exception as exc:
            logger.error("Error during OpenAI image generation: %s", exc)
            raise

        image_bytes = await self._extract_bytes(response)
        logger.info("Generated %d-byte image in %.2fs", len(image_bytes), time.time() - start)
        return image_bytes

    async def _extract_bytes(self, response: Any) -> bytes:
        data = getattr(response, "data", None) or []
        if not data:
            raise RuntimeError("Image generation response contained no images.")

        first = data[0]
        b64_json = getattr(first, "b64_json", None)
        if b64_json:
            return base64.b64decode(b64_json)

        url = getattr(first, "url", None)
        if not url:
            raise RuntimeError("Image generation response had neither a URL nor inline data.")
        return await self.download(url)

    async def download(self, url: str) -> bytes:
        """Fetch generated image bytes from the temporary URL."""
        if self.http_session is not None:
            return await self._fetch(self.http_session, url)
        async with aiohttp.ClientSession() as session:
            return await self._fetch(session, url)

    @staticmethod
    async def _fetch(session: aiohttp.ClientSession, url: str) -> bytes:
        async with session.get(url) as response:
            if response.status != 200:
                raise RuntimeError(f"Downloading generated image failed with status {response.status}")
            return await response.read()
