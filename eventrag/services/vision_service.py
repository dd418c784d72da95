"""
Vision Service
Uses a vision-capable chat model to turn indoor-map images into text.
"""
import base64

import openai
import structlog
from openai import AsyncOpenAI

from eventrag.config import Settings
from eventrag.exceptions import DescriptionFailure, DescriptionTimeout
from eventrag.services.llm_client import translate_openai_error
from eventrag.services.prompts import INDOOR_MAP_PROMPT

logger = structlog.get_logger()


class VisionService:
    """Generates text descriptions of images."""

    def __init__(self, client: AsyncOpenAI, settings: Settings):
        self.client = client
        self.model = settings.vision_model

    async def describe_image(self, image_bytes: bytes, mime_type: str) -> str:
        """
        Describe an image with the vision model.

        Args:
            image_bytes: Raw image data
            mime_type: MIME type of the image (e.g. image/png)

        Returns:
            Free-text description

        Raises:
            DescriptionFailure: request failed or returned no text
        """
        b64_image = base64.b64encode(image_bytes).decode("utf-8")
        messages = [{
            "role": "user",
            "content": [
                {"type": "text", "text": INDOOR_MAP_PROMPT},
                {
                    "type": "image_url",
                    "image_url": {
                        "url": f"data:{mime_type};base64,{b64_image}",
                        "detail": "high",
                    },
                },
            ],
        }]

        logger.info("Describing image", mime_type=mime_type, size_bytes=len(image_bytes))
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.3,
            )
        except openai.OpenAIError as e:
            failure = translate_openai_error(e, DescriptionFailure, DescriptionTimeout, "describe image")
            logger.error("Image description failed", error=str(failure), transient=failure.transient)
            raise failure from e

        description = response.choices[0].message.content if response.choices else None
        if not description or not description.strip():
            raise DescriptionFailure("Failed to describe image: empty response")

        snippet = description[:80].replace("\n", " ")
        logger.info("Image described", characters=len(description), preview=snippet)
        return description
