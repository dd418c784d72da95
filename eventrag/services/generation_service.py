"""
Generation Service
Single-prompt text generation with a chat model.
"""
import openai
import structlog
from openai import AsyncOpenAI

from eventrag.config import Settings
from eventrag.exceptions import GenerationFailure, GenerationTimeout
from eventrag.services.llm_client import translate_openai_error

logger = structlog.get_logger()


class GenerationService:
    """Sends a prompt to the chat model and returns its text."""

    def __init__(self, client: AsyncOpenAI, settings: Settings):
        self.client = client
        self.model = settings.generation_model

    async def generate(self, prompt: str, temperature: float = 0.2) -> str:
        """
        Generate a completion for a prompt.

        Raises:
            GenerationFailure: request failed or returned no text
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
            )
        except openai.OpenAIError as e:
            failure = translate_openai_error(e, GenerationFailure, GenerationTimeout, "generate text")
            logger.error("Text generation failed", error=str(failure), transient=failure.transient)
            raise failure from e

        text = response.choices[0].message.content if response.choices else None
        if not text or not text.strip():
            raise GenerationFailure("Failed to generate text: empty response")
        return text
