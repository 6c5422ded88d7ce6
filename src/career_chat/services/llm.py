"""Generation provider backed by Google's Gemini models."""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import google.generativeai as genai
import structlog
from google.api_core import exceptions
from google.generativeai.types import GenerationConfig

from ..domain.errors import GenerationError
from ..domain.models import Role, Turn

logger = structlog.get_logger()

DEFAULT_MODEL = "gemini-1.5-flash"

# Gemini calls the assistant side of a conversation "model"
_GEMINI_ROLES = {Role.USER: "user", Role.ASSISTANT: "model"}


class GenerationProvider(ABC):
    """Stateless text generation: instruction plus turns in, one turn out."""

    @abstractmethod
    async def generate(
        self, system_instruction: str, turns: Sequence[Turn], temperature: float = 0.7
    ) -> str:
        """Return the text of the next assistant turn or raise GenerationError."""
        pass


class GeminiProvider(GenerationProvider):
    """Generation provider using the Gemini API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = DEFAULT_MODEL,
        timeout: float = 60.0,
    ) -> None:
        """Initialize the provider. Without an API key every call fails."""
        self.model_name = model_name
        self.timeout = timeout
        self.configured = bool(api_key)
        if api_key:
            genai.configure(api_key=api_key)
        logger.info("llm_service_init", model=model_name, configured=self.configured)

    @staticmethod
    def to_contents(turns: Sequence[Turn]) -> List[Dict[str, object]]:
        """Convert turns into Gemini ``contents`` entries."""
        return [
            {"role": _GEMINI_ROLES[turn.role], "parts": [turn.content]}
            for turn in turns
        ]

    async def generate(
        self, system_instruction: str, turns: Sequence[Turn], temperature: float = 0.7
    ) -> str:
        if not self.configured:
            raise GenerationError("Generation provider is not configured (missing GEMINI_API_KEY)")
        if not turns:
            raise GenerationError("Cannot generate a reply without any turns")

        model = genai.GenerativeModel(self.model_name, system_instruction=system_instruction)
        config = GenerationConfig(temperature=temperature)

        try:
            response = await asyncio.wait_for(
                model.generate_content_async(self.to_contents(turns), generation_config=config),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("generation_timeout", model=self.model_name, timeout=self.timeout)
            raise GenerationError("Generation timed out", cause=e) from e
        except exceptions.ResourceExhausted as e:
            logger.warning("gemini_quota_exhausted", model=self.model_name)
            raise GenerationError("Generation quota exhausted", cause=e) from e
        except exceptions.GoogleAPIError as e:
            logger.error("response_generation_error", model=self.model_name, error=str(e))
            raise GenerationError(f"Generation failed: {e}", cause=e) from e

        if not response.parts:
            logger.error("empty_generation", model=self.model_name)
            raise GenerationError("Generation returned an empty response")

        text = response.text.strip()
        if not text:
            raise GenerationError("Generation returned an empty response")

        logger.info(
            "generation_complete",
            model=self.model_name,
            turns=len(turns),
            response_length=len(text),
        )
        return text
