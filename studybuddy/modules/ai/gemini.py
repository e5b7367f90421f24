"""Gemini text generation behind a small async interface."""

import logging
from typing import List, Optional, Protocol

import google.generativeai as genai

from studybuddy.config import settings
from studybuddy.core.exceptions import GenerationError
from studybuddy.modules.ai.schemas import Turn

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    async def generate(
        self,
        turns: List[Turn],
        *,
        temperature: float = 0.7,
        max_output_tokens: int = 2000,
    ) -> str: ...


class GeminiGenerator:
    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        self.api_key = api_key or settings.gemini_api_key
        self.model_name = model_name or settings.gemini_model
        self._model = None

    def _get_model(self):
        # Key is checked per call; construction never fails
        if not self.api_key:
            raise GenerationError("Gemini API key is not configured. Set GEMINI_API_KEY.")
        if self._model is None:
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model_name)
        return self._model

    async def generate(
        self,
        turns: List[Turn],
        *,
        temperature: float = 0.7,
        max_output_tokens: int = 2000,
    ) -> str:
        model = self._get_model()
        contents = [{"role": turn.role, "parts": [turn.text]} for turn in turns]
        try:
            response = await model.generate_content_async(
                contents,
                generation_config=genai.GenerationConfig(
                    temperature=temperature,
                    max_output_tokens=max_output_tokens,
                    top_p=0.95,
                    top_k=40,
                ),
            )
            # .text raises ValueError when the candidate has no text parts (e.g. blocked)
            text = response.text
        except Exception as e:
            logger.error(f"Gemini API error ({self.model_name}): {e}")
            raise GenerationError(f"Failed to generate content with Gemini: {e}")

        if not text or not text.strip():
            raise GenerationError("Invalid response format from Gemini API")
        return text
