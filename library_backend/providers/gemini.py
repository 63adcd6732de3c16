"""
Fallback chat provider: Gemini, trying an ordered list of models.
"""

from __future__ import annotations

import logging
import time
from typing import List, Sequence

from google import genai
from google.genai import types

from library_backend.errors import UpstreamFailure
from library_backend.providers.base import SYSTEM_INSTRUCTION, ChatTurn, Completion

logger = logging.getLogger(__name__)

DEFAULT_MODELS = ("gemini-2.5-flash", "gemini-2.0-flash")
QUERY_RESPONSE_MAX_OUTPUT_TOKENS = 2048


class GeminiInvalidResponseException(Exception):
    pass


def build_gemini_contents(
    message: str, history: Sequence[ChatTurn]
) -> List[types.Content]:
    contents = [
        types.Content(
            role="model" if turn.role == "assistant" else "user",
            parts=[types.Part(text=turn.text)],
        )
        for turn in history
    ]
    contents.append(types.Content(role="user", parts=[types.Part(text=message)]))
    return contents


class GeminiProvider:
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        models: Sequence[str] = DEFAULT_MODELS,
        timeout: float = 20.0,
        temperature: float = 0.4,
    ):
        if not api_key:
            raise ValueError("Gemini api_key is required")
        if not models:
            raise ValueError("At least one Gemini model is required")
        self.models = list(models)
        self.temperature = temperature
        self.client = genai.Client(
            api_key=api_key,
            # HttpOptions.timeout is in milliseconds.
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )

    def _call_model(self, model: str, contents: List[types.Content]) -> str:
        response = self.client.models.generate_content(
            model=model,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_INSTRUCTION,
                temperature=self.temperature,
                max_output_tokens=QUERY_RESPONSE_MAX_OUTPUT_TOKENS,
            ),
        )
        if not response.text:
            raise GeminiInvalidResponseException(f"{model} returned no text")
        return response.text

    def complete(self, message: str, history: Sequence[ChatTurn]) -> Completion:
        contents = build_gemini_contents(message, history)
        last_error: Exception | None = None
        for model in self.models:
            start_time = time.time()
            try:
                text = self._call_model(model, contents)
            except Exception as e:
                logger.warning("Gemini model %s failed: %s", model, e)
                last_error = e
                continue
            logger.info(
                "Gemini model %s answered in %.2fs", model, time.time() - start_time
            )
            return Completion(text=text, provider=self.name, model=model)
        raise UpstreamFailure(f"Gemini failed for all models: {last_error}")
