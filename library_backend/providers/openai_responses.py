"""
Primary chat provider: the OpenAI Responses API over plain HTTPS.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from library_backend.errors import UpstreamFailure, UpstreamTimeout
from library_backend.providers.base import SYSTEM_INSTRUCTION, ChatTurn, Completion

logger = logging.getLogger(__name__)

OPENAI_RESPONSES_URL = "https://api.openai.com/v1/responses"
REQUEST_TIMEOUT = 20  # seconds


def build_openai_input(
    message: str, history: Sequence[ChatTurn]
) -> List[Dict[str, str]]:
    """Developer instruction, then the prior turns, then the new user message."""
    items = [{"role": "developer", "content": SYSTEM_INSTRUCTION}]
    items.extend({"role": turn.role, "content": turn.text} for turn in history)
    items.append({"role": "user", "content": message})
    return items


def _response_text_from_output(output: Any) -> str:
    texts: List[str] = []
    if not isinstance(output, list):
        return ""
    for item in output:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        content = item.get("content")
        for block in content if isinstance(content, list) else []:
            if isinstance(block, dict) and block.get("type") == "output_text":
                text = block.get("text")
                if isinstance(text, str) and text:
                    texts.append(text)
    return "\n".join(texts).strip()


class OpenAIResponsesProvider:
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-5",
        timeout: float = REQUEST_TIMEOUT,
        temperature: Optional[float] = 0.4,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ValueError("OpenAI api_key is required")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.session = session or requests.Session()

    def complete(self, message: str, history: Sequence[ChatTurn]) -> Completion:
        payload: Dict[str, Any] = {
            "model": self.model,
            "input": build_openai_input(message, history),
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature

        try:
            response = self.session.post(
                OPENAI_RESPONSES_URL,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                json=payload,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise UpstreamTimeout(
                f"OpenAI request timed out after {self.timeout:g}s"
            ) from exc
        except requests.RequestException as exc:
            raise UpstreamFailure(f"OpenAI request failed: {exc}") from exc

        if not response.ok:
            raise UpstreamFailure(f"OpenAI error {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamFailure("OpenAI returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise UpstreamFailure("OpenAI returned an unexpected payload")

        text = data.get("output_text")
        if not isinstance(text, str) or not text:
            text = _response_text_from_output(data.get("output"))
        if not text:
            raise UpstreamFailure("OpenAI returned an empty response")
        return Completion(
            text=text, provider=self.name, model=str(data.get("model") or self.model)
        )
