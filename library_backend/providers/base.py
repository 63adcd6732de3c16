"""
Shared types and prompt for chat completion providers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol, Sequence

SYSTEM_INSTRUCTION = (
    "You are SSL Bot for Savitri Success Library. "
    "Answer in simple Hinglish. Be concise and helpful."
)


@dataclass(frozen=True)
class ChatTurn:
    role: Literal["user", "assistant"]
    text: str


@dataclass(frozen=True)
class Completion:
    text: str
    provider: str
    model: str


class CompletionProvider(Protocol):
    """One upstream LLM API. Raises UpstreamFailure or UpstreamTimeout."""

    name: str

    def complete(self, message: str, history: Sequence[ChatTurn]) -> Completion:
        ...
