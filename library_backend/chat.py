"""
Chat gateway: tries each configured completion provider in order.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Sequence

from library_backend.errors import ConfigurationMissing, UpstreamFailure
from library_backend.providers.base import ChatTurn, Completion, CompletionProvider

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 12


def normalize_history(raw: Any, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ChatTurn]:
    """
    Turn the browser-supplied history into ChatTurns.

    Items need a ``role`` of user/assistant and a non-empty ``text`` (or
    ``content``); anything else is dropped. Only the last ``limit`` turns
    are kept.
    """
    if not isinstance(raw, list):
        return []
    turns: List[ChatTurn] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        role = item.get("role")
        text = item.get("text", item.get("content"))
        if role not in ("user", "assistant"):
            continue
        if not isinstance(text, str) or not text.strip():
            continue
        turns.append(ChatTurn(role=role, text=text))
    if limit <= 0:
        return []
    return turns[-limit:]


class ChatGateway:
    def __init__(self, providers: Iterable[CompletionProvider]):
        self.providers: List[CompletionProvider] = list(providers)

    @property
    def provider_names(self) -> List[str]:
        return [provider.name for provider in self.providers]

    def chat(self, message: str, history: Sequence[ChatTurn]) -> Completion:
        if not self.providers:
            raise ConfigurationMissing(
                "No chat provider configured (set OPENAI_API_KEY or GEMINI_API_KEY)"
            )
        first_error: UpstreamFailure | None = None
        for provider in self.providers:
            try:
                completion = provider.complete(message, history)
            except UpstreamFailure as exc:
                logger.warning("Chat provider %s failed: %s", provider.name, exc)
                if first_error is None:
                    first_error = exc
                continue
            logger.info(
                "Chat answered by %s (%s)", completion.provider, completion.model
            )
            return completion
        raise first_error
