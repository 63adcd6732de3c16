"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
import threading

from library_backend.chat import ChatGateway
from library_backend.config import Settings, get_settings
from library_backend.db import (
    FileStateStore,
    InMemoryStateStore,
    SqlStateStore,
    StateStore,
    create_db_engine,
)
from library_backend.providers.base import CompletionProvider
from library_backend.providers.gemini import GeminiProvider
from library_backend.providers.openai_responses import OpenAIResponsesProvider
from library_backend.state import StateService
from library_backend.storage import (
    BackupStore,
    FileBackupStore,
    InMemoryBackupStore,
    S3BackupStore,
    SqlBackupStore,
)

logger = logging.getLogger(__name__)

# Guards lazy construction; re-entrant because the builders share _get_engine.
_singleton_lock = threading.RLock()
_engine = None
_state_service: StateService | None = None
_backup_store: BackupStore | None = None
_chat_gateway: ChatGateway | None = None


def _get_engine(settings: Settings):
    global _engine
    with _singleton_lock:
        if _engine is None:
            _engine = create_db_engine(settings.database_url)
        return _engine


def build_state_store(settings: Settings) -> StateStore:
    if settings.use_in_memory_backends:
        return InMemoryStateStore(settings.state_id)
    if settings.database_url:
        return SqlStateStore(state_id=settings.state_id, engine=_get_engine(settings))
    return FileStateStore(settings.data_dir, settings.state_id)


def build_backup_store(settings: Settings) -> BackupStore:
    if settings.use_in_memory_backends:
        return InMemoryBackupStore()
    if settings.backup_bucket:
        return S3BackupStore(
            bucket=settings.backup_bucket,
            region=settings.backup_region or "",
            endpoint=settings.backup_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            prefix=settings.backup_prefix,
        )
    if settings.database_url:
        return SqlBackupStore(engine=_get_engine(settings))
    return FileBackupStore(settings.resolved_backup_dir)


def build_chat_gateway(settings: Settings) -> ChatGateway:
    """OpenAI first, Gemini as fallback; either may be absent."""
    providers: list[CompletionProvider] = []
    if settings.openai_api_key:
        providers.append(
            OpenAIResponsesProvider(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                timeout=settings.openai_timeout_seconds,
                temperature=settings.openai_temperature,
            )
        )
    if settings.gemini_api_key and settings.gemini_model_list:
        providers.append(
            GeminiProvider(
                api_key=settings.gemini_api_key,
                models=settings.gemini_model_list,
                timeout=settings.gemini_timeout_seconds,
            )
        )
    if not providers:
        logger.warning("No chat provider configured; /chat will return 503")
    return ChatGateway(providers)


def get_state_service() -> StateService:
    """
    Return a singleton state service so every request shares one writer lock.
    """
    global _state_service
    if _state_service is not None:
        return _state_service
    with _singleton_lock:
        if _state_service is None:
            _state_service = StateService(build_state_store(get_settings()))
        return _state_service


def get_backup_store() -> BackupStore:
    global _backup_store
    if _backup_store is not None:
        return _backup_store
    with _singleton_lock:
        if _backup_store is None:
            _backup_store = build_backup_store(get_settings())
        return _backup_store


def get_chat_gateway() -> ChatGateway:
    global _chat_gateway
    if _chat_gateway is not None:
        return _chat_gateway
    with _singleton_lock:
        if _chat_gateway is None:
            _chat_gateway = build_chat_gateway(get_settings())
        return _chat_gateway
