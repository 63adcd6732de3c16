"""
HTTP routes for the library backend API.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends

from library_backend.chat import ChatGateway, normalize_history
from library_backend.config import get_settings
from library_backend.dependencies import (
    get_backup_store,
    get_chat_gateway,
    get_state_service,
)
from library_backend.errors import BadRequest
from library_backend.schemas import (
    ArchivedPayload,
    ArchivedResponse,
    ArchiveStudentRequest,
    BackupRequest,
    BackupResponse,
    ChatProvidersStatus,
    ChatRequest,
    ChatResponse,
    HealthResponse,
    OkResponse,
    SettingsResponse,
    StudentsPayload,
    StudentsResponse,
    UploadRequest,
    UploadResponse,
)
from library_backend.state import StateService
from library_backend.storage import BackupStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _list_from_payload(payload: Any, key: str) -> Optional[list]:
    """Accept ``{key: [...]}`` or ``{data: {key: [...]}}``; None keeps the current list."""
    if payload is None:
        return None
    value = getattr(payload, key)
    if isinstance(value, list):
        return value
    nested = payload.data.get(key) if isinstance(payload.data, dict) else None
    if isinstance(nested, list):
        return nested
    return None


@router.get("/health", response_model=HealthResponse)
def health(
    state: StateService = Depends(get_state_service),
    backups: BackupStore = Depends(get_backup_store),
    gateway: ChatGateway = Depends(get_chat_gateway),
):
    names = gateway.provider_names
    return HealthResponse(
        ok=True,
        storage=state.describe(),
        backups=backups.describe(),
        chat=ChatProvidersStatus(openai="openai" in names, gemini="gemini" in names),
    )


@router.get("/data", response_model=StudentsResponse)
def get_data(state: StateService = Depends(get_state_service)):
    return StudentsResponse(students=state.students())


@router.post("/data", response_model=OkResponse)
def save_data(
    payload: Optional[StudentsPayload] = None,
    state: StateService = Depends(get_state_service),
):
    state.replace_students(_list_from_payload(payload, "students"))
    return OkResponse()


@router.get("/archive", response_model=ArchivedResponse)
def get_archive(state: StateService = Depends(get_state_service)):
    return ArchivedResponse(archived=state.archived())


@router.post("/archive", response_model=OkResponse)
def save_archive(
    payload: Optional[ArchivedPayload] = None,
    state: StateService = Depends(get_state_service),
):
    state.replace_archived(_list_from_payload(payload, "archived"))
    return OkResponse()


@router.post("/archive/student", response_model=OkResponse)
def archive_student(
    payload: Optional[ArchiveStudentRequest] = None,
    state: StateService = Depends(get_state_service),
):
    student_id = payload.studentId if payload else None
    # Any falsy id, including 0 and false, counts as missing.
    if not student_id:
        raise BadRequest("studentId required")
    # An unknown id means the student was already moved; still a success.
    state.archive_student(student_id)
    return OkResponse()


@router.post("/upload", response_model=UploadResponse)
def upload(payload: Optional[UploadRequest] = None):
    """Images stay inline: the data URL is echoed back as the stored URL."""
    if not payload or not isinstance(payload.image, str) or not payload.image:
        raise BadRequest("image required")
    return UploadResponse(url=payload.image)


@router.post("/backup", response_model=BackupResponse, response_model_exclude_none=True)
def create_backup(
    payload: Optional[BackupRequest] = None,
    backups: BackupStore = Depends(get_backup_store),
):
    if not payload or payload.data is None:
        raise BadRequest("data required")
    record = backups.create(payload.data)
    logger.info("Created backup %s in %s store", record.backup_id, backups.describe())
    return BackupResponse(backup=record.backup_id, backupFile=record.location)


@router.get("/restore/{backup_id}")
def restore_backup(
    backup_id: str,
    backups: BackupStore = Depends(get_backup_store),
):
    return backups.get(backup_id).data


@router.get("/settings")
def get_app_settings(state: StateService = Depends(get_state_service)) -> dict:
    return state.settings()


@router.post("/settings", response_model=SettingsResponse)
def update_app_settings(
    payload: Optional[dict] = Body(None),
    state: StateService = Depends(get_state_service),
):
    merged = state.merge_settings(payload or {})
    return SettingsResponse(settings=merged)


@router.post("/chat", response_model=ChatResponse)
def chat(
    payload: Optional[ChatRequest] = None,
    gateway: ChatGateway = Depends(get_chat_gateway),
):
    message = payload.message if payload else None
    if not isinstance(message, str) or not message.strip():
        raise BadRequest("message is required")
    history = normalize_history(payload.history, get_settings().chat_history_limit)
    completion = gateway.chat(message, history)
    return ChatResponse(
        reply=completion.text,
        text=completion.text,
        provider=completion.provider,
        model=completion.model,
    )
