"""
Pydantic schemas for the library backend.

Request bodies are deliberately loose: the browser client sends partial
payloads and missing fields are reported as 400s by the routes.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel


class StudentsPayload(BaseModel):
    students: Any = None
    data: Any = None


class StudentsResponse(BaseModel):
    students: list


class ArchivedPayload(BaseModel):
    archived: Any = None
    data: Any = None


class ArchivedResponse(BaseModel):
    archived: list


class ArchiveStudentRequest(BaseModel):
    studentId: Any = None


class OkResponse(BaseModel):
    ok: Literal[True] = True


class UploadRequest(BaseModel):
    image: Any = None


class UploadResponse(BaseModel):
    url: str


class BackupRequest(BaseModel):
    data: Any = None


class BackupResponse(BaseModel):
    ok: Literal[True] = True
    backup: str
    backupFile: Optional[str] = None


class SettingsResponse(BaseModel):
    ok: Literal[True] = True
    settings: dict


class ChatRequest(BaseModel):
    message: Any = None
    history: Any = None


class ChatResponse(BaseModel):
    reply: str
    text: str
    provider: str
    model: str


class ChatProvidersStatus(BaseModel):
    openai: bool
    gemini: bool


class HealthResponse(BaseModel):
    ok: bool
    storage: str
    backups: str
    chat: ChatProvidersStatus
