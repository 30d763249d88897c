from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from content_studio.access import AccessDuration


class LoginRequest(BaseModel):
    email: str
    password: str


class DurationModel(BaseModel):
    type: Literal["preset", "custom", "date"] = "preset"
    preset: str | None = None
    days: int | None = None
    date: str | None = None

    def to_duration(self) -> AccessDuration:
        return AccessDuration(type=self.type, preset=self.preset, days=self.days, date=self.date)


class CreateUserRequest(BaseModel):
    email: str
    password: str
    display_name: str | None = None
    role: Literal["admin", "instructor", "student"] = "student"
    duration: DurationModel | None = None


class UpdateAccessRequest(BaseModel):
    duration: DurationModel = Field(default_factory=DurationModel)


class ResetPasswordRequest(BaseModel):
    new_password: str


class StartSessionRequest(BaseModel):
    tool: str
    inputs: dict[str, Any] = Field(default_factory=dict)


class RunStepRequest(BaseModel):
    instructions: str | None = None
    message: str | None = None


class ConfirmStepRequest(BaseModel):
    selection: list[int] | None = None
    edited: Any = None


class RefineStepRequest(BaseModel):
    instruction: str
    kind: Literal["text", "script", "structure"] = "text"


class RefineRequest(BaseModel):
    content: str
    instruction: str
    context: Any = None
    kind: Literal["text", "script", "structure"] = "text"


class SaveSessionRequest(BaseModel):
    title: str | None = None


class ExportRequest(BaseModel):
    format: str = "png"
    text: str | None = None
    layered: bool = False
    width: int | None = Field(default=None, gt=0, le=4096)
    height: int | None = Field(default=None, gt=0, le=4096)


class SaveCreationRequest(BaseModel):
    title: str | None = None
    type: str
    content: Any


class UpdateArtifactRequest(BaseModel):
    content: Any
