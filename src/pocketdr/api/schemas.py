"""Pydantic request/response schemas for the PocketDr API."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from pocketdr.models.base import ConversationTurn, Speaker
from pocketdr.prompts.composer import UserProfile

# --- Request Schemas ---


class TurnPayload(BaseModel):
    role: str = "user"
    text: str

    @field_validator("role")
    @classmethod
    def _normalize_role(cls, value: str) -> str:
        role = value.strip().lower()
        # The backend labels its own turns "model".
        if role == "model":
            role = Speaker.ASSISTANT.value
        if role not in {s.value for s in Speaker}:
            raise ValueError(f"Unknown role: {value}")
        return role

    def to_turn(self) -> ConversationTurn:
        return ConversationTurn(speaker=Speaker(self.role), text=self.text)


class ProfilePayload(BaseModel):
    name: str | None = None
    age: int | None = None
    gender: str | None = None
    height_cm: float | None = None
    weight_kg: float | None = None
    blood_type: str | None = None
    allergies: str | None = None
    medical_conditions: str | None = None

    def to_profile(self) -> UserProfile:
        return UserProfile.from_mapping(self.model_dump())


class ChatRequest(BaseModel):
    message: str
    history: list[TurnPayload] = Field(default_factory=list)
    profile: ProfilePayload | None = None
    guest: bool = False


# --- Response Schemas ---


class ChatResponse(BaseModel):
    text: str = ""
    model: str | None = None
    error: str | None = None


class HealthResponse(BaseModel):
    status: str
    version: str


class ModelInfo(BaseModel):
    name: str
    system_instruction: bool
    priority: int
