"""
Data model for Health Connect.

Wire-facing models use camelCase aliases (``sessionId``, ``modelType``) and
accept snake_case names too. Request schemas normalize their input: numeric
strings become numbers, habit flags accept ``"true"``/``"false"`` strings,
and documented defaults are filled in, so the result can be fingerprinted
directly.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_MODEL = "gemini-flash-lite-latest"
REASONING_MODEL = "gemini-2.5-flash"
ALLOWED_MODELS = ("gemini-flash-lite-latest", "gemini-flash-latest", "gemini-2.5-flash")

CHAT = "chat"
SYMPTOM_CHECKER = "symptom-checker"
ALLOWED_MODES = (CHAT, SYMPTOM_CHECKER)

NONE_REPORTED = "None reported"
REASONING_MARKER = "THINKING PROCESS: "

Role = Literal["user", "model"]
Mode = Literal["chat", "symptom-checker"]
Number = Union[int, float]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------


class Message(CamelModel):
    """One conversation turn."""

    role: Role
    text: str
    timestamp: datetime = Field(default_factory=utcnow)


class Session(CamelModel):
    """A durable conversation record."""

    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    model_type: str = DEFAULT_MODEL
    mode: Mode = CHAT
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


@dataclass(frozen=True)
class GenerationConfig:
    """Provider configuration derived from a session's mode and model."""

    system_instruction: Optional[str] = None
    thinking_budget: Optional[int] = None


@dataclass(frozen=True)
class Chunk:
    """One unit of streamed model output.

    ``kind`` is ``"text"`` for answer text and ``"reasoning"`` for a
    thinking trace the provider reported separately.
    """

    text: str
    kind: Literal["text", "reasoning"] = "text"

    def render(self) -> str:
        if self.kind == "reasoning":
            return f"{REASONING_MARKER}{self.text}\n"
        return self.text


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


def _coerce_flag(value: Any) -> Any:
    # Only the literal string "true" is truthy; other strings are False.
    if isinstance(value, str):
        return value.strip() == "true"
    return value


class CreateSessionRequest(CamelModel):
    model_type: Optional[str] = None
    mode: Optional[str] = None


class SendMessageRequest(CamelModel):
    session_id: str = Field(min_length=1)
    message: str = Field(min_length=1)


class HealthInsightsRequest(CamelModel):
    """Profile summary input: body measurements only."""

    model_type: Optional[str] = None
    age: Number
    gender: str
    height: Number
    weight: Number
    bmi: Number
    bmi_category: str
    blood_glucose: Number


class AdvancedHealthRequest(HealthInsightsRequest):
    """Full lifestyle record for the seven-category analysis."""

    sleep_hours: Number
    sleep_quality: str
    exercise_hours: Number
    stress_level: Number
    water_intake: Number
    caffeine: Number
    diet: str

    regular_meals: bool
    late_night_snacking: bool
    high_sugar: bool
    fast_food: bool

    smoking: str
    alcohol_consumption: str

    medical_conditions: str = NONE_REPORTED
    medications: str = NONE_REPORTED
    family_history: str = NONE_REPORTED

    @field_validator(
        "regular_meals", "late_night_snacking", "high_sugar", "fast_food", mode="before"
    )
    @classmethod
    def coerce_flags(cls, value: Any) -> Any:
        return _coerce_flag(value)


class WellnessEntryRequest(CamelModel):
    entry: str = Field(min_length=10)
    date: Optional[str] = None


class HealthHistoryRequest(CamelModel):
    user_id: str = Field(min_length=1)
    health_data: Dict[str, Any] = Field(default_factory=dict)
    analysis: List[Dict[str, Any]] = Field(default_factory=list)
    time_of_day: Optional[str] = None
    day_of_week: Optional[str] = None


class HealthHistoryEntry(HealthHistoryRequest):
    """A stored health snapshot for one user."""

    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    date: datetime = Field(default_factory=utcnow)
