"""
Message models shared by the HTTP API and the voice WebSocket
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReplyType(str, Enum):
    """Kind of assistant reply"""
    CALCULATION = "calculation"
    GET_DATE = "get-date"
    GET_TIME = "get-time"
    GET_DAY = "get-day"
    GET_MONTH = "get-month"
    GENERAL = "general"

    @classmethod
    def date_time_values(cls) -> set[str]:
        return {cls.GET_DATE.value, cls.GET_TIME.value, cls.GET_DAY.value, cls.GET_MONTH.value}


class AssistantReply(BaseModel):
    """Typed reply to a user query; never persisted"""
    model_config = ConfigDict(use_enum_values=True)

    type: ReplyType
    response: str


# ============================================================
# HTTP request / response models
# ============================================================

class SignUpRequest(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""


class SignInRequest(BaseModel):
    email: str = ""
    password: str = ""


class AskRequest(BaseModel):
    command: str = Field(default="", max_length=2000)


class UserResponse(BaseModel):
    """Public view of a user profile (no credential)"""
    id: str
    name: str
    email: str
    assistantName: Optional[str] = None
    assistantImage: Optional[str] = None
    history: list[str] = Field(default_factory=list)
    createdAt: datetime
    updatedAt: datetime

    @classmethod
    def from_record(cls, record: dict, history: Optional[list[str]] = None) -> "UserResponse":
        return cls(
            id=record["id"],
            name=record["name"],
            email=record["email"],
            assistantName=record.get("assistant_name"),
            assistantImage=record.get("assistant_image"),
            history=history or [],
            createdAt=datetime.fromtimestamp(record["created_at"]),
            updatedAt=datetime.fromtimestamp(record["updated_at"]),
        )


class HistoryResponse(BaseModel):
    history: list[str]
    total: int


# ============================================================
# Voice WebSocket protocol
# ============================================================

ClientEventName = Literal[
    "ready",
    "recognition_start",
    "recognition_end",
    "recognition_error",
    "result",
    "interrupt_result",
    "interrupt_error",
    "speech_start",
    "speech_end",
    "logout",
]

CommandName = Literal[
    "start_recognition",
    "stop_recognition",
    "start_interrupt",
    "stop_interrupt",
    "speak",
    "cancel_speech",
]


class ClientEvent(BaseModel):
    """Speech platform event forwarded by the browser"""
    event: ClientEventName
    transcript: Optional[str] = None
    error: Optional[str] = None


class LoopCommand(BaseModel):
    """Instruction for the browser's speech APIs"""
    type: Literal["command"] = "command"
    command: CommandName
    text: Optional[str] = None


class StateMessage(BaseModel):
    """Speech loop state snapshot for the UI"""
    type: Literal["state"] = "state"
    state: str
    listening: bool
    speaking: bool
    user_text: str = ""
    ai_text: str = ""


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    error: str
    code: str
