# wellness_api/schemas/chat.py
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from wellness_api.schemas.report import SessionType


class ChatMessage(BaseModel):
    sender: Literal["user", "ai"]
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage]
    endSession: bool = False
    sessionType: SessionType = "text"
    sessionDuration: int = Field(default=0, ge=0)


class ConversationTurn(BaseModel):
    content: str
    sender: Literal["ai"] = "ai"


class StructuredReport(BaseModel):
    """The terminal artifact of a coaching session, exactly as the model is asked to emit it."""
    mood: int = Field(ge=1, le=10)
    stress_score: int = Field(ge=1, le=10)
    anxious_level: int = Field(ge=1, le=10)
    work_satisfaction: int = Field(ge=1, le=10)
    work_life_balance: int = Field(ge=1, le=10)
    energy_level: int = Field(ge=1, le=10)
    confident_level: int = Field(ge=1, le=10)
    sleep_quality: int = Field(ge=1, le=10)
    complete_report: str = Field(min_length=1)
    key_insights: List[str] = []
    recommendations: List[str] = []


CoachReply = Union[ConversationTurn, StructuredReport]


class ChatResponse(BaseModel):
    type: Literal["report", "message"]
    data: CoachReply
    report_id: Optional[str] = None
