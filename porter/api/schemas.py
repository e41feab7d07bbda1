"""
Request and response bodies for the HTTP API

Field names on the wire are camelCase; Python attributes are snake_case.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatDetailedRequest(_ApiModel):
    # Optional so a missing message is answered with our own 400
    message: Optional[str] = None
    language: str = "English"
    user_role: str = Field("middle_management", alias="userRole")
    dashboard_data: Optional[Dict[str, Any]] = Field(None, alias="dashboardData")
    conversation_history: List[Dict[str, Any]] = Field(default_factory=list, alias="conversationHistory")
    screenshot_url: Optional[str] = Field(None, alias="screenshotUrl")


class ChatRequest(ChatDetailedRequest):
    language: str = "en"
    user_role: str = Field("frontline_operations", alias="userRole")
    stream_format: Literal["text", "ndjson"] = Field("text", alias="streamFormat")


class SpeakRequest(_ApiModel):
    text: Optional[str] = None
    language: str = "en"


class TranscriptionResponse(_ApiModel):
    text: str
    detected_language: str = Field(alias="detectedLanguage")
