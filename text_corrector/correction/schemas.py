from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Optional[str] = None
    content: Optional[str] = Field(None, description="Model output; carries the correction payload as JSON text")


class ChatChoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    message: ChatMessage
    finish_reason: Optional[str] = None


class ChatCompletionEnvelope(BaseModel):
    """Generic chat-completion response wrapping a provider's real payload."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    model: Optional[str] = None
    choices: List[ChatChoice] = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """OAuth client-credential token response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    expires_in: Optional[int] = Field(None, description="Lifetime in seconds")
