"""
OmniAsk - API Request/Response Models

Pydantic models for the external HTTP surface.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.models import ChatTurn, Role


class RoleEnum(str, Enum):
    """Roles accepted in conversationHistory."""
    USER = "user"
    ASSISTANT = "assistant"


class TurnInput(BaseModel):
    """One prior conversation turn."""
    role: RoleEnum
    content: str = ""

    def to_turn(self) -> ChatTurn:
        return ChatTurn(role=Role(self.role.value), content=self.content)


class StreamRequest(BaseModel):
    """
    Body of POST /v1/stream.

    provider and question are optional at the schema level so the route can
    answer a missing or blank value with missing_required_field.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    provider: Optional[str] = None
    question: Optional[str] = None
    conversation_history: List[TurnInput] = Field(
        default_factory=list,
        alias="conversationHistory",
    )

    def prior_turns(self) -> List[ChatTurn]:
        return [turn.to_turn() for turn in self.conversation_history]


class CredentialInput(BaseModel):
    """Body of PUT /v1/credentials/{provider}."""
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(..., min_length=1, alias="apiKey")


class ProviderStatus(BaseModel):
    """Whether a provider can serve the calling user."""
    provider: str
    label: str
    model: str
    caller_key: bool
    shared_key: bool
    configured: bool


class ProviderListResponse(BaseModel):
    object: str = "list"
    data: List[ProviderStatus]
