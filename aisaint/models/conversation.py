"""
aisaint/models/conversation.py

Transcript models. A conversation is an ordered, append-only sequence of
messages; a processing cycle appends exactly one user/assistant pair.
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class Conversation(BaseModel):
    """A loaded transcript. `messages` is empty for new or unknown ids."""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    messages: List[Message] = Field(default_factory=list)
    last_updated: Optional[datetime] = None


class ConversationSummary(BaseModel):
    """History listing entry, serialized as {id, messages, lastUpdated}."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    messages: List[Message] = Field(default_factory=list)
    last_updated: datetime = Field(alias="lastUpdated")
