from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """processMessage request body, as published in the OpenAPI schema.

    The endpoint reads the body loosely and the chat service checks types
    after identity, so this model documents the shape without enforcing it.
    """
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


class ChatReply(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: Literal["assistant"] = "assistant"
    message: str
    response: str
    conversation_id: str = Field(alias="conversationId")


class DurabilityOutcome(BaseModel):
    """What actually reached the store during a successful cycle.

    Never shown to the caller; logged and exported as metrics.
    """
    model_config = ConfigDict(frozen=True)

    transcript_persisted: bool
    counter_incremented: bool
    failures: List[str] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failures)


class ProcessResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    reply: ChatReply
    durability: DurabilityOutcome
