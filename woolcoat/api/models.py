"""
Request and response models for the HTTP API.

Module: woolcoat/api/models.py
"""

from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class CommonResponse(BaseModel, Generic[T]):
    """Uniform response envelope."""

    code: int = Field(default=200, description="200 on success, error status otherwise")
    message: str = Field(default="success", description="Outcome message")
    data: Optional[T] = Field(default=None, description="Payload")

    @classmethod
    def success(cls, data: Optional[T] = None) -> "CommonResponse[T]":
        return cls(code=200, message="success", data=data)

    @classmethod
    def fail(cls, message: str, code: int = 500, data: Optional[Any] = None) -> "CommonResponse[Any]":
        return CommonResponse[Any](code=code, message=message, data=data)


class ToolCallRequest(BaseModel):
    """Single tool call from a natural-language instruction."""

    user_query: str = Field(..., min_length=1, description="User instruction")
    session_id: Optional[str] = Field(default=None, description="Correlation id")


class ToolExecuteRequest(BaseModel):
    """Direct execution of a known tool."""

    tool_code: str = Field(..., min_length=1, description="Tool code")
    param_map: Dict[str, Any] = Field(default_factory=dict, description="Tool parameters")
    user_query: str = Field(default="", description="Original instruction, used for self-correction")
    session_id: Optional[str] = Field(default=None, description="Correlation id")


class TaskSubmitRequest(BaseModel):
    """Multi-step task submission."""

    user_query: str = Field(..., min_length=1, description="Compound instruction")
    session_id: Optional[str] = Field(default=None, description="Session for the task summary")
    user_id: Optional[str] = Field(default=None, description="Requesting user")


class ChatRequest(BaseModel):
    """Plain conversation turn."""

    question: str = Field(..., min_length=1, description="User message")
    session_id: Optional[str] = Field(default=None, description="Conversation id")
    user_id: Optional[str] = Field(
        default=None, description="User whose long-term memory shapes the reply (default user when omitted)"
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)


class ChatReply(BaseModel):
    """Reply to a conversation turn."""

    session_id: str
    content: str
    model: Optional[str] = None
    cost_time_ms: int = 0


class DocumentSummary(BaseModel):
    """Indexed knowledge base document."""

    doc_id: str
    file_name: Optional[str] = None
    chunk_count: int
    created_at: Optional[str] = None


class DocumentChunkItem(BaseModel):
    """One chunk of a knowledge base document."""

    doc_id: str
    chunk_index: int
    content: str


class MemoryCreateRequest(BaseModel):
    """Long-term memory entry for a user."""

    content: str = Field(..., min_length=1, description="What to remember")
    user_id: Optional[str] = Field(default=None, description="Owner (default user when omitted)")
    memory_type: str = Field(default="preference", min_length=1, description="Memory category")
    weight: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="Importance, 0.5 when omitted")


class HealthCheckResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    tools: int
