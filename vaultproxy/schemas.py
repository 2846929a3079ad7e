from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

Role = Literal["user", "assistant"]


class HistoryMessage(BaseModel):
    role: Role
    content: str = ""


class ChatRequest(BaseModel):
    message: str
    session_id: Optional[str] = None
    history: List[HistoryMessage] = Field(default_factory=list)


# ---------------------------------------------------------
# Streaming events (one JSON envelope per line on the wire)
# ---------------------------------------------------------
class TextEvent(BaseModel):
    type: Literal["text"] = "text"
    content: str


class ToolCallEvent(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    tool_call_id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolResultEvent(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str
    name: str
    result: Any = None
    is_error: bool = False


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"


StreamEvent = Annotated[
    Union[TextEvent, ToolCallEvent, ToolResultEvent, ErrorEvent, DoneEvent],
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter = TypeAdapter(StreamEvent)


def encode_event(event: BaseModel) -> str:
    """Serialize one event as a newline-terminated JSON envelope."""
    return event.model_dump_json() + "\n"


def decode_event(line: Union[str, bytes]) -> BaseModel:
    """Parse one JSON envelope. Raises pydantic.ValidationError when malformed."""
    return stream_event_adapter.validate_json(line)
