import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError, field_validator

from errors import MalformedEnvelope

# Inbound envelope types
AUTHENTICATE = "authenticate"
MCP_TOOL_CALL = "mcp_tool_call"
CHAT_MESSAGE = "chat_message"

# Outbound envelope types
AUTH_SUCCESS = "auth_success"
AUTH_FAILURE = "auth_failure"
MCP_TOOL_RESPONSE = "mcp_tool_response"
ERROR = "error"
USER_JOINED = "user_joined"
USER_LEFT = "user_left"
EDIT_APPLIED = "edit_applied"
CURSOR_MOVED = "cursor_moved"
NEW_CHAT_MESSAGE = "new_chat_message"


def _coerce_request_id(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class Envelope(BaseModel):
    type: str
    payload: Any = None
    requestId: Optional[str] = None

    @field_validator("type")
    @classmethod
    def _type_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("type must not be empty")
        return value

    @field_validator("requestId", mode="before")
    @classmethod
    def _request_id_as_str(cls, value: Any) -> Any:
        return _coerce_request_id(value)


class ToolCall(BaseModel):
    toolName: str
    arguments: Dict[str, Any] = {}

    @field_validator("arguments", mode="before")
    @classmethod
    def _arguments_as_dict(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}


class AuthSuccessPayload(BaseModel):
    userId: str
    userName: str
    clientId: str


class FailurePayload(BaseModel):
    error: str


class UserPresencePayload(BaseModel):
    userId: str
    userName: str


class EditAppliedPayload(BaseModel):
    fileId: str
    changeData: List[Any]
    sourceUserId: str
    sourceUserName: str


class CursorMovedPayload(BaseModel):
    fileId: str
    position: Union[Dict[str, Any], List[Any]]
    sourceUserId: str
    sourceUserName: str


class ChatMessagePayload(BaseModel):
    userId: str
    userName: str
    message: str


class ToolResultPayload(BaseModel):
    success: bool = True
    message: Optional[str] = None
    result: Optional[str] = None


class ToolErrorPayload(BaseModel):
    error: str
    isError: bool = True


def parse_envelope(raw: str) -> Envelope:
    """Decode one inbound text frame.

    Raises MalformedEnvelope for non-JSON text, non-object JSON or a missing
    ``type``. The exception carries ``request_id`` when one could be read so
    the error reply can still be correlated.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedEnvelope("Invalid message format") from e
    if not isinstance(data, dict):
        raise MalformedEnvelope("Invalid message format")
    try:
        return Envelope.model_validate(data)
    except ValidationError as e:
        request_id = _coerce_request_id(data.get("requestId"))
        raise MalformedEnvelope("Invalid message format", request_id if isinstance(request_id, str) else None) from e


def make_envelope(envelope_type: str, payload: Union[BaseModel, Dict[str, Any], str, None], request_id: Optional[str] = None) -> Dict[str, Any]:
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_none=True)
    envelope: Dict[str, Any] = {"type": envelope_type, "payload": payload}
    if request_id is not None:
        envelope["requestId"] = request_id
    return envelope
