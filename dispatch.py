"""Message routing for authenticated connections.

Tool names are decoded once into a closed set of actions (``Join``,
``EditSend``, ``CursorUpdate``, ``AiRequest``, ``Unknown``); each action type
maps to exactly one handler. Handlers raise ``HubError`` subclasses for
validation and business-rule failures, and ``MessageRouter.route`` turns
them into a reply to the sender only.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Union

from pydantic import ValidationError

from ai_proxy import DEFAULT_PROMPT
from connections import Connection
from errors import HubError, MalformedEnvelope, NotInSession, UnknownEnvelopeType, UnknownTool
from hub import Hub
from logging_config import get_logger
from schemas.envelopes import (
    CHAT_MESSAGE,
    CURSOR_MOVED,
    EDIT_APPLIED,
    MCP_TOOL_CALL,
    NEW_CHAT_MESSAGE,
    USER_JOINED,
    ChatMessagePayload,
    CursorMovedPayload,
    EditAppliedPayload,
    Envelope,
    ToolCall,
    ToolResultPayload,
    UserPresencePayload,
    make_envelope,
)

logger = get_logger(__name__)

JOIN_TOOL = "project:join"
EDIT_SEND_TOOL = "edit:send"
CURSOR_UPDATE_TOOL = "cursor:update"
AI_REQUEST_PREFIX = "ai:request_"


@dataclass(frozen=True)
class Join:
    project_id: Any


@dataclass(frozen=True)
class EditSend:
    file_id: Any
    change_data: Any


@dataclass(frozen=True)
class CursorUpdate:
    file_id: Any
    position: Any


@dataclass(frozen=True)
class AiRequest:
    provider: str
    tool_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Unknown:
    tool_name: str


Action = Union[Join, EditSend, CursorUpdate, AiRequest, Unknown]


def decode_tool_call(tool_name: str, arguments: Dict[str, Any]) -> Action:
    if tool_name == JOIN_TOOL:
        return Join(arguments.get("projectId"))
    if tool_name == EDIT_SEND_TOOL:
        return EditSend(arguments.get("fileId"), arguments.get("changeData"))
    if tool_name == CURSOR_UPDATE_TOOL:
        return CursorUpdate(arguments.get("fileId"), arguments.get("position"))
    if tool_name.startswith(AI_REQUEST_PREFIX):
        return AiRequest(tool_name[len(AI_REQUEST_PREFIX):], tool_name, arguments)
    return Unknown(tool_name)


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _prompt_from(arguments: Dict[str, Any]) -> str:
    for key in ("prompt", "codeSnippet"):
        value = arguments.get(key)
        if _non_empty_str(value):
            return value
    return DEFAULT_PROMPT


class MessageRouter:
    def __init__(self, hub: Hub):
        self.hub = hub
        self._handlers = {
            Join: self._join,
            EditSend: self._edit_send,
            CursorUpdate: self._cursor_update,
            AiRequest: self._ai_request,
            Unknown: self._unknown,
        }

    async def route(self, connection: Connection, envelope: Envelope) -> None:
        """Handle one envelope from an authenticated connection."""
        try:
            if envelope.type == MCP_TOOL_CALL:
                await self._tool_call(connection, envelope)
            elif envelope.type == CHAT_MESSAGE:
                await self._chat(connection, envelope)
            else:
                raise UnknownEnvelopeType("Unknown message type")
        except UnknownEnvelopeType as e:
            logger.warning(f"Unknown message type from {connection.id}: {envelope.type}")
            await self.hub.send_error(connection, e.message, envelope.requestId)
        except HubError as e:
            logger.info(f"{e.error_code} for user {connection.user_id} on {envelope.type}: {e.message}")
            await self.hub.send_tool_error(connection, e.message, envelope.requestId)

    async def _tool_call(self, connection: Connection, envelope: Envelope) -> None:
        try:
            call = ToolCall.model_validate(envelope.payload)
        except ValidationError as e:
            raise MalformedEnvelope("Missing or invalid toolName") from e
        logger.info(f"Handling MCP tool call '{call.toolName}' for user {connection.user_id}")
        action = decode_tool_call(call.toolName, call.arguments)
        await self._handlers[type(action)](connection, action, envelope.requestId)

    async def _join(self, connection: Connection, action: Join, request_id) -> None:
        project_id = action.project_id
        if not _non_empty_str(project_id):
            raise MalformedEnvelope(f"Missing or invalid projectId for {JOIN_TOOL}")

        departed = None
        if connection.session_id is not None and connection.session_id != project_id:
            departed = self.hub.leave_bound_session(connection)
        connection.session_id = project_id
        self.hub.sessions.join(project_id, connection.user_id)
        logger.info(f"User {connection.user_id} ({connection.user_name}) joined project {project_id}")

        await self.hub.announce_departure(departed, connection)
        await self.hub.send_response(connection, ToolResultPayload(message=f"Joined project {project_id}"), request_id)
        presence = UserPresencePayload(userId=connection.user_id, userName=connection.user_name)
        await self.hub.broadcast(project_id, make_envelope(USER_JOINED, presence), exclude=connection)

    async def _edit_send(self, connection: Connection, action: EditSend, request_id) -> None:
        session_id = connection.session_id
        if session_id is None:
            raise NotInSession("Cannot send edit: Not currently in a project")
        if not _non_empty_str(action.file_id) or not isinstance(action.change_data, list):
            raise MalformedEnvelope(f"Missing, invalid, or incorrectly formatted fileId or changeData for {EDIT_SEND_TOOL}")

        logger.debug(f"Received edit for {action.file_id} from user {connection.user_id} in project {session_id}")
        payload = EditAppliedPayload(
            fileId=action.file_id,
            changeData=action.change_data,
            sourceUserId=connection.user_id,
            sourceUserName=connection.user_name,
        )
        await self.hub.broadcast(session_id, make_envelope(EDIT_APPLIED, payload), exclude=connection)
        await self.hub.send_response(connection, ToolResultPayload(message="Edit broadcasted"), request_id)

    async def _cursor_update(self, connection: Connection, action: CursorUpdate, request_id) -> None:
        session_id = connection.session_id
        if session_id is None:
            raise NotInSession("Cannot update cursor: Not currently in a project")
        if not _non_empty_str(action.file_id) or not isinstance(action.position, (dict, list)):
            raise MalformedEnvelope(f"Missing or invalid fileId or position for {CURSOR_UPDATE_TOOL}")

        payload = CursorMovedPayload(
            fileId=action.file_id,
            position=action.position,
            sourceUserId=connection.user_id,
            sourceUserName=connection.user_name,
        )
        # fire-and-forget, no reply
        await self.hub.broadcast(session_id, make_envelope(CURSOR_MOVED, payload), exclude=connection)

    async def _ai_request(self, connection: Connection, action: AiRequest, request_id) -> None:
        if connection.session_id is None:
            raise NotInSession("Cannot request AI: Not currently in a project")
        logger.info(f"AI request '{action.tool_name}' received from user {connection.user_id} for project {connection.session_id}")
        result = await self.hub.ai_proxy.complete(action.provider, _prompt_from(action.arguments))
        await self.hub.send_response(connection, ToolResultPayload(result=result), request_id)
        logger.info(f"AI response sent for {action.tool_name}")

    async def _unknown(self, connection: Connection, action: Unknown, request_id) -> None:
        raise UnknownTool(f"MCP tool '{action.tool_name}' not implemented")

    async def _chat(self, connection: Connection, envelope: Envelope) -> None:
        session_id = connection.session_id
        if session_id is None:
            raise NotInSession("Cannot send chat: Not currently in a project")
        message = envelope.payload.get("message") if isinstance(envelope.payload, dict) else None
        if not isinstance(message, str) or not message.strip():
            raise MalformedEnvelope("Invalid chat message")

        logger.debug(f"Chat message in {session_id} from user {connection.user_id}")
        payload = ChatMessagePayload(userId=connection.user_id, userName=connection.user_name, message=message.strip())
        await self.hub.broadcast(session_id, make_envelope(NEW_CHAT_MESSAGE, payload))
