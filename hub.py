import asyncio
import json
from typing import Any, Dict, List, Optional

from ai_proxy import AIProxy
from connections import Connection
from constants import AUTH_TIMEOUT_SECONDS, JWT_SECRET
from logging_config import get_logger
from schemas.envelopes import (
    ERROR,
    MCP_TOOL_RESPONSE,
    USER_LEFT,
    ToolErrorPayload,
    ToolResultPayload,
    UserPresencePayload,
    make_envelope,
)
from sessions import SessionRegistry

logger = get_logger(__name__)


class Hub:
    """Server context shared by every connection handler.

    Holds the live connection registry and the session registry. All
    mutation happens on the event loop thread and never across an ``await``,
    so neither registry needs a lock.
    """

    def __init__(self, telemetry=None, ai_proxy: Optional[AIProxy] = None, jwt_secret: Optional[str] = None, auth_timeout: float = AUTH_TIMEOUT_SECONDS):
        # Format: {connection_id: Connection}, authenticated connections only
        self.connections: Dict[str, Connection] = {}
        self.sessions = SessionRegistry()
        self.telemetry = telemetry
        self.ai_proxy = ai_proxy if ai_proxy is not None else AIProxy.from_env()
        self.jwt_secret = jwt_secret if jwt_secret is not None else JWT_SECRET
        self.auth_timeout = auth_timeout

    def register(self, connection: Connection) -> None:
        self.connections[connection.id] = connection
        logger.debug(f"Registered connection {connection.id} (live connections: {len(self.connections)})")

    def unregister(self, connection: Connection) -> None:
        if self.connections.pop(connection.id, None) is not None:
            logger.debug(f"Unregistered connection {connection.id} (live connections: {len(self.connections)})")

    def stats(self) -> Dict[str, int]:
        return {"clients": len(self.connections), "projects": len(self.sessions)}

    async def send(self, connection: Connection, envelope: Dict[str, Any]) -> bool:
        """Write one envelope to one connection. Closed connections are skipped."""
        if not connection.is_open:
            return False
        try:
            await connection.websocket.send_text(json.dumps(envelope))
            return True
        except Exception as e:
            logger.debug(f"Dropped {envelope.get('type')} for connection {connection.id}: {e}")
            return False

    async def send_response(self, connection: Connection, payload: ToolResultPayload, request_id: Optional[str] = None) -> bool:
        return await self.send(connection, make_envelope(MCP_TOOL_RESPONSE, payload, request_id))

    async def send_tool_error(self, connection: Connection, message: str, request_id: Optional[str] = None) -> bool:
        return await self.send(connection, make_envelope(MCP_TOOL_RESPONSE, ToolErrorPayload(error=message), request_id))

    async def send_error(self, connection: Connection, message: str, request_id: Optional[str] = None) -> bool:
        return await self.send(connection, make_envelope(ERROR, message, request_id))

    def recipients(self, session_id: str, exclude: Optional[Connection] = None) -> List[Connection]:
        """Open connections bound to ``session_id`` whose user is currently a member."""
        members = self.sessions.members(session_id)
        return [
            connection
            for connection in self.connections.values()
            if connection.is_authenticated
            and connection.session_id == session_id
            and connection.user_id in members
            and connection is not exclude
        ]

    async def broadcast(self, session_id: str, envelope: Dict[str, Any], exclude: Optional[Connection] = None) -> int:
        """Deliver ``envelope`` once to every session recipient. Returns the number written."""
        recipients = self.recipients(session_id, exclude)
        delivered = 0
        if recipients:
            message = json.dumps(envelope)
            results = await asyncio.gather(
                *(connection.websocket.send_text(message) for connection in recipients),
                return_exceptions=True,
            )
            for connection, result in zip(recipients, results):
                if isinstance(result, Exception):
                    logger.debug(f"Skipped closed connection {connection.id} in session {session_id}: {result}")
                else:
                    delivered += 1
        logger.debug(f"Broadcast {envelope.get('type')} to {delivered}/{len(recipients)} connections in session {session_id}")
        await self._notify_telemetry(session_id, envelope.get("type"))
        return delivered

    async def _notify_telemetry(self, session_id: str, event_type: Optional[str]) -> None:
        if self.telemetry is None:
            return
        # publish is a blocking Redis call
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.telemetry.publish_session_event, session_id, event_type)
        except Exception as e:
            logger.warning(f"Telemetry notification failed for session {session_id}: {e}")

    def leave_bound_session(self, connection: Connection) -> Optional[str]:
        """Unbind ``connection`` and drop its user from the session registry.

        Returns the old session id if that session still has members (peers
        should be told), otherwise None.
        """
        session_id = connection.session_id
        if session_id is None:
            return None
        connection.session_id = None
        still_exists = self.sessions.leave(session_id, connection.user_id)
        logger.info(f"User {connection.user_id} ({connection.user_name}) left session {session_id}")
        return session_id if still_exists else None

    async def announce_departure(self, session_id: Optional[str], connection: Connection) -> None:
        if session_id is None:
            return
        payload = UserPresencePayload(userId=connection.user_id, userName=connection.user_name)
        await self.broadcast(session_id, make_envelope(USER_LEFT, payload), exclude=connection)
