import asyncio
import contextlib
from typing import Optional

from authenticator import authenticate, extract_token
from connections import Connection, ConnectionState
from constants import WS_CLOSE_POLICY_VIOLATION
from dispatch import MessageRouter
from errors import CredentialError, MalformedEnvelope
from hub import Hub
from logging_config import get_logger
from schemas.envelopes import AUTH_FAILURE, AUTH_SUCCESS, AUTHENTICATE, AuthSuccessPayload, FailurePayload, make_envelope, parse_envelope

logger = get_logger(__name__)


class ConnectionGateway:
    """Owns one client websocket from accept to close.

    Until the client authenticates only ``authenticate`` envelopes are
    accepted; a deadline task force-closes connections that never do.
    Authenticated envelopes are handed to the MessageRouter.
    """

    def __init__(self, hub: Hub, websocket, router: Optional[MessageRouter] = None):
        self.hub = hub
        self.connection = Connection(websocket=websocket)
        self.router = router or MessageRouter(hub)

    @property
    def closed(self) -> bool:
        return not self.connection.is_open

    def start(self) -> None:
        """Arm the authentication deadline. Must be called from the event loop."""
        self.connection.auth_deadline = asyncio.create_task(self._auth_deadline())
        logger.info(f"Connection attempt: {self.connection.id}")

    async def _auth_deadline(self) -> None:
        await asyncio.sleep(self.hub.auth_timeout)
        if self.connection.state is not ConnectionState.UNAUTHENTICATED:
            return
        logger.info(f"Authentication timeout for connection {self.connection.id}. Closing.")
        self.connection.auth_deadline = None
        await self.close(WS_CLOSE_POLICY_VIOLATION, "Authentication timeout")

    async def close(self, code: int, reason: str) -> None:
        """Force-close the socket. Nothing is written to the connection afterwards."""
        if self.closed:
            return
        self.connection.mark_closed()
        with contextlib.suppress(Exception):
            await self.connection.websocket.close(code=code, reason=reason)

    async def handle_text(self, raw: str) -> None:
        connection = self.connection
        if self.closed:
            return
        try:
            envelope = parse_envelope(raw)
        except MalformedEnvelope as e:
            logger.warning(f"Failed to parse message from {connection.id}: {e.message}")
            await self.hub.send_error(connection, e.message, e.request_id)
            return

        logger.debug(f"Received from {connection.id}: {envelope.type}")
        if connection.is_authenticated:
            await self.router.route(connection, envelope)
            return

        if envelope.type != AUTHENTICATE:
            logger.warning(f"Message type '{envelope.type}' received from unauthenticated connection {connection.id}. Ignoring.")
            await self.hub.send_error(connection, "Authentication required")
            return

        await self._authenticate(envelope.payload)

    async def handle_bytes(self, raw: bytes) -> None:
        """Binary frames carry the same JSON envelopes, UTF-8 encoded."""
        if self.closed:
            return
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning(f"Undecodable binary frame from {self.connection.id}")
            await self.hub.send_error(self.connection, "Invalid message format")
            return
        await self.handle_text(text)

    async def _authenticate(self, payload) -> None:
        connection = self.connection
        try:
            identity = authenticate(extract_token(payload), self.hub.jwt_secret)
        except CredentialError as e:
            logger.warning(f"Authentication error for {connection.id}: {e.message}")
            connection.cancel_auth_deadline()
            await self.hub.send(connection, make_envelope(AUTH_FAILURE, FailurePayload(error=e.message)))
            await self.close(WS_CLOSE_POLICY_VIOLATION, "Authentication failed")
            return

        connection.cancel_auth_deadline()
        connection.bind_identity(identity)
        self.hub.register(connection)
        logger.info(f"Client authenticated: {connection.id} as {identity.user_name} ({identity.user_id})")
        payload = AuthSuccessPayload(userId=identity.user_id, userName=identity.user_name, clientId=connection.id)
        await self.hub.send(connection, make_envelope(AUTH_SUCCESS, payload))

    async def disconnect(self) -> None:
        """Tear down after the socket closed or errored."""
        connection = self.connection
        connection.cancel_auth_deadline()
        was_authenticated = connection.is_authenticated
        connection.mark_closed()
        logger.info(f"Client disconnected: {connection.id}")
        if not was_authenticated:
            return
        departed = self.hub.leave_bound_session(connection)
        self.hub.unregister(connection)
        await self.hub.announce_departure(departed, connection)
