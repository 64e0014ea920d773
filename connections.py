import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from authenticator import Identity


class ConnectionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """One accepted websocket and the hub-side state bound to it."""

    websocket: Any
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: ConnectionState = ConnectionState.UNAUTHENTICATED
    identity: Optional[Identity] = None
    session_id: Optional[str] = None
    auth_deadline: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def is_authenticated(self) -> bool:
        return self.state is ConnectionState.AUTHENTICATED

    @property
    def is_open(self) -> bool:
        return self.state is not ConnectionState.CLOSED

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.user_id if self.identity else None

    @property
    def user_name(self) -> Optional[str]:
        return self.identity.user_name if self.identity else None

    def bind_identity(self, identity: Identity) -> None:
        self.identity = identity
        self.state = ConnectionState.AUTHENTICATED

    def mark_closed(self) -> None:
        self.state = ConnectionState.CLOSED

    def cancel_auth_deadline(self) -> None:
        if self.auth_deadline is not None and not self.auth_deadline.done():
            self.auth_deadline.cancel()
        self.auth_deadline = None
