from typing import Dict, FrozenSet, Set

from logging_config import get_logger

logger = get_logger(__name__)


class SessionRegistry:
    """Session id -> set of member user ids.

    A session exists only while its member set is non-empty. Membership is
    keyed by user id, so several connections of one user count once and a
    single leave removes the user regardless of how many connections remain.
    """

    def __init__(self):
        self._sessions: Dict[str, Set[str]] = {}

    def join(self, session_id: str, user_id: str) -> bool:
        """Add ``user_id`` to the session, creating it if needed. Returns True if created."""
        members = self._sessions.get(session_id)
        created = members is None
        if created:
            members = self._sessions[session_id] = set()
            logger.info(f"Session created: {session_id}")
        members.add(user_id)
        logger.debug(f"User {user_id} joined session {session_id} ({len(members)} members)")
        return created

    def leave(self, session_id: str, user_id: str) -> bool:
        """Remove ``user_id``; delete the session when it empties. Returns whether it still exists."""
        members = self._sessions.get(session_id)
        if members is None:
            return False
        members.discard(user_id)
        if not members:
            del self._sessions[session_id]
            logger.info(f"Session closed: {session_id}")
            return False
        logger.debug(f"User {user_id} left session {session_id} ({len(members)} members)")
        return True

    def members(self, session_id: str) -> FrozenSet[str]:
        return frozenset(self._sessions.get(session_id, ()))

    def is_member(self, session_id: str, user_id: str) -> bool:
        return user_id in self._sessions.get(session_id, ())

    def exists(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return self.exists(session_id)
