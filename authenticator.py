from dataclasses import dataclass
from typing import Any, Iterable, Optional

import jwt

from constants import JWT_ALGORITHMS, JWT_SECRET
from errors import CredentialIncomplete, CredentialInvalid, CredentialMissing
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    user_name: str


def extract_token(payload: Any) -> Optional[str]:
    """Pull the token out of an ``authenticate`` payload ({"token": ...} or a bare string)."""
    if isinstance(payload, dict):
        token = payload.get("token")
    else:
        token = payload
    if not isinstance(token, str) or not token:
        return None
    return token


def authenticate(token: Optional[str], secret: Optional[str] = None, algorithms: Optional[Iterable[str]] = None) -> Identity:
    """Verify a signed credential and return the identity it asserts.

    Raises:
        CredentialMissing: no token was supplied.
        CredentialInvalid: signature, expiry or format verification failed.
        CredentialIncomplete: the token verified but lacks userId or userName.
    """
    if not token or not isinstance(token, str):
        raise CredentialMissing("Authentication token missing or invalid")

    secret = secret if secret is not None else JWT_SECRET
    if not secret:
        raise CredentialInvalid("Authentication failed: Unable to verify token")

    try:
        claims = jwt.decode(token, secret, algorithms=list(algorithms or JWT_ALGORITHMS))
    except jwt.InvalidTokenError as e:
        logger.debug(f"JWT verification failed: {e}")
        raise CredentialInvalid(f"Authentication failed: {e}") from e

    user_id = claims.get("userId")
    user_name = claims.get("userName")
    if not user_id or not user_name:
        raise CredentialIncomplete("Invalid token payload: missing userId or userName")

    # issuers may sign numeric ids
    return Identity(user_id=str(user_id), user_name=str(user_name))
