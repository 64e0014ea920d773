import redis
import json
from datetime import datetime
from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_SOCKET_TIMEOUT_SECONDS
from redis_keys import REDIS_TELEMETRY_CHANNEL
from logging_config import get_logger

logger = get_logger(__name__)


class RedisBackend:
    """Publishes session telemetry to Redis pub/sub for the admin dashboard.

    The client connects lazily on first command, so constructing the backend
    never touches the network. Calls block, so async callers run them in an
    executor.
    """

    def __init__(self, redis_client=None):
        if redis_client is None:
            redis_client = redis.Redis(
                host=REDIS_HOST,
                port=REDIS_PORT,
                password=REDIS_PASSWORD,
                decode_responses=True,
                socket_connect_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
                socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            )
        self.redis_client = redis_client
        logger.info(f"Initializing RedisBackend for telemetry on {REDIS_HOST}:{REDIS_PORT}")

    def ping(self) -> bool:
        try:
            self.redis_client.ping()
            logger.info(f"Redis telemetry client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis telemetry backend unavailable at {REDIS_HOST}:{REDIS_PORT}: {e}")
            return False

    def publish_session_event(self, session_id: str, event_type: str) -> bool:
        """Publish one {sessionId, eventType, timestamp} event. Never raises on Redis errors."""
        event = {
            "sessionId": session_id,
            "eventType": event_type,
            "timestamp": datetime.now().isoformat(),
        }
        try:
            subscribers = self.redis_client.publish(REDIS_TELEMETRY_CHANNEL, json.dumps(event))
        except redis.RedisError as e:
            logger.warning(f"Failed to publish telemetry for session {session_id} ({event_type}): {e}")
            return False
        logger.debug(f"Published telemetry {event_type} for session {session_id}, {subscribers} subscribers")
        return True
