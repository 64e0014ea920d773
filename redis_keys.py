REDIS_TELEMETRY_CHANNEL = "hub:telemetry:sessions" # pub/sub channel - one event per broadcast

# **Example telemetry event**
# - `sessionId` = project id the broadcast targeted
# - `eventType` = envelope type (`user_joined`, `edit_applied`, ...)
# - `timestamp` = ISO timestamp
