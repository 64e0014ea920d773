import sys

import uvicorn
from constants import HOST, JWT_SECRET, LOG_FILE, LOG_LEVEL, PORT
from logging_config import get_logger, setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def main() -> None:
    if not JWT_SECRET:
        logger.critical("FATAL ERROR: JWT_SECRET environment variable is not set.")
        sys.exit(1)

    from app import app

    telemetry = app.state.hub.telemetry
    if telemetry is not None:
        telemetry.ping()

    logger.info(f"Starting CollabHub server on {HOST}:{PORT}")
    uvicorn.run(app, host=HOST, port=PORT)


if __name__ == "__main__":
    main()
