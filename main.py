"""Entry point: run the CartPilot API server with the trigger poller."""

import os

import uvicorn

from core.config import Settings
from core.logging_config import setup_logging


def main():
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_json)
    uvicorn.run(
        "api.server:app",
        host=os.getenv("CARTPILOT_HOST", "127.0.0.1"),
        port=int(os.getenv("CARTPILOT_PORT", "3001")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
