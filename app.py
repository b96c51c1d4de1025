"""
ScreenPilot - Main Entry Point

Runs the FastAPI host with uvicorn:
    python app.py [--host 0.0.0.0] [--port 8000]

For direct API access, use:
    from api import app, create_app
"""

import argparse
import signal
import sys

import uvicorn

from config import config
from logger import logger

# --- Signal Handling ---
original_sigint = signal.getsignal(signal.SIGINT)
_stopping = False


def signal_handler(sig, frame):
    """Signal handler for Ctrl+C: cancel every agent, then let uvicorn stop."""
    global _stopping
    from services.agent_manager import get_agent_manager

    # Avoid double execution if already stopping
    if _stopping:
        return
    _stopping = True

    logger.info("[SIGNAL] Ctrl+C detected - cancelling agents...")
    manager = get_agent_manager()
    for agent_id in manager.list_agent_ids():
        manager.cancel(agent_id)

    # Call the original uvicorn handler so the server stops
    if callable(original_sigint):
        original_sigint(sig, frame)
    else:
        sys.exit(0)


# Register the signal handler (only works in main thread)
try:
    signal.signal(signal.SIGINT, signal_handler)
except ValueError:
    # Signal handlers only work in main thread, skip if imported from thread
    pass

from api import app, create_app  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description="ScreenPilot agent host")
    parser.add_argument("--host", default=config.get_setting("server.host", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=config.get_setting("server.port", 8000))
    args = parser.parse_args()

    logger.info(f"[APP] Starting ScreenPilot on {args.host}:{args.port}")
    try:
        uvicorn.run(app, host=args.host, port=args.port, log_config=None, access_log=False)
    finally:
        from services.agent_manager import get_agent_manager

        get_agent_manager().stop_all()
        logger.info("[APP] All agents stopped")


if __name__ == "__main__":
    main()


__all__ = ["app", "create_app", "main"]
