"""Script to launch the chat bridge."""

from __future__ import annotations

import argparse
import logging
import os
import sys

import uvicorn

# Ensure src/ is on sys.path (so imports work when run directly)
SRC_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from chat_bridge.config import load_config  # noqa: E402
from chat_bridge.server import create_app  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the chat bridge.")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to the YAML config (default: $CHAT_BRIDGE_CONFIG or config/default.yaml)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=os.environ.get("HOST"),
        help="Host to bind the server to (default: server.host from config)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ["PORT"]) if os.environ.get("PORT") else None,
        help="Port to bind the server to (default: server.port from config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (default: logging.level from config)",
    )
    args = parser.parse_args()

    cfg = load_config(args.config)
    server_cfg = cfg.get("server", {})
    level = (args.log_level or cfg.get("logging", {}).get("level", "INFO")).upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = create_app(args.config)

    # One worker only: conversation state lives in this process.
    uvicorn.run(
        app,
        host=args.host or server_cfg.get("host", "127.0.0.1"),
        port=args.port or int(server_cfg.get("port", 3000)),
        log_level=level.lower(),
    )


if __name__ == "__main__":
    main()
