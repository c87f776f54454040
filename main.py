"""
main.py - Server launcher and entry point.

Run this file to start the workspace booking API:

    python main.py [--host HOST] [--port PORT] [--no-reload]

This file does NOT contain application logic. See app.py for the FastAPI
application, service wiring, and startup sequence.

Direct uvicorn usage:
    uvicorn app:app --reload
"""

from __future__ import annotations

import argparse

import uvicorn

from workspace_booking.utils.config import get_settings


HOST = "127.0.0.1"
PORT = 8000


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Start the workspace booking API server.")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument(
        "--no-reload",
        action="store_true",
        help="Disable hot-reload on file changes.",
    )
    return parser.parse_args()


def main() -> None:
    """Start the workspace booking server."""
    args = parse_args()
    settings = get_settings()

    print("=" * 60)
    print(f"  {settings.app_name} v{settings.app_version}")
    print("=" * 60)
    print(f"  Server   : http://{args.host}:{args.port}")
    print(f"  API docs : http://{args.host}:{args.port}/docs")
    print(f"  Timezone : {settings.local_timezone}")
    print(f"  Database : {settings.database_path}")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    # blocks until CTRL+C
    uvicorn.run(
        "app:app",
        host=args.host,
        port=args.port,
        reload=not args.no_reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
