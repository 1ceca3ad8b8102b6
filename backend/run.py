"""
Start the notifier API (HTTP surface, change-stream listener and scan scheduler).

Usage:
    python run.py
    python run.py --reload            # Development mode with auto-reload
    python run.py --no-background     # HTTP only, no event source or scheduler
"""
import argparse
import os

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Run the task chat notifier")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument(
        "--no-background",
        action="store_true",
        help="Disable the change-stream listener and the scan scheduler"
    )
    args = parser.parse_args()

    # Change streams and scans must run in exactly one process, so no --workers here
    if args.no_background:
        os.environ["EVENT_SOURCE_ENABLED"] = "false"
        os.environ["SCHEDULER_ENABLED"] = "false"

    from tasknotify.config.settings import get_settings
    settings = get_settings()

    print(f"Starting notifier on {args.host}:{args.port} ({settings.environment})")
    print(f"  Database: {settings.mongo_db}")
    print(f"  Payload format: {settings.chat_payload_format}")
    print(f"  Background workers: {'off' if args.no_background else 'on'}")

    uvicorn.run(
        "tasknotify.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
