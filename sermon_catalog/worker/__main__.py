#!/usr/bin/env python3
"""
Run the transcription worker service.

Usage:
    python -m sermon_catalog.worker
    python -m sermon_catalog.worker --host 0.0.0.0 --port 8000
"""

import argparse
import os
import sys

import uvicorn


def main():
    parser = argparse.ArgumentParser(
        description="Run the chunked transcription worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Listen on the default port
  python -m sermon_catalog.worker

  # Listen on all interfaces, port from the environment
  PORT=9000 python -m sermon_catalog.worker --host 0.0.0.0
        """,
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8000")),
        help="Port (default: $PORT or 8000)",
    )
    parser.add_argument("--log-level", default="info", help="uvicorn log level")
    args = parser.parse_args()

    try:
        uvicorn.run(
            "sermon_catalog.worker.server:app",
            host=args.host,
            port=args.port,
            log_level=args.log_level,
        )
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    main()
