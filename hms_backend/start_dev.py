#!/usr/bin/env python3
"""
Development launcher for the Central Hospital data API.
NOTE: Creates the schema on first run, optionally seeds the sample data, then serves with hot reload
"""
import argparse
import logging
import os
import subprocess
import sys

from hms_backend.setup_db import check_tables, setup_database

logger = logging.getLogger(__name__)


def build_command(host: str, port: int, reload: bool) -> list:
    command = [
        sys.executable, "-m", "uvicorn", "hms_backend.main:app",
        "--host", host,
        "--port", str(port),
        "--log-level", "info",
    ]
    if reload:
        command.append("--reload")
    return command


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the Central Hospital data API locally")
    parser.add_argument("--host", default=os.getenv("HMS_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("HMS_PORT", "8000")))
    parser.add_argument("--no-reload", action="store_true", help="disable hot reload")
    parser.add_argument(
        "--sample-data", action="store_true",
        default=os.getenv("LOAD_SAMPLE_DATA") == "1",
        help="seed the sample data set when the schema is first created",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    os.environ.setdefault("ENVIRONMENT", "development")

    if check_tables():
        logger.info("Hospital schema already present; skipping setup")
    elif not setup_database(with_sample_data=args.sample_data):
        logger.error("Database setup failed; check DATABASE_URL and that the server is reachable")
        return 1

    logger.info(f"Serving on http://{args.host}:{args.port} (docs at /docs)")
    try:
        return subprocess.run(build_command(args.host, args.port, not args.no_reload)).returncode
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
