"""
Main entry point for the Clinic Back-Office server.

Usage:
    # Serve the HTTP API (default command)
    clinic-backoffice serve --host 0.0.0.0 --port 8000

    # Create any missing tables and exit
    clinic-backoffice init-db

    # One-off import of the legacy JSON prescription file
    clinic-backoffice import-legacy data/prescriptions.json
"""

import argparse
import logging
import sys
import traceback

import uvicorn

from src.api import create_app
from src.services.database import close_connections, initialize_app_database
from src.services.exceptions import ServiceError
from src.services.logging_utils import configure_logging
from src.services.prescription_import_service import import_legacy_prescriptions
from src.utils.config import get_config

logger = logging.getLogger(__name__)


def initialize_application() -> bool:
    """
    Initialize the application database.

    Returns:
        True if initialization successful, False otherwise
    """
    try:
        print("Initializing database...")
        initialize_app_database()
        print("Database initialized successfully")
        return True
    except Exception as e:
        print(f"ERROR: Failed to initialize application: {e}")
        traceback.print_exc()
        return False


def serve(host: str, port: int) -> int:
    """Run the API under uvicorn until interrupted."""
    config = get_config()
    print(f"Starting {config.app_name} v{config.app_version} on {host}:{port}")
    print(f"Environment: {config.environment}")
    try:
        uvicorn.run(create_app(), host=host, port=port, log_level="info")
    finally:
        close_connections()
    return 0


def import_legacy(path) -> int:
    """Import legacy prescriptions and print a summary."""
    try:
        result = import_legacy_prescriptions(path)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1
    print(result.get_summary())
    return 0 if not result.skipped else 1


def build_parser() -> argparse.ArgumentParser:
    config = get_config()
    parser = argparse.ArgumentParser(
        description="Clinic back-office: stock ledger and prescription issuance",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve_parser.add_argument("--host", default=config.api_host, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=config.api_port, help="Bind port")

    subparsers.add_parser("init-db", help="Create missing tables and exit")

    import_parser = subparsers.add_parser(
        "import-legacy", help="Import prescriptions from the legacy JSON file"
    )
    import_parser.add_argument(
        "file",
        nargs="?",
        default=None,
        help="JSON file path (default: prescriptions.json in the data directory)",
    )
    return parser


def main(argv=None) -> int:
    """
    Main application entry point.

    Initializes the database, then runs the requested command.
    """
    configure_logging()
    args = build_parser().parse_args(argv)
    command = args.command or "serve"

    if not initialize_application():
        print("Application initialization failed. Exiting.")
        return 1

    if command == "init-db":
        return 0
    if command == "import-legacy":
        return import_legacy(args.file)

    config = get_config()
    host = getattr(args, "host", config.api_host)
    port = getattr(args, "port", config.api_port)
    return serve(host, port)


if __name__ == "__main__":
    sys.exit(main())
