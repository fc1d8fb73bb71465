"""Entry point: CLI argument parsing + session + uvicorn startup."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from src.config import load_config
from src.course.client import CourseClient
from src.session import AnnotationSession
from src.web.app import create_app


def setup_logging(log_dir: str, verbose: bool = False) -> None:
    """Configure logging to both console and file."""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    logging.basicConfig(
        level=level,
        format=fmt,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_path / "trajectory_annotator.log"),
        ],
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Trajectory Annotator: labeled course authoring and testing"
    )
    parser.add_argument(
        "-c", "--config",
        default="config/default.yaml",
        help="Path to YAML config file (default: config/default.yaml)",
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Course service base URL (overrides config)",
    )
    parser.add_argument(
        "--export-dir",
        default=None,
        help="Download exported CSV files into this directory (overrides config)",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Web server host (overrides config)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Web server port (overrides config)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()

    # Load configuration
    config = load_config(args.config)

    # Apply CLI overrides
    if args.api_url:
        config.api.base_url = args.api_url
    if args.export_dir:
        config.api.export_dir = args.export_dir
    if args.host:
        config.web.host = args.host
    if args.port:
        config.web.port = args.port

    # Setup logging
    setup_logging(config.logging.log_dir, args.verbose)
    logger = logging.getLogger(__name__)
    logger.info("Starting Trajectory Annotator")
    logger.info("Course service: %s", config.api.base_url)
    logger.info("Web API: http://%s:%d", config.web.host, config.web.port)

    # Create session and web app
    client = CourseClient(config.api)
    session = AnnotationSession(config, client, config_path=args.config)
    app = create_app(session, client)

    try:
        # Run uvicorn (blocks until shutdown)
        uvicorn.run(
            app,
            host=config.web.host,
            port=config.web.port,
            log_level="info",
            loop="asyncio",
        )
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
