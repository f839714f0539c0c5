"""Main entry point for ImageShelter."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from imageshelter.config import Settings


def setup_logging(
    level: str = "INFO",
    debug: bool = False,
    log_to_file: bool = True,
    log_file_path: Path | None = None,
    log_file_max_bytes: int = 10 * 1024 * 1024,
    log_file_backup_count: int = 5,
    log_format: str = "text",
) -> None:
    """Configure logging for the application with console and optional file output.

    Sets up logging with:
    - Console handler for immediate feedback
    - Optional rotating file handler for persistent logs
    - Secret and key masking on every handler
    - Text lines with correlation IDs, or JSON lines for log aggregators

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR)
        debug: If True, overrides level to DEBUG
        log_to_file: Enable file logging in addition to console
        log_file_path: Path to log file (file logging is skipped if None)
        log_file_max_bytes: Maximum size per log file before rotation
        log_file_backup_count: Number of rotated backup files to keep
        log_format: "text" or "json"
    """
    from imageshelter.utils.logging import (
        CorrelationIDFilter,
        JSONFormatter,
        LogSanitizer,
        SanitizingFormatter,
    )

    effective_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(effective_level)

    # Clear any existing handlers to avoid duplicates
    root_logger.handlers.clear()

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = SanitizingFormatter(
            "%(asctime)s [%(levelname)s] [%(correlation_id)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def _configure(handler: logging.Handler) -> None:
        handler.setLevel(effective_level)
        handler.setFormatter(formatter)
        # Filters are not inherited by child loggers, so they go on the handler
        handler.addFilter(LogSanitizer())
        handler.addFilter(CorrelationIDFilter())
        root_logger.addHandler(handler)

    _configure(logging.StreamHandler(sys.stdout))

    if log_to_file and log_file_path:
        try:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            _configure(
                RotatingFileHandler(
                    log_file_path,
                    maxBytes=log_file_max_bytes,
                    backupCount=log_file_backup_count,
                    encoding="utf-8",
                )
            )
            logging.info(f"File logging enabled: {log_file_path}")
            logging.debug(
                f"Log rotation: max {log_file_max_bytes / (1024 * 1024):.1f} MB, "
                f"{log_file_backup_count} backups"
            )
        except OSError as e:
            # Continue with console-only logging
            logging.warning(f"Failed to initialize file logging: {e}. Using console-only logging.")


def _report_validation(errors: list[str], warnings: list[str]) -> bool:
    """Print validation results; return True if the configuration is usable."""
    if errors:
        print("Configuration validation failed:")
        for error in errors:
            print(f"\n{error}")
        return False

    if warnings:
        print("Configuration warnings:")
        for warning in warnings:
            print(f"  • {warning}")
        print()

    return True


def main() -> None:
    """Run the ImageShelter web application."""
    import argparse
    import platform

    import uvicorn

    from imageshelter import __version__
    from imageshelter.config import Settings, get_settings, reset_settings

    # Load settings from env/.env first for defaults
    env_settings = get_settings()

    parser = argparse.ArgumentParser(
        description="ImageShelter - file hosting with per-upload encryption keys"
    )
    parser.add_argument(
        "--host",
        default=env_settings.host,
        help=f"Host to bind to (default: {env_settings.host}, env: IMAGESHELTER_HOST)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=env_settings.port,
        help=f"Port to bind to (default: {env_settings.port}, env: IMAGESHELTER_PORT)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=env_settings.debug,
        help="Enable debug mode (env: IMAGESHELTER_DEBUG)",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help=f"Data directory path (default: {env_settings.data_dir}, env: IMAGESHELTER_DATA_DIR)",
    )
    parser.add_argument(
        "--log-level",
        default=env_settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {env_settings.log_level}, env: IMAGESHELTER_LOG_LEVEL)",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate configuration and exit without starting server",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"ImageShelter {__version__}",
    )

    args = parser.parse_args()

    # Reset cache so the app picks up CLI overrides
    reset_settings()

    cli_overrides: dict[str, object] = {
        "host": args.host,
        "port": args.port,
        "debug": args.debug,
        "log_level": args.log_level,
    }
    if args.data_dir:
        cli_overrides["data_dir"] = Path(args.data_dir)

    # Keep a generated default secret stable across both Settings loads
    cli_overrides["secrets"] = env_settings.secrets
    generated_secret = "secrets" not in env_settings.model_fields_set

    settings = Settings(**cli_overrides)  # type: ignore[arg-type]

    if args.validate:
        settings.print_config()
        print()
        if not _report_validation(settings.validate(), settings.check()):
            sys.exit(1)
        print("Configuration is valid")
        sys.exit(0)

    setup_logging(
        level=settings.log_level,
        debug=settings.debug,
        log_to_file=settings.log_to_file,
        log_file_path=settings.log_file_path if settings.log_to_file else None,
        log_file_max_bytes=settings.log_file_max_bytes,
        log_file_backup_count=settings.log_file_backup_count,
        log_format=settings.log_format,
    )

    # Fail fast before binding the port
    if not _report_validation(settings.validate(), settings.check()):
        print("\nRun with --validate to check configuration without starting the server")
        sys.exit(1)

    dir_errors = settings.ensure_data_dirs()
    if dir_errors:
        print("Warning: Some directories could not be created:")
        for error in dir_errors:
            print(f"  • {error}")
        print()

    _export_to_env(settings)

    print("=" * 60)
    print(f"ImageShelter v{__version__}")
    print("=" * 60)
    print(f"Python:        {platform.python_version()}")
    print(f"OS:            {platform.system()} {platform.release()}")
    print(f"Server:        http://{settings.host}:{settings.port}")
    print(f"Upload dir:    {settings.uploads_path}")
    print(f"Encryption:    {'enabled' if settings.encrypt else 'disabled'}")
    if settings.backup_keys:
        print(f"Key backups:   {settings.key_backup_path}")
    print(f"Log level:     {settings.log_level}")
    if settings.log_to_file:
        print(f"Log file:      {settings.log_file_path}")
    print("=" * 60)
    if generated_secret:
        print("No upload secret configured; generated secret for this run:")
        print(f"  {settings.secrets[0]}")
        print("=" * 60)

    try:
        uvicorn.run(
            "imageshelter.web.app:app",
            reload=settings.debug,
            host=settings.host,
            port=settings.port,
            log_level="debug" if settings.debug else "info",
            # Request lines carry retrieval keys; RequestLoggingMiddleware logs them masked
            access_log=False,
        )
    except KeyboardInterrupt:
        print("\nShutting down...")
        sys.exit(0)


def _export_to_env(settings: Settings) -> None:
    """Expose CLI overrides to the app, which loads its own Settings on import."""
    os.environ["IMAGESHELTER_HOST"] = settings.host
    os.environ["IMAGESHELTER_PORT"] = str(settings.port)
    os.environ["IMAGESHELTER_DEBUG"] = str(settings.debug).lower()
    os.environ["IMAGESHELTER_LOG_LEVEL"] = settings.log_level
    os.environ["IMAGESHELTER_DATA_DIR"] = str(settings.data_dir)
    os.environ["IMAGESHELTER_SECRETS"] = ",".join(settings.secrets)


if __name__ == "__main__":
    main()
