"""Command-line entry point for the business data API."""

import sys
from pathlib import Path
from typing import Optional

import click
import uvicorn
from dotenv import load_dotenv

from . import __version__
from .config import ServerConfig
from .errors import (
    DataApiError,
    ErrorHandler,
    ErrorContext,
    setup_logging,
    get_logger,
    log_error,
    log_operation,
)


@click.command()
@click.option("--host", envvar="HOST", help="Interface to bind the HTTP server to")
@click.option("--port", envvar="PORT", type=int, help="Port to bind the HTTP server to")
@click.option("--environment", envvar="ENVIRONMENT", help="Deployment environment (development enables error diagnostics)")
@click.option(
    "--log-level",
    envvar="LOG_LEVEL",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level",
)
@click.option("--log-file", envvar="LOG_FILE", type=click.Path(), help="Path to log file (optional)")
@click.option("--config-file", type=click.Path(exists=True), help="Path to configuration file (.env format)")
@click.option(
    "--structured-logging/--no-structured-logging",
    envvar="STRUCTURED_LOGGING",
    default=None,
    help="Emit JSON log lines",
)
@click.option("--validate-config", is_flag=True, help="Validate configuration and exit")
@click.option("--health-check", is_flag=True, help="Connect to the database and exit")
@click.option("--status", is_flag=True, help="Show configuration summary and exit")
@click.option("--version", is_flag=True, help="Show version information and exit")
def main(
    host: Optional[str],
    port: Optional[int],
    environment: Optional[str],
    log_level: Optional[str],
    log_file: Optional[str],
    config_file: Optional[str],
    structured_logging: Optional[bool],
    validate_config: bool,
    health_check: bool,
    status: bool,
    version: bool,
) -> None:
    """Serve the business data API."""
    if version:
        click.echo(f"Business Data API v{__version__}")
        return

    if config_file:
        load_dotenv(Path(config_file), override=True)
        click.echo(f"Loaded configuration from: {config_file}")

    try:
        config = _load_configuration(host, port, environment, log_level, log_file, structured_logging)
    except DataApiError as e:
        click.echo(f"✗ Configuration error: {e.get_user_message()}", err=True)
        sys.exit(1)

    if validate_config:
        click.echo("✓ Configuration is valid")
        _echo_summary(config)
        return

    if status:
        click.echo("Business Data API Status")
        click.echo("=" * 40)
        _echo_summary(config)
        click.echo(f"  Python Version: {sys.version.split()[0]}")
        return

    setup_logging(level=config.log_level, log_file=config.log_file, structured=config.structured_logging)
    logger = get_logger(__name__)

    if health_check:
        _health_check_mode(config)
        return

    from .api import create_app

    try:
        app = create_app(config)
        log_operation(logger, "http_server_starting", host=config.host, port=config.port)
        uvicorn.run(app, host=config.host, port=config.port, log_config=None)
    except Exception as e:
        error = ErrorHandler.handle_error(e, context=ErrorContext(operation="main_startup"))
        log_error(logger, error, operation="main_startup")
        click.echo(f"Error starting server: {error.get_user_message()}", err=True)
        click.echo(f"Technical details: {error.get_technical_details()}", err=True)
        sys.exit(1)


def _load_configuration(
    host: Optional[str],
    port: Optional[int],
    environment: Optional[str],
    log_level: Optional[str],
    log_file: Optional[str],
    structured_logging: Optional[bool],
) -> ServerConfig:
    """Load configuration from the environment, apply CLI overrides, validate."""
    config = ServerConfig.from_env()

    if host:
        config.host = host
    if port is not None:
        config.port = port
    if environment:
        config.environment = environment.lower()
    if log_level:
        config.log_level = log_level.upper()
    if log_file:
        config.log_file = log_file
    if structured_logging is not None:
        config.structured_logging = structured_logging

    config.validate()
    return config


def _echo_summary(config: ServerConfig) -> None:
    click.echo("\nConfiguration Summary:")
    for key, value in config.summary().items():
        click.echo(f"  {key}: {value}")
    click.echo(f"  diagnostics: {'Enabled' if config.include_diagnostics else 'Disabled'}")


def _health_check_mode(config: ServerConfig) -> None:
    """Open one database connection and exit non-zero on failure."""
    from .client import ConnectionManager

    click.echo("Performing health check...")
    manager = ConnectionManager(config)
    try:
        info = manager.test_connection()
        click.echo("✓ Database connection successful")
        click.echo(f"  Server: {info['server']}")
        click.echo(f"  Database: {info['database']}")
        click.echo(f"  Strategy: {info['strategy']}")
    except DataApiError as e:
        click.echo(f"✗ Health check failed [{e.error_code}]: {e.get_user_message()}", err=True)
        sys.exit(1)
    finally:
        manager.close()


if __name__ == "__main__":
    main()
