"""Command line entry point for the FTP S3 Gateway."""

from typing import Optional

import typer
import uvicorn
from pydantic import ValidationError
from rich.console import Console

from ftp_s3_gateway import __version__
from ftp_s3_gateway.config import Settings
from ftp_s3_gateway.main import create_app, setup_logging

error_console = Console(stderr=True)

UVICORN_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

app = typer.Typer(
    name="ftp-s3-gateway",
    help="S3-compatible HTTP gateway in front of an FTP server",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        print(f"ftp-s3-gateway version {__version__}")
        raise typer.Exit()


def parse_listen(value: str) -> tuple[str, int]:
    """Split a listen address of the form ``host:port`` or ``:port``."""
    host, sep, port = value.rpartition(":")
    if not sep:
        raise typer.BadParameter(f"expected host:port or :port, got {value!r}")
    try:
        port_number = int(port)
    except ValueError:
        raise typer.BadParameter(f"invalid port {port!r}")
    if not 0 < port_number < 65536:
        raise typer.BadParameter(f"port out of range: {port_number}")
    return host or "0.0.0.0", port_number


def print_error(message: str) -> None:
    error_console.print(f"[red]Error:[/red] {message}")


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    ),
) -> None:
    """FTP S3 Gateway - expose an FTP server as an S3 bucket."""


@app.command()
def serve(
    ftp_host: Optional[str] = typer.Option(None, "--ftp-host", help="FTP server host [env: FTP_HOST]"),
    ftp_port: Optional[int] = typer.Option(None, "--ftp-port", help="FTP server port [env: FTP_PORT]"),
    ftp_user: Optional[str] = typer.Option(None, "--ftp-user", help="FTP username [env: FTP_USER]"),
    ftp_password: Optional[str] = typer.Option(
        None, "--ftp-password", help="FTP password [env: FTP_PASSWORD]"
    ),
    listen: Optional[str] = typer.Option(
        None, "--listen", "-l",
        help="HTTP listen address, host:port or :port (default :8080)"
    ),
    access_key_id: Optional[str] = typer.Option(
        None, "--access-key-id", help="S3 access key ID [env: S3_ACCESS_KEY_ID]"
    ),
    secret_key: Optional[str] = typer.Option(
        None, "--secret-key", help="S3 secret access key [env: S3_SECRET_KEY]"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="DEBUG, INFO, WARN or ERROR [env: LOG_LEVEL]"
    ),
) -> None:
    """Run the gateway HTTP server."""
    overrides: dict[str, object] = {
        "ftp_host": ftp_host,
        "ftp_port": ftp_port,
        "ftp_user": ftp_user,
        "ftp_password": ftp_password,
        "s3_access_key_id": access_key_id,
        "s3_secret_key": secret_key,
        "log_level": log_level,
    }
    if listen is not None:
        overrides["host"], overrides["port"] = parse_listen(listen)

    try:
        config = Settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not config.ftp_user or not config.ftp_password:
        print_error("FTP user and password are required (--ftp-user/--ftp-password or FTP_USER/FTP_PASSWORD)")
        raise typer.Exit(1)

    setup_logging(config)

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower() if config.log_level in UVICORN_LOG_LEVELS else "info",
    )


if __name__ == "__main__":
    app()
