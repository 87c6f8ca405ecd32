"""
CLI for running and inspecting the WebSocket gateway.

Example:
    wsgateway serve
    PORT=8080 wsgateway config
"""

from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from wsgateway.exceptions import ConfigError
from wsgateway.server import serve
from wsgateway.settings import GatewaySettings, load_settings

# Exit code used when the configuration prevents startup
CONFIG_ERROR_EXIT_CODE = 2

typer_app = typer.Typer(
    name="wsgateway",
    help="WebSocket connection gateway",
    add_completion=False,
)
console = Console()


def _load_or_exit(**overrides: object) -> GatewaySettings:
    try:
        return load_settings(
            **{key: value for key, value in overrides.items() if value is not None}
        )
    except ConfigError as ex:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(ex))}")
        raise typer.Exit(code=CONFIG_ERROR_EXIT_CODE)


@typer_app.command(name="serve")
def serve_command(
    host: Optional[str] = typer.Option(None, help="Override HOST"),
    port: Optional[int] = typer.Option(None, help="Override PORT"),
):
    """
    Start the gateway.

    The listening port comes from the PORT environment variable. A missing
    or invalid value aborts startup before anything is bound.
    """
    settings = _load_or_exit(HOST=host, PORT=port)

    serve(settings)


@typer_app.command(name="config")
def config_command():
    """Display the effective gateway configuration."""
    settings = _load_or_exit()

    table = Table("Setting", "Value", title="Gateway configuration")
    for name, value in settings.model_dump().items():
        table.add_row(name, escape(repr(value)))

    console.print(table)


if __name__ == "__main__":
    typer_app()
