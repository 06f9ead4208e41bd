# oauth_core/cli/main_cli.py
import typer
from typing import Optional
from typing_extensions import Annotated

from .. import __version__
from . import admin_cli, config
from .utils_cli import make_api_request

app = typer.Typer(
    name="oauth-core",
    help="OAuth Core Command Line Interface.",
    no_args_is_help=True
)

app.add_typer(admin_cli.app, name="admin")


@app.callback()
def main_callback(
    base_url: Annotated[Optional[str], typer.Option(
        "--base-url", help="Server URL. Defaults to OAUTH_CORE_CLI_API_BASE_URL."
    )] = None,
    admin_key: Annotated[Optional[str], typer.Option(
        "--admin-key", help="Admin API key. Defaults to ADMIN_API_KEY from .env."
    )] = None
):
    """
    OAuth Core main CLI application.
    Use 'oauth-core admin --help' for admin commands.
    """
    config.apply_overrides(base_url=base_url, admin_api_key=admin_key)


@app.command("version")
def version():
    """Print the CLI version."""
    typer.echo(f"oauth-core {__version__}")


@app.command("health")
def health():
    """Check that the server is up and its database answers."""
    data = make_api_request("GET", "/health")
    color = typer.colors.GREEN if data.get("status") == "healthy" else typer.colors.YELLOW
    typer.secho(f"Server status: {data.get('status')}", fg=color)


@app.command("discovery")
def discovery():
    """Show the server's OAuth 2.0 authorization server metadata."""
    make_api_request("GET", "/.well-known/oauth-authorization-server")


def cli_entry_point():
    """Entry point function for console script registration in pyproject.toml"""
    app()


if __name__ == "__main__":
    cli_entry_point()
