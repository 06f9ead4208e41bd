# oauth_core/cli/admin_cli.py
import typer
from . import client_cli
from .utils_cli import make_api_request

app = typer.Typer(
    name="admin",
    help="OAuth Core Administrative Commands.",
    no_args_is_help=True
)

app.add_typer(client_cli.app, name="client")


@app.callback()
def admin_callback():
    """
    OAuth Core Admin CLI entry point callback.
    """
    pass


@app.command("cleanup")
def cleanup():
    """Delete expired authorization codes and expired or long-revoked tokens."""
    data = make_api_request("POST", "/admin/oauth/cleanup")
    typer.secho(f"Removed {data['deleted']} rows.", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
