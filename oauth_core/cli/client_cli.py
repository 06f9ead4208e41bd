# oauth_core/cli/client_cli.py
import typer
from typing import Optional
from typing_extensions import Annotated

from .utils_cli import make_api_request, split_csv

app = typer.Typer(
    name="client",
    help="Manage OAuth clients via the Admin API.",
    no_args_is_help=True
)

CLIENTS_ENDPOINT = "/admin/oauth/clients"


def _show_secret_once(client_id: str, client_secret: str) -> None:
    typer.secho(f"client_id:     {client_id}", fg=typer.colors.GREEN)
    typer.secho(f"client_secret: {client_secret}", fg=typer.colors.GREEN)
    typer.secho("Store the client secret now. It cannot be retrieved again.", fg=typer.colors.YELLOW)


@app.command("create")
def create_client(
    name: Annotated[str, typer.Option(prompt="Client name", help="Display name shown on the consent page.")],
    redirect_uris: Annotated[
        str,
        typer.Option("--redirect-uris", prompt="Redirect URIs (comma-separated)", help="Exact redirect URIs.")
    ],
    scopes: Annotated[
        str,
        typer.Option("--scopes", prompt="Scopes (comma-separated)", help="Scopes the client may request.")
    ],
    description: Annotated[Optional[str], typer.Option(help="Optional description.")] = None,
    public: Annotated[
        bool,
        typer.Option("--public", help="Register a public client (PKCE required, no refresh token on exchange).")
    ] = False,
    no_rotation: Annotated[
        bool,
        typer.Option("--no-rotation", help="Start a new refresh token family on every refresh.")
    ] = False,
):
    """Register a new OAuth client."""
    payload = {
        "name": name,
        "description": description,
        "redirect_uris": split_csv(redirect_uris),
        "scopes": split_csv(scopes),
        "is_confidential": not public,
        "rotate_refresh_tokens": not no_rotation,
    }
    if not payload["redirect_uris"] or not payload["scopes"]:
        typer.secho("Error: redirect URIs and scopes cannot be empty.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    data = make_api_request("POST", CLIENTS_ENDPOINT, json_payload=payload, expected_status=201)
    _show_secret_once(data["client_id"], data["client_secret"])


@app.command("list")
def list_clients():
    """List all OAuth clients."""
    make_api_request("GET", CLIENTS_ENDPOINT)


@app.command("get")
def get_client(id: Annotated[str, typer.Argument(help="Internal id of the client.")]):
    """Show one OAuth client."""
    make_api_request("GET", f"{CLIENTS_ENDPOINT}/{id}")


@app.command("update")
def update_client(
    id: Annotated[str, typer.Argument(help="Internal id of the client.")],
    name: Annotated[Optional[str], typer.Option(help="New display name.")] = None,
    description: Annotated[Optional[str], typer.Option(help="New description.")] = None,
    redirect_uris: Annotated[
        Optional[str],
        typer.Option("--redirect-uris", help="Replacement redirect URIs (comma-separated).")
    ] = None,
    scopes: Annotated[Optional[str], typer.Option("--scopes", help="Replacement scopes (comma-separated).")] = None,
    rotate_refresh_tokens: Annotated[
        Optional[bool],
        typer.Option("--rotate/--no-rotate", help="Enable or disable refresh token rotation.")
    ] = None,
):
    """Update an OAuth client. Only the options given are changed."""
    payload = {
        "name": name,
        "description": description,
        "redirect_uris": split_csv(redirect_uris),
        "scopes": split_csv(scopes),
        "rotate_refresh_tokens": rotate_refresh_tokens,
    }
    payload = {k: v for k, v in payload.items() if v is not None}
    if not payload:
        typer.secho("Nothing to update.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=0)
    make_api_request("PATCH", f"{CLIENTS_ENDPOINT}/{id}", json_payload=payload)


@app.command("regenerate-secret")
def regenerate_secret(
    id: Annotated[str, typer.Argument(help="Internal id of the client.")],
    force: Annotated[
        bool,
        typer.Option("--force", prompt="The current secret stops working immediately. Continue?", help="Confirm.")
    ] = False
):
    """Issue a new client secret, invalidating the old one."""
    if not force:
        typer.echo("Cancelled.")
        raise typer.Abort()
    data = make_api_request("POST", f"{CLIENTS_ENDPOINT}/{id}/regenerate-secret")
    _show_secret_once(data["client_id"], data["client_secret"])


@app.command("revoke")
def revoke_client(
    id: Annotated[str, typer.Argument(help="Internal id of the client.")],
    force: Annotated[
        bool,
        typer.Option("--force", prompt="Revoke this client and all of its tokens?", help="Confirm revocation.")
    ] = False
):
    """Revoke an OAuth client together with every token issued to it."""
    if not force:
        typer.echo("Revocation cancelled.")
        raise typer.Abort()
    make_api_request("DELETE", f"{CLIENTS_ENDPOINT}/{id}", expected_status=204, expect_json_response=False)
    typer.secho(f"OAuth client '{id}' revoked.", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
