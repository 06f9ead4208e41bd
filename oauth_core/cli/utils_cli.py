# oauth_core/cli/utils_cli.py
import requests
import typer
import json
from typing import Optional, Dict, Any, Union, List

from . import config

# Response fields that must not be echoed in full to the terminal log
_SECRET_FIELDS = {"client_secret"}


def make_api_request(
    method: str,
    endpoint: str,
    json_payload: Optional[Dict[str, Any]] = None,
    params_payload: Optional[Dict[str, Any]] = None,
    expected_status: Union[int, List[int]] = 200,
    expect_json_response: bool = True
) -> Any:
    """
    Makes an admin API request and prints the outcome.

    Exits with code 1 on connection failures and unexpected status codes.
    """
    full_url = f"{config.OAUTH_CORE_CLI_API_BASE_URL}{endpoint}"
    headers: Dict[str, str] = {}

    if config.OAUTH_CORE_CLI_ADMIN_API_KEY:
        headers["X-Admin-API-Key"] = config.OAUTH_CORE_CLI_ADMIN_API_KEY
    elif "/admin/" in endpoint:
        typer.secho(
            "CLI: Warning - ADMIN_API_KEY not set in .env for CLI. Admin API calls might fail.",
            fg=typer.colors.YELLOW
        )

    typer.echo(f"CLI: {method.upper()} {full_url}")
    if json_payload:
        typer.echo(f"CLI: JSON Payload: {json.dumps(json_payload, indent=2)}")
    if params_payload:
        typer.echo(f"CLI: Query Params: {params_payload}")

    try:
        response = requests.request(
            method,
            full_url,
            json=json_payload,
            params=params_payload,
            headers=headers,
            timeout=config.OAUTH_CORE_CLI_TIMEOUT_SECONDS
        )
    except requests.exceptions.ConnectionError as e:
        typer.secho(
            f"CLI: Connection Error - Could not connect to API at {full_url}. Is the server running? Error: {e}",
            fg=typer.colors.RED
        )
        raise typer.Exit(code=1)
    except requests.exceptions.RequestException as e:
        typer.secho(f"CLI: Request Error - {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"CLI: Response Status: {response.status_code}")
    expected_statuses = [expected_status] if isinstance(expected_status, int) else expected_status

    if response.status_code not in expected_statuses:
        err_msg = f"CLI: API Error - Expected status {expected_status}, got {response.status_code}."
        try:
            err_data = response.json()
            err_msg += f" Detail: {err_data.get('detail', response.text)}"
        except ValueError:
            err_msg += f" Raw response: {response.text}"
        typer.secho(err_msg, fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if response.status_code == 204 or not response.content:
        typer.secho(f"CLI: Success (Status {response.status_code}, No Content).", fg=typer.colors.GREEN)
        return None

    if not expect_json_response:
        typer.secho(f"CLI: Success (Status {response.status_code}).", fg=typer.colors.GREEN)
        return response.text

    try:
        data = response.json()
    except ValueError:
        typer.secho(
            f"CLI: Error - Could not decode JSON response. Raw text: {response.text}",
            fg=typer.colors.RED
        )
        raise typer.Exit(code=1)

    typer.echo(typer.style("CLI: Response JSON:", fg=typer.colors.CYAN))
    typer.echo(json.dumps(_mask_secrets(data), indent=2))
    return data


def _mask_secrets(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: ("********" if k in _SECRET_FIELDS else _mask_secrets(v)) for k, v in data.items()}
    if isinstance(data, list):
        return [_mask_secrets(item) for item in data]
    return data


def split_csv(value: Optional[str]) -> Optional[List[str]]:
    """Split a comma-separated option into a list, dropping empty items."""
    if value is None:
        return None
    return [item.strip() for item in value.split(',') if item.strip()]
