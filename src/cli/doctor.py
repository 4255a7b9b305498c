"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from adapters.http_client import build_async_client
from adapters.keypad import DigitTemplateLibrary
from core.config import AppSettings, write_user_env_vars
from core.domain.errors import ConfigurationError
from core.resources_loader import get_templates_dir

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_http(url: str, settings: AppSettings) -> tuple[bool, str]:
    try:
        async with build_async_client(settings) as client:
            response = await client.get(url)
        return True, f"HTTP {response.status_code}"
    except Exception as exc:
        return False, str(exc)


def _check_templates(settings: AppSettings) -> tuple[bool, str]:
    """Load the ten keypad glyphs to detect missing or unreadable files."""

    directory = get_templates_dir(settings)
    if directory is None:
        return False, "not found (set KEYPAD_SCA_TEMPLATES_DIR)"
    try:
        library = DigitTemplateLibrary.from_directory(directory)
    except ConfigurationError as exc:
        return False, str(exc)
    return True, f"{len(library)} glyphs in {directory}"


@app.command()
def run() -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()

    table = Table(title="KEYPAD-SCA Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    table.add_row("Customer id", "OK" if settings.customer_id else "MISSING", "KEYPAD_SCA_CUSTOMER_ID")
    table.add_row("Birthdate", "OK" if settings.birthdate else "MISSING", "KEYPAD_SCA_BIRTHDATE (DDMMYYYY)")
    table.add_row("Password", "OK" if settings.password else "MISSING", "KEYPAD_SCA_PASSWORD")
    table.add_row("Secure API", "OK", settings.secure_api_url)

    # Templates
    ok_templates, detail_templates = _check_templates(settings)
    table.add_row("Keypad templates", "OK" if ok_templates else "FAIL", detail_templates)

    # Connectivity (best-effort)
    ok_http, detail_http = asyncio.run(_check_http(settings.secure_api_url, settings))
    table.add_row("HTTP connectivity", "OK" if ok_http else "FAIL", detail_http)

    _console.print(table)

    if not ok_templates:
        _console.print(
            "\n[yellow]Note:[/yellow] the keypad cannot be solved without the ten reference glyphs (0.png .. 9.png)."
        )


@app.command(name="setup")
def setup() -> None:
    """Interactive credentials setup (stores config in the user config .env)."""

    customer_id = typer.prompt("Customer id").strip()
    birthdate = typer.prompt("Birthdate (DDMMYYYY)").strip()
    password = typer.prompt("Password", hide_input=True, confirmation_prompt=False).strip()
    templates_dir = typer.prompt("Keypad templates directory", default="", show_default=False).strip()

    if not customer_id or len(birthdate) != 8 or not birthdate.isdigit():
        raise typer.BadParameter("customer id and an 8-digit birthdate are required")
    if not password.isdigit():
        raise typer.BadParameter("the password is typed on a numeric keypad and must be digits only")

    values = {
        "KEYPAD_SCA_CUSTOMER_ID": customer_id,
        "KEYPAD_SCA_BIRTHDATE": birthdate,
        "KEYPAD_SCA_PASSWORD": password,
    }
    if templates_dir:
        values["KEYPAD_SCA_TEMPLATES_DIR"] = templates_dir
    env_path = write_user_env_vars(values)

    _console.print(f"[green]Saved credentials to:[/green] {env_path}")
