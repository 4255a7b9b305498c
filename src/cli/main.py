"""CLI entry point (Typer)."""

from __future__ import annotations

import asyncio
import random
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console

from adapters.bank_client import BankClient
from adapters.keypad import DigitTemplateLibrary, PixelDiffClassifier, decode_keypad_image
from cli import doctor
from cli.ui_components import build_clicks_table, build_keypad_table, print_banner
from core.config import AppSettings
from core.domain.errors import BusinessError, ConfigurationError, ScaError
from core.domain.keypad import KeypadLayout
from core.domain.models import ExternalAccountRequest, TransferRequest
from core.logging_config import configure_logging
from core.resources_loader import get_templates_dir
from core.services.keypad_solver import solve as solve_keypad
from core.services.sca_flow import SensitiveOperationFlow

app = typer.Typer(no_args_is_help=True, help="Virtual keypad solver and SCA client.")
app.add_typer(doctor.app, name="doctor")

_console = Console()

T = TypeVar("T")


@app.callback()
def _main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
    banner: bool = typer.Option(False, "--banner", help="Show the banner."),
) -> None:
    settings = AppSettings()
    configure_logging("DEBUG" if verbose else settings.log_level)
    if banner:
        print_banner(_console)


def _run(action: Callable[[BankClient], Awaitable[T]]) -> T:
    """Run one async action against a fresh client, turning SCA errors into exit codes."""

    async def runner() -> T:
        async with BankClient(AppSettings()) as client:
            return await action(client)

    try:
        return asyncio.run(runner())
    except BusinessError as exc:
        _console.print(f"[red]Bank refused the request:[/red] {exc.code} {exc.message}")
        if exc.values:
            _console.print(exc.values)
        raise typer.Exit(code=2) from exc
    except ConfigurationError as exc:
        _console.print(f"[yellow]Configuration:[/yellow] {exc}")
        raise typer.Exit(code=3) from exc
    except ScaError as exc:
        _console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
        raise typer.Exit(code=1) from exc


async def _finish_with_otp(client: BankClient, flow: SensitiveOperationFlow) -> Any:
    phone = flow.channel.phone if flow.channel else None
    otp = typer.prompt(f"Code received by SMS{f' on {phone}' if phone else ''}").strip()
    ack = await client.confirm_operation(flow, otp)
    return {"action": flow.action.value, "state": flow.state.value, "acknowledged": ack.acknowledged}


@app.command()
def login() -> None:
    """Log in (credentials + keypad) and show the session status."""

    async def action(client: BankClient) -> Any:
        result = await client.connect()
        return {"internalId": result.internal_id, "authenticated": result.status.authenticated}

    _console.print_json(data=_run(action))


@app.command()
def accounts() -> None:
    """List accounts."""

    async def action(client: BankClient) -> Any:
        await client.connect()
        return await client.get_accounts()

    _console.print_json(data=_run(action))


@app.command()
def transactions(
    account_id: str = typer.Argument(..., help="Account uid."),
    start_at: int = typer.Option(0, "--start", min=0),
    limit: int = typer.Option(50, "--limit", min=1),
) -> None:
    """Show the latest transactions of an account."""

    async def action(client: BankClient) -> Any:
        await client.connect()
        return await client.get_account_transactions(account_id, start_at, limit)

    _console.print_json(data=_run(action))


@app.command(name="more-transactions")
def more_transactions() -> None:
    """Unlock the extended transaction history (keypad + SMS)."""

    async def action(client: BankClient) -> Any:
        await client.connect()
        flow = await client.start_display_transactions()
        return await _finish_with_otp(client, flow)

    _console.print_json(data=_run(action))


@app.command(name="add-beneficiary")
def add_beneficiary(
    holder: str = typer.Option(..., "--holder", help="Account holder name."),
    iban: str = typer.Option(..., "--iban"),
    bic: str = typer.Option("", "--bic"),
    bank_name: str = typer.Option("", "--bank"),
) -> None:
    """Add a transfer beneficiary (validation + keypad + SMS)."""

    beneficiary = ExternalAccountRequest(
        account_holder_name=holder,
        bank_name=bank_name,
        bic=bic,
        iban=iban.replace(" ", ""),
    )

    async def action(client: BankClient) -> Any:
        await client.connect()
        flow = await client.start_add_beneficiary(beneficiary)
        return await _finish_with_otp(client, flow)

    _console.print_json(data=_run(action))


@app.command()
def transfer(
    from_account: str = typer.Option(..., "--from"),
    to_account: str = typer.Option(..., "--to"),
    amount: str = typer.Option(..., "--amount", help="Amount in euros, e.g. 12.50"),
    label: str = typer.Option("", "--label"),
    execution_date: str = typer.Option("", "--date", help="YYYY-MM-DD, defaults to today."),
) -> None:
    """Send an external transfer (keypad + SMS)."""

    request = TransferRequest(
        from_account=from_account,
        to_account=to_account,
        amount=Decimal(amount),
        label=label,
        execution_date=date.fromisoformat(execution_date) if execution_date else date.today(),
    )

    async def action(client: BankClient) -> Any:
        await client.connect()
        flow = await client.start_external_transfer(request)
        return await _finish_with_otp(client, flow)

    _console.print_json(data=_run(action))


@app.command()
def solve(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Keypad PNG."),
    positions: str = typer.Option(..., "--positions", help="Comma separated 1-based offsets, e.g. 1,3,5"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
    multiplier: Optional[int] = typer.Option(None, "--multiplier", min=1, help="Defaults to the largest 484x190 multiple that fits the image."),
    templates_dir: Optional[Path] = typer.Option(None, "--templates-dir", file_okay=False),
    seed: Optional[int] = typer.Option(None, "--seed", help="Deterministic click offsets."),
) -> None:
    """Offline: classify a keypad image and print the clicks for a password."""

    settings = AppSettings()
    directory = templates_dir or get_templates_dir(settings)
    try:
        if directory is None:
            raise ConfigurationError("keypad templates not found; pass --templates-dir")
        classifier = PixelDiffClassifier(
            DigitTemplateLibrary.from_directory(directory),
            threshold=settings.pixel_diff_threshold,
        )
        keypad_image = decode_keypad_image(image.read_bytes())
        layout = (
            KeypadLayout(size_multiplier=multiplier)
            if multiplier
            else KeypadLayout.for_image_size(keypad_image.width, keypad_image.height)
        )
        missing = [int(p) for p in positions.split(",") if p.strip()]
        classified = classifier.classify(keypad_image, layout)
        clicks = solve_keypad(
            classified,
            layout,
            missing,
            password,
            rng=random.Random(seed) if seed is not None else None,
        )
    except ScaError as exc:
        _console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    _console.print(build_keypad_table(classified, layout))
    _console.print(build_clicks_table(missing, clicks))


def run() -> None:
    app()


if __name__ == "__main__":
    run()
