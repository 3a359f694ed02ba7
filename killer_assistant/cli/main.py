"""
CLI interface for Killer Assistant.

Provides command-line access to the account store, the API server and a
terminal capture session.
"""

import asyncio
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from killer_assistant.client.session import SessionGate
from killer_assistant.config.loader import Settings, load_settings
from killer_assistant.core.ledger import BalanceLedger, TokenStatus, format_token_display
from killer_assistant.errors import AccountNotFound, IdentityError
from killer_assistant.storage.identity import LocalIdentityProvider
from killer_assistant.storage.models import Plan
from killer_assistant.storage.repository import (
    AccountRepository,
    fetch_recent_interactions,
    initialize_schema,
)
from killer_assistant.utils.logging import init_logging

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

ConfigOption = typer.Option(None, "--config", "-c", help="Path to YAML configuration file")
DbOption = typer.Option(None, "--db", help="Override the database path from the configuration")


def _load(config: Optional[str]) -> Settings:
    try:
        return load_settings(config)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)


def _repository(config: Optional[str], db: Optional[str]) -> AccountRepository:
    settings = _load(config)
    db_path = db or settings.server.db_path
    initialize_schema(db_path)
    return AccountRepository(db_path)


def _gate(config: Optional[str], db: Optional[str]) -> SessionGate:
    settings = _load(config)
    repository = _repository(config, db)
    ledger = BalanceLedger(
        repository,
        pricing=settings.pricing,
        first_session_bonus=settings.grants.first_session_bonus,
    )
    return SessionGate(LocalIdentityProvider(repository.db_path), ledger, settings.grants)


def _print_session(gate: SessionGate) -> None:
    account = gate.current_account()
    console.print(f"[green]✓[/] Signed in as {account.display_name} ({account.id})")
    console.print(f"Plan: {account.plan.wire_name.upper()}  Tokens: {gate.token_display()}")
    console.print(f"Token: {gate.token}", soft_wrap=True)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Killer Assistant CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Killer Assistant - Use --help to see available commands")


@app.command()
def init(config: Optional[str] = ConfigOption, db: Optional[str] = DbOption):
    """Initialize the Killer Assistant database."""
    settings = _load(config)
    try:
        initialize_schema(db or settings.server.db_path)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def serve(
    config: Optional[str] = ConfigOption,
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
):
    """Run the API server."""
    import uvicorn

    from killer_assistant.server.app import create_app

    settings = _load(config)
    console.print(f"🚀 Killer Assistant API Server on http://{host or settings.server.host}:{port or settings.server.port}")
    uvicorn.run(
        create_app(settings),
        host=host or settings.server.host,
        port=port or settings.server.port,
        log_level=settings.server.log_level.lower(),
    )


@app.command()
def tokens(
    user_id: str = typer.Argument(..., help="Account id"),
    config: Optional[str] = ConfigOption,
    db: Optional[str] = DbOption,
):
    """Show the token balance of an account."""
    repository = _repository(config, db)
    account = repository.get_account(user_id)
    if account is None:
        console.print(f"[red]User not found:[/] {user_id}")
        sys.exit(EXIT_CODE_FAIL)

    status = TokenStatus.of(account)
    table = Table(title=f"{account.display_name} ({account.id})")
    table.add_column("Plan")
    table.add_column("Total", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_row(
        status.subscription.upper(),
        str(status.total_tokens),
        str(status.used_tokens),
        format_token_display(account),
    )
    console.print(table)


@app.command()
def history(
    user_id: str = typer.Argument(..., help="Account id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of interactions to show"),
    config: Optional[str] = ConfigOption,
    db: Optional[str] = DbOption,
):
    """Show the most recent interactions of an account."""
    repository = _repository(config, db)
    records = fetch_recent_interactions(account_id=user_id, limit=limit, db_path=repository.db_path)
    if not records:
        console.print("[dim]No interactions recorded.[/]")
        return

    table = Table(title=f"Interactions of {user_id}")
    table.add_column("Time")
    table.add_column("Action")
    table.add_column("Prompt")
    table.add_column("Response")
    table.add_column("Cost", justify="right")
    for record in records:
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            record.action.value,
            record.prompt,
            record.response,
            str(record.cost),
        )
    console.print(table)


@app.command("set-plan")
def set_plan(
    user_id: str = typer.Argument(..., help="Account id"),
    plan: str = typer.Argument(..., help="free, pro or premium"),
    config: Optional[str] = ConfigOption,
    db: Optional[str] = DbOption,
):
    """Move an account to another subscription plan."""
    repository = _repository(config, db)
    try:
        account = repository.set_plan(user_id, Plan.from_wire(plan))
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    except AccountNotFound:
        console.print(f"[red]User not found:[/] {user_id}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] {account.id} is now on {account.plan.wire_name.upper()}")


@app.command()
def grant(
    user_id: str = typer.Argument(..., help="Account id"),
    amount: int = typer.Argument(..., help="Tokens to add to the allowance"),
    config: Optional[str] = ConfigOption,
    db: Optional[str] = DbOption,
):
    """Add tokens to the allowance of an account."""
    repository = _repository(config, db)
    try:
        account = repository.grant(user_id, amount)
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    except AccountNotFound:
        console.print(f"[red]User not found:[/] {user_id}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] {account.id} now has {format_token_display(account)} tokens available")


@app.command("sign-up")
def sign_up(
    email: str = typer.Argument(..., help="Email address"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, confirmation_prompt=True),
    name: str = typer.Option("User", "--name", help="Display name"),
    config: Optional[str] = ConfigOption,
    db: Optional[str] = DbOption,
):
    """Register an email/password identity, create its account and print a bearer token."""
    gate = _gate(config, db)
    try:
        gate.sign_up(email, password, name)
    except IdentityError as e:
        console.print(f"[red]Sign-up failed:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    _print_session(gate)


@app.command("sign-in")
def sign_in(
    email: str = typer.Argument(..., help="Email address"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
    config: Optional[str] = ConfigOption,
    db: Optional[str] = DbOption,
):
    """Sign in and print a bearer token for `assist --token`."""
    gate = _gate(config, db)
    try:
        gate.sign_in(email, password)
    except IdentityError as e:
        console.print(f"[red]Sign-in failed:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    except AccountNotFound:
        console.print(f"[red]No account for[/] {email}")
        sys.exit(EXIT_CODE_FAIL)
    _print_session(gate)


@app.command("sign-out")
def sign_out(
    token: str = typer.Argument(..., help="Bearer token to revoke"),
    config: Optional[str] = ConfigOption,
    db: Optional[str] = DbOption,
):
    """Revoke a bearer token."""
    _gate(config, db).sign_out(token)
    console.print("[green]✓[/] Signed out")


@app.command()
def assist(
    user_id: str = typer.Argument(..., help="Account id"),
    url: str = typer.Option("http://localhost:3000", "--url", help="API server base URL"),
    token: Optional[str] = typer.Option(None, "--token", help="Bearer token for the billed routes"),
    config: Optional[str] = ConfigOption,
):
    """Share this terminal session and answer spoken questions until Ctrl+C."""
    from killer_assistant.client.api import AssistantClient
    from killer_assistant.client.capture import CaptureDenied, CaptureLoop
    from killer_assistant.client.devices import CaptureFailure, HeadlessScreenSource
    from killer_assistant.client.microphone import SoundDeviceMicrophone
    from killer_assistant.client.speaker import ConsoleSpeaker
    from killer_assistant.client.status import StatusBoard

    settings = _load(config)
    init_logging(settings.server.log_level, "killer-assistant-client")

    async def run() -> int:
        api = AssistantClient(base_url=url, token=token)
        loop = CaptureLoop(
            user_id,
            api,
            HeadlessScreenSource(),
            SoundDeviceMicrophone(),
            speaker=ConsoleSpeaker(console),
            status=StatusBoard(listener=lambda text: console.print(f"[bold]›[/] {text}")),
            config=settings.capture,
        )
        try:
            await loop.start()
            await loop.wait_stopped()
            return EXIT_CODE_PASS
        except (CaptureDenied, CaptureFailure) as e:
            console.print(f"[red]Cannot start sharing:[/] {e}")
            return EXIT_CODE_FAIL
        finally:
            loop.stop()
            await loop.drain()
            await api.aclose()

    try:
        sys.exit(asyncio.run(run()))
    except KeyboardInterrupt:
        console.print("স্ক্রিন শেয়ার বন্ধ")
        sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
