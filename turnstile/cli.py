# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details


"""
Command Line Interface

Usage:
    turnstile init-db                       # Create tables
    turnstile tenant create NAME            # Create a tenant
    turnstile sessions USER_ID              # List live sessions
    turnstile logout-all USER_ID            # Revoke every session
    turnstile purge-tokens                  # Run retention cleanup
    turnstile generate-secrets              # Print fresh secrets
"""

import asyncio
import json
import secrets
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table

from .auth.engine import SessionEngine, build_session_engine
from .core.settings import Settings, get_settings

app = typer.Typer(
    name="turnstile", help="Turnstile - Multi-Tenant Session & Credential Lifecycle Engine"
)
console = Console()

T = TypeVar("T")

SECRET_NAMES = (
    "SECURITY_JWT_ACCESS_SECRET",
    "SECURITY_JWT_REFRESH_SECRET",
    "SECURITY_REFRESH_TOKEN_HMAC_SECRET",
)


def _load_settings() -> Settings:
    return get_settings()


def _run(work: Callable[[SessionEngine], Awaitable[T]]) -> T:
    """Build the engine, run one coroutine against it, then dispose of it."""

    async def _main() -> T:
        engine = build_session_engine(_load_settings())
        try:
            return await work(engine)
        finally:
            await engine.close()

    return asyncio.run(_main())


# ============================================================
# DATABASE COMMANDS
# ============================================================


@app.command("init-db")
def init_db():
    """Create all tables from ORM metadata."""

    async def _init(engine: SessionEngine):
        await engine.create_tables()

    _run(_init)
    console.print("[green]Database tables created.[/]")


@app.command("purge-tokens")
def purge_tokens():
    """Delete revoked refresh tokens that are past expiry and retention."""

    async def _purge(engine: SessionEngine) -> int:
        return await engine.cleanup.purge()

    deleted = _run(_purge)
    console.print(f"[green]Purged {deleted} revoked refresh token record(s).[/]")


# ============================================================
# TENANT COMMANDS
# ============================================================

tenant_app = typer.Typer(help="Tenant management commands")
app.add_typer(tenant_app, name="tenant")


@tenant_app.command("create")
def tenant_create(name: str = typer.Argument(..., help="Tenant display name")):
    """Create a new tenant."""

    async def _create(engine: SessionEngine):
        return await engine.accounts.create_tenant(name)

    tenant = _run(_create)

    table = Table(title="Tenant Created")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("ID", tenant.id)
    table.add_row("Name", tenant.name)
    console.print(table)


# ============================================================
# SESSION COMMANDS
# ============================================================


@app.command()
def sessions(user_id: str = typer.Argument(..., help="User ID")):
    """List a user's live sessions."""

    async def _list(engine: SessionEngine):
        return await engine.revocation.list_active_sessions(user_id)

    views = _run(_list)
    if not views:
        console.print("[yellow]No active sessions.[/]")
        return

    table = Table(title=f"Active sessions ({len(views)})")
    table.add_column("Session", style="cyan")
    table.add_column("Issued", style="white")
    table.add_column("Expires", style="white")
    table.add_column("IP", style="green")
    table.add_column("User agent", style="dim")

    for view in views:
        table.add_row(
            view.session_id,
            f"{view.issued_at:%Y-%m-%d %H:%M}",
            f"{view.expires_at:%Y-%m-%d %H:%M}",
            view.ip_address or "-",
            view.user_agent or "-",
        )
    console.print(table)


@app.command("logout-all")
def logout_all(
    user_id: str = typer.Argument(..., help="User ID"),
    except_session: str = typer.Option(None, "--except", help="Session ID to keep"),
):
    """Revoke every session of a user."""

    async def _logout(engine: SessionEngine) -> int:
        return await engine.revocation.logout_all_devices(
            user_id, except_session_id=except_session
        )

    revoked = _run(_logout)
    console.print(f"[green]Revoked {revoked} refresh token record(s).[/]")


# ============================================================
# UTILITY COMMANDS
# ============================================================


@app.command("generate-secrets")
def generate_secrets(
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Generate the signing and HMAC secrets."""
    values = {name: secrets.token_urlsafe(64) for name in SECRET_NAMES}

    if as_json:
        typer.echo(json.dumps(values, indent=2))
        return

    console.print("# Turnstile secrets - KEEP THESE VALUES SECRET", highlight=False)
    for name, value in values.items():
        console.print(f"{name}={value}", highlight=False, soft_wrap=True)


@app.command()
def version():
    """Show version information."""
    from . import __version__

    console.print(f"Turnstile v{__version__}")


# ============================================================
# MAIN
# ============================================================


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
