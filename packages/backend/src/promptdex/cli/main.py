"""PromptDex operator CLI — inspect accounts and manage roles.

Usage:
    promptdex show alice                     # Account details
    promptdex grant-role alice ADMIN         # Add a role
    promptdex revoke-role alice ADMIN        # Remove a role
    promptdex issue-token alice              # Mint a bearer token

Talks to the database directly (PROMPTDEX_DATABASE_URL), not to the HTTP
API: there is no HTTP route that grants ADMIN.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import sys
from typing import Awaitable, Callable, Optional, TypeVar

import click
from sqlalchemy.ext.asyncio import AsyncSession

from promptdex import __version__
from promptdex.auth.principal import Principal
from promptdex.auth.store import UserStore
from promptdex.auth.tokens import get_token_service
from promptdex.services.account_service import AccountService

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. CliRunner inside an async test) by
    offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


async def _with_session(fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
    from promptdex.db.engine import async_session_factory

    async with async_session_factory() as session:
        return await fn(session)


async def _find_principal(db: AsyncSession, username: str) -> Optional[Principal]:
    user = await UserStore(db).find_by_username(username)
    return Principal.from_user(user) if user is not None else None


def _fail(message: str) -> None:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


def _print_principal(principal: Principal) -> None:
    view = principal.public_view()
    width = max(len(k) for k in view)
    for key, value in view.items():
        if isinstance(value, list):
            value = ", ".join(value)
        click.echo(f"{click.style(key.ljust(width), bold=True)}  {value}")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="promptdex")
def main():
    """PromptDex — account and role administration."""


@main.command()
@click.argument("username")
def show(username: str):
    """Show an account."""
    principal = _run(_with_session(lambda db: _find_principal(db, username)))
    if principal is None:
        _fail(f"No account named {username!r}")
    _print_principal(principal)


@main.command("grant-role")
@click.argument("username")
@click.argument("role")
def grant_role(username: str, role: str):
    """Give ROLE to an account."""
    try:
        principal = _run(
            _with_session(lambda db: AccountService(db).grant_role(username, role))
        )
    except LookupError as e:
        _fail(str(e))
    click.secho(f"✓ {username}: {', '.join(sorted(principal.roles))}", fg="green")


@main.command("revoke-role")
@click.argument("username")
@click.argument("role")
def revoke_role(username: str, role: str):
    """Take ROLE away from an account."""
    try:
        principal = _run(
            _with_session(lambda db: AccountService(db).revoke_role(username, role))
        )
    except (LookupError, ValueError) as e:
        _fail(str(e))
    click.secho(f"✓ {username}: {', '.join(sorted(principal.roles))}", fg="green")


@main.command("issue-token")
@click.argument("username")
def issue_token(username: str):
    """Print a fresh bearer token for an account."""
    principal = _run(_with_session(lambda db: _find_principal(db, username)))
    if principal is None:
        _fail(f"No account named {username!r}")
    click.echo(get_token_service().issue(principal))


if __name__ == "__main__":
    main()
