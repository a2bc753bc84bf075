"""Shared helpers for the update-running commands."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from viewtube_release.core import keystore
from viewtube_release.core.errors import ReleaseError
from viewtube_release.models.keys import TrustedPublicKey
from viewtube_release.models.update import UpdateResult, UpdateState

console = Console()
err_console = Console(stderr=True)

# sysexits.h EX_TEMPFAIL: another run holds the lock, try again later.
EXIT_LOCK_HELD = 75


def load_trusted_key(path: Path) -> TrustedPublicKey:
    """Load the host's trusted key or exit non-zero (fail closed)."""
    try:
        return keystore.load_public(path)
    except ReleaseError as exc:
        err_console.print(
            f"[bold red]Failed(verifying):[/bold red] cannot load trusted key: "
            f"{escape(str(exc))}"
        )
        raise typer.Exit(code=1)


def report_result(result: UpdateResult) -> None:
    """Print the outcome and exit with the matching status code."""
    if result.lock_held:
        err_console.print(f"[yellow]{escape(result.reason)}[/yellow]")
        raise typer.Exit(code=EXIT_LOCK_HELD)

    if result.state == UpdateState.DONE:
        if result.updated:
            console.print(
                f"[bold green]Installed {escape(result.target_version or 'release')}[/bold green]"
                f" (was {escape(result.previous_version or 'none')})"
            )
        else:
            console.print(f"[green]{escape(result.reason or 'Nothing to do')}[/green]")
        raise typer.Exit(code=0)

    stage = result.failed_stage.value if result.failed_stage else "unknown"
    err_console.print(
        f"[bold red]Failed({stage}):[/bold red] {escape(result.reason)}"
    )
    raise typer.Exit(code=1)
