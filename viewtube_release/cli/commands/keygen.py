"""``viewtube-release keygen`` — create the offline release signing keypair."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from viewtube_release.core import keystore
from viewtube_release.core.errors import ReleaseError

console = Console()


def keygen_cmd(
    key_dir: Path = typer.Option(
        ...,
        "--key-dir",
        "-k",
        help="Directory where signing key files should be written.",
    ),
) -> None:
    """Generate an Ed25519 signing keypair used for release packaging.

    Writes ``viewtube-release.key`` (0600, keep offline) and
    ``viewtube-release.pub`` (0644, distribute to hosts).  Refuses to
    overwrite an existing key.
    """
    try:
        keypair = keystore.generate()
        private_path, public_path = keystore.save(keypair, key_dir)
    except ReleaseError as exc:
        console.print(f"[bold red]Key generation failed:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            "\n".join([
                f"[bold]Private key:[/bold] {escape(str(private_path))}",
                f"[bold]Public key:[/bold]  {escape(str(public_path))}",
                "",
                "[dim]Keep the private key offline. Copy the public key to",
                "/etc/viewtube-release.pub on every host that auto-updates.[/dim]",
            ]),
            title="[bold]Signing key generated[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
