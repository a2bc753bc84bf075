"""``viewtube-release sign`` / ``verify`` — work on a single artifact."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from viewtube_release.core import keystore
from viewtube_release.core.errors import ReleaseError, VerificationError
from viewtube_release.core.signer import sign_artifact, signature_path_for
from viewtube_release.core.verifier import verify_artifact

console = Console()
err_console = Console(stderr=True)


def sign_cmd(
    artifact: Path = typer.Argument(..., help="Archive to sign."),
    release_tag: str = typer.Option(
        ..., "--release-tag", "-t", help="Release tag bound into the signature."
    ),
    signing_key: Path = typer.Option(
        ..., "--signing-key", "-s", help="Path to the Ed25519 signing key."
    ),
) -> None:
    """Write ``<artifact>.sig`` for an existing archive."""
    try:
        keypair = keystore.load_private(signing_key)
        record = sign_artifact(artifact, release_tag, keypair)
    except ReleaseError as exc:
        err_console.print(f"[bold red]Signing failed:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)
    console.print(
        f"[green]Signed[/green] {escape(artifact.name)} as {escape(record.version)}"
        f" -> {escape(signature_path_for(artifact).name)}"
    )
    console.print(f"[dim]digest {record.digest}[/dim]")


def verify_cmd(
    artifact: Path = typer.Argument(..., help="Archive to verify."),
    signature: Path = typer.Option(
        None, "--signature", help="Sidecar path (default: <artifact>.sig)."
    ),
    trusted_pubkey: Path = typer.Option(
        Path("/etc/viewtube-release.pub"),
        "--trusted-pubkey",
        "-p",
        help="Trusted public key file.",
    ),
    expect_version: str = typer.Option(
        None, "--expect-version", help="Require the signed version to equal this tag."
    ),
) -> None:
    """Verify an archive against its detached signature."""
    try:
        key = keystore.load_public(trusted_pubkey)
        record = verify_artifact(artifact, signature, key, expect_version)
    except VerificationError as exc:
        err_console.print(
            f"[bold red]{type(exc).__name__}:[/bold red] {escape(str(exc))}"
        )
        raise typer.Exit(code=1)
    except ReleaseError as exc:
        err_console.print(f"[bold red]Verification failed:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)
    console.print(
        f"[bold green]OK[/bold green] {escape(artifact.name)}: "
        f"release {escape(record.version)}"
    )
    console.print(f"[dim]digest {record.digest}[/dim]")
