"""``viewtube-release package`` — build, archive and sign a release."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from viewtube_release.core import keystore
from viewtube_release.core.builder import CargoBuilder
from viewtube_release.core.errors import ReleaseError
from viewtube_release.core.packager import package_release

console = Console()


def package_cmd(
    release_tag: str = typer.Option(
        ...,
        "--release-tag",
        "-t",
        help="Release tag to embed in the signatures (e.g. v0.2.0).",
    ),
    output_dir: Path = typer.Option(
        ...,
        "--output-dir",
        "-o",
        help="Directory for the archives and .sig sidecars.",
    ),
    signing_key: Path = typer.Option(
        ...,
        "--signing-key",
        "-s",
        help="Path to the Ed25519 signing key generated via keygen.",
    ),
    repo_root: Path = typer.Option(
        Path("."),
        "--repo-root",
        "-r",
        help="Repository to package.",
    ),
    build: bool = typer.Option(
        True,
        "--build/--skip-build",
        help="Run cargo build --release before bundling binaries.",
    ),
) -> None:
    """Build and sign release archives (source + binary bundles)."""
    try:
        keypair = keystore.load_private(signing_key)
        release = package_release(
            repo_root,
            release_tag,
            output_dir,
            keypair,
            builder=CargoBuilder() if build else None,
        )
    except ReleaseError as exc:
        console.print(f"[bold red]Packaging failed:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    table = Table(title=f"Release {escape(release.tag)}")
    table.add_column("Artifact", style="cyan")
    table.add_column("Signature")
    table.add_column("Digest", style="green")
    for signed in (release.source, release.binary):
        table.add_row(
            signed.artifact.path.name,
            signed.signature_path.name,
            signed.signature.digest[:16],
        )
    console.print(table)
