"""Main Typer application — imports and registers all CLI commands.

Entry point: ``viewtube-release`` (configured via pyproject.toml scripts).

Commands: keygen, package, sign, verify, update, apply.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from viewtube_release.cli.commands.keygen import keygen_cmd
from viewtube_release.cli.commands.package import package_cmd
from viewtube_release.cli.commands.update import apply_cmd, update_cmd
from viewtube_release.cli.commands.verify import sign_cmd, verify_cmd
from viewtube_release.config import UpdaterConfig

app = typer.Typer(
    name="viewtube-release",
    help="Signed release packaging and verified updates for ViewTube.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="keygen", help="Generate the Ed25519 release signing keypair.")(keygen_cmd)
app.command(name="package", help="Build and sign release archives (source + binary).")(package_cmd)
app.command(name="sign", help="Sign a single release archive.")(sign_cmd)
app.command(name="verify", help="Verify an archive against its detached signature.")(verify_cmd)
app.command(name="update", help="Download, verify, build and install the latest release.")(update_cmd)
app.command(name="apply", help="Apply a local signed source archive (offline update).")(apply_cmd)


def configure_logging(level: str) -> None:
    """Route stdlib logging through Rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Logging level (default from VIEWTUBE_LOG_LEVEL or INFO).",
    ),
) -> None:
    """Signed release packaging and verified updates for ViewTube."""
    configure_logging(log_level or UpdaterConfig().log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
