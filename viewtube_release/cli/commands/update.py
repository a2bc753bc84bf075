"""``viewtube-release update`` / ``apply`` — run the verified-update pipeline.

Exit status: 0 when the run reaches done (including "already latest"),
1 on any failure with ``Failed(<stage>): <reason>`` on stderr, and 75
when another run holds the update lock.
"""

from __future__ import annotations

from pathlib import Path

import typer

from viewtube_release.cli.commands._common import load_trusted_key, report_result
from viewtube_release.config import UpdaterConfig
from viewtube_release.core.applier import UpdateApplier
from viewtube_release.core.signer import signature_path_for


def _host_config(
    config_path: Path | None,
    trusted_pubkey: Path | None,
    token: str | None = None,
) -> UpdaterConfig:
    overrides: dict = {}
    if config_path is not None:
        overrides["config_path"] = config_path
    if trusted_pubkey is not None:
        overrides["trusted_pubkey_path"] = trusted_pubkey
    if token:
        overrides["github_token"] = token
    return UpdaterConfig(**overrides)


def update_cmd(
    config_path: Path = typer.Option(
        None, "--config", "-c", help="Installed-state file (default /etc/viewtube-env)."
    ),
    trusted_pubkey: Path = typer.Option(
        None, "--trusted-pubkey", "-p", help="Trusted public key file."
    ),
    token: str = typer.Option(
        None, "--token", envvar="GITHUB_TOKEN", help="GitHub API token."
    ),
) -> None:
    """Download, verify, build and install the latest signed release."""
    cfg = _host_config(config_path, trusted_pubkey, token)
    key = load_trusted_key(cfg.trusted_pubkey_path)
    result = UpdateApplier.from_config(cfg, key).run()
    report_result(result)


def apply_cmd(
    archive: Path = typer.Argument(..., help="Signed source archive (.tar.gz)."),
    signature: Path = typer.Option(
        None,
        "--signature",
        "--source-signature",
        help="Detached signature (default: <archive>.sig).",
    ),
    config_path: Path = typer.Option(
        None, "--config", "-c", help="Installed-state file (default /etc/viewtube-env)."
    ),
    trusted_pubkey: Path = typer.Option(
        None, "--trusted-pubkey", "-p", help="Trusted public key file."
    ),
    expect_version: str = typer.Option(
        None, "--expect-version", help="Require the signed version to equal this tag."
    ),
) -> None:
    """Apply a local signed source archive (offline update)."""
    cfg = _host_config(config_path, trusted_pubkey)
    key = load_trusted_key(cfg.trusted_pubkey_path)
    sig_path = signature or signature_path_for(archive)
    result = UpdateApplier.from_config(cfg, key).apply_archive(
        archive, sig_path, expect_version
    )
    report_result(result)
