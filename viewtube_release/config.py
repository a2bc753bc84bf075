"""Updater configuration — env-driven host settings.

Centralized config using pydantic-settings for environment variable support.
Reads from a .env file and VIEWTUBE_* environment variables.

Library code never reads a global instance: the CLI builds one
``UpdaterConfig`` and threads it (and the trusted key) through explicitly.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Release protocol constants
RELEASE_SIG_FORMAT: int = 1
RELEASE_SIG_PREFIX: str = "viewtube-release"
SOURCE_ARCHIVE_PREFIX: str = "viewtube-src"
BINARY_ARCHIVE_PREFIX: str = "viewtube-bin"
SOURCE_ROOT_DIR: str = "source"
BINARY_ROOT_DIR: str = "bundle"
KEY_ALGORITHM: str = "ed25519"

PRIVATE_KEY_FILENAME: str = "viewtube-release.key"
PUBLIC_KEY_FILENAME: str = "viewtube-release.pub"

DEFAULT_CONFIG_PATH: Path = Path("/etc/viewtube-env")
DEFAULT_PUBLIC_KEY_PATH: Path = Path("/etc/viewtube-release.pub")
DEFAULT_BIN_ROOT: Path = Path("/opt/viewtube/bin")
DEFAULT_RELEASE_REPO: str = "Pingasmaster/newtube"

# Executables every release must ship.
REQUIRED_BINARIES: tuple[str, ...] = (
    "backend",
    "download_channel",
    "routine_update",
    "installer",
)


class UpdaterConfig(BaseSettings):
    """Host configuration with environment variable overrides.

    All settings can be overridden via VIEWTUBE_* environment variables
    or a .env file in the working directory.

    Examples
    --------
    Override via environment::

        export VIEWTUBE_LOG_LEVEL=DEBUG
        export VIEWTUBE_TRUSTED_PUBKEY_PATH=/etc/viewtube-release.pub
        export VIEWTUBE_GITHUB_TOKEN=ghp_...
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="VIEWTUBE_",
        env_file_encoding="utf-8",
    )

    # Logging
    log_level: str = "INFO"

    # Host paths
    config_path: Path = DEFAULT_CONFIG_PATH
    trusted_pubkey_path: Path = DEFAULT_PUBLIC_KEY_PATH
    bin_root: Path = DEFAULT_BIN_ROOT
    lock_path: Path = Path("/run/viewtube-updater.lock")
    scratch_dir: Path | None = None  # None -> system temp dir

    # Release index
    github_api_base: str = "https://api.github.com"
    github_token: str = ""
    request_timeout_seconds: int = 30

    # Whole-run wall clock budget; 0 disables the check
    run_timeout_seconds: int = 3600

    # Build
    build_command: list[str] = ["cargo", "build", "--release"]

    # Service control
    restart_services: list[str] = [
        "viewtube-backend.service",
        "viewtube-routine.service",
    ]
    reload_services: list[str] = ["nginx"]
