"""Installed-state file — plain ``KEY="value"`` lines at /etc/viewtube-env.

Reading ignores blank lines and ``#`` comments.  Rewriting the version
touches only the ``APP_VERSION`` line; every other line, including
comments and keys this package does not know, is kept byte for byte.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from viewtube_release.config import DEFAULT_RELEASE_REPO
from viewtube_release.core.errors import ReleaseIOError, UnsupportedFormatError
from viewtube_release.models.state import (
    DEFAULT_NEWTUBE_HOST,
    DEFAULT_NEWTUBE_PORT,
    InstalledState,
)

logger = logging.getLogger(__name__)

VERSION_KEY = "APP_VERSION"
_KNOWN_KEYS = {
    "MEDIA_ROOT",
    "WWW_ROOT",
    VERSION_KEY,
    "DOMAIN_NAME",
    "NEWTUBE_PORT",
    "NEWTUBE_HOST",
    "RELEASE_REPO",
}


def parse_env_text(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines; surrounding quotes are stripped."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#") or "=" not in trimmed:
            continue
        key, raw = trimmed.split("=", 1)
        values[key.strip()] = raw.strip().strip('"')
    return values


def read_installed_state(path: Path) -> InstalledState:
    """Load the installed state, failing if required paths are missing."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ReleaseIOError(
            f"Missing env config at {path}. Install ViewTube before running auto-update"
        ) from exc
    except OSError as exc:
        raise ReleaseIOError(f"Reading {path}: {exc}") from exc

    values = parse_env_text(text)
    for required in ("MEDIA_ROOT", "WWW_ROOT"):
        if not values.get(required):
            raise UnsupportedFormatError(f"{required} not set in {path}")

    port_raw = values.get("NEWTUBE_PORT", "")
    try:
        port = int(port_raw) if port_raw else DEFAULT_NEWTUBE_PORT
    except ValueError as exc:
        raise UnsupportedFormatError(f"Parsing NEWTUBE_PORT from {path}") from exc

    return InstalledState(
        media_root=Path(values["MEDIA_ROOT"]),
        www_root=Path(values["WWW_ROOT"]),
        app_version=values.get(VERSION_KEY, ""),
        release_repo=values.get("RELEASE_REPO") or DEFAULT_RELEASE_REPO,
        domain_name=values.get("DOMAIN_NAME", ""),
        newtube_port=port,
        newtube_host=values.get("NEWTUBE_HOST") or DEFAULT_NEWTUBE_HOST,
        extra={k: v for k, v in values.items() if k not in _KNOWN_KEYS},
    )


def write_installed_version(path: Path, version: str) -> None:
    """Rewrite only the ``APP_VERSION`` line of the state file, atomically.

    The file mode is preserved.  If no version line exists one is appended.
    """
    path = Path(path)
    try:
        original = path.read_text(encoding="utf-8")
        mode = path.stat().st_mode & 0o7777
    except OSError as exc:
        raise ReleaseIOError(f"Reading {path}: {exc}") from exc

    new_line = f'{VERSION_KEY}="{version}"'
    lines = original.splitlines()
    replaced = False
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith("#") or "=" not in stripped:
            continue
        if stripped.split("=", 1)[0].strip() == VERSION_KEY:
            lines[i] = new_line
            replaced = True
    if not replaced:
        lines.append(new_line)

    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write("\n".join(lines) + "\n")
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except OSError as exc:
        raise ReleaseIOError(f"Writing {path}: {exc}") from exc
    logger.info("Recorded installed version %s in %s", version, path)
