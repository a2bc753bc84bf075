"""Install built binaries and web assets into the live paths.

This is the single place where an update changes what the running system
will execute.  It is only ever reached after verification and a
successful build.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from viewtube_release.core.archive_builder import (
    FRONTEND_SKIP_ENTRIES,
    stage_frontend_assets,
)
from viewtube_release.core.builder import BuildOutputs
from viewtube_release.core.errors import MissingBinaryError, ReleaseIOError

logger = logging.getLogger(__name__)

BINARY_MODE = 0o750


def install_binaries(outputs: BuildOutputs, bin_root: Path) -> list[Path]:
    """Copy each built executable into *bin_root* with mode 0750.

    Each binary is copied to a temp file in *bin_root* and renamed over the
    old one, so a running process keeps its old inode.
    """
    bin_root = Path(bin_root)
    missing = [b for b in outputs.binaries if not (outputs.binaries_dir / b).is_file()]
    if missing:
        raise MissingBinaryError(
            f"Missing compiled binary {', '.join(missing)} in {outputs.binaries_dir}"
        )
    installed = []
    try:
        bin_root.mkdir(parents=True, exist_ok=True)
        for name in outputs.binaries:
            dest = bin_root / name
            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", dir=bin_root)
            os.close(fd)
            shutil.copyfile(outputs.binaries_dir / name, tmp_name)
            os.chmod(tmp_name, BINARY_MODE)
            os.replace(tmp_name, dest)
            installed.append(dest)
    except OSError as exc:
        raise ReleaseIOError(f"Installing binaries into {bin_root}: {exc}") from exc
    logger.info("Installed %d binaries into %s", len(installed), bin_root)
    return installed


def install_frontend_assets(src_root: Path, www_root: Path) -> int:
    """Copy served web assets into *www_root*; returns the file count."""
    try:
        copied = stage_frontend_assets(src_root, www_root, FRONTEND_SKIP_ENTRIES)
    except OSError as exc:
        raise ReleaseIOError(f"Copying web assets into {www_root}: {exc}") from exc
    logger.info("Copied %d web assets into %s", copied, www_root)
    return copied
