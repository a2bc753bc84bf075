"""Build capability — turn a verified source tree into binaries and assets.

``Builder`` is a Protocol so the update applier can run the real cargo
build in production and an in-process builder in tests.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from viewtube_release.config import REQUIRED_BINARIES
from viewtube_release.core.errors import BuildFailureError

logger = logging.getLogger(__name__)

# Tail of build output kept in the failure message.
_OUTPUT_TAIL_LINES = 20


class BuildOutputs(BaseModel):
    """Where a successful build left its products."""

    model_config = ConfigDict(frozen=True)

    binaries_dir: Path
    assets_root: Path
    binaries: tuple[str, ...] = REQUIRED_BINARIES


class Builder(Protocol):
    """Anything that can build an unpacked source tree."""

    def attempt_build(self, source_dir: Path, timeout: float | None = None) -> BuildOutputs:
        """Build *source_dir*; raise ``BuildFailureError`` on failure.

        *timeout* is the most the build may take, in seconds.
        """
        ...


class CargoBuilder:
    """Runs ``cargo build --release`` in the source tree.

    Parameters
    ----------
    command:
        The build command line.
    binaries:
        Executables that must exist under ``target/release`` afterwards.
    timeout:
        Seconds before the build is killed; ``None`` waits forever.
    """

    def __init__(
        self,
        command: Sequence[str] = ("cargo", "build", "--release"),
        binaries: Sequence[str] = REQUIRED_BINARIES,
        timeout: float | None = None,
    ) -> None:
        self._command = list(command)
        self._binaries = tuple(binaries)
        self._timeout = timeout

    def attempt_build(self, source_dir: Path, timeout: float | None = None) -> BuildOutputs:
        source_dir = Path(source_dir)
        limits = [t for t in (self._timeout, timeout) if t is not None]
        timeout = min(limits) if limits else None
        if shutil.which(self._command[0]) is None:
            raise BuildFailureError(f"Build tool {self._command[0]!r} not found on PATH")

        logger.info("Running: %s (in %s)", " ".join(self._command), source_dir)
        try:
            proc = subprocess.run(
                self._command,
                cwd=source_dir,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise BuildFailureError(
                f"Build timed out after {timeout:g}s"
            ) from exc
        except OSError as exc:
            raise BuildFailureError(f"Failed to run {self._command[0]}: {exc}") from exc

        if proc.returncode != 0:
            tail = "\n".join(proc.stderr.splitlines()[-_OUTPUT_TAIL_LINES:])
            raise BuildFailureError(
                f"Command {self._command[0]} failed with status {proc.returncode}\n{tail}"
            )

        binaries_dir = source_dir / "target" / "release"
        missing = [b for b in self._binaries if not (binaries_dir / b).is_file()]
        if missing:
            raise BuildFailureError(
                f"Build succeeded but produced no {', '.join(missing)}"
            )
        return BuildOutputs(
            binaries_dir=binaries_dir,
            assets_root=source_dir,
            binaries=self._binaries,
        )
