"""Service control — restart the running ViewTube units after install."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from typing import Protocol

from viewtube_release.core.errors import ReleaseIOError

logger = logging.getLogger(__name__)


class ServiceController(Protocol):
    def restart(self, units: Sequence[str]) -> None:
        ...

    def reload(self, units: Sequence[str]) -> None:
        ...


class SystemctlController:
    """``ServiceController`` that shells out to ``systemctl``."""

    def __init__(self, systemctl: str = "systemctl") -> None:
        self._systemctl = systemctl

    def restart(self, units: Sequence[str]) -> None:
        for unit in units:
            self._run("restart", unit)

    def reload(self, units: Sequence[str]) -> None:
        for unit in units:
            self._run("reload", unit)

    def _run(self, action: str, unit: str) -> None:
        cmd = [self._systemctl, action, unit]
        logger.info("Running: %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise ReleaseIOError(f"Failed to run {self._systemctl}: {exc}") from exc
        if proc.returncode != 0:
            raise ReleaseIOError(
                f"{self._systemctl} {action} {unit} failed with status "
                f"{proc.returncode}: {proc.stderr.strip()}"
            )
