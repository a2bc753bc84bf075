"""Update applier — the orchestrating state machine for one host.

States::

    idle -> checking -> downloading -> verifying -> unpacking
         -> building -> installing -> restarting -> done

with ``failed`` reachable from any of them and ``checking -> done`` when
the latest tag is already installed.

Ordering guarantees
-------------------
- Verification strictly precedes installation.
- Installation strictly precedes any service restart.
- Nothing under the live install paths, and not the installed-state file,
  is written before ``installing``.  A run killed earlier leaves the old
  version untouched.  A run killed during ``installing`` may leave a
  partial copy; that is an accepted limitation.

The trusted key, release index, builder and service controller are all
injected, so tests run the full machine without network, cargo or
systemd.
"""

from __future__ import annotations

import logging
import tempfile
import time
from collections.abc import Callable, Sequence
from pathlib import Path

from viewtube_release.config import SOURCE_ROOT_DIR, UpdaterConfig
from viewtube_release.core.archive_builder import extract_archive
from viewtube_release.core.builder import Builder, CargoBuilder
from viewtube_release.core.errors import (
    LockHeldError,
    ReleaseError,
    UpdateTimeoutError,
)
from viewtube_release.core.fetcher import (
    GithubReleaseIndex,
    ReleaseIndex,
    fetch_release_pair,
)
from viewtube_release.core.installed_state import (
    read_installed_state,
    write_installed_version,
)
from viewtube_release.core.installer import install_binaries, install_frontend_assets
from viewtube_release.core.lock import UpdateLock
from viewtube_release.core.service import ServiceController, SystemctlController
from viewtube_release.core.update_machine import UpdateMachine
from viewtube_release.core.verifier import verify_artifact
from viewtube_release.models.keys import TrustedPublicKey
from viewtube_release.models.releases import ArtifactKind
from viewtube_release.models.state import InstalledState
from viewtube_release.models.update import UpdateResult, UpdateState

logger = logging.getLogger(__name__)


class UpdateApplier:
    """Runs verified updates against one host.

    Parameters
    ----------
    state_path:
        The installed-state file (``/etc/viewtube-env``).
    trusted_key:
        The host's single trusted public key.  ``None`` fails every run
        at verification.
    index:
        Where to look up the latest release.
    builder:
        Builds the unpacked source tree.
    services:
        Restarts the running units after installation.
    bin_root:
        Live directory for executables.
    lock_path:
        The host-wide update lock file.
    restart_units, reload_units:
        Units restarted / reloaded in ``restarting``.
    scratch_dir:
        Parent for per-run temporary directories (system default if None).
    timeout_seconds:
        Wall-clock budget checked before each stage up to ``installing``.
        The build itself is killed once the remaining budget runs out.
        ``None`` or ``0`` disables it.
    clock:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        *,
        state_path: Path,
        trusted_key: TrustedPublicKey | None,
        index: ReleaseIndex,
        builder: Builder,
        services: ServiceController,
        bin_root: Path,
        lock_path: Path,
        restart_units: Sequence[str] = (),
        reload_units: Sequence[str] = (),
        scratch_dir: Path | None = None,
        timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._state_path = Path(state_path)
        self._trusted_key = trusted_key
        self._index = index
        self._builder = builder
        self._services = services
        self._bin_root = Path(bin_root)
        self._lock = UpdateLock(lock_path)
        self._restart_units = list(restart_units)
        self._reload_units = list(reload_units)
        self._scratch_dir = scratch_dir
        self._timeout = timeout_seconds or None
        self._clock = clock
        self._started_at = 0.0

    @classmethod
    def from_config(
        cls,
        config: UpdaterConfig,
        trusted_key: TrustedPublicKey | None,
        *,
        index: ReleaseIndex | None = None,
        builder: Builder | None = None,
        services: ServiceController | None = None,
    ) -> UpdateApplier:
        """Wire an applier with production collaborators from *config*."""
        return cls(
            state_path=config.config_path,
            trusted_key=trusted_key,
            index=index
            or GithubReleaseIndex(
                api_base=config.github_api_base,
                token=config.github_token,
                timeout=config.request_timeout_seconds,
            ),
            builder=builder or CargoBuilder(command=config.build_command),
            services=services or SystemctlController(),
            bin_root=config.bin_root,
            lock_path=config.lock_path,
            restart_units=config.restart_services,
            reload_units=config.reload_services,
            scratch_dir=config.scratch_dir,
            timeout_seconds=config.run_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(self) -> UpdateResult:
        """Check the release index and apply the latest release if newer."""
        machine = UpdateMachine()
        try:
            self._lock.acquire()
        except LockHeldError as exc:
            logger.warning("%s", exc)
            return UpdateResult(state=UpdateState.IDLE, lock_held=True, reason=str(exc))

        installed: InstalledState | None = None
        target = ""
        try:
            self._started_at = self._clock()
            machine.transition(UpdateState.CHECKING)
            installed = read_installed_state(self._state_path)
            release = self._index.latest_release(installed.release_repo)
            target = release.tag
            if installed.app_version and installed.app_version == release.tag:
                machine.transition(
                    UpdateState.DONE,
                    f"already running latest release {release.tag}",
                )
                return self._result(machine, installed, target)

            self._check_deadline(UpdateState.DOWNLOADING)
            with tempfile.TemporaryDirectory(
                prefix="viewtube-update-", dir=self._scratch_dir
            ) as work:
                work_dir = Path(work)
                machine.transition(UpdateState.DOWNLOADING, release.tag)
                artifact, signature = fetch_release_pair(
                    self._index, release, ArtifactKind.SOURCE, work_dir / "download"
                )
                self._verify_and_install(
                    machine, installed, artifact, signature, release.tag, work_dir
                )
        except (ReleaseError, OSError) as exc:
            machine.fail(f"{type(exc).__name__}: {exc}")
            return self._result(machine, installed, target, exc)
        finally:
            self._lock.release()
        return self._result(machine, installed, target)

    def apply_archive(
        self,
        archive: Path,
        signature: Path,
        expected_version: str | None = None,
    ) -> UpdateResult:
        """Apply a local signed source archive (offline update).

        Enters the machine at ``verifying``; everything after is identical
        to ``run()``.
        """
        machine = UpdateMachine()
        try:
            self._lock.acquire()
        except LockHeldError as exc:
            logger.warning("%s", exc)
            return UpdateResult(state=UpdateState.IDLE, lock_held=True, reason=str(exc))

        installed: InstalledState | None = None
        try:
            self._started_at = self._clock()
            installed = read_installed_state(self._state_path)
            with tempfile.TemporaryDirectory(
                prefix="viewtube-apply-", dir=self._scratch_dir
            ) as work:
                self._verify_and_install(
                    machine,
                    installed,
                    Path(archive),
                    Path(signature),
                    expected_version,
                    Path(work),
                )
        except (ReleaseError, OSError) as exc:
            machine.fail(f"{type(exc).__name__}: {exc}")
            return self._result(machine, installed, expected_version or "", exc)
        finally:
            self._lock.release()
        return self._result(machine, installed, expected_version or "")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _verify_and_install(
        self,
        machine: UpdateMachine,
        installed: InstalledState,
        artifact: Path,
        signature: Path,
        expected_version: str | None,
        work_dir: Path,
    ) -> None:
        self._check_deadline(UpdateState.VERIFYING)
        machine.transition(UpdateState.VERIFYING, artifact.name)
        record = verify_artifact(artifact, signature, self._trusted_key, expected_version)
        logger.info("Applying release %s (digest %s)", record.version, record.digest)

        self._check_deadline(UpdateState.UNPACKING)
        machine.transition(UpdateState.UNPACKING)
        source_root = extract_archive(artifact, work_dir / "unpacked", SOURCE_ROOT_DIR)

        remaining = self._check_deadline(UpdateState.BUILDING)
        machine.transition(UpdateState.BUILDING)
        outputs = self._builder.attempt_build(source_root, timeout=remaining)

        # Last point at which abandoning the run leaves the host untouched.
        self._check_deadline(UpdateState.INSTALLING)
        machine.transition(UpdateState.INSTALLING, record.version)
        install_binaries(outputs, self._bin_root)
        install_frontend_assets(outputs.assets_root, installed.www_root)
        write_installed_version(self._state_path, record.version)

        machine.transition(UpdateState.RESTARTING)
        self._services.restart(self._restart_units)
        self._services.reload(self._reload_units)

        machine.transition(UpdateState.DONE, f"installed {record.version}")

    def _check_deadline(self, next_stage: UpdateState) -> float | None:
        """Raise if the budget is spent; otherwise return the seconds left."""
        if self._timeout is None:
            return None
        elapsed = self._clock() - self._started_at
        if elapsed > self._timeout:
            raise UpdateTimeoutError(
                f"Run exceeded {self._timeout:.0f}s before {next_stage.value}"
            )
        return self._timeout - elapsed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _result(
        machine: UpdateMachine,
        installed: InstalledState | None,
        target: str,
        error: BaseException | None = None,
    ) -> UpdateResult:
        return UpdateResult(
            state=machine.state,
            previous_version=installed.app_version if installed else "",
            target_version=target,
            failed_stage=machine.failed_stage,
            reason=machine.history[-1].reason if machine.history else "",
            error_type=type(error).__name__ if error else "",
            transitions=machine.history,
        )
