"""Shared test fixtures for viewtube-release."""

from __future__ import annotations

import shutil
from collections.abc import Callable
from pathlib import Path

import pytest

from viewtube_release.config import REQUIRED_BINARIES
from viewtube_release.core import keystore
from viewtube_release.core.applier import UpdateApplier
from viewtube_release.core.archive_builder import build_source_archive
from viewtube_release.core.builder import BuildOutputs
from viewtube_release.core.errors import BuildFailureError
from viewtube_release.core.signer import sign_artifact
from viewtube_release.models.keys import SigningKeypair, TrustedPublicKey
from viewtube_release.models.releases import (
    ArtifactKind,
    ReleaseAsset,
    ReleaseInfo,
    artifact_name,
    signature_name,
)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@pytest.fixture
def keypair() -> SigningKeypair:
    """A fresh Ed25519 signing keypair."""
    return keystore.generate()


@pytest.fixture
def trusted_key(keypair: SigningKeypair) -> TrustedPublicKey:
    return keypair.public()


@pytest.fixture
def other_keypair() -> SigningKeypair:
    """A second, unrelated keypair (e.g. an attacker's)."""
    return keystore.generate()


# ---------------------------------------------------------------------------
# Source trees
# ---------------------------------------------------------------------------


def write_source_tree(root: Path, marker: str = "v0.1.0") -> Path:
    """Create a small ViewTube-like repository at *root*."""
    (root / "src").mkdir(parents=True, exist_ok=True)
    (root / "src" / "main.rs").write_text(f'fn main() {{ println!("{marker}"); }}\n')
    (root / "Cargo.toml").write_text(f'[package]\nname = "newtube"\nversion = "{marker}"\n')
    (root / "index.html").write_text(f"<html><body>ViewTube {marker}</body></html>\n")
    (root / "assets").mkdir(exist_ok=True)
    (root / "assets" / "app.js").write_text("console.log('viewtube');\n")
    (root / "empty").mkdir(exist_ok=True)
    # Excluded from source archives
    (root / ".git").mkdir(exist_ok=True)
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (root / "target" / "release").mkdir(parents=True, exist_ok=True)
    (root / "target" / "release" / "stale").write_text("old build output")
    (root / "node_modules" / "left-pad").mkdir(parents=True, exist_ok=True)
    (root / "node_modules" / "left-pad" / "index.js").write_text("module.exports = 1;\n")
    return root


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    return write_source_tree(tmp_path / "repo")


@pytest.fixture
def make_tree() -> Callable[..., Path]:
    """Factory fixture exposing ``write_source_tree`` to test modules."""
    return write_source_tree


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeReleaseIndex:
    """In-memory release index serving files from a local directory."""

    def __init__(self) -> None:
        self.releases: dict[str, ReleaseInfo] = {}
        self.files: dict[str, Path] = {}
        self.latest_calls: list[str] = []
        self.downloads: list[str] = []

    def publish(self, repo: str, tag: str, files: list[Path]) -> ReleaseInfo:
        assets = []
        for path in files:
            url = f"https://example.invalid/{tag}/{path.name}"
            self.files[url] = path
            assets.append(ReleaseAsset(name=path.name, download_url=url))
        release = ReleaseInfo(tag=tag, assets=assets)
        self.releases[repo] = release
        return release

    def latest_release(self, repo: str) -> ReleaseInfo:
        self.latest_calls.append(repo)
        return self.releases[repo]

    def download(self, asset: ReleaseAsset, dest: Path) -> Path:
        self.downloads.append(asset.name)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.files[asset.download_url], dest)
        return dest


class FakeBuilder:
    """In-process builder: writes placeholder binaries under target/release."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.built: list[Path] = []
        self.timeouts: list[float | None] = []

    def attempt_build(self, source_dir: Path, timeout: float | None = None) -> BuildOutputs:
        self.built.append(source_dir)
        self.timeouts.append(timeout)
        if self.fail:
            raise BuildFailureError("Command cargo failed with status 101")
        out = source_dir / "target" / "release"
        out.mkdir(parents=True, exist_ok=True)
        marker = (source_dir / "Cargo.toml").read_text()
        for name in REQUIRED_BINARIES:
            (out / name).write_text(f"#!/bin/sh\n# {name}\n# {marker}")
        return BuildOutputs(binaries_dir=out, assets_root=source_dir)


class RecordingServices:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def restart(self, units) -> None:
        self.calls.extend(("restart", u) for u in units)

    def reload(self, units) -> None:
        self.calls.extend(("reload", u) for u in units)


@pytest.fixture
def release_index() -> FakeReleaseIndex:
    return FakeReleaseIndex()


@pytest.fixture
def fake_builder() -> FakeBuilder:
    return FakeBuilder()


@pytest.fixture
def services() -> RecordingServices:
    return RecordingServices()


# ---------------------------------------------------------------------------
# Host layout
# ---------------------------------------------------------------------------

RELEASE_REPO = "Pingasmaster/newtube"


class Host:
    """Paths of a simulated target host."""

    def __init__(self, root: Path, installed_version: str = "v0.1.0") -> None:
        self.root = root
        self.media_root = root / "yt"
        self.www_root = root / "www"
        self.bin_root = root / "opt" / "bin"
        self.state_path = root / "etc" / "viewtube-env"
        self.lock_path = root / "run" / "updater.lock"
        self.scratch = root / "scratch"
        for d in (self.media_root, self.www_root, self.bin_root, self.scratch, self.state_path.parent):
            d.mkdir(parents=True, exist_ok=True)
        self.state_path.write_text(
            "# managed by installer\n"
            f'MEDIA_ROOT="{self.media_root}"\n'
            f'WWW_ROOT="{self.www_root}"\n'
            f'APP_VERSION="{installed_version}"\n'
            'DOMAIN_NAME="tube.example.org"\n'
            f'RELEASE_REPO="{RELEASE_REPO}"\n'
            'CUSTOM_FLAG="keep-me"\n'
        )
        (self.www_root / "index.html").write_text("old index\n")
        (self.bin_root / "backend").write_text("old backend\n")

    def snapshot(self) -> dict[str, bytes]:
        """Bytes of every file under the live paths and the state file."""
        files: dict[str, bytes] = {}
        for base in (self.www_root, self.bin_root):
            for path in sorted(base.rglob("*")):
                if path.is_file():
                    files[str(path.relative_to(self.root))] = path.read_bytes()
        files["state"] = self.state_path.read_bytes()
        return files


@pytest.fixture
def host(tmp_path: Path) -> Host:
    return Host(tmp_path / "host")


@pytest.fixture
def make_applier(
    host: Host,
    release_index: FakeReleaseIndex,
    fake_builder: FakeBuilder,
    services: RecordingServices,
    trusted_key: TrustedPublicKey,
) -> Callable[..., UpdateApplier]:
    """Factory fixture: an UpdateApplier wired to the fake host."""

    def _factory(**overrides) -> UpdateApplier:
        kwargs = {
            "state_path": host.state_path,
            "trusted_key": trusted_key,
            "index": release_index,
            "builder": fake_builder,
            "services": services,
            "bin_root": host.bin_root,
            "lock_path": host.lock_path,
            "restart_units": ["viewtube-backend.service", "viewtube-routine.service"],
            "reload_units": ["nginx"],
            "scratch_dir": host.scratch,
        }
        kwargs.update(overrides)
        return UpdateApplier(**kwargs)

    return _factory


@pytest.fixture
def publish_release(
    tmp_path: Path,
    release_index: FakeReleaseIndex,
    keypair: SigningKeypair,
) -> Callable[..., tuple[Path, Path]]:
    """Factory fixture: build + sign a source archive and publish it.

    Returns ``(archive_path, signature_path)`` in the publisher's dist dir.
    """

    def _factory(
        tag: str = "v0.2.0",
        signing_keypair: SigningKeypair | None = None,
        signed_version: str | None = None,
    ) -> tuple[Path, Path]:
        repo = write_source_tree(tmp_path / f"publisher-{tag}", marker=tag)
        dist = tmp_path / f"dist-{tag}"
        archive = dist / artifact_name(ArtifactKind.SOURCE, tag)
        build_source_archive(repo, archive)
        sig = dist / signature_name(ArtifactKind.SOURCE, tag)
        sign_artifact(archive, signed_version or tag, signing_keypair or keypair, sig)
        release_index.publish(RELEASE_REPO, tag, [archive, sig])
        return archive, sig

    return _factory
