"""Release fetcher — latest-release lookup and asset download.

The release index is untrusted transport: it only tells the updater which
tag is newest and where the files are.  Integrity comes from the verifier.

``ReleaseIndex`` is the seam the update applier depends on.
``GithubReleaseIndex`` implements it over the GitHub REST API with
``requests``; tests substitute an in-memory index.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol

import requests
from pydantic import ValidationError

from viewtube_release.core.errors import ReleaseIOError, ReleaseNotFoundError
from viewtube_release.models.releases import (
    ArtifactKind,
    ReleaseAsset,
    ReleaseInfo,
    artifact_name,
    signature_name,
)

logger = logging.getLogger(__name__)

USER_AGENT = "viewtube-updater"
DOWNLOAD_CHUNK_SIZE = 64 * 1024

_REPO_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


class ReleaseIndex(Protocol):
    """Where update runs learn about new releases."""

    def latest_release(self, repo: str) -> ReleaseInfo:
        ...

    def download(self, asset: ReleaseAsset, dest: Path) -> Path:
        ...


def normalize_release_repo(value: str) -> str:
    """Accept ``owner/repo``, a GitHub URL, or either with ``.git``.

    Raises ``ReleaseIOError`` for anything else, so a malformed
    ``RELEASE_REPO`` fails the run at ``checking`` like any other lookup error.
    """
    repo = value.strip()
    for prefix in ("https://github.com/", "http://github.com/", "github.com/"):
        if repo.startswith(prefix):
            repo = repo[len(prefix):]
            break
    repo = repo.strip("/")
    repo = repo.removesuffix(".git")
    if not _REPO_RE.match(repo):
        raise ReleaseIOError(
            f"Release repository must look like owner/repo, got {value!r}"
        )
    return repo


class GithubReleaseIndex:
    """``ReleaseIndex`` backed by ``GET /repos/{repo}/releases/latest``.

    Parameters
    ----------
    api_base:
        GitHub API root.
    token:
        Optional token sent as ``Authorization: token <token>``.
    timeout:
        Per-request timeout in seconds.
    session:
        Injected ``requests.Session``; one is created if omitted.
    """

    def __init__(
        self,
        api_base: str = "https://api.github.com",
        token: str = "",
        timeout: float = 30,
        session: requests.Session | None = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = USER_AGENT
        if token:
            self._session.headers["Authorization"] = f"token {token}"

    def latest_release(self, repo: str) -> ReleaseInfo:
        url = f"{self._api_base}/repos/{normalize_release_repo(repo)}/releases/latest"
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise ReleaseIOError(f"GitHub request failed for {url}: {exc}") from exc
        except ValueError as exc:
            raise ReleaseIOError(f"Failed to parse release JSON from {url}") from exc

        try:
            return ReleaseInfo(
                tag=payload["tag_name"],
                assets=[
                    ReleaseAsset(
                        name=asset["name"],
                        download_url=asset["browser_download_url"],
                        size_bytes=asset.get("size", 0),
                    )
                    for asset in payload.get("assets", [])
                ],
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as exc:
            raise ReleaseIOError(f"Unexpected release JSON from {url}: {exc}") from exc

    def download(self, asset: ReleaseAsset, dest: Path) -> Path:
        """Stream *asset* to *dest*; the file appears only once complete."""
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", dir=dest.parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                with self._session.get(
                    asset.download_url, stream=True, timeout=self._timeout
                ) as response:
                    response.raise_for_status()
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            fh.write(chunk)
            os.replace(tmp_name, dest)
        except requests.RequestException as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise ReleaseIOError(
                f"Failed to download asset {asset.download_url}: {exc}"
            ) from exc
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise ReleaseIOError(f"Failed to write {dest}: {exc}") from exc
        logger.info("Downloaded %s", asset.name)
        return dest


def fetch_release_pair(
    index: ReleaseIndex,
    release: ReleaseInfo,
    kind: ArtifactKind,
    dest_dir: Path,
) -> tuple[Path, Path]:
    """Download the archive and its sidecar for *release* into *dest_dir*.

    Assets are matched by exact name: ``<prefix>-<tag>.tar.gz`` and
    ``<prefix>-<tag>.tar.gz.sig``.

    Returns ``(artifact_path, signature_path)``.
    """
    check_release_tag(release.tag)
    art_name = artifact_name(kind, release.tag)
    sig_name = signature_name(kind, release.tag)
    art_asset = release.find_asset(art_name)
    if art_asset is None:
        raise ReleaseNotFoundError(
            f"{kind.value.capitalize()} archive {art_name} not found in release {release.tag}"
        )
    sig_asset = release.find_asset(sig_name)
    if sig_asset is None:
        raise ReleaseNotFoundError(
            f"Signature {sig_name} not found in release {release.tag}"
        )
    dest_dir = Path(dest_dir)
    artifact = index.download(art_asset, _asset_path(dest_dir, art_name))
    signature = index.download(sig_asset, _asset_path(dest_dir, sig_name))
    return artifact, signature


def check_release_tag(tag: str) -> str:
    """Reject a tag that cannot be used verbatim as part of a file name.

    The tag comes from the release index, so it must not smuggle path
    separators, NUL bytes or ``..`` into the download location.
    """
    if not tag or ".." in tag or any(c in tag for c in ("/", "\\", "\x00")):
        raise ReleaseNotFoundError(f"Release tag {tag!r} is not a usable version name")
    return tag


def _asset_path(dest_dir: Path, name: str) -> Path:
    path = dest_dir / name
    if Path(name).name != name or path.resolve().parent != dest_dir.resolve():
        raise ReleaseNotFoundError(f"Asset name {name!r} escapes {dest_dir}")
    return path
