"""Release artifact and release index models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from viewtube_release.config import BINARY_ARCHIVE_PREFIX, SOURCE_ARCHIVE_PREFIX

SIGNATURE_SUFFIX = ".sig"


class ArtifactKind(str, Enum):
    """The two artifacts published for every release."""

    SOURCE = "source"
    BINARY = "binary"

    @property
    def prefix(self) -> str:
        if self is ArtifactKind.SOURCE:
            return SOURCE_ARCHIVE_PREFIX
        return BINARY_ARCHIVE_PREFIX


def artifact_name(kind: ArtifactKind, tag: str) -> str:
    """``<prefix>-<tag>.tar.gz`` — the published archive name."""
    return f"{kind.prefix}-{tag}.tar.gz"


def signature_name(kind: ArtifactKind, tag: str) -> str:
    """``<prefix>-<tag>.tar.gz.sig`` — the sidecar name for an archive."""
    return artifact_name(kind, tag) + SIGNATURE_SUFFIX


class ReleaseArtifact(BaseModel):
    """A fully written release archive on disk and its digest."""

    model_config = ConfigDict(frozen=True)

    kind: ArtifactKind
    path: Path
    digest: str
    size_bytes: int = 0


class ReleaseAsset(BaseModel):
    """A downloadable file attached to a release in the index."""

    model_config = ConfigDict(frozen=True)

    name: str
    download_url: str
    size_bytes: int = 0


class ReleaseInfo(BaseModel):
    """The "latest release" answer from the release index.

    Untrusted: integrity comes only from signature verification.
    """

    model_config = ConfigDict(frozen=True)

    tag: str
    assets: list[ReleaseAsset] = Field(default_factory=list)

    def find_asset(self, name: str) -> ReleaseAsset | None:
        for asset in self.assets:
            if asset.name == name:
                return asset
        return None
