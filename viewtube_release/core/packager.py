"""Release packaging — build, archive, and sign both artifacts for a tag.

Output for tag ``v0.2.0``::

    viewtube-src-v0.2.0.tar.gz       viewtube-src-v0.2.0.tar.gz.sig
    viewtube-bin-v0.2.0.tar.gz       viewtube-bin-v0.2.0.tar.gz.sig
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from viewtube_release.config import REQUIRED_BINARIES
from viewtube_release.core.archive_builder import (
    DEFAULT_SOURCE_EXCLUDES,
    FRONTEND_SKIP_ENTRIES,
    build_binary_bundle,
    build_source_archive,
)
from viewtube_release.core.builder import Builder, BuildOutputs
from viewtube_release.core.signer import sign_artifact, signature_path_for
from viewtube_release.models.keys import SigningKeypair
from viewtube_release.models.releases import (
    ArtifactKind,
    ReleaseArtifact,
    artifact_name,
)
from viewtube_release.models.signatures import ReleaseSignature

logger = logging.getLogger(__name__)


class SignedArtifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    artifact: ReleaseArtifact
    signature_path: Path
    signature: ReleaseSignature


class PackagedRelease(BaseModel):
    """Everything ``package_release`` wrote for one tag."""

    model_config = ConfigDict(frozen=True)

    tag: str
    source: SignedArtifact
    binary: SignedArtifact


def package_release(
    repo_root: Path,
    tag: str,
    output_dir: Path,
    keypair: SigningKeypair,
    builder: Builder | None = None,
) -> PackagedRelease:
    """Produce and sign the source archive and binary bundle for *tag*.

    Parameters
    ----------
    repo_root:
        The checked-out repository.
    tag:
        Release tag, e.g. ``"v0.2.0"``.
    output_dir:
        Where archives and sidecars are written.
    keypair:
        The offline signing keypair.
    builder:
        If given, the repository is built first.  Otherwise binaries are
        expected under ``target/release`` already.

    The source archive is built before the build runs so build output
    never leaks into it even if the exclude list misses something.
    """
    repo_root = Path(repo_root)
    output_dir = Path(output_dir)

    src_artifact = build_source_archive(
        repo_root,
        output_dir / artifact_name(ArtifactKind.SOURCE, tag),
        DEFAULT_SOURCE_EXCLUDES,
    )

    if builder is not None:
        outputs = builder.attempt_build(repo_root)
    else:
        outputs = BuildOutputs(
            binaries_dir=repo_root / "target" / "release",
            assets_root=repo_root,
            binaries=REQUIRED_BINARIES,
        )

    bin_artifact = build_binary_bundle(
        outputs.binaries_dir,
        outputs.assets_root,
        output_dir / artifact_name(ArtifactKind.BINARY, tag),
        FRONTEND_SKIP_ENTRIES,
        outputs.binaries,
    )

    signed = []
    for artifact in (src_artifact, bin_artifact):
        sig_path = signature_path_for(artifact.path)
        record = sign_artifact(artifact.path, tag, keypair, sig_path)
        signed.append(
            SignedArtifact(artifact=artifact, signature_path=sig_path, signature=record)
        )

    logger.info("Release artifacts written to %s", output_dir)
    return PackagedRelease(tag=tag, source=signed[0], binary=signed[1])
