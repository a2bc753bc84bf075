"""Signer — detached Ed25519 signatures binding {format, version, digest}.

The pure functions (``sign_digest``, ``sign_bytes``) never touch the disk.
``sign_artifact`` digests a fully written archive and persists the record
as ``<artifact-name>.sig``; if digesting or signing fails no sidecar is
written.
"""

from __future__ import annotations

import base64
import logging
import os
import tempfile
from pathlib import Path

from viewtube_release.config import RELEASE_SIG_FORMAT
from viewtube_release.core.errors import ReleaseIOError
from viewtube_release.core.hasher import digest_bytes, digest_file
from viewtube_release.core.keystore import signing_key_for
from viewtube_release.models.keys import SigningKeypair
from viewtube_release.models.releases import SIGNATURE_SUFFIX
from viewtube_release.models.signatures import ReleaseSignature, canonical_message

logger = logging.getLogger(__name__)


def signature_path_for(artifact: Path) -> Path:
    """``foo-v1.tar.gz`` -> ``foo-v1.tar.gz.sig`` in the same directory."""
    artifact = Path(artifact)
    return artifact.with_name(artifact.name + SIGNATURE_SUFFIX)


def sign_digest(digest: str, version: str, keypair: SigningKeypair) -> ReleaseSignature:
    """Sign an already computed digest for *version*."""
    sk = signing_key_for(keypair)
    signed = sk.sign(canonical_message(version, digest))
    return ReleaseSignature(
        format=RELEASE_SIG_FORMAT,
        version=version,
        digest=digest,
        signature=base64.b64encode(signed.signature).decode("ascii"),
    )


def sign_bytes(data: bytes, version: str, keypair: SigningKeypair) -> ReleaseSignature:
    """Digest and sign an in-memory artifact."""
    return sign_digest(digest_bytes(data), version, keypair)


def sign_artifact(
    artifact: Path,
    version: str,
    keypair: SigningKeypair,
    signature_path: Path | None = None,
) -> ReleaseSignature:
    """Sign the archive at *artifact* and write its sidecar.

    Parameters
    ----------
    artifact:
        A fully written release archive.
    version:
        The release tag, e.g. ``"v0.2.0"``.
    keypair:
        The offline signing keypair.
    signature_path:
        Where to write the record.  Defaults to ``signature_path_for(artifact)``.

    Returns
    -------
    ReleaseSignature
        The record that was written.
    """
    record = sign_digest(digest_file(artifact), version, keypair)
    target = Path(signature_path) if signature_path else signature_path_for(artifact)
    _write_atomic(target, record.to_json())
    logger.info(
        "Signed %s as %s (digest %s)", Path(artifact).name, version, record.digest
    )
    return record


def _write_atomic(path: Path, text: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
    except OSError as exc:
        raise ReleaseIOError(f"Cannot write signature {path}: {exc}") from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, path)
    except OSError as exc:
        Path(tmp_name).unlink(missing_ok=True)
        raise ReleaseIOError(f"Cannot write signature {path}: {exc}") from exc
