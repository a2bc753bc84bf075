"""Verifier — the only gate between a downloaded artifact and the host.

Verification order
------------------
1. Format gate: the record's ``format`` must be the one supported version
   and its ``digest`` must be a lowercase BLAKE3 hex digest.
2. Recompute the digest over the artifact bytes.
3. Compare digests *before* any cryptography, so corruption
   (``ChecksumMismatchError``) is reported apart from tampering or a wrong
   key (``SignatureInvalidError``).
4. Rebuild the canonical message from the record's own ``version`` and
   ``digest`` and check the Ed25519 signature against the trusted key.
5. If the caller expected a version, require the signed version to match
   (``VersionMismatchError``).

The trusted key is always an explicit argument.  ``None`` fails closed.
"""

from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path

from nacl.exceptions import BadSignatureError, CryptoError
from pydantic import ValidationError

from viewtube_release.config import RELEASE_SIG_FORMAT
from viewtube_release.core.errors import (
    ChecksumMismatchError,
    ReleaseIOError,
    SignatureInvalidError,
    UnsupportedFormatError,
    VerificationError,
    VersionMismatchError,
)
from viewtube_release.core.hasher import digest_bytes, digest_file, is_hex_digest
from viewtube_release.core.keystore import verify_key_for
from viewtube_release.core.signer import signature_path_for
from viewtube_release.models.keys import TrustedPublicKey
from viewtube_release.models.signatures import ReleaseSignature

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 64


def load_signature(path: Path) -> ReleaseSignature:
    """Parse a sidecar file.  Malformed records are ``UnsupportedFormatError``."""
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise ReleaseIOError(f"Cannot read signature {path}: {exc}") from exc
    try:
        return ReleaseSignature.from_json(raw)
    except ValidationError as exc:
        raise UnsupportedFormatError(
            f"Malformed release signature {path}: {exc.error_count()} invalid field(s)"
        ) from exc


def _check_format(record: ReleaseSignature) -> None:
    if record.format != RELEASE_SIG_FORMAT:
        raise UnsupportedFormatError(
            f"Unsupported release signature format {record.format}"
        )
    if not is_hex_digest(record.digest):
        raise UnsupportedFormatError(
            f"Release signature digest {record.digest[:16]!r} is not a BLAKE3 hex digest"
        )


def verify_digest(
    digest: str,
    record: ReleaseSignature,
    trusted_key: TrustedPublicKey | None,
    expected_version: str | None = None,
) -> ReleaseSignature:
    """Verify *record* against a freshly computed *digest*.

    Returns the record on success; raises a ``VerificationError`` subclass
    otherwise.
    """
    if trusted_key is None:
        raise VerificationError("No trusted public key configured; refusing update")

    _check_format(record)

    if digest != record.digest:
        raise ChecksumMismatchError(expected=record.digest, actual=digest)

    try:
        sig_bytes = base64.b64decode(record.signature, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SignatureInvalidError("Signature is not valid base64") from exc
    if len(sig_bytes) != SIGNATURE_LENGTH:
        raise SignatureInvalidError(
            f"Invalid signature length {len(sig_bytes)}, expected {SIGNATURE_LENGTH}"
        )

    vk = verify_key_for(trusted_key)
    try:
        vk.verify(record.message(), sig_bytes)
    except (BadSignatureError, CryptoError) as exc:
        raise SignatureInvalidError("Signature verification failed") from exc

    if expected_version is not None and record.version != expected_version:
        raise VersionMismatchError(signed=record.version, expected=expected_version)

    return record


def verify_bytes(
    data: bytes,
    record: ReleaseSignature,
    trusted_key: TrustedPublicKey | None,
    expected_version: str | None = None,
) -> ReleaseSignature:
    """Verify an in-memory artifact.  Never touches the disk."""
    return verify_digest(digest_bytes(data), record, trusted_key, expected_version)


def verify_artifact(
    artifact: Path,
    signature: Path | None,
    trusted_key: TrustedPublicKey | None,
    expected_version: str | None = None,
) -> ReleaseSignature:
    """Verify the archive at *artifact* against its sidecar.

    Parameters
    ----------
    artifact:
        The downloaded archive.
    signature:
        The sidecar path; ``None`` means ``<artifact>.sig``.
    trusted_key:
        The host's single trusted public key.
    expected_version:
        The tag the caller asked for, if any.

    Returns
    -------
    ReleaseSignature
        The verified record.  Callers may log ``version`` and ``digest``.
    """
    sig_path = Path(signature) if signature else signature_path_for(artifact)
    record = load_signature(sig_path)
    # Gate before reading a potentially large artifact.
    _check_format(record)
    verified = verify_digest(digest_file(artifact), record, trusted_key, expected_version)
    logger.info(
        "Verified %s: release %s (digest %s)",
        Path(artifact).name,
        verified.version,
        verified.digest,
    )
    return verified
