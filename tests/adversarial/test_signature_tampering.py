"""Adversarial tests — tampered artifacts, forged sidecars, and wrong keys.

Every case here must raise a ``VerificationError`` subclass that names
the actual failure, so operators can tell corruption from forgery.
"""

from __future__ import annotations

import base64
import json
from pathlib import Path

import pytest

from viewtube_release.core.errors import (
    ChecksumMismatchError,
    SignatureInvalidError,
    UnsupportedFormatError,
    VerificationError,
)
from viewtube_release.core.hasher import digest_file
from viewtube_release.core.signer import sign_artifact
from viewtube_release.core.verifier import verify_artifact
from viewtube_release.models.keys import TrustedPublicKey


@pytest.fixture
def release(tmp_path: Path, keypair, source_tree) -> tuple[Path, Path]:
    from viewtube_release.core.archive_builder import build_source_archive

    artifact = build_source_archive(source_tree, tmp_path / "viewtube-src-v0.2.0.tar.gz")
    sign_artifact(artifact.path, "v0.2.0", keypair)
    return artifact.path, tmp_path / "viewtube-src-v0.2.0.tar.gz.sig"


def _edit_sidecar(sig: Path, **changes) -> None:
    data = json.loads(sig.read_text())
    data.update(changes)
    sig.write_text(json.dumps(data))


class TestArtifactTampering:
    @pytest.mark.parametrize("offset", [0, 100, -1])
    def test_single_byte_flip(self, release, trusted_key, offset: int):
        artifact, sig = release
        data = bytearray(artifact.read_bytes())
        data[offset] ^= 0x01
        artifact.write_bytes(bytes(data))
        with pytest.raises(ChecksumMismatchError):
            verify_artifact(artifact, sig, trusted_key)

    def test_appended_bytes(self, release, trusted_key):
        artifact, sig = release
        with artifact.open("ab") as fh:
            fh.write(b"\x00")
        with pytest.raises(ChecksumMismatchError):
            verify_artifact(artifact, sig, trusted_key)

    def test_truncated(self, release, trusted_key):
        artifact, sig = release
        artifact.write_bytes(artifact.read_bytes()[:-10])
        with pytest.raises(ChecksumMismatchError):
            verify_artifact(artifact, sig, trusted_key)

    def test_attacker_updates_digest_too(self, release, trusted_key):
        """Rewriting the recorded digest to match tampered bytes breaks the signature."""
        artifact, sig = release
        artifact.write_bytes(artifact.read_bytes() + b"payload")
        _edit_sidecar(sig, digest=digest_file(artifact))
        with pytest.raises(SignatureInvalidError):
            verify_artifact(artifact, sig, trusted_key)


class TestSidecarForgery:
    def test_flipped_signature_byte(self, release, trusted_key):
        artifact, sig = release
        raw = bytearray(base64.b64decode(json.loads(sig.read_text())["signature"]))
        raw[10] ^= 0xFF
        _edit_sidecar(sig, signature=base64.b64encode(bytes(raw)).decode())
        with pytest.raises(SignatureInvalidError):
            verify_artifact(artifact, sig, trusted_key)

    def test_signed_by_attacker_key(self, release, trusted_key, other_keypair):
        artifact, sig = release
        sign_artifact(artifact, "v0.2.0", other_keypair, sig)
        with pytest.raises(SignatureInvalidError):
            verify_artifact(artifact, sig, trusted_key)

    def test_attacker_key_presented_as_trusted(self, release, other_keypair):
        artifact, sig = release
        with pytest.raises(SignatureInvalidError):
            verify_artifact(artifact, sig, other_keypair.public())

    def test_future_format(self, release, trusted_key):
        artifact, sig = release
        _edit_sidecar(sig, format=2)
        with pytest.raises(UnsupportedFormatError):
            verify_artifact(artifact, sig, trusted_key)

    def test_format_as_string(self, release, trusted_key):
        artifact, sig = release
        _edit_sidecar(sig, format="one")
        with pytest.raises(UnsupportedFormatError):
            verify_artifact(artifact, sig, trusted_key)

    def test_empty_sidecar(self, release, trusted_key):
        artifact, sig = release
        sig.write_text("")
        with pytest.raises(UnsupportedFormatError):
            verify_artifact(artifact, sig, trusted_key)


class TestTrustRoot:
    def test_no_key_fails_closed(self, release):
        artifact, sig = release
        with pytest.raises(VerificationError):
            verify_artifact(artifact, sig, None)

    def test_non_ed25519_key(self, release, trusted_key):
        artifact, sig = release
        rsa = TrustedPublicKey(algorithm="rsa", public_key=trusted_key.public_key)
        with pytest.raises(UnsupportedFormatError):
            verify_artifact(artifact, sig, rsa)

    def test_truncated_trusted_key(self, release):
        artifact, sig = release
        short = TrustedPublicKey(public_key=base64.b64encode(b"\x00" * 31).decode())
        with pytest.raises(UnsupportedFormatError):
            verify_artifact(artifact, sig, short)
