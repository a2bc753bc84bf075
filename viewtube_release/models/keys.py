"""Signing keypair models — Ed25519, base64-encoded raw key bytes."""

from __future__ import annotations

import base64

from pydantic import BaseModel, ConfigDict

from viewtube_release.config import KEY_ALGORITHM


class TrustedPublicKey(BaseModel):
    """The verification half of a signing keypair.

    Distributed to every host that auto-updates.  A host holds exactly one
    trusted key at a time and passes it explicitly to the verifier.
    """

    model_config = ConfigDict(frozen=True)

    algorithm: str = KEY_ALGORITHM
    public_key: str  # base64 of 32 raw bytes

    def public_bytes(self) -> bytes:
        return base64.b64decode(self.public_key, validate=True)


class SigningKeypair(BaseModel):
    """An Ed25519 signing keypair.

    Created once by an operator and kept offline.  The public key is stored
    alongside the private key for convenience; ``public()`` returns the
    half that is safe to distribute.
    """

    model_config = ConfigDict(frozen=True)

    algorithm: str = KEY_ALGORITHM
    private_key: str  # base64 of the 32-byte seed
    public_key: str  # base64 of 32 raw bytes

    def private_bytes(self) -> bytes:
        return base64.b64decode(self.private_key, validate=True)

    def public_bytes(self) -> bytes:
        return base64.b64decode(self.public_key, validate=True)

    def public(self) -> TrustedPublicKey:
        """Return the distributable verification key."""
        return TrustedPublicKey(algorithm=self.algorithm, public_key=self.public_key)
