"""Detached release signature record and its canonical signed message."""

from __future__ import annotations

import json

from pydantic import BaseModel, ConfigDict

from viewtube_release.config import RELEASE_SIG_FORMAT, RELEASE_SIG_PREFIX


def canonical_message(version: str, digest: str) -> bytes:
    """Build the exact byte string that is signed for a release.

    Format: ``viewtube-release|v<format>|<version>|<digest>``.  Binding both
    the version and the digest stops a valid signature from being replayed
    against another release or another artifact.
    """
    return f"{RELEASE_SIG_PREFIX}|v{RELEASE_SIG_FORMAT}|{version}|{digest}".encode(
        "utf-8"
    )


class ReleaseSignature(BaseModel):
    """The sidecar signature record stored next to an artifact.

    Serialized as ``{"format", "version", "digest", "signature"}``; field
    names are part of the wire format and must not change.
    """

    model_config = ConfigDict(frozen=True)

    format: int = RELEASE_SIG_FORMAT
    version: str
    digest: str  # lowercase hex
    signature: str  # base64 of 64 raw bytes

    def message(self) -> bytes:
        """The canonical message rebuilt from this record's own fields."""
        return canonical_message(self.version, self.digest)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(), indent=2)

    @classmethod
    def from_json(cls, raw: str | bytes) -> ReleaseSignature:
        return cls.model_validate_json(raw)
