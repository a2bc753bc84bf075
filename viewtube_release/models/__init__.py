"""viewtube-release data models — all Pydantic v2, all frozen (immutable)."""

from viewtube_release.models.keys import SigningKeypair, TrustedPublicKey
from viewtube_release.models.releases import (
    ArtifactKind,
    ReleaseArtifact,
    ReleaseAsset,
    ReleaseInfo,
    artifact_name,
    signature_name,
)
from viewtube_release.models.signatures import ReleaseSignature, canonical_message
from viewtube_release.models.state import InstalledState
from viewtube_release.models.update import (
    VALID_TRANSITIONS,
    UpdateResult,
    UpdateState,
    UpdateTransition,
)

__all__ = [
    # keys
    "SigningKeypair",
    "TrustedPublicKey",
    # releases
    "ArtifactKind",
    "ReleaseArtifact",
    "ReleaseAsset",
    "ReleaseInfo",
    "artifact_name",
    "signature_name",
    # signatures
    "ReleaseSignature",
    "canonical_message",
    # state
    "InstalledState",
    # update
    "UpdateState",
    "UpdateTransition",
    "UpdateResult",
    "VALID_TRANSITIONS",
]
