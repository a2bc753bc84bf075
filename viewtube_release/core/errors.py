"""Error taxonomy for release packaging, verification, and update runs.

Every fatal category aborts an update run without touching the installed
state or the live install paths.  ``LockHeldError`` is not a failure: it
signals that another run owns the host and this one must exit cleanly.
"""

from __future__ import annotations


class ReleaseError(RuntimeError):
    """Base class for all viewtube-release errors."""


class ReleaseIOError(ReleaseError):
    """Read, write, or network failure.

    Never retried internally; the external scheduler retries on its next
    cycle.
    """


class KeyExistsError(ReleaseError):
    """Raised when key generation would overwrite an existing keypair."""


class MissingBinaryError(ReleaseError):
    """Raised when a required compiled binary is absent at bundle time."""


class ArchiveLayoutError(ReleaseError):
    """Raised when an archive lacks its namespace root or has unsafe members."""


class ReleaseNotFoundError(ReleaseError):
    """Raised when the latest release does not carry a required asset."""


class InvalidTransitionError(ReleaseError):
    """Raised when a requested update-machine transition is not valid."""


class BuildFailureError(ReleaseError):
    """Rebuilding from verified source failed.  The live install is untouched."""


class LockHeldError(ReleaseError):
    """Another update run holds the host lock."""


class UpdateTimeoutError(ReleaseError):
    """The run exceeded its wall-clock budget before reaching installation."""


# ---------------------------------------------------------------------------
# Verification failures
# ---------------------------------------------------------------------------


class VerificationError(ReleaseError):
    """Base class for every reason an artifact may be rejected.

    An artifact that raised any ``VerificationError`` must not be used.
    """


class UnsupportedFormatError(VerificationError):
    """Unknown signature format integer, key algorithm, or malformed record."""


class ChecksumMismatchError(VerificationError):
    """Recomputed digest differs from the digest recorded in the signature."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Release checksum mismatch (expected {expected}, got {actual})"
        )


class SignatureInvalidError(VerificationError):
    """Ed25519 verification of the canonical message failed."""


class VersionMismatchError(VerificationError):
    """The signed version differs from the version the caller asked for."""

    def __init__(self, signed: str, expected: str) -> None:
        self.signed = signed
        self.expected = expected
        super().__init__(
            f"Release signature reports version {signed} "
            f"but updater expected {expected}"
        )
