"""viewtube-release: signed, content-addressed releases and verified updates.

v0.3.0 — Signed release pipeline for self-hosted ViewTube hosts:
  - Ed25519 release keys via PyNaCl (libsodium), offline private half
  - Deterministic source archives and binary bundles
  - Detached signatures binding {format, version, digest}
  - Verifier that separates checksum, signature and version failures
  - Update state machine: verify before install, install before restart
  - Host-wide non-blocking update lock
"""

__version__ = "0.3.0"
__description__ = "Signed release packaging and verified updates for ViewTube"

from viewtube_release.core.applier import UpdateApplier
from viewtube_release.core.signer import sign_artifact
from viewtube_release.core.verifier import verify_artifact
from viewtube_release.cli.app import app as cli

__all__ = ["UpdateApplier", "sign_artifact", "verify_artifact", "cli", "__version__"]
