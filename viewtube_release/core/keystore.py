"""Keypair store — generate, persist, and load Ed25519 release keys.

File shapes
-----------
Private (mode 0600)::

    {"algorithm": "ed25519", "private_key": "<b64>", "public_key": "<b64>"}

Public (mode 0644)::

    {"algorithm": "ed25519", "public_key": "<b64>"}

Loading rejects any algorithm other than ``ed25519`` with
``UnsupportedFormatError`` rather than falling back to something else.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from pathlib import Path
from typing import Any

import nacl.signing
from nacl.exceptions import CryptoError

from viewtube_release.config import (
    KEY_ALGORITHM,
    PRIVATE_KEY_FILENAME,
    PUBLIC_KEY_FILENAME,
)
from viewtube_release.core.errors import (
    KeyExistsError,
    ReleaseIOError,
    UnsupportedFormatError,
)
from viewtube_release.models.keys import SigningKeypair, TrustedPublicKey

logger = logging.getLogger(__name__)

KEY_LENGTH = 32


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


def generate() -> SigningKeypair:
    """Generate a fresh Ed25519 keypair from the OS CSPRNG (libsodium)."""
    sk = nacl.signing.SigningKey.generate()
    return SigningKeypair(
        algorithm=KEY_ALGORITHM,
        private_key=base64.b64encode(sk.encode()).decode("ascii"),
        public_key=base64.b64encode(sk.verify_key.encode()).decode("ascii"),
    )


def signing_key_for(keypair: SigningKeypair) -> nacl.signing.SigningKey:
    """Rebuild the libsodium signing key and check it matches the stored public half."""
    _check_algorithm(keypair.algorithm, "signing key")
    seed = _decode_key(keypair.private_key, "private_key")
    sk = nacl.signing.SigningKey(seed)
    if sk.verify_key.encode() != _decode_key(keypair.public_key, "public_key"):
        raise UnsupportedFormatError(
            "Stored public_key does not match the private key"
        )
    return sk


def verify_key_for(public_key: TrustedPublicKey) -> nacl.signing.VerifyKey:
    """Rebuild the libsodium verify key for a trusted public key."""
    _check_algorithm(public_key.algorithm, "public key")
    raw = _decode_key(public_key.public_key, "public_key")
    try:
        return nacl.signing.VerifyKey(raw)
    except (CryptoError, ValueError) as exc:
        raise UnsupportedFormatError(f"Invalid public key: {exc}") from exc


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def save(keypair: SigningKeypair, key_dir: Path) -> tuple[Path, Path]:
    """Write the private and public key files into *key_dir*.

    Returns ``(private_path, public_path)``.

    Raises
    ------
    KeyExistsError
        If either file already exists.  Keys are never silently replaced.
    """
    key_dir = Path(key_dir)
    private_path = key_dir / PRIVATE_KEY_FILENAME
    public_path = key_dir / PUBLIC_KEY_FILENAME
    if private_path.exists() or public_path.exists():
        raise KeyExistsError(f"Signing key already exists in {key_dir}")

    try:
        key_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ReleaseIOError(f"Cannot create key directory {key_dir}: {exc}") from exc

    _write_exclusive(private_path, keypair.model_dump(), 0o600)
    save_public(keypair.public(), key_dir)
    logger.info("Generated signing key: %s", private_path)
    return private_path, public_path


def save_public(public_key: TrustedPublicKey, key_dir: Path) -> Path:
    """Write a world-readable public key file into *key_dir*."""
    public_path = Path(key_dir) / PUBLIC_KEY_FILENAME
    if public_path.exists():
        raise KeyExistsError(f"Public key already exists at {public_path}")
    _write_exclusive(public_path, public_key.model_dump(), 0o644)
    logger.info("Generated public key: %s", public_path)
    return public_path


def load_private(path: Path) -> SigningKeypair:
    """Load and validate a private key file."""
    data = _read_json(path)
    _check_algorithm(data.get("algorithm"), "signing key")
    try:
        keypair = SigningKeypair(
            algorithm=data["algorithm"],
            private_key=data["private_key"],
            public_key=data["public_key"],
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise UnsupportedFormatError(f"Malformed signing key file {path}: {exc}") from exc
    signing_key_for(keypair)  # validates lengths and key consistency
    return keypair


def load_public(path: Path) -> TrustedPublicKey:
    """Load and validate a public key file."""
    data = _read_json(path)
    _check_algorithm(data.get("algorithm"), "public key")
    try:
        key = TrustedPublicKey(
            algorithm=data["algorithm"], public_key=data["public_key"]
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise UnsupportedFormatError(f"Malformed public key file {path}: {exc}") from exc
    verify_key_for(key)
    return key


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_algorithm(algorithm: Any, what: str) -> None:
    if algorithm != KEY_ALGORITHM:
        raise UnsupportedFormatError(f"Unsupported {what} algorithm {algorithm}")


def _decode_key(value: str, field: str) -> bytes:
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise UnsupportedFormatError(f"Invalid base64 in {field}") from exc
    if len(raw) != KEY_LENGTH:
        raise UnsupportedFormatError(
            f"Invalid {field} length {len(raw)}, expected {KEY_LENGTH}"
        )
    return raw


def _read_json(path: Path) -> dict[str, Any]:
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise ReleaseIOError(f"Cannot read key file {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise UnsupportedFormatError(f"Key file {path} is not valid JSON") from exc
    if not isinstance(data, dict):
        raise UnsupportedFormatError(f"Key file {path} is not a JSON object")
    return data


def _write_exclusive(path: Path, payload: dict[str, Any], mode: int) -> None:
    """Create *path* with *mode*, failing if it already exists."""
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    except FileExistsError as exc:
        raise KeyExistsError(f"Key file already exists: {path}") from exc
    except OSError as exc:
        raise ReleaseIOError(f"Cannot create key file {path}: {exc}") from exc
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2)
    # umask may have masked the requested bits
    os.chmod(path, mode)
