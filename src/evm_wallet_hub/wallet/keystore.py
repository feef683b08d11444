"""Private-key encryption at rest using AES-256-GCM and eth-account."""

from __future__ import annotations

import hashlib
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from eth_account import Account

from evm_wallet_hub.errors import CryptoError, InvalidKeyError

IV_SIZE = 16
TAG_SIZE = 16

_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def normalize_key(raw_key: str) -> str:
    """Return *raw_key* as 64 lowercase hex chars without ``0x``.

    Raises
    ------
    InvalidKeyError
        If the key is not exactly 32 bytes of hex.
    """
    if not isinstance(raw_key, str):
        raise InvalidKeyError("Private key must be a hex string")
    clean = raw_key.strip()
    if clean.startswith(("0x", "0X")):
        clean = clean[2:]
    if not _KEY_RE.match(clean):
        raise InvalidKeyError("Invalid private key format")
    return clean.lower()


def validate_key(raw_key: str) -> bool:
    """Check whether *raw_key* is a well-formed private key."""
    try:
        normalize_key(raw_key)
    except InvalidKeyError:
        return False
    return True


def derive_address(raw_key: str) -> str:
    """Return the checksummed address controlled by *raw_key*."""
    clean = normalize_key(raw_key)
    try:
        return Account.from_key("0x" + clean).address
    except ValueError as exc:
        # e.g. zero or above the secp256k1 curve order
        raise InvalidKeyError(f"Invalid private key: {exc}") from exc


def _derive_aes_key(secret: str) -> bytes:
    if _KEY_RE.match(secret):
        return bytes.fromhex(secret)
    return hashlib.sha256(secret.encode("utf-8")).digest()


class KeyVault:
    """Encrypts and decrypts private keys with a deployment-wide secret.

    Ciphertext format is ``hex(iv):hex(auth_tag):hex(ciphertext)``. The
    vault holds no mutable state, so one instance can be shared freely.

    Parameters
    ----------
    secret:
        Either 64 hex characters (used as the AES-256 key directly) or any
        passphrase, which is hashed with SHA-256.
    """

    def __init__(self, secret: str) -> None:
        if not secret or secret.startswith("${"):
            raise CryptoError(
                "No encryption key configured. Set WALLET_HUB_ENCRYPTION_KEY "
                "or 'encryption_key' in config.yaml."
            )
        self._aead = AESGCM(_derive_aes_key(secret))

    def encrypt(self, raw_key: str) -> str:
        """Encrypt *raw_key*; a fresh random IV is used on every call."""
        if not isinstance(raw_key, str):
            raise CryptoError("Key material must be a string")
        iv = os.urandom(IV_SIZE)
        try:
            sealed = self._aead.encrypt(iv, raw_key.encode("utf-8"), None)
        except (ValueError, OverflowError) as exc:
            raise CryptoError(f"Failed to encrypt key: {exc}") from exc
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, encrypted: str) -> str:
        """Decrypt a value produced by :meth:`encrypt`.

        Raises
        ------
        CryptoError
            On malformed input or authentication tag mismatch.
        """
        parts = encrypted.split(":") if isinstance(encrypted, str) else []
        if len(parts) != 3:
            raise CryptoError("Malformed ciphertext: expected iv:authTag:ciphertext")
        try:
            iv, tag, ciphertext = (bytes.fromhex(p) for p in parts)
        except ValueError as exc:
            raise CryptoError(f"Malformed ciphertext: {exc}") from exc
        if len(iv) != IV_SIZE or len(tag) != TAG_SIZE:
            raise CryptoError("Malformed ciphertext: bad iv or tag length")

        try:
            plain = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            raise CryptoError("Failed to decrypt key: authentication tag mismatch") from exc
        try:
            return plain.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CryptoError("Failed to decrypt key: not valid UTF-8") from exc
