"""
Local reference confidential-compute provider.

Stands in for an FHE coprocessor + decryption oracle in development and
tests:

- AES-256-GCM encryption of the integer value
- The recipient context is bound as AAD, so a handle only decrypts under
  the context it was produced for
- Handles are self-contained opaque tokens (nonce + ciphertext); the
  provider keeps no per-handle state
- Inclusion and decryption proofs are Ed25519 signatures over canonical
  JSON statements; the signing key is derived from the master key (HKDF)

CRITICAL INVARIANTS:
1. request_clear_value never returns a value without a proof over it
2. verify_proof is offline (public key only, no round trip)
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
import time
from typing import Dict, FrozenSet, Iterable, Optional

from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from supplyprov.protocol.errors import DecryptionError, EncryptionError
from supplyprov.utils.json import canonical_bytes

from .base import DecryptionResult, EncryptionResult

logger = logging.getLogger(__name__)

HANDLE_PREFIX = "ct1:"
DEFAULT_MAX_VALUE = 2**32 - 1
_VALUE_BYTES = 8
_AAD_PREFIX = b"supplyprov-record:"
_SIGNING_INFO = b"supplyprov-proof-signing-v1"


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _unb64(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class LocalConfidentialComputeProvider:
    def __init__(
        self,
        key: bytes | str,
        *,
        max_value: int = DEFAULT_MAX_VALUE,
        authorized_contexts: Optional[Iterable[str]] = None,
        approval_delay_s: float = 0.0,
    ):
        if isinstance(key, str):
            key = bytes.fromhex(key)  # expect 32-byte hex string

        if len(key) != 32:
            raise ValueError("Compute key must be exactly 32 bytes")
        if max_value >= 2 ** (8 * _VALUE_BYTES):
            raise ValueError(f"max_value must fit in {_VALUE_BYTES} bytes")

        self._aesgcm = AESGCM(key)
        self._max_value = max_value
        self._authorized: Optional[FrozenSet[str]] = (
            frozenset(authorized_contexts) if authorized_contexts is not None else None
        )
        self._approval_delay_s = approval_delay_s

        seed = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=_SIGNING_INFO,
        ).derive(key)
        self._signing_key = Ed25519PrivateKey.from_private_bytes(seed)
        self._public_key = self._signing_key.public_key()
        public_bytes = self._public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self._key_id = hashlib.sha256(public_bytes).hexdigest()[:16]

    # --- Key Helpers -------------------------------------------------

    @staticmethod
    def generate_key() -> bytes:
        return os.urandom(32)

    @staticmethod
    def generate_key_hex() -> str:
        return LocalConfidentialComputeProvider.generate_key().hex()

    @property
    def key_id(self) -> str:
        return self._key_id

    @property
    def max_value(self) -> int:
        return self._max_value

    # --- Encrypt -----------------------------------------------------

    def encrypt(self, value: int, context: str) -> EncryptionResult:
        if not isinstance(value, int) or isinstance(value, bool):
            raise EncryptionError("Value must be an integer", retryable=False)
        if value < 0 or value > self._max_value:
            raise EncryptionError(
                f"Value out of range [0, {self._max_value}]",
                retryable=False,
                details={"max_value": self._max_value},
            )
        if not isinstance(context, str) or not context:
            raise EncryptionError("Recipient context must be a non-empty string", retryable=False)

        nonce = os.urandom(12)  # GCM standard: 96-bit nonce
        ciphertext = self._aesgcm.encrypt(
            nonce, value.to_bytes(_VALUE_BYTES, "big"), _AAD_PREFIX + context.encode("utf-8")
        )
        handle = HANDLE_PREFIX + _b64(nonce + ciphertext)
        proof = self._sign({"kind": "inclusion", "handle": handle, "context": context})
        return EncryptionResult(handle=handle, inclusion_proof=proof)

    # --- Decrypt -----------------------------------------------------

    def request_clear_value(self, handles: Iterable[str], context: str) -> DecryptionResult:
        handles = sorted(set(handles))
        if not handles:
            raise DecryptionError("No handles requested", retryable=False)
        if self._authorized is not None and context not in self._authorized:
            raise DecryptionError(
                f"Context {context!r} is not authorized for decryption",
                retryable=False,
                details={"context": context},
            )

        if self._approval_delay_s > 0:
            # Simulated oracle / threshold-decryption round trip.
            time.sleep(self._approval_delay_s)

        clear_values = {handle: self._decrypt_handle(handle, context) for handle in handles}
        proof = self._sign(self._decryption_statement(clear_values, context))
        logger.debug("Decrypted %d handle(s) for context %s", len(handles), context)
        return DecryptionResult(clear_values=clear_values, proof=proof)

    def _decrypt_handle(self, handle: str, context: str) -> int:
        if not isinstance(handle, str) or not handle.startswith(HANDLE_PREFIX):
            raise DecryptionError("Unknown ciphertext handle", retryable=False, details={"handle": handle})
        try:
            blob = _unb64(handle[len(HANDLE_PREFIX):])
        except (binascii.Error, ValueError):
            raise DecryptionError("Unknown ciphertext handle", retryable=False, details={"handle": handle})
        if len(blob) <= 12:
            raise DecryptionError("Unknown ciphertext handle", retryable=False, details={"handle": handle})

        try:
            plaintext = self._aesgcm.decrypt(
                blob[:12], blob[12:], _AAD_PREFIX + context.encode("utf-8")
            )
        except InvalidTag:
            raise DecryptionError(
                "Unknown ciphertext handle or unauthorized context",
                retryable=False,
                details={"handle": handle},
            )
        return int.from_bytes(plaintext, "big")

    # --- Proofs ------------------------------------------------------

    @staticmethod
    def _decryption_statement(clear_values: Dict[str, int], context: str) -> Dict[str, object]:
        return {"kind": "decryption", "context": context, "clear_values": dict(clear_values)}

    def _sign(self, statement: Dict[str, object]) -> str:
        return base64.b64encode(self._signing_key.sign(canonical_bytes(statement))).decode("ascii")

    def _verify(self, proof: str, statement: Dict[str, object]) -> bool:
        try:
            signature = base64.b64decode(proof, validate=True)
        except (binascii.Error, ValueError, TypeError):
            return False
        try:
            self._public_key.verify(signature, canonical_bytes(statement))
            return True
        except InvalidSignature:
            return False

    def verify_proof(self, proof: str, clear_values: Dict[str, int], context: str) -> bool:
        for value in clear_values.values():
            if not isinstance(value, int) or isinstance(value, bool):
                return False
        return self._verify(proof, self._decryption_statement(clear_values, context))

    def verify_inclusion_proof(self, proof: str, handle: str, context: str) -> bool:
        return self._verify(proof, {"kind": "inclusion", "handle": handle, "context": context})

    def is_available(self) -> bool:
        return True
