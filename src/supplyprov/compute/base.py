from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, Optional, Protocol

if TYPE_CHECKING:
    from supplyprov.core.settings import ComputeSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncryptionResult:
    handle: str
    inclusion_proof: str


@dataclass(frozen=True)
class DecryptionResult:
    clear_values: Dict[str, int] = field(default_factory=dict)
    proof: str = ""


class ConfidentialComputeProvider(Protocol):
    """
    Consumed confidential-compute capability.

    encrypt / request_clear_value may block on an external round trip;
    verify_proof is pure and local.
    """

    def encrypt(self, value: int, context: str) -> EncryptionResult:
        ...

    def request_clear_value(self, handles: Iterable[str], context: str) -> DecryptionResult:
        ...

    def verify_proof(self, proof: str, clear_values: Dict[str, int], context: str) -> bool:
        ...

    def is_available(self) -> bool:
        ...


def create_compute_provider(settings: "ComputeSettings", *, key: Optional[str] = None):
    """
    Build the reference provider from ComputeSettings.

    SUPPLYPROV_COMPUTE_KEY must be a 32-byte hex string. When it is empty a
    throw-away dev key is generated; handles produced with it cannot be
    decrypted by any other process.
    """
    from .local import LocalConfidentialComputeProvider

    key = key or settings.key
    if not key:
        logger.warning(
            "SUPPLYPROV_COMPUTE_KEY is not set; using an ephemeral key "
            "(ciphertext handles will not survive a restart)"
        )
        key = LocalConfidentialComputeProvider.generate_key_hex()

    return LocalConfidentialComputeProvider(
        key,
        max_value=settings.max_value,
        authorized_contexts=settings.authorized_context_list or None,
        approval_delay_s=settings.approval_delay_ms / 1000.0,
    )
