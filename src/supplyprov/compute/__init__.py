"""
Confidential-compute capability.

The protocol in base.py is what the coordinator consumes; local.py is the
reference provider used for development, the CLI and tests.
"""

from .base import (
    ConfidentialComputeProvider,
    DecryptionResult,
    EncryptionResult,
    create_compute_provider,
)
from .local import HANDLE_PREFIX, LocalConfidentialComputeProvider

__all__ = [
    "ConfidentialComputeProvider",
    "DecryptionResult",
    "EncryptionResult",
    "create_compute_provider",
    "HANDLE_PREFIX",
    "LocalConfidentialComputeProvider",
]
