"""
Soulballot Identity Module

Identities are wallet addresses in one of two formats:
- Traditional (secp256k1): 0x + 40 hex chars, canonicalised to EIP-55 checksum
- Post-Quantum (Dilithium): 0xPQ + 64 hex chars, canonicalised to lowercase hex

Canonicalisation makes case variants of one address the same identity.
"""

from typing import Any

from eth_utils import to_checksum_address

from .constants import (
    PQ_LENGTH,
    PQ_PREFIX,
    TRADITIONAL_LENGTH,
    TRADITIONAL_PREFIX,
    VALID_HEX_PATTERN,
)
from .exceptions import InvalidIdentityError


def is_pq_identity(identity: str) -> bool:
    """Check if identity uses the post-quantum address format."""
    return identity.startswith(PQ_PREFIX)


def normalize_identity(identity: Any) -> str:
    """
    Validate and canonicalise an identity.

    Args:
        identity: Candidate address string

    Returns:
        Canonical address string

    Raises:
        InvalidIdentityError: if identity is missing or malformed
    """
    if not isinstance(identity, str) or not identity:
        raise InvalidIdentityError(f"Identity must be a non-empty address, got {identity!r}")

    if is_pq_identity(identity):
        raw = identity[len(PQ_PREFIX):]
        if len(raw) != PQ_LENGTH or not VALID_HEX_PATTERN.match(raw):
            raise InvalidIdentityError(f"Malformed post-quantum identity: {identity!r}")
        return PQ_PREFIX + raw.lower()

    if identity.startswith(TRADITIONAL_PREFIX):
        raw = identity[len(TRADITIONAL_PREFIX):]
        if len(raw) != TRADITIONAL_LENGTH or not VALID_HEX_PATTERN.match(raw):
            raise InvalidIdentityError(f"Malformed identity: {identity!r}")
        return to_checksum_address(identity)

    raise InvalidIdentityError(f"Unknown identity format: {identity!r}")


def is_valid_identity(identity: Any) -> bool:
    """Check an identity without raising."""
    try:
        normalize_identity(identity)
    except InvalidIdentityError:
        return False
    return True
