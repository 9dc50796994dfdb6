"""
Crowdfund Validators - Cryptographic Utilities Module

This module provides the hashing and authorization primitives shared by the
validators:
- Key, script and record hashes (BLAKE2b)
- Multisignature threshold authorization over signer groups

Dependencies:
- hashlib: Cryptographic hash functions
"""

from .hashing import (
    blake2b_224,
    blake2b_256,
    key_hash,
    script_hash,
    datum_hash,
)
from .multisig import (
    authorize,
    count_signed,
    require_authorization,
)

__all__ = [
    "blake2b_224",
    "blake2b_256",
    "key_hash",
    "script_hash",
    "datum_hash",
    "authorize",
    "count_signed",
    "require_authorization",
]
