"""
Hash Functions for Crowdfund Validators

Key hashes, script hashes and record hashes as the ledger derives them.
"""

import hashlib

from ledger.data import PlutusData, dumps


KEY_HASH_SIZE = 28
DATUM_HASH_SIZE = 32

# Script language tags prefixed to the serialized script before hashing
SCRIPT_LANGUAGE_TAGS = {
    "native": b"\x00",
    "plutus_v1": b"\x01",
    "plutus_v2": b"\x02",
    "plutus_v3": b"\x03",
}


def blake2b_224(data: bytes) -> bytes:
    """
    Compute a 28-byte BLAKE2b digest.

    Args:
        data: Data to hash

    Returns:
        28-byte digest
    """
    return hashlib.blake2b(data, digest_size=KEY_HASH_SIZE).digest()


def blake2b_256(data: bytes) -> bytes:
    """Compute a 32-byte BLAKE2b digest."""
    return hashlib.blake2b(data, digest_size=DATUM_HASH_SIZE).digest()


def key_hash(verification_key: bytes) -> bytes:
    """
    Derive the key hash that identifies a signer.

    Args:
        verification_key: 32-byte verification key

    Returns:
        28-byte key hash
    """
    if len(verification_key) != 32:
        raise ValueError(f"Verification key must be 32 bytes, got {len(verification_key)}")
    return blake2b_224(verification_key)


def script_hash(script: bytes, language: str = "plutus_v2") -> bytes:
    """
    Derive a script hash; also the policy id when the script mints.

    Args:
        script: Serialized script
        language: Script language tag name

    Returns:
        28-byte script hash
    """
    try:
        tag = SCRIPT_LANGUAGE_TAGS[language]
    except KeyError:
        raise ValueError(f"Unknown script language: {language}") from None
    return blake2b_224(tag + script)


def datum_hash(data: PlutusData) -> bytes:
    """Hash of the canonical JSON rendition of a record."""
    return blake2b_256(dumps(data).encode("utf-8"))
