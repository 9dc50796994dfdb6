"""
Multisignature Authorization

Evaluates whether the signatories of a transaction meet the threshold of a
named signer group. Signers listed more than once in a group count once.
"""

import logging
from typing import Iterable, Protocol, Sequence

from ledger.exceptions import AuthorizationError


logger = logging.getLogger(__name__)


class SignerGroup(Protocol):
    """Anything carrying a required-signature count and a signer list."""
    required: int
    signers: Sequence[bytes]


def count_signed(signatories: Iterable[bytes], group: SignerGroup) -> int:
    """
    Count the distinct group members that signed.

    Args:
        signatories: Key hashes that signed the transaction
        group: Signer group

    Returns:
        Number of distinct group signers present among the signatories
    """
    signed = set(signatories)
    return len({signer for signer in group.signers if signer in signed})


def authorize(signatories: Iterable[bytes], group: SignerGroup) -> bool:
    """
    Check whether the signatories meet the group threshold.

    Args:
        signatories: Key hashes that signed the transaction
        group: Signer group

    Returns:
        True iff at least ``group.required`` distinct group signers signed
    """
    return count_signed(signatories, group) >= group.required


def require_authorization(signatories: Iterable[bytes], group: SignerGroup,
                          label: str = "multisig") -> None:
    """
    Raise AuthorizationError unless the group threshold is met.

    Args:
        signatories: Key hashes that signed the transaction
        group: Signer group
        label: Group name used in the error message
    """
    signatories = list(signatories)
    signed = count_signed(signatories, group)
    if signed < group.required:
        raise AuthorizationError(
            f"{label} threshold unmet: {signed} of {group.required} required signatures"
        )
    logger.debug(f"{label} threshold met: {signed}/{group.required}")
