"""
Crowdfund Ledger - Candidate Transaction Model

This module defines the already-assembled candidate transaction that every
validator decides over: inputs and reference inputs, outputs, the minted and
burned value map, the signatory key hashes, and the validity interval.

The model is read-only from the validators' point of view. Validators never
construct, broadcast or order transactions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from .data import PlutusData
from .exceptions import ReferenceError, SchemaError


HASH_SIZE = 28  # blake2b-224 key and script hashes


class CredentialType(Enum):
    """Credential kinds."""
    KEY = 0
    SCRIPT = 1


@dataclass(frozen=True)
class Credential:
    """Payment or stake credential: a key hash or a script hash."""
    kind: CredentialType
    hash: bytes

    def __post_init__(self):
        if not isinstance(self.hash, bytes) or len(self.hash) != HASH_SIZE:
            raise SchemaError(f"Credential hash must be {HASH_SIZE} bytes")

    @classmethod
    def key(cls, key_hash: bytes) -> "Credential":
        return cls(CredentialType.KEY, key_hash)

    @classmethod
    def script(cls, script_hash: bytes) -> "Credential":
        return cls(CredentialType.SCRIPT, script_hash)

    def is_script(self) -> bool:
        return self.kind == CredentialType.SCRIPT


@dataclass(frozen=True)
class Address:
    """Ledger address: payment credential plus optional stake credential."""
    payment: Credential
    stake: Optional[Credential] = None

    def is_script(self) -> bool:
        """Check whether spending from this address is governed by a script."""
        return self.payment.is_script()

    def __str__(self) -> str:
        stake = self.stake.hash.hex() if self.stake else "-"
        prefix = "script" if self.is_script() else "key"
        return f"{prefix}:{self.payment.hash.hex()}/{stake}"


@dataclass(frozen=True)
class Value:
    """
    Multi-asset value carried by a ledger entry.

    Native value is held in ``lovelace``; every other asset is keyed by
    policy id and asset name.
    """
    lovelace: int = 0
    assets: Dict[bytes, Dict[bytes, int]] = field(default_factory=dict)

    def quantity_of(self, policy_id: bytes, asset_name: bytes) -> int:
        """
        Get the quantity of a single asset.

        Args:
            policy_id: Minting policy identifier
            asset_name: Asset name under that policy

        Returns:
            Quantity held, zero when absent
        """
        return self.assets.get(policy_id, {}).get(asset_name, 0)

    def policies(self) -> List[bytes]:
        return list(self.assets)

    def __add__(self, other: "Value") -> "Value":
        merged: Dict[bytes, Dict[bytes, int]] = {
            policy: dict(tokens) for policy, tokens in self.assets.items()
        }
        for policy, tokens in other.assets.items():
            bucket = merged.setdefault(policy, {})
            for name, quantity in tokens.items():
                bucket[name] = bucket.get(name, 0) + quantity
        return Value(self.lovelace + other.lovelace, merged)


@dataclass(frozen=True)
class OutputReference:
    """Reference to a ledger entry: producing transaction id plus index."""
    tx_id: bytes
    index: int

    def __str__(self) -> str:
        return f"{self.tx_id.hex()}#{self.index}"


@dataclass(frozen=True)
class TxOut:
    """Transaction output: address, value and optional inline record."""
    address: Address
    value: Value
    datum: Optional[PlutusData] = None


@dataclass(frozen=True)
class TxInInfo:
    """Resolved transaction input."""
    out_ref: OutputReference
    output: TxOut

    @property
    def address(self) -> Address:
        return self.output.address

    @property
    def value(self) -> Value:
        return self.output.value

    @property
    def datum(self) -> Optional[PlutusData]:
        return self.output.datum


@dataclass(frozen=True)
class ValidityRange:
    """
    Validity interval declared by the transaction (POSIX milliseconds).

    ``None`` on either side means the interval is unbounded on that side.
    Deadline checks compare against this interval, never a wall clock.
    """
    lower: Optional[int] = None
    upper: Optional[int] = None

    def is_entirely_before(self, point: int) -> bool:
        """True iff the whole interval lies at or before ``point``."""
        return self.upper is not None and self.upper <= point

    def is_entirely_after(self, point: int) -> bool:
        """True iff the whole interval lies strictly after ``point``."""
        return self.lower is not None and self.lower > point


class PurposeKind(Enum):
    """Why a script is being executed."""
    SPEND = "spend"
    MINT = "mint"


@dataclass(frozen=True)
class ScriptPurpose:
    """Script execution purpose: spending an entry or minting under a policy."""
    kind: PurposeKind
    out_ref: Optional[OutputReference] = None
    policy_id: Optional[bytes] = None

    @classmethod
    def spend(cls, out_ref: OutputReference) -> "ScriptPurpose":
        return cls(PurposeKind.SPEND, out_ref=out_ref)

    @classmethod
    def mint(cls, policy_id: bytes) -> "ScriptPurpose":
        return cls(PurposeKind.MINT, policy_id=policy_id)

    @property
    def is_spend(self) -> bool:
        return self.kind == PurposeKind.SPEND

    @property
    def is_mint(self) -> bool:
        return self.kind == PurposeKind.MINT


@dataclass
class Transaction:
    """Candidate transaction: the sole input contract of every validator."""
    inputs: List[TxInInfo] = field(default_factory=list)
    outputs: List[TxOut] = field(default_factory=list)
    reference_inputs: List[TxInInfo] = field(default_factory=list)
    mint: Dict[bytes, Dict[bytes, int]] = field(default_factory=dict)
    signatories: List[bytes] = field(default_factory=list)
    validity_range: ValidityRange = field(default_factory=ValidityRange)
    tx_id: bytes = b"\x00" * 32

    def find_input(self, out_ref: OutputReference) -> TxInInfo:
        """
        Resolve one of this transaction's inputs.

        Args:
            out_ref: Reference of the consumed entry

        Returns:
            The resolved input
        """
        for tx_in in self.inputs:
            if tx_in.out_ref == out_ref:
                return tx_in
        raise ReferenceError(f"Input {out_ref} is not consumed by this transaction")

    def inputs_at(self, address: Address) -> List[TxInInfo]:
        return [tx_in for tx_in in self.inputs if tx_in.address == address]

    def outputs_at(self, address: Address) -> List[TxOut]:
        return [out for out in self.outputs if out.address == address]

    def outputs_to_script(self, script_hash: bytes) -> List[TxOut]:
        """Outputs whose payment credential is the given script."""
        return [
            out for out in self.outputs
            if out.address.is_script() and out.address.payment.hash == script_hash
        ]

    def minted(self, policy_id: bytes, asset_name: bytes) -> int:
        """Net minted quantity (negative when burned)."""
        return self.mint.get(policy_id, {}).get(asset_name, 0)

    def is_signed_by(self, key_hash: bytes) -> bool:
        return key_hash in self.signatories

    def script_purposes(self) -> Iterator[Tuple[ScriptPurpose, Optional[bytes]]]:
        """
        Enumerate the script executions this transaction triggers.

        Yields:
            (purpose, script hash) pairs; spends from key addresses are skipped
        """
        for tx_in in self.inputs:
            if tx_in.address.is_script():
                yield ScriptPurpose.spend(tx_in.out_ref), tx_in.address.payment.hash
        for policy_id in self.mint:
            yield ScriptPurpose.mint(policy_id), policy_id
