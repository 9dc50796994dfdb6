"""
Value Accounting for Crowdfund Validators

Pure value predicates over a transaction's visible inputs and outputs: sums of
a quantity over filtered entries, payout checks against an address, and
bounded searches that fail with an explicit not-found error. Nothing here
inspects signatures or record lifecycle state.
"""

from typing import Callable, Iterable, List, Optional, TypeVar, Union

from ledger.data import PlutusData
from ledger.exceptions import ReferenceError
from ledger.transaction import Address, Transaction, TxInInfo, TxOut, Value


Entry = Union[TxInInfo, TxOut]
Quantity = Callable[[Value], int]
Predicate = Callable[[Entry], bool]

T = TypeVar("T", TxInInfo, TxOut)


def _output_of(entry: Entry) -> TxOut:
    return entry.output if isinstance(entry, TxInInfo) else entry


def lovelace_of(value: Value) -> int:
    """Native value quantity."""
    return value.lovelace


def asset_quantity(policy_id: bytes, asset_name: bytes) -> Quantity:
    """
    Build a quantity getter for a single asset.

    Args:
        policy_id: Minting policy identifier
        asset_name: Asset name

    Returns:
        Function mapping a Value to the asset's quantity
    """
    def quantity(value: Value) -> int:
        return value.quantity_of(policy_id, asset_name)
    return quantity


# Predicate builders

def at_address(address: Address) -> Predicate:
    """Entries located at exactly this address."""
    return lambda entry: _output_of(entry).address == address


def with_datum(data: Optional[PlutusData]) -> Predicate:
    """Entries whose inline record equals ``data``."""
    return lambda entry: _output_of(entry).datum == data


def with_token(policy_id: bytes, asset_name: bytes) -> Predicate:
    """Entries holding a positive quantity of the asset."""
    return lambda entry: _output_of(entry).value.quantity_of(policy_id, asset_name) > 0


def both(*predicates: Predicate) -> Predicate:
    """Conjunction of predicates."""
    return lambda entry: all(predicate(entry) for predicate in predicates)


# Aggregation

def sum_matching(entries: Iterable[Entry], predicate: Predicate,
                 quantity: Quantity = lovelace_of) -> int:
    """
    Sum a quantity over the entries satisfying a predicate.

    Args:
        entries: Inputs or outputs
        predicate: Filter (address and/or record equality)
        quantity: Quantity getter, native value by default

    Returns:
        Total quantity over matching entries
    """
    total = 0
    for entry in entries:
        if predicate(entry):
            total += quantity(_output_of(entry).value)
    return total


def paid_to(address: Address, outputs: Iterable[TxOut],
            quantity: Quantity = lovelace_of) -> int:
    """Total quantity paid to an address."""
    return sum_matching(outputs, at_address(address), quantity)


def pays_at_least(address: Address, value: int, outputs: Iterable[TxOut],
                  quantity: Quantity = lovelace_of) -> bool:
    """
    Check that at least ``value`` reaches ``address``.

    Args:
        address: Recipient address
        value: Minimum total
        outputs: Transaction outputs
        quantity: Quantity getter

    Returns:
        True iff the outputs to the address carry at least ``value``
    """
    return paid_to(address, outputs, quantity) >= value


def pays_exactly(address: Address, value: int, outputs: Iterable[TxOut],
                 quantity: Quantity = lovelace_of) -> bool:
    """Check that the outputs to ``address`` carry exactly ``value``."""
    return paid_to(address, outputs, quantity) == value


def minted_quantity(transaction: Transaction, policy_id: bytes, asset_name: bytes) -> int:
    """Net quantity minted (negative when burned) of one asset."""
    return transaction.minted(policy_id, asset_name)


# Bounded searches

def find_all(entries: Iterable[T], predicate: Predicate) -> List[T]:
    """Every entry satisfying the predicate, in transaction order."""
    return [entry for entry in entries if predicate(entry)]


def find_unique(entries: Iterable[T], predicate: Predicate, label: str) -> T:
    """
    Find the single entry satisfying a predicate.

    Args:
        entries: Inputs or outputs
        predicate: Filter
        label: Description used in the error message

    Returns:
        The matching entry
    """
    matches = find_all(entries, predicate)
    if not matches:
        raise ReferenceError(f"No {label} found")
    if len(matches) > 1:
        raise ReferenceError(f"Expected one {label}, found {len(matches)}")
    return matches[0]

