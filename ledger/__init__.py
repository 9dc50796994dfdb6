"""
Crowdfund Ledger Module

This module provides the candidate transaction model, the on-chain data tree
carried by ledger entries, and the validation error taxonomy.
"""

from .data import Constr, PlutusData, dumps, loads, to_json, from_json
from .exceptions import (
    ValidationError,
    ConfigurationError,
    SchemaError,
    RuleViolationError,
    AuthorizationError,
    StateError,
    AccountingError,
    DeadlineError,
    ReferenceError,
    InvalidActionError
)
from .transaction import (
    Address,
    Credential,
    CredentialType,
    OutputReference,
    PurposeKind,
    ScriptPurpose,
    Transaction,
    TxInInfo,
    TxOut,
    ValidityRange,
    Value
)

__all__ = [
    "Constr",
    "PlutusData",
    "dumps",
    "loads",
    "to_json",
    "from_json",
    "ValidationError",
    "ConfigurationError",
    "SchemaError",
    "RuleViolationError",
    "AuthorizationError",
    "StateError",
    "AccountingError",
    "DeadlineError",
    "ReferenceError",
    "InvalidActionError",
    "Address",
    "Credential",
    "CredentialType",
    "OutputReference",
    "PurposeKind",
    "ScriptPurpose",
    "Transaction",
    "TxInInfo",
    "TxOut",
    "ValidityRange",
    "Value"
]
