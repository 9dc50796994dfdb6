"""
Crowdfund Ledger - Validation Exceptions

This module defines the error taxonomy shared by every validator. All errors
are fatal: raising any of them rejects the candidate transaction as a whole.
"""


class ValidationError(Exception):
    """Base exception for validation errors."""

    code = "VALIDATION_ERROR"


class ConfigurationError(ValidationError):
    """Raised when validator configuration is invalid."""

    code = "CONFIGURATION_ERROR"


class SchemaError(ValidationError):
    """Raised when a record fails to decode as the expected tagged kind."""

    code = "SCHEMA_ERROR"


class RuleViolationError(ValidationError):
    """Raised when a validation rule is violated."""

    code = "RULE_VIOLATION"


class AuthorizationError(RuleViolationError):
    """Raised when a signature or multisig threshold is unmet."""

    code = "AUTHORIZATION_ERROR"


class StateError(RuleViolationError):
    """Raised when a record is in the wrong lifecycle state for an action."""

    code = "STATE_ERROR"


class AccountingError(RuleViolationError):
    """Raised on a payout, refund or contribution value mismatch."""

    code = "ACCOUNTING_ERROR"


class DeadlineError(RuleViolationError):
    """Raised when the validity interval is inconsistent with a deadline."""

    code = "DEADLINE_ERROR"


class ReferenceError(RuleViolationError):
    """Raised when an expected companion input, output or record is missing."""

    code = "REFERENCE_ERROR"


class InvalidActionError(RuleViolationError):
    """Raised for an action outside the recognized set for a record kind."""

    code = "INVALID_ACTION"
