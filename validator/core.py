"""
Crowdfund Validator Core Engine

This module provides the main ValidationEngine class that orchestrates the
decision functions gating state transitions of script-controlled records.

The ValidationEngine acts as the central coordinator for:
- Resolving the consumed entry and its inline record
- Locating the protocol configuration among reference inputs
- Dispatching each script execution to the rule registered for the script
- Recording verdicts, rejection reasons and statistics

Every decision is a pure function of the candidate transaction: a rule either
accepts or raises, and a transaction is accepted only if every script it
triggers accepts.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from crypto.hashing import datum_hash
from ledger.data import PlutusData
from ledger.exceptions import (
    AccountingError,
    AuthorizationError,
    ConfigurationError,
    DeadlineError,
    InvalidActionError,
    ReferenceError,
    RuleViolationError,
    SchemaError,
    StateError,
    ValidationError,
)
from ledger.transaction import Address, ScriptPurpose, Transaction, TxInInfo
from records.codec import decode
from records.schema import ConfigRecord

from .config import ValidatorSettings, setup_logging
from .error_reporting import ErrorContext, ErrorReporter, ErrorSeverity, get_error_reporter


class ValidationResult(Enum):
    """Validation result codes."""
    APPROVED = "approved"
    REJECTED = "rejected"
    ERROR = "error"


def find_config(transaction: Transaction, settings: ValidatorSettings) -> Optional[ConfigRecord]:
    """
    Locate the protocol configuration among reference inputs.

    The configuration entry is the one holding the identification token.

    Args:
        transaction: Candidate transaction
        settings: Validator settings naming the identification token

    Returns:
        Decoded ConfigRecord, or None when no reference input holds the token
    """
    holders = [
        ref for ref in transaction.reference_inputs
        if ref.value.quantity_of(settings.identification_policy, settings.identification_token_name) > 0
    ]
    if not holders:
        return None
    if len(holders) > 1:
        raise ReferenceError(f"Expected one configuration reference input, found {len(holders)}")
    return decode(holders[0].datum, ConfigRecord)


@dataclass
class ValidationContext:
    """
    Context object passed to validation rules.

    Contains everything a rule may read: the candidate transaction, the
    script purpose, the attached action, the consumed entry and its inline
    record, and the injected settings.
    """
    transaction: Transaction
    purpose: ScriptPurpose
    redeemer: Optional[PlutusData]
    settings: ValidatorSettings

    # Resolved for spends
    own_input: Optional[TxInInfo] = None
    datum: Optional[PlutusData] = None

    # Validation state
    validation_errors: List[str] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)
    rule_results: Dict[str, bool] = field(default_factory=dict)
    error: Optional[Exception] = None
    result: Optional[ValidationResult] = None

    # Metadata
    timestamp: Optional[int] = None
    validator_id: Optional[str] = None
    action_name: Optional[str] = None

    _config: Optional[ConfigRecord] = field(default=None, repr=False)

    def add_error(self, rule_name: str, message: str):
        """Add a validation error."""
        self.validation_errors.append(f"{rule_name}: {message}")
        self.rule_results[rule_name] = False

    def add_warning(self, rule_name: str, message: str):
        """Add a validation warning."""
        self.validation_warnings.append(f"{rule_name}: {message}")

    def mark_rule_passed(self, rule_name: str):
        """Mark a validation rule as passed."""
        self.rule_results[rule_name] = True

    def has_errors(self) -> bool:
        """Check if validation has errors."""
        return len(self.validation_errors) > 0

    def is_approved(self) -> bool:
        return self.result == ValidationResult.APPROVED

    @property
    def own_address(self) -> Address:
        """Address of the consumed entry (spends only)."""
        if self.own_input is None:
            raise ReferenceError("No consumed entry for a mint execution")
        return self.own_input.address

    @property
    def own_hash(self) -> bytes:
        """Hash of the executing script: policy id or spent address credential."""
        if self.purpose.is_mint:
            return self.purpose.policy_id
        return self.own_address.payment.hash

    def require_config(self) -> ConfigRecord:
        """
        Get the protocol configuration, loading it on first use.

        Returns:
            ConfigRecord from the identification-token reference input
        """
        if self._config is None:
            config = find_config(self.transaction, self.settings)
            if config is None:
                raise ReferenceError("No configuration reference input holds the identification token")
            self._config = config
        return self._config

    @property
    def config(self) -> Optional[ConfigRecord]:
        """Protocol configuration if already loaded."""
        return self._config

    def get_summary(self) -> Dict[str, Any]:
        """Get validation summary."""
        target = self.purpose.out_ref if self.purpose.is_spend else self.purpose.policy_id.hex()
        return {
            "purpose": self.purpose.kind.value,
            "target": str(target),
            "action": self.action_name,
            "record_hash": datum_hash(self.datum).hex() if self.datum is not None else None,
            "errors": self.validation_errors,
            "warnings": self.validation_warnings,
            "error_code": getattr(self.error, "code", None),
            "rules_passed": sum(1 for passed in self.rule_results.values() if passed),
            "rules_total": len(self.rule_results),
            "validation_result": (self.result or ValidationResult.REJECTED).value
        }


class ValidationRule(ABC):
    """
    Abstract base class for validation rules.

    A rule is the decision function of one script. It accepts by returning
    and rejects by raising a ValidationError subclass.
    """

    def __init__(self, name: str, description: str, enabled: bool = True):
        self.name = name
        self.description = description
        self.enabled = enabled
        self.logger = logging.getLogger(f"validator.rules.{name}")

    def validate(self, context: ValidationContext) -> bool:
        """
        Validate one script execution.

        Args:
            context: Validation context

        Returns:
            True when the execution is accepted
        """
        if context.purpose.is_mint:
            self.validate_mint(context)
        else:
            self.validate_spend(context)
        return True

    @abstractmethod
    def validate_spend(self, context: ValidationContext) -> None:
        """Decide a spend of an entry locked by this script."""

    @abstractmethod
    def validate_mint(self, context: ValidationContext) -> None:
        """Decide a mint or burn under this script's policy."""

    def describe_action(self, context: ValidationContext) -> Optional[str]:
        """Human-readable action name for logs and summaries."""
        return None

    def is_applicable(self, context: ValidationContext) -> bool:
        return self.enabled


@dataclass
class TransactionVerdict:
    """All-or-nothing verdict over every script a transaction triggers."""
    approved: bool
    contexts: List[ValidationContext] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [error for context in self.contexts for error in context.validation_errors]


class ValidationEngine:
    """
    Main validation engine.

    Keeps one rule per script hash and dispatches every script execution of a
    candidate transaction to the matching rule.
    """

    def __init__(self, settings: ValidatorSettings,
                 error_reporter: Optional[ErrorReporter] = None):
        """
        Initialize the validation engine.

        Args:
            settings: Injected validator constants
            error_reporter: Error reporter, the global one by default
        """
        self.settings = settings
        self.logger = logging.getLogger("validator.engine")
        self.error_reporter = error_reporter or get_error_reporter()

        self.rules: Dict[bytes, ValidationRule] = {}

        self.validation_stats = {
            "total_validations": 0,
            "approved_validations": 0,
            "rejected_validations": 0,
            "error_validations": 0
        }

    def register_rule(self, script_hash: bytes, rule: ValidationRule):
        """
        Register the rule deciding executions of a script.

        Args:
            script_hash: Script hash (also the policy id when it mints)
            rule: Validation rule
        """
        if len(script_hash) != 28:
            raise ConfigurationError("Script hash must be 28 bytes")
        if script_hash in self.rules:
            self.logger.warning(f"Script {script_hash.hex()} already registered, replacing")

        self.rules[script_hash] = rule
        self.logger.info(f"Registered validation rule {rule.name} for script {script_hash.hex()}")

    def unregister_rule(self, script_hash: bytes) -> bool:
        """
        Unregister the rule of a script.

        Args:
            script_hash: Script hash

        Returns:
            True if a rule was found and removed
        """
        rule = self.rules.pop(script_hash, None)
        if rule is None:
            return False
        self.logger.info(f"Unregistered validation rule {rule.name} for script {script_hash.hex()}")
        return True

    def resolve_config(self, transaction: Transaction) -> ConfigRecord:
        """
        Resolve the protocol configuration a transaction references.

        Args:
            transaction: Candidate transaction

        Returns:
            ConfigRecord held by the identification-token reference input
        """
        config = find_config(transaction, self.settings)
        if config is None:
            raise ReferenceError("No configuration reference input holds the identification token")
        return config

    def validate(self, transaction: Transaction, purpose: ScriptPurpose,
                 redeemer: PlutusData) -> ValidationContext:
        """
        Validate one script execution.

        Args:
            transaction: Candidate transaction
            purpose: Spend of an entry or mint under a policy
            redeemer: Action attached to the execution

        Returns:
            ValidationContext carrying the verdict
        """
        self.validation_stats["total_validations"] += 1

        context = ValidationContext(
            transaction=transaction,
            purpose=purpose,
            redeemer=redeemer,
            settings=self.settings,
            timestamp=int(time.time()),
            validator_id=self.settings.validator_id
        )
        rule_name = "engine"

        try:
            script_hash = self._resolve_script(context)
            rule = self.rules.get(script_hash)
            if rule is None or not rule.is_applicable(context):
                raise ReferenceError(f"No validation rule registered for script {script_hash.hex()}")

            rule_name = rule.name
            context.action_name = rule.describe_action(context)
            self.logger.debug(f"Applying rule {rule.name} to {purpose.kind.value} ({context.action_name})")

            rule.validate(context)
            context.mark_rule_passed(rule.name)
            context.result = ValidationResult.APPROVED
            self.validation_stats["approved_validations"] += 1
            self.logger.info(f"Approved {purpose.kind.value} by {rule.name} ({context.action_name})")

        except ValidationError as e:
            context.add_error(rule_name, str(e))
            context.error = e
            context.result = ValidationResult.REJECTED
            self.validation_stats["rejected_validations"] += 1
            self.logger.info(f"Rejected {purpose.kind.value} by {rule_name}: {e.__class__.__name__}: {e}")
            self.error_reporter.report_error(
                context=ErrorContext(purpose.kind.value),
                component=rule_name,
                operation=context.action_name or purpose.kind.value,
                error=e
            )

        except Exception as e:
            context.add_error(rule_name, f"Rule execution error: {e}")
            context.error = e
            context.result = ValidationResult.ERROR
            self.validation_stats["error_validations"] += 1
            self.logger.error(f"Rule {rule_name} execution error: {e}")
            self.error_reporter.report_error(
                context=ErrorContext.SYSTEM,
                component=rule_name,
                operation=context.action_name or purpose.kind.value,
                error=e,
                severity=ErrorSeverity.CRITICAL
            )

        return context

    def validate_transaction(self, transaction: Transaction,
                             redeemers: Dict[ScriptPurpose, PlutusData]) -> TransactionVerdict:
        """
        Validate every registered script execution a transaction triggers.

        Executions of scripts without a registered rule belong to external
        collaborators and are skipped. Any rejection rejects the transaction.

        Args:
            transaction: Candidate transaction
            redeemers: Action attached to each script purpose

        Returns:
            TransactionVerdict over all executions
        """
        contexts = []
        for purpose, script_hash in transaction.script_purposes():
            if script_hash not in self.rules:
                self.logger.debug(f"Skipping external script {script_hash.hex()}")
                continue

            if purpose not in redeemers:
                context = ValidationContext(
                    transaction=transaction,
                    purpose=purpose,
                    redeemer=None,
                    settings=self.settings,
                    validator_id=self.settings.validator_id
                )
                context.add_error("engine", "No action attached to script execution")
                context.error = ReferenceError("No action attached to script execution")
                context.result = ValidationResult.REJECTED
                contexts.append(context)
                continue

            contexts.append(self.validate(transaction, purpose, redeemers[purpose]))

        approved = all(context.is_approved() for context in contexts)
        self.logger.info(
            f"Transaction {transaction.tx_id.hex()[:16]} "
            f"{'approved' if approved else 'rejected'} ({len(contexts)} executions)"
        )
        return TransactionVerdict(approved=approved, contexts=contexts)

    def _resolve_script(self, context: ValidationContext) -> bytes:
        """Resolve the executing script and, for spends, the consumed entry."""
        purpose = context.purpose
        if purpose.is_mint:
            return purpose.policy_id

        own_input = context.transaction.find_input(purpose.out_ref)
        if not own_input.address.is_script():
            raise ReferenceError(f"Input {purpose.out_ref} is not locked by a script")
        context.own_input = own_input
        context.datum = own_input.datum
        return own_input.address.payment.hash

    def get_statistics(self) -> Dict[str, Any]:
        """Get validation statistics."""
        return {
            **self.validation_stats,
            "registered_rules": len(self.rules)
        }

    def health_check(self) -> Dict[str, Any]:
        """Perform health check of validator components."""
        health = {
            "status": "healthy",
            "components": {},
            "timestamp": int(time.time())
        }

        health["components"]["validation_rules"] = f"registered: {len(self.rules)}"
        health["components"]["error_reporter"] = (
            f"stored reports: {len(self.error_reporter.error_reports)}"
        )
        if not self.rules:
            health["status"] = "degraded"

        return health


# Utility functions for validation

def create_default_validator(settings: ValidatorSettings,
                             campaign_hash: Optional[bytes] = None,
                             governance_hash: Optional[bytes] = None,
                             error_reporter: Optional[ErrorReporter] = None) -> ValidationEngine:
    """
    Create a ValidationEngine with the campaign and governance rules.

    Args:
        settings: Injected validator constants
        campaign_hash: Script hash of the campaign validator
        governance_hash: Script hash of the governance validator
        error_reporter: Optional error reporter

    Returns:
        Configured ValidationEngine instance
    """
    # Import here to avoid circular imports
    from .rules.campaign import CampaignRule
    from .rules.governance import GovernanceRule

    setup_logging(settings.log_level)
    engine = ValidationEngine(settings, error_reporter)
    if campaign_hash is not None:
        engine.register_rule(campaign_hash, CampaignRule())
    if governance_hash is not None:
        engine.register_rule(governance_hash, GovernanceRule())
    return engine


__all__ = [
    "ValidationResult",
    "ValidationContext",
    "ValidationRule",
    "ValidationEngine",
    "TransactionVerdict",
    "create_default_validator",
    "find_config",
    "ValidationError",
    "RuleViolationError",
    "ConfigurationError",
    "AuthorizationError",
    "StateError",
    "SchemaError",
    "AccountingError",
    "DeadlineError",
    "ReferenceError",
    "InvalidActionError",
]
