"""
Crowdfund Validator Module

This module provides the decision logic for script-controlled records of a
crowdfunding platform: campaign lifecycle (creation, support, cancellation,
finishing, refunds and milestone releases) and DAO governance (proposal
submission, voting and execution against the protocol configuration).
"""

from .core import (
    ValidationEngine,
    ValidationContext,
    ValidationRule,
    ValidationResult,
    TransactionVerdict,
    ValidationError,
    RuleViolationError,
    ConfigurationError,
    create_default_validator,
    find_config
)

from .config import (
    ValidatorSettings,
    ConfigurationManager,
    load_settings,
    setup_logging
)

from .rules import (
    CampaignRule,
    GovernanceRule
)

__all__ = [
    "ValidationEngine",
    "ValidationContext",
    "ValidationRule",
    "ValidationResult",
    "TransactionVerdict",
    "ValidationError",
    "RuleViolationError",
    "ConfigurationError",
    "create_default_validator",
    "find_config",
    "ValidatorSettings",
    "ConfigurationManager",
    "load_settings",
    "setup_logging",
    "CampaignRule",
    "GovernanceRule"
]
