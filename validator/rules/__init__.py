"""
Crowdfund Validator Rules Module

This module contains the concrete validation rules: the campaign lifecycle
rule and the governance proposal rule.
"""

from .campaign import CampaignRule, campaign_address
from .governance import GovernanceRule, apply_proposal

__all__ = [
    "CampaignRule",
    "GovernanceRule",
    "campaign_address",
    "apply_proposal"
]
