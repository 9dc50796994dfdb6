"""
Crowdfund Records Module

This module provides the record schemas held inline by script-controlled
ledger entries, the actions attached to script executions, and the strict
tagged codec between them and the on-chain data tree.
"""

from .schema import (
    AddValidator,
    AssetClass,
    BackerRecord,
    CampaignAction,
    CampaignRecord,
    CampaignState,
    CastVote,
    ConfigRecord,
    Execute,
    GovernanceRecord,
    MultisigGroup,
    ProposalState,
    Reject,
    RemoveValidator,
    SubmitProposal,
    UpdateFeeAddress,
    UpdateFeeAmount,
    Vote,
    VotesCount,
    Wallet
)
from .codec import (
    encode,
    decode,
    decode_campaign_slot,
    decode_campaign_action,
    decode_governance_action,
    encode_json,
    decode_json
)

__all__ = [
    "AddValidator",
    "AssetClass",
    "BackerRecord",
    "CampaignAction",
    "CampaignRecord",
    "CampaignState",
    "CastVote",
    "ConfigRecord",
    "Execute",
    "GovernanceRecord",
    "MultisigGroup",
    "ProposalState",
    "Reject",
    "RemoveValidator",
    "SubmitProposal",
    "UpdateFeeAddress",
    "UpdateFeeAmount",
    "Vote",
    "VotesCount",
    "Wallet",
    "encode",
    "decode",
    "decode_campaign_slot",
    "decode_campaign_action",
    "decode_governance_action",
    "encode_json",
    "decode_json"
]
