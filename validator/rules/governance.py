"""
Governance Proposal Rule

This module implements the GovernanceRule class deciding the DAO governance
script: submitting a proposal (minting its singleton token), casting votes,
and terminating a proposal by execution or rejection.

Executing a passed proposal changes the protocol configuration. The
configuration entry held by the config-holder script is consumed in the
same transaction and its successor must differ from it by exactly the
proposal's change.
"""

from typing import Dict, Optional

from ledger.data import Constr
from ledger.exceptions import (
    AccountingError,
    AuthorizationError,
    DeadlineError,
    InvalidActionError,
    ReferenceError,
    StateError,
)
from ledger.transaction import TxOut
from records.codec import decode, decode_governance_action, encode
from records.schema import (
    AddValidator,
    CastVote,
    ConfigRecord,
    Execute,
    GovernanceRecord,
    ProposalAction,
    ProposalState,
    Reject,
    RemoveValidator,
    SubmitProposal,
    UpdateFeeAddress,
    UpdateFeeAmount,
    Vote,
    VotesCount,
)
from validator.accounting import asset_quantity, find_unique, with_token
from validator.core import ValidationContext, ValidationRule


def apply_proposal(config: ConfigRecord, action: ProposalAction) -> ConfigRecord:
    """
    Apply a proposal's change to the protocol configuration.

    Args:
        config: Current configuration
        action: Proposal action

    Returns:
        The configuration the proposal prescribes
    """
    if isinstance(action, AddValidator):
        group = config.multisig_validator_group
        if action.signer in group.signers:
            raise StateError(f"Signer {action.signer.hex()} is already in the validator group")
        signers = list(group.signers) + [action.signer]
        return config.model_copy(update={
            "multisig_validator_group": group.model_copy(update={"signers": signers})
        })

    if isinstance(action, RemoveValidator):
        group = config.multisig_validator_group
        if action.signer not in group.signers:
            raise StateError(f"Signer {action.signer.hex()} is not in the validator group")
        signers = list(group.signers)
        signers.remove(action.signer)
        return config.model_copy(update={
            "multisig_validator_group": group.model_copy(update={"signers": signers})
        })

    if isinstance(action, UpdateFeeAmount):
        return config.model_copy(update={"fees_amount": action.amount})

    if isinstance(action, UpdateFeeAddress):
        return config.model_copy(update={"fees_address": action.address})

    raise InvalidActionError(f"Unknown proposal action {type(action).__name__}")


class GovernanceRule(ValidationRule):
    """
    Validation rule for the governance script.

    Mint path accepts only SubmitProposal. Spend path accepts CastVote,
    Execute and Reject against an in-progress proposal.
    """

    def __init__(self):
        super().__init__(
            name="governance",
            description="DAO proposal submission, voting and termination"
        )

        self.stats = {
            "proposals_submitted": 0,
            "votes_cast": 0,
            "proposals_executed": 0,
            "proposals_rejected": 0
        }

    def describe_action(self, context: ValidationContext) -> Optional[str]:
        names = {
            CastVote.CONSTR_ID: "vote",
            Execute.CONSTR_ID: "execute",
            Reject.CONSTR_ID: "reject",
            SubmitProposal.CONSTR_ID: "submit_proposal",
        }
        if isinstance(context.redeemer, Constr):
            return names.get(context.redeemer.tag)
        return None

    # Mint path

    def validate_mint(self, context: ValidationContext) -> None:
        """
        Decide the mint of a proposal token.

        Exactly one token named after the proposal is minted, and it must be
        locked at a script address together with a fresh proposal record.
        """
        action = decode_governance_action(context.redeemer)
        if not isinstance(action, SubmitProposal):
            raise InvalidActionError(f"{type(action).__name__} is not a minting action")

        tx = context.transaction
        policy_id = context.purpose.policy_id
        minted = tx.mint.get(policy_id, {})
        if minted != {action.proposal_id: 1}:
            raise AccountingError("Must mint exactly one proposal token named after the proposal")

        output = find_unique(tx.outputs, with_token(policy_id, action.proposal_id), "proposal token output")
        if not output.address.is_script():
            raise ReferenceError("Proposal token must be locked at a script address")

        record = decode(output.datum, GovernanceRecord)
        if record.proposal_id != action.proposal_id:
            raise StateError("Proposal record id does not match the minted token")
        if record.proposal_state != ProposalState.IN_PROGRESS:
            raise StateError(f"New proposal must be IN_PROGRESS, got {record.proposal_state.name}")
        if not tx.is_signed_by(record.submitted_by):
            raise AuthorizationError("Proposal must be signed by its submitter")
        if any(vote != Vote.PENDING for vote in record.votes.values()):
            raise StateError("New proposal must have every vote Pending")
        if record.votes_count != VotesCount():
            raise StateError("New proposal must have a zero tally")

        self.stats["proposals_submitted"] += 1
        self.logger.info(
            f"Proposal {action.proposal_id.hex()} submitted with {len(record.votes)} eligible voters"
        )

    # Spend path

    def validate_spend(self, context: ValidationContext) -> None:
        """Decide a spend of a proposal entry."""
        record = decode(context.datum, GovernanceRecord)
        action = decode_governance_action(context.redeemer)

        if isinstance(action, SubmitProposal):
            raise InvalidActionError("SubmitProposal is only valid when minting")

        continuing = find_unique(
            context.transaction.outputs_to_script(context.own_hash), lambda out: True,
            "continuing proposal output"
        )
        successor = decode(continuing.datum, GovernanceRecord)

        if successor.proposal_id != record.proposal_id:
            raise StateError("Continuing output must carry the same proposal")
        if record.proposal_state != ProposalState.IN_PROGRESS:
            raise StateError(f"Proposal is already {record.proposal_state.name}")
        if continuing.value.quantity_of(context.own_hash, record.proposal_id) != 1:
            raise ReferenceError("Proposal token must stay with the proposal")
        if not record.is_consistent():
            raise StateError("Stored tally does not match the recorded votes")

        if isinstance(action, CastVote):
            self._vote(context, record, successor, action)
        elif isinstance(action, Execute):
            self._execute(context, record, successor)
        else:
            self._reject(context, record, successor)

    def _vote(self, context: ValidationContext, record: GovernanceRecord,
              successor: GovernanceRecord, action: CastVote) -> None:
        tx = context.transaction
        if action.vote == Vote.PENDING:
            raise InvalidActionError("Cannot cast a Pending vote")
        if not tx.validity_range.is_entirely_before(record.deadline):
            raise DeadlineError("Voting is closed")
        if not tx.is_signed_by(action.voter):
            raise AuthorizationError("Vote must be signed by the voter")
        if action.voter not in record.votes:
            raise ReferenceError(f"{action.voter.hex()} is not an eligible voter")
        if record.votes[action.voter] != Vote.PENDING:
            raise StateError(f"{action.voter.hex()} has already voted")

        votes = dict(record.votes)
        votes[action.voter] = action.vote
        expected = record.model_copy(update={
            "votes": votes,
            "votes_count": record.votes_count.increment(action.vote)
        })
        if successor != expected:
            raise StateError("Vote may only change the voter's entry and the tally")

        self.stats["votes_cast"] += 1
        self.logger.debug(f"Vote {action.vote.name} on {record.proposal_id.hex()} accepted")

    def _execute(self, context: ValidationContext, record: GovernanceRecord,
                 successor: GovernanceRecord) -> None:
        tx = context.transaction
        if not tx.validity_range.is_entirely_after(record.deadline):
            raise DeadlineError("Cannot execute before the voting deadline")
        if record.votes_count.yes <= record.votes_count.no:
            raise StateError(
                f"Proposal did not pass ({record.votes_count.yes} yes, {record.votes_count.no} no)"
            )
        if successor != record.model_copy(update={"proposal_state": ProposalState.EXECUTED}):
            raise StateError("Executed record must differ only by state EXECUTED")

        current, proposed = self._config_transition(context)
        expected = apply_proposal(current, record.proposal_action)
        if encode(expected) == encode(current):
            raise StateError("Proposal does not change the configuration")
        if encode(proposed) != encode(expected):
            raise StateError("Configuration successor must differ only by the proposal's change")

        self.stats["proposals_executed"] += 1
        self.logger.info(f"Proposal {record.proposal_id.hex()} executed ({record.proposal_action.kind})")

    def _reject(self, context: ValidationContext, record: GovernanceRecord,
                successor: GovernanceRecord) -> None:
        if not context.transaction.validity_range.is_entirely_after(record.deadline):
            raise DeadlineError("Cannot reject before the voting deadline")
        if record.votes_count.no <= record.votes_count.yes:
            raise StateError(
                f"Proposal did not fail ({record.votes_count.yes} yes, {record.votes_count.no} no)"
            )
        if successor != record.model_copy(update={"proposal_state": ProposalState.REJECTED}):
            raise StateError("Rejected record must differ only by state REJECTED")

        self.stats["proposals_rejected"] += 1
        self.logger.info(f"Proposal {record.proposal_id.hex()} rejected")

    def _config_transition(self, context: ValidationContext):
        """Consumed and produced configuration entries holding the identification token."""
        tx = context.transaction
        settings = context.settings
        holds_token = with_token(settings.identification_policy, settings.identification_token_name)
        token_quantity = asset_quantity(settings.identification_policy, settings.identification_token_name)

        config_input = find_unique(tx.inputs, holds_token, "configuration input")
        config_output: TxOut = find_unique(tx.outputs, holds_token, "configuration output")
        if config_output.address != config_input.address:
            raise ReferenceError("Configuration must stay at the config-holder address")
        if token_quantity(config_output.value) != token_quantity(config_input.value):
            raise AccountingError("Identification token quantity must be preserved")
        return decode(config_input.datum, ConfigRecord), decode(config_output.datum, ConfigRecord)

    def get_statistics(self) -> Dict[str, int]:
        return dict(self.stats)


__all__ = [
    "GovernanceRule",
    "apply_proposal",
]
