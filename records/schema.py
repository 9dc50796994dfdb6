"""
Crowdfund Validators - Record Schema Models

This module defines the Pydantic models for the records held inline by
script-controlled ledger entries (campaigns, backers, proposals, protocol
configuration) and for the actions callers attach to script executions.

Records are immutable: a state transition consumes a record and validates
the successor produced by the same transaction.
"""

from enum import Enum
from typing import ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ledger.transaction import Address, Credential


HASH_SIZE = 28
MAX_ASSET_NAME_SIZE = 32


def _validate_hash(value: bytes, label: str) -> bytes:
    if len(value) != HASH_SIZE:
        raise ValueError(f"{label} must be {HASH_SIZE} bytes, got {len(value)}")
    return value


class CampaignState(int, Enum):
    """Campaign lifecycle states (constructor index order)."""
    INITIATED = 0
    RUNNING = 1
    CANCELLED = 2
    FINISHED = 3
    RELEASED = 4


class Vote(int, Enum):
    """Vote values; Pending marks a voter who has not voted yet."""
    YES = 0
    NO = 1
    ABSTAIN = 2
    PENDING = 3


class ProposalState(int, Enum):
    """Proposal lifecycle states."""
    IN_PROGRESS = 0
    EXECUTED = 1
    REJECTED = 2


class CampaignAction(int, Enum):
    """Spend actions accepted by the campaign validator."""
    SUPPORT = 0
    CANCEL = 1
    FINISH = 2
    REFUND = 3
    RELEASE = 4
    ADMINISTRATIVE_OVERRIDE = 5


class Record(BaseModel):
    """Base record model with common configuration."""

    model_config = ConfigDict(frozen=True)

    CONSTR_ID: ClassVar[int] = 0


class Wallet(Record):
    """Wallet identity: payment key hash plus stake key hash."""

    payment_key_hash: bytes = Field(..., description="Payment key hash (28 bytes)")
    stake_key_hash: bytes = Field(..., description="Stake key hash (28 bytes)")

    @field_validator('payment_key_hash', 'stake_key_hash')
    @classmethod
    def validate_key_hash(cls, v):
        """Validate key hash size."""
        return _validate_hash(v, "Key hash")

    @property
    def address(self) -> Address:
        """Base address paying to this wallet."""
        return Address(
            Credential.key(self.payment_key_hash),
            Credential.key(self.stake_key_hash)
        )


class CampaignRecord(Record):
    """Crowdfunding campaign state."""

    CONSTR_ID: ClassVar[int] = 0

    name: bytes = Field(..., description="Reward-token asset name")
    goal: int = Field(..., description="Funding target in lovelace")
    deadline: int = Field(..., description="Campaign deadline (POSIX ms)")
    creator: Wallet
    milestone: List[bool] = Field(default_factory=list, description="Fund-release flags")
    state: CampaignState = Field(default=CampaignState.INITIATED)
    fraction: int = Field(..., description="Reward-token supply and contribution divisor")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        """Validate asset name size."""
        if len(v) > MAX_ASSET_NAME_SIZE:
            raise ValueError(f"Asset name must be at most {MAX_ASSET_NAME_SIZE} bytes")
        return v

    @property
    def remaining_milestones(self) -> int:
        """Number of milestones not yet released."""
        return sum(1 for released in self.milestone if not released)

    def next_milestone(self) -> Optional[int]:
        """Index of the lowest unreleased milestone, or None."""
        for index, released in enumerate(self.milestone):
            if not released:
                return index
        return None

    def with_state(self, state: CampaignState) -> "CampaignRecord":
        return self.model_copy(update={"state": state})


class BackerRecord(Record):
    """One backer contribution; matched by equality, never mutated."""

    CONSTR_ID: ClassVar[int] = 1

    backer: Wallet


CampaignSlot = Union[CampaignRecord, BackerRecord]


class AssetClass(Record):
    """Asset identifier: policy id plus asset name."""

    policy_id: bytes
    asset_name: bytes = b""


class MultisigGroup(Record):
    """Named signer set with a required-signature threshold."""

    required: int = Field(..., ge=0)
    signers: List[bytes] = Field(default_factory=list)

    @field_validator('signers')
    @classmethod
    def validate_signers(cls, v):
        """Validate signer key hash sizes."""
        for signer in v:
            _validate_hash(signer, "Signer key hash")
        return v


class AddValidator(Record):
    """Append a signer to the validator multisig group."""

    CONSTR_ID: ClassVar[int] = 0
    kind: Literal["add_validator"] = "add_validator"
    signer: bytes

    @field_validator('signer')
    @classmethod
    def validate_signer(cls, v):
        return _validate_hash(v, "Signer key hash")


class RemoveValidator(Record):
    """Remove a signer from the validator multisig group."""

    CONSTR_ID: ClassVar[int] = 1
    kind: Literal["remove_validator"] = "remove_validator"
    signer: bytes

    @field_validator('signer')
    @classmethod
    def validate_signer(cls, v):
        return _validate_hash(v, "Signer key hash")


class UpdateFeeAmount(Record):
    """Replace the protocol fee amount."""

    CONSTR_ID: ClassVar[int] = 2
    kind: Literal["update_fee_amount"] = "update_fee_amount"
    amount: int = Field(..., ge=0)


class UpdateFeeAddress(Record):
    """Replace the protocol fee address."""

    CONSTR_ID: ClassVar[int] = 3
    kind: Literal["update_fee_address"] = "update_fee_address"
    address: Address


ProposalAction = Union[AddValidator, RemoveValidator, UpdateFeeAmount, UpdateFeeAddress]


class VotesCount(Record):
    """Tally of cast votes."""

    yes: int = Field(default=0, ge=0)
    no: int = Field(default=0, ge=0)
    abstain: int = Field(default=0, ge=0)

    def increment(self, vote: Vote) -> "VotesCount":
        """Return a tally with one more vote of the given value."""
        if vote == Vote.YES:
            return self.model_copy(update={"yes": self.yes + 1})
        if vote == Vote.NO:
            return self.model_copy(update={"no": self.no + 1})
        if vote == Vote.ABSTAIN:
            return self.model_copy(update={"abstain": self.abstain + 1})
        raise ValueError(f"Cannot count vote {vote!r}")


class GovernanceRecord(Record):
    """Governance proposal and its vote tally."""

    proposal_id: bytes = Field(..., min_length=1, description="Unique proposal identifier")
    submitted_by: bytes = Field(..., description="Submitter key hash")
    proposal_action: ProposalAction = Field(..., discriminator="kind")
    votes: Dict[bytes, Vote] = Field(default_factory=dict, description="Eligible voter -> vote")
    votes_count: VotesCount = Field(default_factory=VotesCount)
    deadline: int = Field(..., description="Voting deadline (POSIX ms)")
    proposal_state: ProposalState = Field(default=ProposalState.IN_PROGRESS)

    @field_validator('submitted_by')
    @classmethod
    def validate_submitted_by(cls, v):
        return _validate_hash(v, "Submitter key hash")

    def tally(self) -> VotesCount:
        """Count the non-Pending entries of the votes map."""
        count = VotesCount()
        for vote in self.votes.values():
            if vote != Vote.PENDING:
                count = count.increment(vote)
        return count

    def is_consistent(self) -> bool:
        """Check that the stored tally matches the votes map."""
        return self.tally() == self.votes_count


class ConfigRecord(Record):
    """Protocol configuration held by the config-holder collaborator."""

    fees_address: Address
    fees_amount: int = Field(..., ge=0)
    fees_asset: AssetClass
    spend_address: Address
    categories: List[bytes] = Field(default_factory=list)
    multisig_validator_group: MultisigGroup
    multisig_refutxoupdate: MultisigGroup
    cet_policy: bytes
    cot_policy: bytes
    dao_policy: bytes


class CastVote(Record):
    """Governance spend action: a voter casts a vote."""

    CONSTR_ID: ClassVar[int] = 0
    voter: bytes
    vote: Vote


class Execute(Record):
    """Governance spend action: execute a passed proposal."""

    CONSTR_ID: ClassVar[int] = 1


class Reject(Record):
    """Governance spend action: reject a failed proposal."""

    CONSTR_ID: ClassVar[int] = 2


class SubmitProposal(Record):
    """Governance mint action: submit a new proposal."""

    CONSTR_ID: ClassVar[int] = 3
    proposal_id: bytes


GovernanceAction = Union[CastVote, Execute, Reject, SubmitProposal]
