"""
Crowdfund Validators - Record Codec

Strict, tagged conversion between record models and the on-chain data tree.

Every record kind is a constructor with a fixed tag and arity. Decoding checks
the discriminant before looking at any field and never guesses a kind from
the shape of the data; any mismatch raises SchemaError.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError

from ledger.data import Constr, PlutusData, dumps, loads
from ledger.exceptions import SchemaError
from ledger.transaction import Address, Credential, CredentialType

from .schema import (
    AddValidator,
    AssetClass,
    BackerRecord,
    CampaignAction,
    CampaignRecord,
    CampaignSlot,
    CampaignState,
    CastVote,
    ConfigRecord,
    Execute,
    GovernanceAction,
    GovernanceRecord,
    MultisigGroup,
    ProposalAction,
    ProposalState,
    Reject,
    RemoveValidator,
    SubmitProposal,
    UpdateFeeAddress,
    UpdateFeeAmount,
    Vote,
    VotesCount,
    Wallet,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=Enum)


# Primitive helpers

def _constr(data: Any, tag: int, arity: int, label: str) -> tuple:
    if not isinstance(data, Constr):
        raise SchemaError(f"{label}: expected constructor, got {type(data).__name__}")
    try:
        return data.expect(tag, arity)
    except SchemaError as e:
        raise SchemaError(f"{label}: {e}") from e


def _int(data: Any, label: str) -> int:
    if isinstance(data, bool) or not isinstance(data, int):
        raise SchemaError(f"{label}: expected integer, got {type(data).__name__}")
    return data


def _bytes(data: Any, label: str) -> bytes:
    if not isinstance(data, bytes):
        raise SchemaError(f"{label}: expected bytes, got {type(data).__name__}")
    return data


def _list(data: Any, label: str) -> list:
    if not isinstance(data, list):
        raise SchemaError(f"{label}: expected list, got {type(data).__name__}")
    return data


def _encode_bool(value: bool) -> Constr:
    return Constr(1 if value else 0)


def _decode_bool(data: Any, label: str) -> bool:
    if not isinstance(data, Constr) or data.fields or data.tag not in (0, 1):
        raise SchemaError(f"{label}: expected boolean constructor")
    return data.tag == 1


def _encode_enum(value: Enum) -> Constr:
    return Constr(value.value)


def _decode_enum(data: Any, enum_cls: Type[E], label: str) -> E:
    if not isinstance(data, Constr) or data.fields:
        raise SchemaError(f"{label}: expected nullary constructor")
    try:
        return enum_cls(data.tag)
    except ValueError:
        raise SchemaError(f"{label}: unknown {enum_cls.__name__} tag {data.tag}") from None


def _build(model: Type[T], label: str, **fields) -> T:
    try:
        return model(**fields)
    except PydanticValidationError as e:
        raise SchemaError(f"{label}: {e.errors()[0]['msg']}") from e


# Address

def _encode_credential(credential: Credential) -> Constr:
    return Constr(credential.kind.value, (credential.hash,))


def _decode_credential(data: Any, label: str) -> Credential:
    if not isinstance(data, Constr) or data.tag not in (0, 1):
        raise SchemaError(f"{label}: expected credential constructor")
    (hash_,) = _constr(data, data.tag, 1, label)
    return Credential(CredentialType(data.tag), _bytes(hash_, label))


def encode_address(address: Address) -> Constr:
    """Encode an address; the stake part is an optional inline credential."""
    if address.stake is None:
        stake = Constr(1)
    else:
        stake = Constr(0, (Constr(0, (_encode_credential(address.stake),)),))
    return Constr(0, (_encode_credential(address.payment), stake))


def decode_address(data: Any, label: str = "Address") -> Address:
    payment, stake = _constr(data, 0, 2, label)
    if not isinstance(stake, Constr):
        raise SchemaError(f"{label}: stake must be an optional constructor")
    if stake.tag == 1:
        _constr(stake, 1, 0, label)
        stake_credential = None
    else:
        (inline,) = _constr(stake, 0, 1, label)
        (credential,) = _constr(inline, 0, 1, label)
        stake_credential = _decode_credential(credential, label)
    return Address(_decode_credential(payment, label), stake_credential)


# Campaign records

def _encode_wallet(wallet: Wallet) -> Constr:
    return Constr(0, (wallet.payment_key_hash, wallet.stake_key_hash))


def _decode_wallet(data: Any, label: str = "Wallet") -> Wallet:
    pkh, skh = _constr(data, 0, 2, label)
    return _build(
        Wallet, label,
        payment_key_hash=_bytes(pkh, label),
        stake_key_hash=_bytes(skh, label)
    )


def _encode_campaign(record: CampaignRecord) -> Constr:
    return Constr(CampaignRecord.CONSTR_ID, (
        record.name,
        record.goal,
        record.deadline,
        _encode_wallet(record.creator),
        [_encode_bool(flag) for flag in record.milestone],
        _encode_enum(record.state),
        record.fraction,
    ))


def _decode_campaign(data: Any) -> CampaignRecord:
    label = "CampaignRecord"
    name, goal, deadline, creator, milestone, state, fraction = _constr(
        data, CampaignRecord.CONSTR_ID, 7, label
    )
    return _build(
        CampaignRecord, label,
        name=_bytes(name, f"{label}.name"),
        goal=_int(goal, f"{label}.goal"),
        deadline=_int(deadline, f"{label}.deadline"),
        creator=_decode_wallet(creator, f"{label}.creator"),
        milestone=[_decode_bool(flag, f"{label}.milestone") for flag in _list(milestone, f"{label}.milestone")],
        state=_decode_enum(state, CampaignState, f"{label}.state"),
        fraction=_int(fraction, f"{label}.fraction"),
    )


def _encode_backer(record: BackerRecord) -> Constr:
    return Constr(BackerRecord.CONSTR_ID, (_encode_wallet(record.backer),))


def _decode_backer(data: Any) -> BackerRecord:
    (backer,) = _constr(data, BackerRecord.CONSTR_ID, 1, "BackerRecord")
    return _build(BackerRecord, "BackerRecord", backer=_decode_wallet(backer, "BackerRecord.backer"))


# Governance records

_PROPOSAL_ACTIONS = {
    AddValidator.CONSTR_ID: AddValidator,
    RemoveValidator.CONSTR_ID: RemoveValidator,
    UpdateFeeAmount.CONSTR_ID: UpdateFeeAmount,
    UpdateFeeAddress.CONSTR_ID: UpdateFeeAddress,
}


def _encode_proposal_action(action: ProposalAction) -> Constr:
    if isinstance(action, (AddValidator, RemoveValidator)):
        return Constr(action.CONSTR_ID, (action.signer,))
    if isinstance(action, UpdateFeeAmount):
        return Constr(action.CONSTR_ID, (action.amount,))
    if isinstance(action, UpdateFeeAddress):
        return Constr(action.CONSTR_ID, (encode_address(action.address),))
    raise SchemaError(f"Unknown proposal action: {type(action).__name__}")


def _decode_proposal_action(data: Any) -> ProposalAction:
    label = "ProposalAction"
    if not isinstance(data, Constr):
        raise SchemaError(f"{label}: expected constructor")
    model = _PROPOSAL_ACTIONS.get(data.tag)
    if model is None:
        raise SchemaError(f"{label}: unknown tag {data.tag}")
    (payload,) = _constr(data, data.tag, 1, label)
    if model in (AddValidator, RemoveValidator):
        return _build(model, label, signer=_bytes(payload, label))
    if model is UpdateFeeAmount:
        return _build(model, label, amount=_int(payload, label))
    return _build(model, label, address=decode_address(payload, label))


def _encode_votes_count(count: VotesCount) -> Constr:
    return Constr(0, (count.yes, count.no, count.abstain))


def _decode_votes_count(data: Any) -> VotesCount:
    label = "VotesCount"
    yes, no, abstain = _constr(data, 0, 3, label)
    return _build(
        VotesCount, label,
        yes=_int(yes, label), no=_int(no, label), abstain=_int(abstain, label)
    )


def _encode_governance(record: GovernanceRecord) -> Constr:
    return Constr(0, (
        record.proposal_id,
        record.submitted_by,
        _encode_proposal_action(record.proposal_action),
        {voter: _encode_enum(vote) for voter, vote in record.votes.items()},
        _encode_votes_count(record.votes_count),
        record.deadline,
        _encode_enum(record.proposal_state),
    ))


def _decode_governance(data: Any) -> GovernanceRecord:
    label = "GovernanceRecord"
    proposal_id, submitted_by, action, votes, count, deadline, state = _constr(data, 0, 7, label)
    if not isinstance(votes, dict):
        raise SchemaError(f"{label}.votes: expected map")
    return _build(
        GovernanceRecord, label,
        proposal_id=_bytes(proposal_id, f"{label}.proposal_id"),
        submitted_by=_bytes(submitted_by, f"{label}.submitted_by"),
        proposal_action=_decode_proposal_action(action),
        votes={
            _bytes(voter, f"{label}.votes"): _decode_enum(vote, Vote, f"{label}.votes")
            for voter, vote in votes.items()
        },
        votes_count=_decode_votes_count(count),
        deadline=_int(deadline, f"{label}.deadline"),
        proposal_state=_decode_enum(state, ProposalState, f"{label}.proposal_state"),
    )


# Configuration

def _encode_asset_class(asset: AssetClass) -> Constr:
    return Constr(0, (asset.policy_id, asset.asset_name))


def _decode_asset_class(data: Any) -> AssetClass:
    policy_id, asset_name = _constr(data, 0, 2, "AssetClass")
    return _build(
        AssetClass, "AssetClass",
        policy_id=_bytes(policy_id, "AssetClass"),
        asset_name=_bytes(asset_name, "AssetClass")
    )


def _encode_group(group: MultisigGroup) -> Constr:
    return Constr(0, (group.required, list(group.signers)))


def _decode_group(data: Any, label: str) -> MultisigGroup:
    required, signers = _constr(data, 0, 2, label)
    return _build(
        MultisigGroup, label,
        required=_int(required, label),
        signers=[_bytes(signer, label) for signer in _list(signers, label)]
    )


def _encode_config(record: ConfigRecord) -> Constr:
    return Constr(0, (
        encode_address(record.fees_address),
        record.fees_amount,
        _encode_asset_class(record.fees_asset),
        encode_address(record.spend_address),
        list(record.categories),
        _encode_group(record.multisig_validator_group),
        _encode_group(record.multisig_refutxoupdate),
        record.cet_policy,
        record.cot_policy,
        record.dao_policy,
    ))


def _decode_config(data: Any) -> ConfigRecord:
    label = "ConfigRecord"
    (fees_address, fees_amount, fees_asset, spend_address, categories,
     validator_group, refutxo_group, cet, cot, dao) = _constr(data, 0, 10, label)
    return _build(
        ConfigRecord, label,
        fees_address=decode_address(fees_address, f"{label}.fees_address"),
        fees_amount=_int(fees_amount, f"{label}.fees_amount"),
        fees_asset=_decode_asset_class(fees_asset),
        spend_address=decode_address(spend_address, f"{label}.spend_address"),
        categories=[_bytes(c, f"{label}.categories") for c in _list(categories, f"{label}.categories")],
        multisig_validator_group=_decode_group(validator_group, f"{label}.multisig_validator_group"),
        multisig_refutxoupdate=_decode_group(refutxo_group, f"{label}.multisig_refutxoupdate"),
        cet_policy=_bytes(cet, f"{label}.cet_policy"),
        cot_policy=_bytes(cot, f"{label}.cot_policy"),
        dao_policy=_bytes(dao, f"{label}.dao_policy"),
    )


# Actions

def _encode_governance_action(action: GovernanceAction) -> Constr:
    if isinstance(action, CastVote):
        return Constr(CastVote.CONSTR_ID, (action.voter, _encode_enum(action.vote)))
    if isinstance(action, SubmitProposal):
        return Constr(SubmitProposal.CONSTR_ID, (action.proposal_id,))
    return Constr(action.CONSTR_ID)


def decode_governance_action(data: Any) -> GovernanceAction:
    """
    Decode a governance action.

    Args:
        data: Action data attached to the script execution

    Returns:
        One of CastVote, Execute, Reject, SubmitProposal
    """
    label = "GovernanceAction"
    if not isinstance(data, Constr):
        raise SchemaError(f"{label}: expected constructor")
    if data.tag == CastVote.CONSTR_ID:
        voter, vote = _constr(data, data.tag, 2, label)
        return _build(CastVote, label, voter=_bytes(voter, label), vote=_decode_enum(vote, Vote, label))
    if data.tag == Execute.CONSTR_ID:
        _constr(data, data.tag, 0, label)
        return Execute()
    if data.tag == Reject.CONSTR_ID:
        _constr(data, data.tag, 0, label)
        return Reject()
    if data.tag == SubmitProposal.CONSTR_ID:
        (proposal_id,) = _constr(data, data.tag, 1, label)
        return _build(SubmitProposal, label, proposal_id=_bytes(proposal_id, label))
    raise SchemaError(f"{label}: unknown tag {data.tag}")


def decode_campaign_action(data: Any) -> CampaignAction:
    """Decode a campaign spend action."""
    return _decode_enum(data, CampaignAction, "CampaignAction")


_ENCODERS: Dict[type, Callable[[Any], PlutusData]] = {
    Wallet: _encode_wallet,
    CampaignRecord: _encode_campaign,
    BackerRecord: _encode_backer,
    GovernanceRecord: _encode_governance,
    ConfigRecord: _encode_config,
    MultisigGroup: _encode_group,
    AssetClass: _encode_asset_class,
    VotesCount: _encode_votes_count,
    AddValidator: _encode_proposal_action,
    RemoveValidator: _encode_proposal_action,
    UpdateFeeAmount: _encode_proposal_action,
    UpdateFeeAddress: _encode_proposal_action,
    CastVote: _encode_governance_action,
    Execute: _encode_governance_action,
    Reject: _encode_governance_action,
    SubmitProposal: _encode_governance_action,
    CampaignAction: _encode_enum,
    Address: encode_address,
}

_DECODERS: Dict[type, Callable[[Any], Any]] = {
    Wallet: _decode_wallet,
    CampaignRecord: _decode_campaign,
    BackerRecord: _decode_backer,
    GovernanceRecord: _decode_governance,
    ConfigRecord: _decode_config,
    AssetClass: _decode_asset_class,
    VotesCount: _decode_votes_count,
    CampaignAction: decode_campaign_action,
    Address: decode_address,
}


def encode(value: Any) -> PlutusData:
    """
    Encode a record, action or address into the data tree.

    Args:
        value: Model instance

    Returns:
        Encoded data
    """
    encoder = _ENCODERS.get(type(value))
    if encoder is None:
        raise SchemaError(f"No encoder for {type(value).__name__}")
    return encoder(value)


def decode(data: Optional[PlutusData], record_type: Type[T]) -> T:
    """
    Decode data as the expected record kind.

    Args:
        data: Data tree (an inline record); None is rejected
        record_type: Expected model class

    Returns:
        Decoded record
    """
    if data is None:
        raise SchemaError(f"Expected inline {record_type.__name__}, found no record")
    decoder = _DECODERS.get(record_type)
    if decoder is None:
        raise SchemaError(f"No decoder for {record_type.__name__}")
    return decoder(data)


def decode_campaign_slot(data: Optional[PlutusData]) -> CampaignSlot:
    """
    Decode the polymorphic campaign script slot.

    The discriminant alone selects the kind: constructor 0 is a
    CampaignRecord and constructor 1 a BackerRecord.

    Args:
        data: Inline record of a campaign script entry

    Returns:
        CampaignRecord or BackerRecord
    """
    if not isinstance(data, Constr):
        raise SchemaError("Campaign slot must be a constructor")
    if data.tag == CampaignRecord.CONSTR_ID:
        return _decode_campaign(data)
    if data.tag == BackerRecord.CONSTR_ID:
        return _decode_backer(data)
    raise SchemaError(f"Campaign slot: unknown tag {data.tag}")


def encode_json(value: Any) -> str:
    """Encode a model into canonical detailed-schema JSON text."""
    return dumps(encode(value))


def decode_json(text: str, record_type: Type[T]) -> T:
    """Decode detailed-schema JSON text as the given record kind."""
    return decode(loads(text), record_type)
