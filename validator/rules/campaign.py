"""
Campaign Lifecycle Rule

This module implements the CampaignRule class deciding every execution of
the crowdfunding campaign script: minting the campaign reward tokens at
creation, and spending campaign and backer entries through Support, Cancel,
Finish, Refund, Release and the administrative override.

A single script address holds two kinds of records. The campaign entry
carries the CampaignRecord together with the undistributed reward tokens;
each contribution lives in its own entry carrying a BackerRecord. Every
spend action is decided per consumed entry, by record kind.
"""

from typing import Callable, Dict, Optional, Tuple, Type

from crypto.multisig import authorize, require_authorization
from ledger.data import Constr
from ledger.exceptions import (
    AccountingError,
    AuthorizationError,
    DeadlineError,
    InvalidActionError,
    ReferenceError,
    StateError,
)
from ledger.transaction import Address, Credential, TxOut
from records.codec import decode, decode_campaign_action, decode_campaign_slot, encode
from records.schema import (
    BackerRecord,
    CampaignAction,
    CampaignRecord,
    CampaignState,
    Wallet,
)
from validator.accounting import (
    asset_quantity,
    at_address,
    both,
    find_all,
    find_unique,
    minted_quantity,
    pays_at_least,
    pays_exactly,
    paid_to,
    sum_matching,
    with_datum,
    with_token,
)
from validator.core import ValidationContext, ValidationRule


def campaign_address(script_hash: bytes, creator: Wallet) -> Address:
    """
    Address of a campaign: the campaign script staked to the creator.

    Args:
        script_hash: Campaign script hash
        creator: Campaign creator wallet

    Returns:
        Script address with the creator's stake credential
    """
    return Address(Credential.script(script_hash), Credential.key(creator.stake_key_hash))


def _carries(constr_id: int) -> Callable:
    """Entries whose inline record uses the given constructor."""
    def predicate(entry) -> bool:
        datum = entry.datum
        return isinstance(datum, Constr) and datum.tag == constr_id
    return predicate


is_campaign_entry = _carries(CampaignRecord.CONSTR_ID)
is_backer_entry = _carries(BackerRecord.CONSTR_ID)


class CampaignRule(ValidationRule):
    """
    Validation rule for the crowdfunding campaign script.

    Mint path: the redeemer is the CampaignRecord being created (or wound
    down). Spend path: the redeemer is a CampaignAction and the consumed
    entry holds either a CampaignRecord or a BackerRecord.
    """

    def __init__(self):
        super().__init__(
            name="campaign",
            description="Crowdfunding campaign lifecycle"
        )

        self._handlers: Dict[Tuple[Type, CampaignAction], Callable] = {
            (CampaignRecord, CampaignAction.SUPPORT): self._support,
            (CampaignRecord, CampaignAction.CANCEL): self._cancel_campaign,
            (BackerRecord, CampaignAction.CANCEL): self._cancel_backer,
            (CampaignRecord, CampaignAction.FINISH): self._finish_campaign,
            (BackerRecord, CampaignAction.FINISH): self._finish_backer,
            (BackerRecord, CampaignAction.REFUND): self._refund,
            (CampaignRecord, CampaignAction.RELEASE): self._release,
        }

        self.stats = {
            "mints_validated": 0,
            "spends_validated": 0,
            "overrides": 0
        }

    def describe_action(self, context: ValidationContext) -> Optional[str]:
        if context.purpose.is_mint:
            return "create"
        if isinstance(context.redeemer, Constr) and context.redeemer.tag < len(CampaignAction):
            return CampaignAction(context.redeemer.tag).name.lower()
        return None

    # Mint path

    def validate_mint(self, context: ValidationContext) -> None:
        """
        Decide minting or burning of campaign reward tokens.

        A Finished or Cancelled record may only burn. Any other record is a
        campaign creation and must mint exactly ``fraction`` tokens into the
        single campaign entry.
        """
        record = decode(context.redeemer, CampaignRecord)
        policy_id = context.purpose.policy_id
        minted = minted_quantity(context.transaction, policy_id, record.name)

        self.stats["mints_validated"] += 1

        if record.state in (CampaignState.FINISHED, CampaignState.CANCELLED):
            if minted > 0:
                raise AccountingError(f"Cannot mint reward tokens for a {record.state.name} campaign")
            self.logger.debug(f"Burn of {-minted} reward tokens for {record.name!r} accepted")
            return

        self._validate_creation(context, record, policy_id, minted)

    def _validate_creation(self, context: ValidationContext, record: CampaignRecord,
                           policy_id: bytes, minted: int) -> None:
        if record.state != CampaignState.RUNNING:
            raise StateError(f"New campaign must be RUNNING, got {record.state.name}")
        if record.goal <= 0:
            raise AccountingError(f"Campaign goal must be positive, got {record.goal}")
        if record.fraction <= 0:
            raise AccountingError(f"Campaign fraction must be positive, got {record.fraction}")
        if any(record.milestone):
            raise StateError("New campaign cannot have released milestones")
        if minted != record.fraction:
            raise AccountingError(f"Must mint exactly {record.fraction} reward tokens, got {minted}")

        address = campaign_address(policy_id, record.creator)
        outputs = context.transaction.outputs_at(address)
        if len(outputs) != 1:
            raise ReferenceError(f"Expected one output to the campaign address, found {len(outputs)}")

        if not pays_exactly(address, record.fraction, outputs, asset_quantity(policy_id, record.name)):
            raise AccountingError("Campaign output must hold the full reward-token supply")
        if outputs[0].datum != encode(record):
            raise StateError("Campaign output must carry the campaign record inline")

        self.logger.info(f"Campaign {record.name!r} created with goal {record.goal}")

    # Spend path

    def validate_spend(self, context: ValidationContext) -> None:
        """Decide a spend of a campaign or backer entry."""
        slot = decode_campaign_slot(context.datum)
        action = decode_campaign_action(context.redeemer)

        self.stats["spends_validated"] += 1

        if action == CampaignAction.ADMINISTRATIVE_OVERRIDE:
            require_authorization(
                context.transaction.signatories,
                context.require_config().multisig_validator_group,
                "platform multisig"
            )
            self.stats["overrides"] += 1
            self.logger.warning(f"Administrative override of {context.purpose.out_ref}")
            return

        handler = self._handlers.get((type(slot), action))
        if handler is None:
            raise InvalidActionError(f"Action {action.name} is not valid for a {type(slot).__name__}")
        handler(context, slot)

    def _support(self, context: ValidationContext, record: CampaignRecord) -> None:
        """A backer contributes and receives reward tokens in proportion."""
        tx = context.transaction
        own_address = context.own_address
        policy_id = context.own_hash
        reward = asset_quantity(policy_id, record.name)

        if record.state != CampaignState.RUNNING:
            raise StateError(f"Cannot support a {record.state.name} campaign")

        token_outputs = find_all(tx.outputs, with_token(policy_id, record.name))
        if len(token_outputs) != 2:
            raise ReferenceError(f"Expected two reward-token outputs, found {len(token_outputs)}")

        address_outputs = tx.outputs_at(own_address)
        if len(address_outputs) != 2:
            raise ReferenceError(f"Expected two outputs to the campaign address, found {len(address_outputs)}")

        continuing = find_unique(address_outputs, is_campaign_entry, "continuing campaign output")
        backer_output = find_unique(address_outputs, is_backer_entry, "backer output")

        if decode(continuing.datum, CampaignRecord) != record:
            raise StateError("Support must leave the campaign record unchanged")
        backer = decode(backer_output.datum, BackerRecord)

        returned_output = find_unique(token_outputs, at_address(own_address), "returned reward-token output")
        reward_output = find_unique(
            token_outputs, lambda out: out.address != own_address, "backer reward-token output"
        )
        if reward(returned_output.value) != reward(continuing.value):
            raise AccountingError("Returned reward tokens must stay with the campaign record")
        if reward_output.address.payment != Credential.key(backer.backer.payment_key_hash):
            raise AccountingError("Reward tokens must be paid to the recorded backer")

        consumed = reward(context.own_input.value)
        returned = reward(continuing.value)
        backer_reward = reward(reward_output.value)
        if returned != consumed - backer_reward:
            raise AccountingError(
                f"Returned reward tokens {returned} != consumed {consumed} - paid {backer_reward}"
            )

        unit = record.goal // record.fraction if record.fraction > 0 else 0
        if unit <= 0:
            raise AccountingError("Campaign goal and fraction give no contribution unit")

        contribution = backer_output.value.lovelace
        expected = contribution // unit
        if expected != backer_reward:
            raise AccountingError(
                f"Contribution {contribution} earns {expected} reward tokens, got {backer_reward}"
            )

        self.logger.debug(f"Support of {contribution} for {backer_reward} reward tokens accepted")

    def _cancel_campaign(self, context: ValidationContext, record: CampaignRecord) -> None:
        """The creator, or the platform after the deadline, cancels a running campaign."""
        self._require_creator_or_platform(context, record)
        if record.state != CampaignState.RUNNING:
            raise StateError(f"Cannot cancel a {record.state.name} campaign")

        _, successor = self._continuing_campaign(context)
        if successor != record.with_state(CampaignState.CANCELLED):
            raise StateError("Cancelled record must differ only by state CANCELLED")

    def _cancel_backer(self, context: ValidationContext, backer: BackerRecord) -> None:
        """A backer entry consumed alongside a cancellation is refunded."""
        _, campaign = self._continuing_campaign(context)
        if campaign.state != CampaignState.CANCELLED:
            raise StateError(f"Backer entry released while campaign is {campaign.state.name}")

        self._require_refund(context, backer)

        if minted_quantity(context.transaction, context.own_hash, campaign.name) > 0:
            raise AccountingError("Cannot mint reward tokens during cancellation")

    def _finish_campaign(self, context: ValidationContext, record: CampaignRecord) -> None:
        """The creator, or the platform after the deadline, closes a running campaign."""
        self._require_creator_or_platform(context, record)
        if record.state != CampaignState.RUNNING:
            raise StateError(f"Cannot finish a {record.state.name} campaign")

        continuing, successor = self._continuing_campaign(context)
        if successor != record.with_state(CampaignState.FINISHED):
            raise StateError("Finished record must differ only by state FINISHED")

        tx = context.transaction
        backed = sum_matching(tx.inputs, both(at_address(context.own_address), is_backer_entry))
        if continuing.value.lovelace < backed:
            raise AccountingError(
                f"Continuing campaign output holds {continuing.value.lovelace}, backers contributed {backed}"
            )

        if minted_quantity(tx, context.own_hash, record.name) > 0:
            raise AccountingError("Cannot mint reward tokens when finishing")

        self.logger.info(f"Campaign {record.name!r} finished with {backed} contributed")

    def _finish_backer(self, context: ValidationContext, backer: BackerRecord) -> None:
        """A backer entry is consolidated while its campaign is being finished."""
        campaign_input = find_unique(
            context.transaction.inputs_at(context.own_address), is_campaign_entry, "campaign input"
        )
        campaign = decode(campaign_input.datum, CampaignRecord)
        if campaign.state != CampaignState.RUNNING:
            raise StateError(f"Backer entries consolidate only into a RUNNING campaign, got {campaign.state.name}")

    def _refund(self, context: ValidationContext, backer: BackerRecord) -> None:
        """A backer reclaims a contribution from a cancelled campaign."""
        campaign = self._locate_campaign(context)
        if campaign.state != CampaignState.CANCELLED:
            raise StateError(f"Refunds require a CANCELLED campaign, got {campaign.state.name}")

        self._require_refund(context, backer)

        if minted_quantity(context.transaction, context.own_hash, campaign.name) >= 0:
            raise AccountingError("Refund must burn reward tokens")

    def _release(self, context: ValidationContext, record: CampaignRecord) -> None:
        """The platform releases the next milestone's share of the funds."""
        tx = context.transaction
        require_authorization(tx.signatories, context.require_config().multisig_validator_group,
                              "platform multisig")

        if record.state != CampaignState.FINISHED:
            raise StateError(f"Cannot release funds of a {record.state.name} campaign")

        index = record.next_milestone()
        if index is None:
            raise StateError("Every milestone has already been released")
        remaining = record.remaining_milestones

        milestone = list(record.milestone)
        milestone[index] = True
        state = CampaignState.RELEASED if remaining == 1 else CampaignState.FINISHED
        expected = record.model_copy(update={"milestone": milestone, "state": state})

        continuing, successor = self._continuing_campaign(context)
        if successor != expected:
            raise StateError(f"Successor record must only flag milestone {index} as released")

        supports = sum_matching(tx.inputs, both(at_address(context.own_address), with_datum(encode(record))))
        royalty = context.settings.royalty_percent
        creator_share = supports * (100 - royalty) // 100
        platform_share = supports * royalty // 100

        if not pays_at_least(record.creator.address, creator_share // remaining, tx.outputs):
            raise AccountingError(f"Creator must receive at least {creator_share // remaining}")
        if not pays_at_least(context.settings.royalty_address, platform_share // remaining, tx.outputs):
            raise AccountingError(f"Platform must receive at least {platform_share // remaining}")

        if remaining > 1:
            retained = supports - supports // remaining
            if continuing.value.lovelace < retained:
                raise AccountingError(f"Campaign must retain at least {retained} for later milestones")

        self.logger.info(f"Released milestone {index} of {record.name!r} ({remaining - 1} remaining)")

    # Helpers

    def _require_creator_or_platform(self, context: ValidationContext, record: CampaignRecord) -> None:
        """Creator signature, or the platform multisig once the deadline has passed."""
        tx = context.transaction
        if tx.is_signed_by(record.creator.payment_key_hash):
            return

        if authorize(tx.signatories, context.require_config().multisig_validator_group):
            if tx.validity_range.is_entirely_after(record.deadline):
                return
            raise DeadlineError("Platform may only act on a campaign after its deadline")

        raise AuthorizationError("Requires the creator's signature or the platform multisig")

    def _continuing_campaign(self, context: ValidationContext) -> Tuple[TxOut, CampaignRecord]:
        """The single campaign record output back to the script address."""
        output = find_unique(
            context.transaction.outputs_at(context.own_address), is_campaign_entry,
            "continuing campaign output"
        )
        return output, decode(output.datum, CampaignRecord)

    def _locate_campaign(self, context: ValidationContext) -> CampaignRecord:
        """Campaign record among own-address outputs, else own-address reference inputs."""
        tx = context.transaction
        outputs = find_all(tx.outputs_at(context.own_address), is_campaign_entry)
        if outputs:
            entry = find_unique(outputs, is_campaign_entry, "campaign output")
        else:
            entry = find_unique(
                tx.reference_inputs, both(at_address(context.own_address), is_campaign_entry),
                "campaign reference input"
            )
        return decode(entry.datum, CampaignRecord)

    def _require_refund(self, context: ValidationContext, backer: BackerRecord) -> None:
        """Outputs to the backer must cover every consumed entry carrying this record."""
        tx = context.transaction
        contributed = sum_matching(
            tx.inputs, both(at_address(context.own_address), with_datum(encode(backer)))
        )
        refunded = paid_to(backer.backer.address, tx.outputs)
        if refunded < contributed:
            raise AccountingError(f"Backer refunded {refunded}, contributed {contributed}")

    def get_statistics(self) -> Dict[str, int]:
        return dict(self.stats)


__all__ = [
    "CampaignRule",
    "campaign_address",
    "is_campaign_entry",
    "is_backer_entry",
]
