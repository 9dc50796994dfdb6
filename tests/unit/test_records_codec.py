"""
Tests for record schemas and the strict tagged codec.
"""

import pytest

from ledger.data import Constr
from ledger.exceptions import SchemaError
from ledger.transaction import Address, Credential
from records.codec import (
    decode,
    decode_campaign_action,
    decode_campaign_slot,
    decode_governance_action,
    decode_json,
    encode,
    encode_json,
)
from records.schema import (
    AddValidator,
    BackerRecord,
    CampaignAction,
    CampaignRecord,
    CampaignState,
    CastVote,
    ConfigRecord,
    Execute,
    GovernanceRecord,
    ProposalState,
    RemoveValidator,
    SubmitProposal,
    UpdateFeeAddress,
    Vote,
    VotesCount,
)


@pytest.fixture
def proposal(ids):
    return GovernanceRecord(
        proposal_id=b"prop-1",
        submitted_by=ids("submitter"),
        proposal_action=AddValidator(signer=ids("new-signer")),
        votes={ids("v1"): Vote.PENDING, ids("v2"): Vote.YES},
        votes_count=VotesCount(yes=1),
        deadline=1_000,
    )


class TestCampaignRecords:
    """Test campaign and backer record encoding."""

    def test_campaign_layout(self, campaign):
        data = encode(campaign)

        assert isinstance(data, Constr)
        assert data.tag == 0
        assert data.fields[0] == b"GreenRoof"
        assert data.fields[4] == [Constr(0), Constr(0), Constr(0)]
        assert data.fields[5] == Constr(CampaignState.RUNNING.value)
        assert data.fields[6] == 100

    def test_campaign_round_trip(self, campaign):
        released = campaign.model_copy(update={"milestone": [True, False, False],
                                               "state": CampaignState.FINISHED})

        assert decode(encode(released), CampaignRecord) == released
        assert decode_json(encode_json(released), CampaignRecord) == released

    def test_slot_discriminant(self, campaign, backer):
        assert isinstance(decode_campaign_slot(encode(campaign)), CampaignRecord)
        assert isinstance(decode_campaign_slot(encode(BackerRecord(backer=backer))), BackerRecord)
        with pytest.raises(SchemaError):
            decode_campaign_slot(Constr(2, [b""]))
        with pytest.raises(SchemaError):
            decode_campaign_slot(None)

    def test_wrong_arity_rejected(self, campaign):
        data = encode(campaign)
        truncated = Constr(0, data.fields[:6])

        with pytest.raises(SchemaError):
            decode(truncated, CampaignRecord)

    def test_wrong_field_type_rejected(self, campaign):
        fields = list(encode(campaign).fields)
        fields[1] = b"10000"

        with pytest.raises(SchemaError):
            decode(Constr(0, fields), CampaignRecord)

    def test_malformed_milestone_flag_rejected(self, campaign):
        fields = list(encode(campaign).fields)
        fields[4] = [Constr(2)]

        with pytest.raises(SchemaError):
            decode(Constr(0, fields), CampaignRecord)

    def test_short_key_hash_rejected(self, campaign):
        fields = list(encode(campaign).fields)
        fields[3] = Constr(0, [b"\x01" * 27, b"\x02" * 28])

        with pytest.raises(SchemaError):
            decode(Constr(0, fields), CampaignRecord)

    def test_missing_record_rejected(self):
        with pytest.raises(SchemaError):
            decode(None, CampaignRecord)

    def test_milestone_helpers(self, campaign):
        partly = campaign.model_copy(update={"milestone": [True, False, False]})

        assert partly.remaining_milestones == 2
        assert partly.next_milestone() == 1
        assert campaign.model_copy(update={"milestone": [True]}).next_milestone() is None


class TestGovernanceRecords:
    """Test proposal record encoding."""

    def test_round_trip(self, proposal):
        assert decode(encode(proposal), GovernanceRecord) == proposal

    def test_votes_map_layout(self, proposal, ids):
        data = encode(proposal)

        assert data.fields[3] == {ids("v1"): Constr(3), ids("v2"): Constr(0)}
        assert data.fields[4] == Constr(0, [1, 0, 0])

    def test_fee_address_action_round_trip(self, proposal, ids):
        address = Address(Credential.key(ids("fees")), Credential.key(ids("fees-stake")))
        updated = proposal.model_copy(update={"proposal_action": UpdateFeeAddress(address=address)})

        assert decode(encode(updated), GovernanceRecord) == updated

    def test_unknown_proposal_action_rejected(self, proposal):
        fields = list(encode(proposal).fields)
        fields[2] = Constr(9, [1])

        with pytest.raises(SchemaError):
            decode(Constr(0, fields), GovernanceRecord)

    def test_tally_consistency(self, proposal):
        assert proposal.is_consistent()
        assert not proposal.model_copy(update={"votes_count": VotesCount()}).is_consistent()

    def test_votes_count_increment(self):
        count = VotesCount().increment(Vote.YES).increment(Vote.ABSTAIN)

        assert count == VotesCount(yes=1, no=0, abstain=1)
        with pytest.raises(ValueError):
            count.increment(Vote.PENDING)


class TestConfigRecord:
    """Test protocol configuration encoding."""

    def test_round_trip(self, config_record):
        assert decode(encode(config_record), ConfigRecord) == config_record

    def test_decoding_as_wrong_kind_fails(self, config_record):
        with pytest.raises(SchemaError):
            decode(encode(config_record), CampaignRecord)


class TestActions:
    """Test action decoding."""

    def test_campaign_actions(self):
        assert decode_campaign_action(Constr(0)) == CampaignAction.SUPPORT
        assert decode_campaign_action(Constr(4)) == CampaignAction.RELEASE
        with pytest.raises(SchemaError):
            decode_campaign_action(Constr(9))
        with pytest.raises(SchemaError):
            decode_campaign_action(Constr(0, [1]))

    def test_governance_actions(self, ids):
        vote = decode_governance_action(Constr(0, [ids("v1"), Constr(1)]))

        assert vote == CastVote(voter=ids("v1"), vote=Vote.NO)
        assert decode_governance_action(Constr(1)) == Execute()
        assert decode_governance_action(Constr(3, [b"prop"])) == SubmitProposal(proposal_id=b"prop")
        assert decode_governance_action(encode(vote)) == vote

    def test_unknown_governance_action_rejected(self):
        with pytest.raises(SchemaError):
            decode_governance_action(Constr(7))
        with pytest.raises(SchemaError):
            decode_governance_action(b"execute")

    def test_remove_validator_action(self, ids):
        action = RemoveValidator(signer=ids("old"))

        assert encode(action) == Constr(1, [ids("old")])

    def test_proposal_state_default(self, proposal):
        assert proposal.proposal_state == ProposalState.IN_PROGRESS
