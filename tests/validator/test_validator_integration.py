"""
Integration Tests for the Crowdfund Validator System

Tests complete transactions through the engine: every script execution a
transaction triggers must accept for the transaction to be accepted.
Walks a campaign through creation, support, finishing and milestone
releases, and a proposal through submission, voting and execution.
"""

import pytest
import yaml

from ledger.transaction import Address, Credential
from records.codec import encode
from records.schema import (
    AddValidator,
    BackerRecord,
    CampaignAction,
    CampaignState,
    CastVote,
    Execute,
    GovernanceRecord,
    ProposalState,
    SubmitProposal,
    Vote,
    VotesCount,
)
from validator.config import load_settings
from validator.core import create_default_validator
from validator.error_reporting import ErrorCategory
from validator.rules.governance import apply_proposal


DEADLINE = 1_700_000_000_000


class TestCampaignLifecycle:
    """Walk one campaign through its whole life."""

    @pytest.fixture(autouse=True)
    def _scenario(self, chain, engine, campaign, campaign_addr, campaign_script, creator,
                  backer, platform_signers, config_entry, settings, error_reporter):
        self.chain = chain
        self.engine = engine
        self.campaign = campaign
        self.address = campaign_addr
        self.policy = campaign_script
        self.creator = creator
        self.backer = backer
        self.platform = platform_signers
        self.config_entry = config_entry
        self.settings = settings
        self.reporter = error_reporter

    def tokens(self, quantity):
        return {self.policy: {self.campaign.name: quantity}}

    def test_create_support_finish_release(self):
        chain = self.chain
        backer_record = BackerRecord(backer=self.backer)

        # Creation
        creation = chain.transaction(
            outputs=[chain.output(self.address, 2_000_000, self.tokens(100), encode(self.campaign))],
            mint=self.tokens(100),
            signatories=[self.creator.payment_key_hash]
        )
        verdict = self.engine.validate_transaction(creation, {
            chain.mint(self.policy): encode(self.campaign)
        })
        assert verdict.approved, verdict.errors

        # Support: 1000 earns 10 reward tokens
        campaign_in = chain.entry(self.address, 2_000_000, self.tokens(100), encode(self.campaign))
        support = chain.transaction(
            inputs=[campaign_in],
            outputs=[
                chain.output(self.address, 2_000_000, self.tokens(90), encode(self.campaign)),
                chain.output(self.address, 1_000, datum=encode(backer_record)),
                chain.output(self.backer.address, 2_000_000, self.tokens(10)),
            ],
            signatories=[self.backer.payment_key_hash]
        )
        verdict = self.engine.validate_transaction(support, {
            chain.spend(campaign_in): encode(CampaignAction.SUPPORT)
        })
        assert verdict.approved, verdict.errors

        # Finish: consolidate the backer entry into the campaign entry
        campaign_in = chain.entry(self.address, 2_000_000, self.tokens(90), encode(self.campaign))
        backer_in = chain.entry(self.address, 1_000, datum=encode(backer_record))
        finished = self.campaign.with_state(CampaignState.FINISHED)
        finish = chain.transaction(
            inputs=[campaign_in, backer_in],
            outputs=[chain.output(self.address, 2_001_000, self.tokens(90), encode(finished))],
            reference_inputs=[self.config_entry],
            signatories=[self.creator.payment_key_hash]
        )
        verdict = self.engine.validate_transaction(finish, {
            chain.spend(campaign_in): encode(CampaignAction.FINISH),
            chain.spend(backer_in): encode(CampaignAction.FINISH),
        })
        assert verdict.approved, verdict.errors
        assert len(verdict.contexts) == 2

        # Release the first of three milestones from 9000 of support
        released = finished.model_copy(update={"milestone": [True, False, False]})
        campaign_in = chain.entry(self.address, 9_000, datum=encode(finished))
        release = chain.transaction(
            inputs=[campaign_in],
            outputs=[
                chain.output(self.address, 6_000, datum=encode(released)),
                chain.output(self.creator.address, 2_850),
                chain.output(self.settings.royalty_address, 150),
            ],
            reference_inputs=[self.config_entry],
            signatories=self.platform[:2]
        )
        verdict = self.engine.validate_transaction(release, {
            chain.spend(campaign_in): encode(CampaignAction.RELEASE)
        })
        assert verdict.approved, verdict.errors

        stats = self.engine.get_statistics()
        assert stats["approved_validations"] == 5
        assert stats["rejected_validations"] == 0

    def test_one_failing_execution_rejects_transaction(self):
        chain = self.chain
        backer_record = BackerRecord(backer=self.backer)
        campaign_in = chain.entry(self.address, 2_000_000, self.tokens(100), encode(self.campaign))
        backer_in = chain.entry(self.address, 1_000, datum=encode(backer_record))
        finished = self.campaign.with_state(CampaignState.FINISHED)

        # The continuing output holds less than the backers contributed
        finish = chain.transaction(
            inputs=[campaign_in, backer_in],
            outputs=[chain.output(self.address, 999, self.tokens(100), encode(finished))],
            reference_inputs=[self.config_entry],
            signatories=[self.creator.payment_key_hash]
        )
        verdict = self.engine.validate_transaction(finish, {
            chain.spend(campaign_in): encode(CampaignAction.FINISH),
            chain.spend(backer_in): encode(CampaignAction.FINISH),
        })

        assert not verdict.approved
        assert [context.is_approved() for context in verdict.contexts] == [False, True]
        summary = self.reporter.get_error_summary()
        assert summary.by_category == {ErrorCategory.ACCOUNTING.value: 1}

    def test_cancel_with_refunds_and_burn(self):
        chain = self.chain
        backer_record = BackerRecord(backer=self.backer)
        cancelled = self.campaign.with_state(CampaignState.CANCELLED)

        campaign_in = chain.entry(self.address, 2_000_000, self.tokens(90), encode(self.campaign))
        backer_in = chain.entry(self.address, 1_000, datum=encode(backer_record))
        cancel = chain.transaction(
            inputs=[campaign_in, backer_in],
            outputs=[
                chain.output(self.address, 2_000_000, self.tokens(90), encode(cancelled)),
                chain.output(self.backer.address, 1_000),
            ],
            reference_inputs=[self.config_entry],
            signatories=[self.creator.payment_key_hash]
        )
        verdict = self.engine.validate_transaction(cancel, {
            chain.spend(campaign_in): encode(CampaignAction.CANCEL),
            chain.spend(backer_in): encode(CampaignAction.CANCEL),
        })
        assert verdict.approved, verdict.errors

        # A later refund burns the backer's reward tokens
        backer_in = chain.entry(self.address, 1_000, datum=encode(backer_record))
        wallet_in = chain.entry(self.backer.address, 2_000_000, self.tokens(10))
        refund = chain.transaction(
            inputs=[backer_in, wallet_in],
            outputs=[chain.output(self.backer.address, 2_001_000)],
            reference_inputs=[
                self.config_entry,
                chain.entry(self.address, 2_000_000, self.tokens(90), encode(cancelled)),
            ],
            mint=self.tokens(-10),
            signatories=[self.backer.payment_key_hash]
        )
        verdict = self.engine.validate_transaction(refund, {
            chain.spend(backer_in): encode(CampaignAction.REFUND),
            chain.mint(self.policy): encode(cancelled),
        })
        assert verdict.approved, verdict.errors
        assert len(verdict.contexts) == 2


class TestProposalLifecycle:
    """Walk one proposal from submission to execution."""

    @pytest.fixture(autouse=True)
    def _scenario(self, chain, engine, governance_script, config_record, config_address,
                  settings, ids):
        self.chain = chain
        self.engine = engine
        self.policy = governance_script
        self.address = Address(Credential.script(governance_script))
        self.config = config_record
        self.config_address = config_address
        self.settings = settings
        self.ids = ids

    def test_submit_vote_execute(self):
        chain = self.chain
        voters = [self.ids("voter-1"), self.ids("voter-2")]
        token = {self.policy: {b"prop-7": 1}}
        proposal = GovernanceRecord(
            proposal_id=b"prop-7",
            submitted_by=self.ids("submitter"),
            proposal_action=AddValidator(signer=self.ids("new-signer")),
            votes={voter: Vote.PENDING for voter in voters},
            votes_count=VotesCount(),
            deadline=DEADLINE,
        )

        submit = chain.transaction(
            outputs=[chain.output(self.address, 2_000_000, token, encode(proposal))],
            mint=token,
            signatories=[self.ids("submitter")]
        )
        verdict = self.engine.validate_transaction(submit, {
            chain.mint(self.policy): encode(SubmitProposal(proposal_id=b"prop-7"))
        })
        assert verdict.approved, verdict.errors

        record = proposal
        for voter in voters:
            successor = record.model_copy(update={
                "votes": {**record.votes, voter: Vote.YES},
                "votes_count": record.votes_count.increment(Vote.YES)
            })
            entry = chain.entry(self.address, 2_000_000, token, encode(record))
            vote = chain.transaction(
                inputs=[entry],
                outputs=[chain.output(self.address, 2_000_000, token, encode(successor))],
                signatories=[voter],
                upper=DEADLINE - 1
            )
            verdict = self.engine.validate_transaction(vote, {
                chain.spend(entry): encode(CastVote(voter=voter, vote=Vote.YES))
            })
            assert verdict.approved, verdict.errors
            record = successor

        assert record.is_consistent()

        identification = {self.settings.identification_policy: {self.settings.identification_token_name: 1}}
        entry = chain.entry(self.address, 2_000_000, token, encode(record))
        config_in = chain.entry(self.config_address, 2_000_000, identification, encode(self.config))
        executed = record.model_copy(update={"proposal_state": ProposalState.EXECUTED})
        new_config = apply_proposal(self.config, record.proposal_action)
        execute = chain.transaction(
            inputs=[entry, config_in],
            outputs=[
                chain.output(self.address, 2_000_000, token, encode(executed)),
                chain.output(self.config_address, 2_000_000, identification, encode(new_config)),
            ],
            lower=DEADLINE + 1
        )

        # The config-holder script belongs to an external collaborator and is skipped
        verdict = self.engine.validate_transaction(execute, {chain.spend(entry): encode(Execute())})

        assert verdict.approved, verdict.errors
        assert len(verdict.contexts) == 1
        assert self.ids("new-signer") in new_config.multisig_validator_group.signers


class TestConfiguredEngine:
    """Test building an engine from a configuration file."""

    def test_engine_from_yaml(self, tmp_path, chain, campaign, campaign_addr, campaign_script,
                              settings, error_reporter):
        path = tmp_path / "crowdfund.yml"
        path.write_text(yaml.safe_dump({
            "validator": {
                "validator_id": "yaml_validator",
                "royalty_percent": 10,
                "identification_policy": settings.identification_policy.hex(),
                "royalty_key_hash": settings.royalty_key_hash.hex(),
            }
        }))
        loaded = load_settings(str(path), environ={})
        engine = create_default_validator(loaded, campaign_script, error_reporter=error_reporter)

        creation = chain.transaction(
            outputs=[chain.output(campaign_addr, 2_000_000, {campaign_script: {campaign.name: 100}},
                                  encode(campaign))],
            mint={campaign_script: {campaign.name: 100}}
        )
        context = engine.validate(creation, chain.mint(campaign_script), encode(campaign))

        assert context.is_approved()
        assert context.validator_id == "yaml_validator"
        assert engine.health_check()["status"] == "healthy"
