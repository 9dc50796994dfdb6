"""
Pytest configuration and fixtures for crowdfund validator tests.
"""

import logging
from itertools import count
from typing import Dict, List, Optional

import pytest

from crypto.hashing import key_hash, script_hash
from ledger.data import PlutusData
from ledger.transaction import (
    Address,
    Credential,
    OutputReference,
    ScriptPurpose,
    Transaction,
    TxInInfo,
    TxOut,
    ValidityRange,
    Value,
)
from records.codec import encode
from records.schema import (
    AssetClass,
    CampaignRecord,
    CampaignState,
    ConfigRecord,
    MultisigGroup,
    Wallet,
)
from validator.config import ValidatorSettings
from validator.core import create_default_validator
from validator.error_reporting import ErrorReporter
from validator.rules.campaign import campaign_address


def make_hash(label: str) -> bytes:
    """Deterministic 28-byte key hash for a test identity."""
    return key_hash(label.encode().ljust(32, b"\x00"))


CAMPAIGN_SCRIPT = script_hash(b"crowdfund-campaign-script")
GOVERNANCE_SCRIPT = script_hash(b"crowdfund-governance-script")
CONFIG_HOLDER_SCRIPT = script_hash(b"crowdfund-config-holder-script")
IDENTIFICATION_POLICY = script_hash(b"crowdfund-identification-policy")
IDENTIFICATION_NAME = b"CONFIG"

DEADLINE = 1_700_000_000_000


class Chain:
    """Builds ledger entries and candidate transactions for tests."""

    def __init__(self):
        self._indices = count()

    def out_ref(self) -> OutputReference:
        index = next(self._indices)
        return OutputReference(index.to_bytes(32, "big"), 0)

    def entry(self, address: Address, lovelace: int = 2_000_000,
              assets: Optional[Dict[bytes, Dict[bytes, int]]] = None,
              datum: Optional[PlutusData] = None) -> TxInInfo:
        return TxInInfo(self.out_ref(), TxOut(address, Value(lovelace, assets or {}), datum))

    @staticmethod
    def output(address: Address, lovelace: int = 2_000_000,
               assets: Optional[Dict[bytes, Dict[bytes, int]]] = None,
               datum: Optional[PlutusData] = None) -> TxOut:
        return TxOut(address, Value(lovelace, assets or {}), datum)

    @staticmethod
    def transaction(inputs: Optional[List[TxInInfo]] = None,
                    outputs: Optional[List[TxOut]] = None,
                    reference_inputs: Optional[List[TxInInfo]] = None,
                    mint: Optional[Dict[bytes, Dict[bytes, int]]] = None,
                    signatories: Optional[List[bytes]] = None,
                    lower: Optional[int] = None,
                    upper: Optional[int] = None) -> Transaction:
        return Transaction(
            inputs=inputs or [],
            outputs=outputs or [],
            reference_inputs=reference_inputs or [],
            mint=mint or {},
            signatories=signatories or [],
            validity_range=ValidityRange(lower, upper),
        )

    @staticmethod
    def spend(entry: TxInInfo) -> ScriptPurpose:
        return ScriptPurpose.spend(entry.out_ref)

    @staticmethod
    def mint(policy_id: bytes) -> ScriptPurpose:
        return ScriptPurpose.mint(policy_id)


@pytest.fixture
def chain():
    """Transaction builder."""
    return Chain()


@pytest.fixture
def campaign_script():
    """Campaign script hash, also the reward-token policy id."""
    return CAMPAIGN_SCRIPT


@pytest.fixture
def governance_script():
    """Governance script hash, also the proposal-token policy id."""
    return GOVERNANCE_SCRIPT


@pytest.fixture
def ids():
    """Deterministic key hash factory."""
    return make_hash


@pytest.fixture
def creator():
    """Campaign creator wallet."""
    return Wallet(payment_key_hash=make_hash("creator"), stake_key_hash=make_hash("creator-stake"))


@pytest.fixture
def backer():
    """Backer wallet."""
    return Wallet(payment_key_hash=make_hash("backer"), stake_key_hash=make_hash("backer-stake"))


@pytest.fixture
def platform_signers():
    """Key hashes of the platform multisig members."""
    return [make_hash("platform-1"), make_hash("platform-2"), make_hash("platform-3")]


@pytest.fixture
def settings():
    """Validator settings injected at instantiation."""
    return ValidatorSettings(
        validator_id="test_validator",
        royalty_percent=5,
        identification_policy=IDENTIFICATION_POLICY,
        identification_token_name=IDENTIFICATION_NAME,
        royalty_key_hash=make_hash("royalty"),
    )


@pytest.fixture
def config_record(platform_signers):
    """Protocol configuration with a 2-of-3 platform multisig."""
    fees = Address(Credential.key(make_hash("fees")))
    return ConfigRecord(
        fees_address=fees,
        fees_amount=1_000_000,
        fees_asset=AssetClass(policy_id=b"", asset_name=b""),
        spend_address=Address(Credential.script(CAMPAIGN_SCRIPT)),
        categories=[b"art", b"games"],
        multisig_validator_group=MultisigGroup(required=2, signers=platform_signers),
        multisig_refutxoupdate=MultisigGroup(required=1, signers=platform_signers[:1]),
        cet_policy=script_hash(b"cet"),
        cot_policy=script_hash(b"cot"),
        dao_policy=GOVERNANCE_SCRIPT,
    )


@pytest.fixture
def config_address():
    """Address of the config-holder script."""
    return Address(Credential.script(CONFIG_HOLDER_SCRIPT))


@pytest.fixture
def config_entry(chain, config_record, config_address):
    """Reference input holding the identification token and the configuration."""
    return chain.entry(
        config_address,
        assets={IDENTIFICATION_POLICY: {IDENTIFICATION_NAME: 1}},
        datum=encode(config_record),
    )


@pytest.fixture
def campaign(creator):
    """Running campaign: goal 10000, 100 reward tokens, three milestones."""
    return CampaignRecord(
        name=b"GreenRoof",
        goal=10_000,
        deadline=DEADLINE,
        creator=creator,
        milestone=[False, False, False],
        state=CampaignState.RUNNING,
        fraction=100,
    )


@pytest.fixture
def campaign_addr(creator):
    """Campaign script address staked to the creator."""
    return campaign_address(CAMPAIGN_SCRIPT, creator)


@pytest.fixture
def error_reporter():
    """Isolated error reporter."""
    return ErrorReporter()


@pytest.fixture
def engine(settings, error_reporter):
    """Engine with the campaign and governance rules registered."""
    return create_default_validator(settings, CAMPAIGN_SCRIPT, GOVERNANCE_SCRIPT, error_reporter)


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep validator logs out of test output unless asked for."""
    logging.getLogger("validator").setLevel(logging.WARNING)
    yield
