"""
Tests for hashing helpers and multisignature threshold authorization.
"""

import pytest

from crypto.hashing import blake2b_224, datum_hash, key_hash, script_hash
from crypto.multisig import authorize, count_signed, require_authorization
from ledger.data import Constr
from ledger.exceptions import AuthorizationError
from records.schema import MultisigGroup


class TestHashing:
    """Test key, script and record hashes."""

    def test_key_hash_size(self):
        assert len(key_hash(b"\x01" * 32)) == 28

    def test_key_hash_requires_32_byte_key(self):
        with pytest.raises(ValueError):
            key_hash(b"\x01" * 31)

    def test_script_hash_is_language_tagged(self):
        assert script_hash(b"script") != blake2b_224(b"script")
        assert script_hash(b"script", "plutus_v1") != script_hash(b"script", "plutus_v2")
        with pytest.raises(ValueError):
            script_hash(b"script", "cobol")

    def test_datum_hash_distinguishes_records(self):
        assert datum_hash(Constr(0, [1])) != datum_hash(Constr(0, [2]))
        assert len(datum_hash(Constr(0))) == 32


class TestMultisig:
    """Test threshold authorization."""

    def setup_method(self):
        self.signers = [bytes([i]) * 28 for i in range(1, 4)]
        self.group = MultisigGroup(required=2, signers=self.signers)

    def test_threshold_met(self):
        assert authorize(self.signers[:2], self.group)
        assert authorize(self.signers, self.group)

    def test_threshold_unmet(self):
        assert not authorize(self.signers[:1], self.group)
        assert not authorize([b"\x09" * 28, b"\x08" * 28], self.group)

    def test_duplicate_signatures_count_once(self):
        assert count_signed([self.signers[0], self.signers[0]], self.group) == 1
        assert not authorize([self.signers[0], self.signers[0]], self.group)

    def test_duplicate_group_members_count_once(self):
        group = MultisigGroup(required=2, signers=[self.signers[0], self.signers[0]])

        assert not authorize([self.signers[0]], group)

    def test_zero_threshold_always_met(self):
        assert authorize([], MultisigGroup(required=0, signers=self.signers))

    def test_require_authorization_raises(self):
        require_authorization(self.signers[1:], self.group)

        with pytest.raises(AuthorizationError, match="platform multisig"):
            require_authorization(self.signers[:1], self.group, "platform multisig")
