import pytest

from evabci.common import InvalidTypeError, PubKey
from evabci.migration_types import (
    Attester,
    EvolveMigration,
    MsgMigrateToEvolve,
    Sequencer,
)


@pytest.mark.parametrize("key_type", ["ed25519", "secp256k1"])
def test_sequencer_key_round_trip(key_type):
    pubkey = PubKey(b"\x07" * 33, key_type)
    assert Sequencer("foo", pubkey).tm_cons_public_key() == pubkey


def test_attester_key_round_trip():
    pubkey = PubKey(b"\x02" * 32)
    result = Attester("bar", pubkey).tm_cons_public_key()
    assert result.key == pubkey.key
    assert result.key_type == pubkey.key_type


def test_missing_key_is_rejected():
    with pytest.raises(InvalidTypeError, match="expecting cryptotypes.PubKey"):
        Sequencer("foo").tm_cons_public_key()
    with pytest.raises(InvalidTypeError):
        Attester("bar").tm_cons_public_key()


def test_unsupported_key_type_is_rejected():
    with pytest.raises(InvalidTypeError, match="unsupported key type"):
        Sequencer("foo", PubKey(b"\x01" * 32, "sr25519")).tm_cons_public_key()


def test_migration_defaults_are_independent():
    first = EvolveMigration()
    second = EvolveMigration()
    first.attesters.append(Attester("a"))
    assert second.attesters == []
    assert first.stay_on_comet is False


def test_message_fields_carry_over():
    seq = Sequencer("foo", PubKey(b"\x03" * 32))
    msg = MsgMigrateToEvolve(authority="auth", block_height=10, sequencer=seq, attesters=[Attester("x")])
    migration = EvolveMigration(
        block_height=msg.block_height,
        sequencer=msg.sequencer,
        attesters=msg.attesters,
        stay_on_comet=msg.stay_on_comet,
    )
    assert migration.sequencer == seq
    assert [a.name for a in migration.attesters] == ["x"]
    assert migration.block_height == msg.block_height