from dataclasses import replace
from decimal import Decimal

import pytest

from evabci.common import PubKey
from evabci.network_types import (
    ATTESTATION_BITMAP_PREFIX,
    SIGNATURE_PREFIX,
    VALIDATOR_INDEX_PREFIX,
    AttestationBitmap,
    GenesisState,
    MsgAttest,
    MsgJoinAttesterSet,
    MsgLeaveAttesterSet,
    MsgUpdateParams,
    SignMode,
    ValidatorIndex,
    amino_name,
    default_genesis_state,
    default_params,
    format_dec,
    get_attestation_key,
    get_attester_info_key,
    get_attester_set_key,
    get_epoch_bitmap_key,
    get_signature_key,
    get_validator_index_key,
    get_validator_power_key,
    new_params,
    parse_dec,
)


def test_default_params():
    params = default_params()
    assert params.epoch_length == 1
    assert params.prune_after == 7
    assert params.sign_mode == SignMode.CHECKPOINT
    assert parse_dec(params.quorum_fraction) == Decimal("0.667")
    assert parse_dec(params.min_participation) == Decimal("0.5")


def test_format_dec_uses_eighteen_places():
    assert format_dec(Decimal("0.667")) == "0.667000000000000000"


@pytest.mark.parametrize("value", ["0", "1", "0.5", "-0.25", "123.000000000000000001"])
def test_dec_round_trip(value):
    dec = Decimal(value)
    assert parse_dec(format_dec(dec)) == dec
    assert parse_dec(value) == dec


@pytest.mark.parametrize("bad", ["", "-", "1.", ".5", "1.2.3", "abc", "0." + "1" * 19])
def test_parse_dec_rejects(bad):
    with pytest.raises(ValueError):
        parse_dec(bad)


def test_new_params_round_trip():
    params = new_params(5, Decimal("0.75"), Decimal("0.25"), 3, SignMode.CHECKPOINT)
    params.validate()
    assert params.epoch_length == 5
    assert parse_dec(params.quorum_fraction) == Decimal("0.75")
    assert parse_dec(params.min_participation) == Decimal("0.25")


def test_quorum_of_one_is_valid():
    params = replace(default_params(), quorum_fraction="1")
    params.validate()
    assert parse_dec(params.quorum_fraction) == Decimal(1)


@pytest.mark.parametrize(
    "changes, message",
    [
        ({"epoch_length": 0}, "epoch length must be positive"),
        ({"prune_after": 0}, "prune after must be positive"),
        ({"quorum_fraction": "0"}, "quorum fraction must be between 0 and 1"),
        ({"quorum_fraction": "1.01"}, "quorum fraction must be between 0 and 1"),
        ({"quorum_fraction": "abc"}, "invalid decimal string"),
        ({"min_participation": "0"}, "min participation must be between 0 and 1"),
        ({"sign_mode": SignMode.UNSPECIFIED}, "sign mode cannot be unspecified"),
        ({"sign_mode": SignMode.IBC_ONLY}, "invalid sign mode: 2"),
        ({"epoch_length": "1"}, "invalid parameter type"),
    ],
)
def test_params_validation_errors(changes, message):
    with pytest.raises(ValueError, match=message):
        replace(default_params(), **changes).validate()


def test_default_genesis_state():
    genesis = default_genesis_state()
    genesis.validate()
    assert genesis.params == default_params()
    assert genesis.validator_indices == []
    assert genesis.attestation_bitmaps == []


def test_genesis_invalid_params():
    with pytest.raises(ValueError, match="invalid params"):
        GenesisState().validate()


def test_genesis_duplicate_address():
    genesis = default_genesis_state()
    genesis.validator_indices = [ValidatorIndex("a", 0, 1), ValidatorIndex("a", 1, 1)]
    with pytest.raises(ValueError, match="duplicate validator address: a"):
        genesis.validate()


def test_genesis_duplicate_index():
    genesis = default_genesis_state()
    genesis.validator_indices = [ValidatorIndex("a", 0, 1), ValidatorIndex("b", 0, 1)]
    with pytest.raises(ValueError, match="duplicate index: 0"):
        genesis.validate()


def test_genesis_too_many_indices():
    genesis = default_genesis_state()
    genesis.validator_indices = [ValidatorIndex(str(i), i, 1) for i in range(0x10000)]
    with pytest.raises(ValueError, match="too many validator indices"):
        genesis.validate()


@pytest.mark.parametrize(
    "bitmap, message",
    [
        (AttestationBitmap(height=0), "invalid attestation height: 0"),
        (AttestationBitmap(height=3, voted_power=2, total_power=1), "voted power exceeds"),
    ],
)
def test_genesis_bad_attestations(bitmap, message):
    genesis = default_genesis_state()
    genesis.attestation_bitmaps = [bitmap]
    with pytest.raises(ValueError, match=message):
        genesis.validate()


def test_validator_power_key():
    assert get_validator_power_key(1) == b"validator_power\x00\x01"


def test_attestation_key_encodes_height():
    key = get_attestation_key(42)
    assert key.startswith(ATTESTATION_BITMAP_PREFIX)
    assert int.from_bytes(key[len(ATTESTATION_BITMAP_PREFIX):], "big") == 42
    assert get_attestation_key(-1)[-8:] == b"\xff" * 8


def test_signature_key_layout():
    key = get_signature_key(7, "val1")
    assert key.startswith(SIGNATURE_PREFIX)
    assert key.endswith(b"val1")
    middle = key[len(SIGNATURE_PREFIX):-len(b"val1")]
    assert int.from_bytes(middle, "big") == 7


def test_address_keys():
    assert get_validator_index_key("val1") == VALIDATOR_INDEX_PREFIX + b"val1"
    assert get_attester_set_key("val1").endswith(b"val1")
    assert get_attester_info_key("val1") != get_attester_set_key("val1")
    assert get_epoch_bitmap_key(3) != get_attestation_key(3)


@pytest.mark.parametrize(
    "msg, name",
    [
        (MsgAttest("auth", "val", 1, b"vote"), "network/Attest"),
        (MsgJoinAttesterSet("auth", "val", PubKey(bytes(32))), "network/JoinAttesterSet"),
        (MsgLeaveAttesterSet("auth", "val"), "network/LeaveAttesterSet"),
        (MsgUpdateParams("auth", default_params()), "network/UpdateParams"),
    ],
)
def test_amino_names(msg, name):
    assert amino_name(msg) == name


def test_amino_name_unknown_message():
    with pytest.raises(TypeError):
        amino_name(object())