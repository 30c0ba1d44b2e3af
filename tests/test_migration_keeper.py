from decimal import Decimal

import pytest

from evabci.common import (
    BondStatus,
    Context,
    Delegation,
    InvalidAddressError,
    InvalidRequestError,
    PubKey,
    Validator,
    ValidatorUpdate,
    acc_address_to_bech32,
    module_address,
    val_address_to_bech32,
)
from evabci.migration_keeper import (
    IBC_SMOOTHING_FACTOR,
    MigrationKeeper,
    get_validators_to_remove,
    migrate_to_attesters,
    migrate_to_sequencer,
)
from evabci.migration_types import Attester, EvolveMigration, Sequencer

AUTHORITY = acc_address_to_bech32(module_address("migrationmngr"))


class FakeStakingKeeper:
    def __init__(self, vals=None, delegations=None):
        self.vals = vals or []
        self.delegations = delegations or {}
        self.undelegated = []

    def get_last_validators(self):
        return list(self.vals)

    def get_validator_delegations(self, val_addr):
        return self.delegations.get(val_address_to_bech32(val_addr), [])

    def undelegate(self, del_addr, val_addr, shares):
        self.undelegated.append((del_addr, val_addr, shares))


def make_validator(i):
    return Validator(
        operator_address=val_address_to_bech32(bytes([i]) * 20),
        consensus_pubkey=PubKey(bytes([i]) * 32),
        status=BondStatus.BONDED,
        moniker=f"val{i}",
    )


def make_keeper(vals=None, delegations=None, ibc_key=None):
    sk = FakeStakingKeeper(vals, delegations)
    return MigrationKeeper(sk, AUTHORITY, ibc_key), sk


def test_rejects_invalid_authority():
    with pytest.raises(ValueError):
        MigrationKeeper(FakeStakingKeeper(), "bad", None)


def test_is_migrating_without_migration():
    k, _ = make_keeper()
    assert k.is_migrating(Context(block_height=5)) == (0, 0, False)


def test_is_migrating_without_ibc():
    k, _ = make_keeper()
    k.migration = EvolveMigration(block_height=1, sequencer=Sequencer(name="foo"))
    assert k.is_migrating(Context(block_height=1)) == (1, 2, True)


def test_is_migrating_with_ibc():
    k, _ = make_keeper(ibc_key="ibc")
    k.migration = EvolveMigration(block_height=1, sequencer=Sequencer(name="foo"))
    ctx = Context(block_height=1, store_keys=frozenset({"migrationmngr", "ibc"}))
    assert k.is_ibc_enabled(ctx)
    assert k.is_migrating(ctx) == (1, 1 + IBC_SMOOTHING_FACTOR, True)


def test_ibc_disabled_when_store_not_mounted():
    k, _ = make_keeper(ibc_key="ibc")
    assert not k.is_ibc_enabled(Context(store_keys=frozenset({"migrationmngr"})))


def test_is_migrating_before_start():
    k, _ = make_keeper()
    k.migration = EvolveMigration(block_height=10)
    start, end, ok = k.is_migrating(Context(block_height=3))
    assert (start, end, ok) == (10, 11, False)


def test_migrate_to_sequencer():
    vals = [make_validator(i) for i in (1, 2, 3)]
    seq = Sequencer(name="s", consensus_pubkey=vals[2].consensus_pubkey)
    updates = migrate_to_sequencer(EvolveMigration(sequencer=seq), vals)
    assert updates == [
        ValidatorUpdate(vals[0].consensus_pubkey, 0),
        ValidatorUpdate(vals[1].consensus_pubkey, 0),
        ValidatorUpdate(vals[2].consensus_pubkey, 1),
    ]


def test_migrate_to_attesters():
    vals = [make_validator(i) for i in (1, 2)]
    new_key = PubKey(b"\x09" * 32)
    migration = EvolveMigration(
        attesters=[
            Attester(name="a", consensus_pubkey=vals[1].consensus_pubkey),
            Attester(name="b", consensus_pubkey=new_key),
        ]
    )
    assert migrate_to_attesters(migration, vals) == [
        ValidatorUpdate(vals[0].consensus_pubkey, 0),
        ValidatorUpdate(vals[1].consensus_pubkey, 1),
        ValidatorUpdate(new_key, 1),
    ]


def test_get_validators_to_remove():
    vals = [make_validator(i) for i in (1, 2, 3)]
    seq_only = EvolveMigration(sequencer=Sequencer(consensus_pubkey=vals[0].consensus_pubkey))
    assert get_validators_to_remove(seq_only, vals) == vals[1:]
    with_attesters = EvolveMigration(
        attesters=[Attester(consensus_pubkey=vals[1].consensus_pubkey)]
    )
    assert get_validators_to_remove(with_attesters, vals) == [vals[0], vals[2]]


def test_migrate_now_sets_sequencer():
    vals = [make_validator(i) for i in (1, 2)]
    k, _ = make_keeper(vals)
    seq = Sequencer(name="seq", consensus_pubkey=vals[0].consensus_pubkey)
    migration = EvolveMigration(block_height=1, sequencer=seq)
    updates = k.migrate_now(Context(block_height=1), migration, vals)
    assert updates[-1] == ValidatorUpdate(seq.consensus_pubkey, 1)
    assert k.sequencer == seq


def test_migrate_now_bad_sequencer_key():
    k, _ = make_keeper()
    migration = EvolveMigration(sequencer=Sequencer(name="x"))
    with pytest.raises(InvalidRequestError):
        k.migrate_now(Context(), migration, [])
    assert k.sequencer is None


def test_migrate_now_stay_on_comet_unbonds():
    vals = [make_validator(i) for i in (1, 2)]
    delegator = acc_address_to_bech32(b"\x07" * 20)
    delegations = {
        vals[1].operator_address: [
            Delegation(delegator, vals[1].operator_address, Decimal("100"))
        ]
    }
    k, sk = make_keeper(vals, delegations)
    seq = Sequencer(consensus_pubkey=vals[0].consensus_pubkey)
    migration = EvolveMigration(sequencer=seq, stay_on_comet=True)
    assert k.migrate_now(Context(), migration, vals) == []
    assert sk.undelegated == [(b"\x07" * 20, b"\x02" * 20, Decimal("100"))]
    assert k.sequencer is None


def test_migrate_over_first_step_equalises_power():
    vals = [make_validator(i) for i in (1, 2, 3)]
    k, _ = make_keeper(vals)
    seq = Sequencer(consensus_pubkey=vals[2].consensus_pubkey)
    updates = k.migrate_over(Context(), EvolveMigration(sequencer=seq), vals)
    assert updates == [
        ValidatorUpdate(vals[0].consensus_pubkey, 0),
        ValidatorUpdate(vals[1].consensus_pubkey, 1),
        ValidatorUpdate(vals[2].consensus_pubkey, 1),
    ]
    assert k.migration_step == 1


def test_migrate_over_removes_each_old_validator_once():
    vals = [make_validator(i) for i in range(1, 6)]
    k, _ = make_keeper(vals)
    seq = Sequencer(consensus_pubkey=vals[0].consensus_pubkey)
    migration = EvolveMigration(sequencer=seq)
    removed = []
    for _ in range(IBC_SMOOTHING_FACTOR):
        updates = k.migrate_over(Context(), migration, vals)
        removed.extend(u.pub_key for u in updates if u.power == 0)
    assert removed == [v.consensus_pubkey for v in vals[1:]]
    assert k.migration_step == IBC_SMOOTHING_FACTOR


def test_migrate_over_final_step_completes():
    vals = [make_validator(i) for i in (1, 2)]
    k, _ = make_keeper(vals)
    k.migration_step = IBC_SMOOTHING_FACTOR
    seq = Sequencer(consensus_pubkey=vals[0].consensus_pubkey)
    updates = k.migrate_over(Context(), EvolveMigration(sequencer=seq), vals)
    assert updates == migrate_to_sequencer(EvolveMigration(sequencer=seq), vals)
    assert k.migration_step is None
    assert k.sequencer == seq


def test_migrate_over_stay_on_comet_steps():
    vals = [make_validator(i) for i in (1, 2)]
    delegator = acc_address_to_bech32(b"\x08" * 20)
    delegations = {
        vals[1].operator_address: [Delegation(delegator, vals[1].operator_address, Decimal(5))]
    }
    k, sk = make_keeper(vals, delegations)
    migration = EvolveMigration(
        sequencer=Sequencer(consensus_pubkey=vals[0].consensus_pubkey), stay_on_comet=True
    )
    assert k.migrate_over(Context(), migration, vals) == []
    assert k.migration_step == 1
    assert len(sk.undelegated) == 1


def test_unbond_invalid_validator_address():
    k, _ = make_keeper()
    with pytest.raises(InvalidAddressError):
        k.unbond_validator_delegations(Validator(operator_address="nonsense"))


def test_unbond_invalid_delegator_address():
    val = make_validator(4)
    delegations = {val.operator_address: [Delegation("bad", val.operator_address)]}
    k, sk = make_keeper([val], delegations)
    with pytest.raises(InvalidAddressError):
        k.unbond_validator_delegations(val)
    assert sk.undelegated == []