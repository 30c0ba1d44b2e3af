# evabci

This package provides in-memory state machines for three chain modules:

- an attester network that records which attesters voted for which heights,
- a migration manager that moves a validator set over to a single sequencer or to an attester set,
- a staking wrapper that keeps staking from changing the consensus set.

The package has no runtime dependencies.

## Install

```
pip install .
pip install ".[test]"   # with pytest
```

## Modules

### `evabci.common`

- Errors: `ModuleError` is the base class. The subclasses are `InvalidRequestError`, `UnauthorizedError`, `NotFoundError`, `InvalidAddressError`, `InvalidSignerError`, `InvalidTypeError` and `LogicError`.
- `Context` holds the block being processed. Its fields are `block_height`, `chain_id`, `events` and `store_keys`. It has two methods:
  - `with_block_height` returns a copy at another height, and the copy shares the event list.
  - `emit_event` appends an `Event`.
- Bech32 helpers:
  - `bech32_encode` and `bech32_decode`.
  - `val_address_to_bech32` and `val_address_from_bech32` use the prefix `cosmosvaloper`.
  - `acc_address_to_bech32` and `acc_address_from_bech32` use the prefix `cosmos`.
  - `module_address` returns the first 20 bytes of the SHA-256 of a module name.
- Staking records: `PubKey`, `BondStatus`, `Validator`, `ValidatorUpdate` and `Delegation`.
  - `Validator.is_bonded()` reports whether the validator is bonded.
  - `Validator.abci_update_zero()` returns an update that removes the validator.

### `evabci.bitmap`

Participation bitmaps are stored as bytes, with bits numbered LSB-first inside each byte. The functions are:

- `new_bitmap`, `set_bit` and `is_set`. Both `set_bit` and `is_set` ignore indices that fall outside the bitmap.
- `pop_count`.
- `bitmap_or` and `bitmap_and`. Both work over the common length of the two bitmaps.
- `copy_bitmap` and `clear_bitmap`.
- `count_in_range`.

### `evabci.network_types`

- `Params` and `Params.validate()`. `validate()` raises `ValueError` when a parameter is out of bounds.
- `new_params` and `default_params`. The defaults are an epoch length of 1, a quorum of 0.667, a minimum participation of 0.5, pruning after 7 epochs, and checkpoint sign mode.
- `SignMode`.
- `parse_dec` and `format_dec`, which handle fixed-point decimals with 18 fractional digits.
- `GenesisState`, `GenesisState.validate()` and `default_genesis_state()`.
- Genesis records: `ValidatorIndex`, `AttestationBitmap` and `AttesterInfo`.
- Messages: `MsgAttest`, `MsgJoinAttesterSet`, `MsgLeaveAttesterSet` and `MsgUpdateParams`. `amino_name` returns the registered name of a message.
- Store key builders such as `get_attestation_key`, `get_signature_key` and `get_epoch_bitmap_key`.

### `evabci.network_keeper.NetworkKeeper`

The keeper holds the attester network's state. This state covers:

- parameters,
- the attester set,
- validator indices and powers,
- attestation bitmaps and epoch bitmaps,
- signatures,
- stored attestation info,
- the last attested height.

The keeper also provides:

- `build_validator_index_map`, which reassigns indices to all attesters in key order and gives each a power of 1.
- Quorum checks: `calculate_voted_power`, `get_total_power`, `check_quorum` and `is_soft_confirmed`.
- `prune_old_bitmaps`.

### `evabci.network_msg_server.NetworkMsgServer`

- `attest`
- `join_attester_set`
- `leave_attester_set`
- `update_params`, which only the keeper's authority may call.

Each handler raises the matching `ModuleError` subclass on failure and emits an event on the context.

### `evabci.network_abci`

- `begin_blocker`.
- `end_blocker`, which does two things:
  - At checkpoint heights it stores the attestation info and emits a `checkpoint` event that carries the validator hash and the commit hash.
  - At the end of an epoch it rebuilds the validator index map.

### `evabci.network_query.NetworkQueryServer`

The query methods are:

- `params`
- `attestation_bitmap`
- `epoch_info`, which returns `EpochInfo`
- `validator_index`
- `soft_confirmation_status`, which returns `SoftConfirmationStatus`
- `attester_signatures`, which returns a list of `AttesterSignature`
- `last_attested_height`
- `attester_info`

### `evabci.network_genesis`

- `init_genesis` and `export_genesis` move a genesis state into and out of a keeper.
- JSON helpers:
  - `genesis_to_json` and `genesis_from_json`. In this JSON, 64-bit integers are written as strings and bitmaps as base64.
  - `default_genesis_json`.
  - `validate_genesis_json`.

### `evabci.migration_types`

- `Sequencer`, `Attester`, `EvolveMigration` and `MsgMigrateToEvolve`.
- `tm_cons_public_key()`, on `Sequencer` and `Attester`, accepts only ed25519 and secp256k1 keys.

### `evabci.migration_keeper`

`MigrationKeeper(staking_keeper, authority, ibc_store_key=None)` holds three pieces of state: the pending migration, the sequencer and the migration step.

- IBC counts as enabled when the IBC store key is among `Context.store_keys`.
- Without IBC, a migration completes in one block.
- With IBC, it is spread over `IBC_SMOOTHING_FACTOR` (30) blocks.
- When `stay_on_comet` is set, the keeper undelegates from the removed validators and returns no updates.

Module-level helpers: `migrate_to_sequencer`, `migrate_to_attesters` and `get_validators_to_remove`.

### `evabci.migration_server`

- `end_block` returns the validator updates for the current block.
- `pre_block` acts one block after the migration ends:
  - It removes the migration record.
  - It raises `LogicError` to halt the chain, unless the migration stays on the current engine.
- `MigrationMsgServer.migrate_to_evolve` schedules a migration. It accepts only the authority.
- `MigrationQueryServer` has three queries: `attesters`, `is_migrating` (which returns `MigrationStatus`) and `sequencer`.

### `evabci.staking`

`StakingKeeper` wraps another staking keeper and forwards every method it does not override.

- `apply_and_return_validator_set_updates` returns updates only at height 0.
- `slash`, `slash_with_infraction_reason`, `jail` and `unjail` do nothing to validators. They only record the request in `suppressed_penalties`.
- `invoke_set_staking_hooks` installs hooks in the configured order. When no order is configured, it uses module-name order.
- `end_block` runs the wrapped end blocker and returns no updates.

## Example

```python
from evabci.common import Context, module_address, acc_address_to_bech32, val_address_to_bech32
from evabci.network_keeper import NetworkKeeper
from evabci.network_msg_server import NetworkMsgServer
from evabci.network_types import MsgAttest, MsgJoinAttesterSet, default_params

keeper = NetworkKeeper(staking_keeper=None, authority=acc_address_to_bech32(module_address("gov")))
keeper.set_params(default_params())
server = NetworkMsgServer(keeper)
ctx = Context(block_height=10)

addr = val_address_to_bech32(b"validator4")
server.join_attester_set(ctx, MsgJoinAttesterSet(authority=addr, consensus_address=addr))
keeper.build_validator_index_map()
server.attest(ctx, MsgAttest(authority=addr, consensus_address=addr, height=10, vote=b"vote"))
print(keeper.is_soft_confirmed(10))  # True
```

A staking keeper is only called on by the epoch-end processing, by `epoch_info`, and by the migration manager. It needs a `get_last_validators()` method that returns a list of `Validator`. The migration manager also needs two more methods: `get_validator_delegations(val_addr)` and `undelegate(del_addr, val_addr, shares)`.

## What it does not do

- All state is held in memory. Nothing is persisted, so a keeper starts empty each time it is created.
- There is no command-line tool, no network server and no query gateway. The servers here are plain Python objects that you call directly.
- Attestation votes are stored as given, and their signatures are not checked.
- Low participation in an epoch is logged, but no validator is ejected.
- `begin_blocker` only reads the parameters and logs.
- The staking wrapper needs an existing staking keeper to wrap; the package does not include one.

## Tests

```
pytest
```