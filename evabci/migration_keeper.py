"""State and validator-set transitions of the migration manager."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import Any

from evabci.common import (
    Context,
    InvalidAddressError,
    InvalidRequestError,
    LogicError,
    ModuleError,
    PubKey,
    Validator,
    ValidatorUpdate,
    acc_address_from_bech32,
    val_address_from_bech32,
)
from evabci.migration_types import MODULE_NAME, Attester, EvolveMigration, Sequencer

IBC_SMOOTHING_FACTOR = 30
"""Number of blocks a migration is spread over when IBC is enabled."""

_logger = logging.getLogger(__name__).getChild(f"x/{MODULE_NAME}")


def _ceil_div(count: int, parts: int) -> int:
    return -(-count // parts)


def _message(err: Exception) -> str:
    return err.message if isinstance(err, ModuleError) else str(err)


class MigrationKeeper:
    """Holds the pending migration, the chosen sequencer and the migration step."""

    def __init__(
        self,
        staking_keeper: Any,
        authority: str,
        ibc_store_key: str | Callable[[], str] | None = None,
    ) -> None:
        try:
            acc_address_from_bech32(authority)
        except InvalidAddressError as err:
            raise ValueError("authority is not a valid acc address") from err
        self.staking_keeper = staking_keeper
        self.authority = authority
        self.ibc_store_key = ibc_store_key

        self.sequencer: Sequencer | None = None
        self.migration: EvolveMigration | None = None
        self.migration_step: int | None = None

    def is_ibc_enabled(self, ctx: Context) -> bool:
        """IBC counts as enabled when its store is mounted on the chain."""
        if self.ibc_store_key is None:
            return False
        key = self.ibc_store_key() if callable(self.ibc_store_key) else self.ibc_store_key
        return key in ctx.store_keys

    def is_migrating(self, ctx: Context) -> tuple[int, int, bool]:
        """Return ``(start, end, in_progress)`` for the pending migration."""
        migration = self.migration
        if migration is None:
            return 0, 0, False
        start = migration.block_height
        if self.is_ibc_enabled(ctx):
            end = start + IBC_SMOOTHING_FACTOR
        else:
            end = start + 1
        height = ctx.block_height
        return start, end, start <= height <= end

    def migrate_now(
        self,
        ctx: Context,
        migration: EvolveMigration,
        last_validators: Sequence[Validator],
    ) -> list[ValidatorUpdate]:
        """Switch the validator set in one step."""
        if migration.stay_on_comet:
            _logger.info("unbonding all validators immediately (stay on comet, IBC not enabled)")
            for val in get_validators_to_remove(migration, last_validators):
                self.unbond_validator_delegations(val)
            return []

        if migration.attesters:
            try:
                updates = migrate_to_attesters(migration, last_validators)
            except ModuleError as err:
                raise InvalidRequestError(
                    f"failed to migrate to sequencer & attesters: {_message(err)}"
                ) from err
        else:
            try:
                updates = migrate_to_sequencer(migration, last_validators)
            except ModuleError as err:
                raise InvalidRequestError(
                    f"failed to migrate to sequencer: {_message(err)}"
                ) from err

        self.sequencer = replace(migration.sequencer)
        return updates

    def migrate_over(
        self,
        ctx: Context,
        migration: EvolveMigration,
        last_validators: Sequence[Validator],
    ) -> list[ValidatorUpdate]:
        """Advance a migration spread over the smoothing period by one step."""
        step = self.migration_step or 0

        if step >= IBC_SMOOTHING_FACTOR:
            self.migration_step = None
            if migration.stay_on_comet:
                _logger.info("migration complete, all validators unbonded gradually")
                return []
            return self.migrate_now(ctx, migration, last_validators)

        if migration.stay_on_comet:
            return self._migrate_over_with_unbonding(migration, last_validators, step)

        updates: list[ValidatorUpdate] = []
        if not migration.attesters:
            seq_key = migration.sequencer.consensus_pubkey
            old = [v for v in last_validators if v.consensus_pubkey != seq_key]
            per_step = _ceil_div(len(old), IBC_SMOOTHING_FACTOR)
            start = step * per_step
            updates.extend(v.abci_update_zero() for v in old[start : start + per_step])
        else:
            attester_keys = {a.consensus_pubkey for a in migration.attesters}
            old = [v for v in last_validators if v.consensus_pubkey not in attester_keys]
            current_keys = {v.consensus_pubkey for v in last_validators}
            new = [a for a in migration.attesters if a.consensus_pubkey not in current_keys]

            remove_per_step = _ceil_div(len(old), IBC_SMOOTHING_FACTOR)
            add_per_step = _ceil_div(len(new), IBC_SMOOTHING_FACTOR)
            start_remove = step * remove_per_step
            updates.extend(
                v.abci_update_zero() for v in old[start_remove : start_remove + remove_per_step]
            )
            start_add = step * add_per_step
            for attester in new[start_add : start_add + add_per_step]:
                try:
                    pk = attester.tm_cons_public_key()
                except ModuleError as err:
                    raise InvalidRequestError(
                        f"failed to get attester pubkey: {_message(err)}"
                    ) from err
                updates.append(ValidatorUpdate(pub_key=pk, power=1))

        self.migration_step = step + 1

        # On the first step every validator is given equal power so that none
        # holds a dominant share while the set changes.
        if step == 0:
            seen: set[PubKey] = {u.pub_key for u in updates}
            for val in last_validators:
                if val.consensus_pubkey is None:
                    raise InvalidRequestError("failed to get validator pubkey: missing key")
                if val.consensus_pubkey not in seen:
                    updates.append(ValidatorUpdate(pub_key=val.consensus_pubkey, power=1))

        return updates

    def _migrate_over_with_unbonding(
        self,
        migration: EvolveMigration,
        last_validators: Sequence[Validator],
        step: int,
    ) -> list[ValidatorUpdate]:
        to_remove = get_validators_to_remove(migration, last_validators)
        if not to_remove:
            _logger.info("no validators to remove, migration complete")
            return []

        per_step = _ceil_div(len(to_remove), IBC_SMOOTHING_FACTOR)
        start = step * per_step
        end = min(start + per_step, len(to_remove))
        _logger.info(
            "unbonding validators gradually: step %d, indices %d..%d of %d",
            step,
            start,
            end,
            len(to_remove),
        )
        for val in to_remove[start:end]:
            self.unbond_validator_delegations(val)

        self.migration_step = step + 1
        return []

    def unbond_validator_delegations(self, validator: Validator) -> None:
        """Undelegate every delegation made to ``validator``."""
        try:
            val_addr = val_address_from_bech32(validator.operator_address)
        except InvalidAddressError as err:
            raise InvalidAddressError(f"invalid validator address: {err.message}") from err

        try:
            delegations = self.staking_keeper.get_validator_delegations(val_addr)
        except Exception as err:
            raise LogicError(f"failed to get validator delegations: {_message(err)}") from err

        for delegation in delegations:
            try:
                del_addr = acc_address_from_bech32(delegation.delegator_address)
            except InvalidAddressError as err:
                raise InvalidAddressError(f"invalid delegator address: {err.message}") from err
            try:
                self.staking_keeper.undelegate(del_addr, val_addr, delegation.shares)
            except Exception as err:
                raise LogicError(f"failed to undelegate: {_message(err)}") from err


def migrate_to_sequencer(
    migration: EvolveMigration, last_validators: Sequence[Validator]
) -> list[ValidatorUpdate]:
    """Remove every validator but the sequencer and give the sequencer power 1."""
    seq = migration.sequencer
    pk = seq.tm_cons_public_key()
    updates = [
        val.abci_update_zero()
        for val in last_validators
        if val.consensus_pubkey != seq.consensus_pubkey
    ]
    updates.append(ValidatorUpdate(pub_key=pk, power=1))
    return updates


def migrate_to_attesters(
    migration: EvolveMigration, last_validators: Sequence[Validator]
) -> list[ValidatorUpdate]:
    """Remove validators that are not attesters and give each attester power 1."""
    attester_keys = {a.consensus_pubkey for a in migration.attesters}
    updates = [
        val.abci_update_zero()
        for val in last_validators
        if val.consensus_pubkey not in attester_keys
    ]
    updates.extend(
        ValidatorUpdate(pub_key=attester.tm_cons_public_key(), power=1)
        for attester in migration.attesters
    )
    return updates


def get_validators_to_remove(
    migration: EvolveMigration, last_validators: Sequence[Validator]
) -> list[Validator]:
    """Return the validators that leave the set in this migration."""
    if not migration.attesters:
        seq_key = migration.sequencer.consensus_pubkey
        return [v for v in last_validators if v.consensus_pubkey != seq_key]
    attester_keys = {a.consensus_pubkey for a in migration.attesters}
    return [v for v in last_validators if v.consensus_pubkey not in attester_keys]


__all__ = [
    "IBC_SMOOTHING_FACTOR",
    "Attester",
    "MigrationKeeper",
    "get_validators_to_remove",
    "migrate_to_attesters",
    "migrate_to_sequencer",
]