"""Block hooks, message handling and queries of the migration manager."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from evabci.common import (
    Context,
    InvalidRequestError,
    InvalidSignerError,
    LogicError,
    ModuleError,
    ValidatorUpdate,
)
from evabci.migration_keeper import MigrationKeeper
from evabci.migration_types import MODULE_NAME, Attester, EvolveMigration, MsgMigrateToEvolve, Sequencer

_logger = logging.getLogger(__name__).getChild(f"x/{MODULE_NAME}")

HALT_MESSAGE = (
    "MIGRATE: chain migration to evolve is complete. Switch to the evolve binary "
    "and run 'gmd evolve-migrate' to complete the migration."
)


def _message(err: Exception) -> str:
    return err.message if isinstance(err, ModuleError) else str(err)


def pre_block(keeper: MigrationKeeper, ctx: Context) -> None:
    """Halt the chain one block after a migration ends, unless it stays on the current engine.

    The migration record is removed either way, so a restart does not halt again.
    """
    start, end, _ = keeper.is_migrating(ctx)
    height = ctx.block_height
    should_halt = end > 0 and height == end + 1
    _logger.debug(
        "pre-block migration check: height=%d start=%d end=%d halt=%s",
        height,
        start,
        end,
        should_halt,
    )
    if not should_halt:
        return

    migration = keeper.migration
    if migration is None:
        _logger.error("failed to get migration state")
        raise LogicError("failed to get migration state: not found")

    keeper.migration = None
    if migration.stay_on_comet:
        _logger.info("migration complete, staying on CometBFT")
        return

    _logger.info("HALTING CHAIN - migration complete, binary switch required")
    raise LogicError(HALT_MESSAGE)


def end_block(keeper: MigrationKeeper, ctx: Context) -> list[ValidatorUpdate]:
    """Return the validator updates the migration calls for at this block."""
    height = ctx.block_height
    start, end, in_progress = keeper.is_migrating(ctx)
    _logger.debug(
        "end-block migration check: height=%d start=%d end=%d migrating=%s",
        height,
        start,
        end,
        in_progress,
    )
    if not in_progress or start > height:
        return []

    migration = keeper.migration
    if migration is None:
        raise LogicError("failed to get migration state: not found")

    validators = keeper.staking_keeper.get_last_validators()

    updates: list[ValidatorUpdate] = []
    if not keeper.is_ibc_enabled(ctx):
        if height == start:
            updates = keeper.migrate_now(ctx, migration, validators)
    else:
        updates = keeper.migrate_over(ctx, migration, validators)

    _logger.debug("end-block migration updates at height %d: %d", height, len(updates))
    return updates


@dataclass(frozen=True)
class MigrationStatus:
    is_migrating: bool
    start_block_height: int
    end_block_height: int


class MigrationMsgServer:
    """Handles the governance message that schedules a migration."""

    def __init__(self, keeper: MigrationKeeper) -> None:
        self.keeper = keeper

    def migrate_to_evolve(self, ctx: Context, msg: MsgMigrateToEvolve) -> None:
        k = self.keeper
        if k.authority != msg.authority:
            raise InvalidSignerError(
                f"invalid authority; expected {k.authority}, got {msg.authority}"
            )
        if msg.block_height < ctx.block_height:
            raise InvalidRequestError(
                f"block height {msg.block_height} must be greater than current block "
                f"height {ctx.block_height}"
            )
        k.migration = EvolveMigration(
            block_height=msg.block_height,
            sequencer=msg.sequencer,
            attesters=list(msg.attesters),
            stay_on_comet=msg.stay_on_comet,
        )


class MigrationQueryServer:
    """Answers queries about attesters, the sequencer and migration progress."""

    def __init__(self, keeper: MigrationKeeper) -> None:
        self.keeper = keeper

    def attesters(self, ctx: Context) -> list[Attester]:
        """Return the current validators as attesters."""
        try:
            validators = self.keeper.staking_keeper.get_last_validators()
        except Exception as err:
            raise LogicError(f"failed to get last validators: {_message(err)}") from err
        return [
            Attester(name=val.moniker, consensus_pubkey=val.consensus_pubkey)
            for val in validators
        ]

    def is_migrating(self, ctx: Context) -> MigrationStatus:
        start, end, in_progress = self.keeper.is_migrating(ctx)
        return MigrationStatus(
            is_migrating=in_progress,
            start_block_height=start,
            end_block_height=end,
        )

    def sequencer(self, ctx: Context) -> Sequencer:
        _, _, in_progress = self.keeper.is_migrating(ctx)
        if in_progress:
            raise LogicError("sequencer is not set, migration is in progress or not started yet")
        if self.keeper.sequencer is None:
            raise LogicError("failed to get sequencer: not found")
        return self.keeper.sequencer