"""Begin- and end-of-block processing for the network module."""

from __future__ import annotations

import base64
import hashlib
import logging

from evabci.bitmap import pop_count
from evabci.common import Context, Event, ModuleError
from evabci.network_keeper import NetworkKeeper
from evabci.network_types import DECIMAL_PRECISION, AttestationBitmap, parse_dec

_logger = logging.getLogger(__name__)

_COMMIT_HASH = hashlib.sha256(b"placeholder").digest()
_U64 = 2**64


def _wrap(err: Exception, prefix: str) -> Exception:
    """Return an error of the same kind whose message carries ``prefix``."""
    if isinstance(err, ModuleError):
        return type(err)(f"{prefix}: {err.message}")
    return type(err)(f"{prefix}: {err}")


def begin_blocker(keeper: NetworkKeeper, ctx: Context) -> None:
    """Run begin-block logic: load the module parameters and report the block."""
    params = keeper.get_params()
    _logger.debug(
        "network begin block at height %d (sign mode %s)",
        ctx.block_height,
        params.sign_mode,
    )


def end_blocker(keeper: NetworkKeeper, ctx: Context) -> None:
    """Process a checkpoint at the current height and close the epoch if it ends."""
    height = ctx.block_height
    params = keeper.get_params()

    if keeper.is_checkpoint_height(height):
        try:
            _process_checkpoint(keeper, ctx, height)
        except (ModuleError, ValueError) as err:
            raise _wrap(err, f"processing checkpoint at height {height}") from err

    epoch = keeper.get_current_epoch(ctx)
    next_epoch = ((height + 1) % _U64) // params.epoch_length
    if epoch != next_epoch:
        try:
            _process_epoch_end(keeper, ctx, epoch)
        except (ModuleError, ValueError) as err:
            raise _wrap(err, f"processing epoch end {epoch}") from err


def _process_checkpoint(keeper: NetworkKeeper, ctx: Context, height: int) -> None:
    bitmap = keeper.get_attestation_bitmap(height)
    if bitmap is None:
        return

    voted_power = keeper.calculate_voted_power(bitmap)
    total_power = keeper.get_total_power()
    validator_hash = hashlib.sha256(bytes(bitmap)).digest()
    soft_confirmed = keeper.check_quorum(voted_power, total_power)

    keeper.set_stored_attestation_info(
        height,
        AttestationBitmap(
            height=height,
            bitmap=bytes(bitmap),
            voted_power=voted_power,
            total_power=total_power,
            soft_confirmed=soft_confirmed,
        ),
    )
    _emit_checkpoint_hashes(ctx, height, validator_hash, _COMMIT_HASH, soft_confirmed)


def _process_epoch_end(keeper: NetworkKeeper, ctx: Context, epoch: int) -> None:
    params = keeper.get_params()
    epoch_bitmap = keeper.get_epoch_bitmap(epoch)

    if epoch_bitmap is not None:
        try:
            validators = keeper.staking_keeper.get_last_validators()
        except (ModuleError, ValueError) as err:
            raise _wrap(err, "getting last validators") from err
        bonded = sum(1 for v in validators if v.is_bonded())

        if bonded > 0:
            participated = pop_count(epoch_bitmap)
            try:
                minimum = parse_dec(params.min_participation)
            except ValueError as err:
                raise ValueError(f"parsing MinParticipation parameter: {err}") from err
            scale = 10**DECIMAL_PRECISION
            rate_scaled = participated * scale // bonded
            numerator, denominator = minimum.as_integer_ratio()
            if rate_scaled * denominator < numerator * scale:
                _eject_low_participants(epoch, epoch_bitmap)

    try:
        keeper.build_validator_index_map()
    except (ModuleError, ValueError) as err:
        raise _wrap(err, f"rebuilding validator index map at epoch {epoch}") from err


def _eject_low_participants(epoch: int, epoch_bitmap: bytes | bytearray) -> None:
    _logger.info(
        "low participation detected in epoch %d (%d attested); no ejection is performed",
        epoch,
        pop_count(epoch_bitmap),
    )


def _emit_checkpoint_hashes(
    ctx: Context,
    height: int,
    validator_hash: bytes,
    commit_hash: bytes,
    soft_confirmed: bool,
) -> None:
    ctx.emit_event(
        Event(
            "checkpoint",
            {
                "height": str(height),
                "validator_hash": base64.b64encode(validator_hash).decode(),
                "commit_hash": base64.b64encode(commit_hash).decode(),
                "soft_confirmed": "true" if soft_confirmed else "false",
            },
        )
    )