"""Message handlers of the network module."""

from __future__ import annotations

import logging

from evabci.bitmap import is_set, new_bitmap, set_bit
from evabci.common import (
    Context,
    Event,
    InvalidAddressError,
    InvalidRequestError,
    InvalidSignerError,
    NotFoundError,
    UnauthorizedError,
    val_address_from_bech32,
)
from evabci.network_keeper import NetworkKeeper
from evabci.network_types import (
    TYPE_MSG_ATTEST,
    TYPE_MSG_JOIN_ATTESTER_SET,
    TYPE_MSG_LEAVE_ATTESTER_SET,
    TYPE_MSG_UPDATE_PARAMS,
    AttesterInfo,
    MsgAttest,
    MsgJoinAttesterSet,
    MsgLeaveAttesterSet,
    MsgUpdateParams,
    SignMode,
)

_logger = logging.getLogger(__name__)


class NetworkMsgServer:
    """Applies network module messages to a keeper."""

    def __init__(self, keeper: NetworkKeeper) -> None:
        self.keeper = keeper

    def _fresh_bitmap(self) -> bytearray:
        return new_bitmap(len(self.keeper.get_all_attesters()))

    def attest(self, ctx: Context, msg: MsgAttest) -> None:
        """Record an attester's vote for a height."""
        k = self.keeper
        addr = msg.consensus_address

        if k.get_params().sign_mode == SignMode.CHECKPOINT and not k.is_checkpoint_height(msg.height):
            raise InvalidRequestError(f"height {msg.height} is not a checkpoint")
        if not k.is_in_attester_set(addr):
            raise UnauthorizedError(f"consensus address {addr} not in attester set")

        index = k.get_validator_index(addr)
        if index is None:
            raise NotFoundError(f"validator index not found for {addr}")

        bitmap = k.get_attestation_bitmap(msg.height)
        if bitmap is None:
            bitmap = self._fresh_bitmap()
        if is_set(bitmap, index):
            raise InvalidRequestError(
                f"consensus address {addr} already attested for height {msg.height}"
            )

        set_bit(bitmap, index)
        k.set_attestation_bitmap(msg.height, bitmap)
        k.set_signature(msg.height, addr, msg.vote)

        voted_power = k.calculate_voted_power(bitmap)
        total_power = k.get_total_power()
        if k.check_quorum(voted_power, total_power):
            k.update_last_attested_height(msg.height)
            _logger.info(
                "block %d reached quorum and is now soft confirmed (voted %d of %d)",
                msg.height,
                voted_power,
                total_power,
            )

        epoch = k.get_current_epoch(ctx)
        epoch_bitmap = k.get_epoch_bitmap(epoch)
        if epoch_bitmap is None:
            epoch_bitmap = self._fresh_bitmap()
        set_bit(epoch_bitmap, index)
        k.set_epoch_bitmap(epoch, epoch_bitmap)

        ctx.emit_event(
            Event(
                TYPE_MSG_ATTEST,
                {
                    "consensus_address": addr,
                    "authority": msg.authority,
                    "height": str(msg.height),
                },
            )
        )

    def join_attester_set(self, ctx: Context, msg: MsgJoinAttesterSet) -> None:
        """Add an address to the attester set and record its public key."""
        k = self.keeper
        addr = msg.consensus_address
        try:
            val_address_from_bech32(addr)
        except InvalidAddressError as err:
            raise InvalidAddressError(f"invalid consensus address: {err.message}") from err

        if k.is_in_attester_set(addr):
            raise InvalidRequestError("consensus address already in attester set")

        k.set_attester_info(
            addr,
            AttesterInfo(validator=addr, pubkey=msg.pubkey, joined_height=ctx.block_height),
        )
        k.set_attester_set_member(addr)

        ctx.emit_event(
            Event(
                TYPE_MSG_JOIN_ATTESTER_SET,
                {"consensus_address": addr, "authority": msg.authority},
            )
        )
        _logger.info("joined attester set: %s (authority %s)", addr, msg.authority)

    def leave_attester_set(self, ctx: Context, msg: MsgLeaveAttesterSet) -> None:
        """Remove an address from the attester set."""
        k = self.keeper
        addr = msg.consensus_address
        if not k.is_in_attester_set(addr):
            raise InvalidRequestError("consensus address not in attester set")

        k.remove_attester_set_member(addr)
        ctx.emit_event(
            Event(
                TYPE_MSG_LEAVE_ATTESTER_SET,
                {"consensus_address": addr, "authority": msg.authority},
            )
        )

    def update_params(self, ctx: Context, msg: MsgUpdateParams) -> None:
        """Replace the module parameters; only the authority may do so."""
        k = self.keeper
        if k.authority != msg.authority:
            raise InvalidSignerError(
                f"invalid authority; expected {k.authority}, got {msg.authority}"
            )
        msg.params.validate()
        k.set_params(msg.params)
        ctx.emit_event(Event(TYPE_MSG_UPDATE_PARAMS, {"authority": msg.authority}))