"""State of the network module: attesters, bitmaps, signatures and parameters."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import replace
from fractions import Fraction
from typing import Any

from evabci.bitmap import is_set
from evabci.common import Context, NotFoundError
from evabci.network_types import AttestationBitmap, AttesterInfo, Params, parse_dec

_logger = logging.getLogger(__name__).getChild("network")

_U16 = 2**16
_U64 = 2**64


class NetworkKeeper:
    """Keeps the network module's state in memory, ordered like its key-value store."""

    def __init__(
        self,
        staking_keeper: Any,
        authority: str,
        account_keeper: Any = None,
        bank_keeper: Any = None,
    ) -> None:
        self.staking_keeper = staking_keeper
        self.authority = authority
        self.account_keeper = account_keeper
        self.bank_keeper = bank_keeper

        self._params: Params | None = None
        self._validator_index: dict[str, int] = {}
        self._validator_power: dict[int, int] = {}
        self._attestation_bitmaps: dict[int, bytes] = {}
        self._epoch_bitmaps: dict[int, bytes] = {}
        self._attester_set: set[str] = set()
        self._attester_info: dict[str, AttesterInfo] = {}
        self._signatures: dict[tuple[int, str], bytes] = {}
        self._stored_attestation_info: dict[int, AttestationBitmap] = {}
        self._last_attested_height: int | None = None

    # parameters

    def get_params(self) -> Params:
        """Return the stored parameters, or zero-valued ones if none are set."""
        return replace(self._params) if self._params is not None else Params()

    def set_params(self, params: Params) -> None:
        self._params = replace(params)

    # validator indices and powers

    def set_validator_index(self, addr: str, index: int, power: int) -> None:
        index %= _U16
        self._validator_index[addr] = index
        self._validator_power[index] = power

    def get_validator_index(self, addr: str) -> int | None:
        """Return the bitmap index of ``addr``, or None if it has none."""
        return self._validator_index.get(addr)

    def get_validator_power(self, index: int) -> int:
        try:
            return self._validator_power[index % _U16]
        except KeyError:
            raise NotFoundError(f"no validator power for index {index}") from None

    def iter_validator_indices(self) -> Iterator[tuple[str, int]]:
        """Yield ``(address, index)`` pairs in address order."""
        for addr in sorted(self._validator_index, key=str.encode):
            yield addr, self._validator_index[addr]

    # bitmaps

    def set_attestation_bitmap(self, height: int, bitmap: bytes | bytearray) -> None:
        self._attestation_bitmaps[height] = bytes(bitmap)

    def get_attestation_bitmap(self, height: int) -> bytearray | None:
        """Return a mutable copy of the bitmap at ``height``, or None."""
        stored = self._attestation_bitmaps.get(height)
        return None if stored is None else bytearray(stored)

    def set_epoch_bitmap(self, epoch: int, bitmap: bytes | bytearray) -> None:
        self._epoch_bitmaps[epoch] = bytes(bitmap)

    def get_epoch_bitmap(self, epoch: int) -> bytearray | None:
        stored = self._epoch_bitmaps.get(epoch)
        return None if stored is None else bytearray(stored)

    # attester set

    def is_in_attester_set(self, addr: str) -> bool:
        return addr in self._attester_set

    def set_attester_set_member(self, addr: str) -> None:
        self._attester_set.add(addr)

    def remove_attester_set_member(self, addr: str) -> None:
        self._attester_set.discard(addr)

    def get_all_attesters(self) -> list[str]:
        """Return every attester address in key order."""
        return sorted(self._attester_set, key=str.encode)

    def build_validator_index_map(self) -> None:
        """Reassign indices to all attesters in key order, each with power 1."""
        attesters = self.get_all_attesters()
        self._validator_index.clear()
        self._validator_power.clear()
        for index, addr in enumerate(attesters):
            self.set_validator_index(addr, index, 1)
            _logger.debug("assigned index %d to attester %s with power 1", index, addr)
        _logger.info("rebuilt validator index map for %d attesters", len(attesters))

    # epochs and quorum

    def get_current_epoch(self, ctx: Context) -> int:
        return (ctx.block_height % _U64) // self.get_params().epoch_length

    def is_checkpoint_height(self, height: int) -> bool:
        if self._params is None:
            return False
        return (height % _U64) % self._params.epoch_length == 0

    def calculate_voted_power(self, bitmap: bytes | bytearray) -> int:
        """Sum the power of every index whose bit is set in ``bitmap``."""
        voted = 0
        for i in range(len(bitmap) * 8):
            if is_set(bitmap, i):
                try:
                    voted += self.get_validator_power(i)
                except NotFoundError as err:
                    raise NotFoundError(f"get validator power: {err.message}") from err
        return voted

    def get_total_power(self) -> int:
        """Every attester has power 1, so the total is the number of attesters."""
        return len(self._attester_set)

    def check_quorum(self, voted_power: int, total_power: int) -> bool:
        try:
            fraction = parse_dec(self.get_params().quorum_fraction)
        except ValueError as err:
            raise ValueError(f"invalid quorum fraction: {err}") from err
        required = int(Fraction(total_power) * Fraction(fraction))
        return voted_power >= required

    def is_soft_confirmed(self, height: int) -> bool:
        bitmap = self.get_attestation_bitmap(height)
        if bitmap is None:
            return False
        voted = self.calculate_voted_power(bitmap)
        return self.check_quorum(voted, self.get_total_power())

    def prune_old_bitmaps(self, current_epoch: int) -> None:
        """Drop bitmaps and attestation info older than ``prune_after`` epochs."""
        params = self.get_params()
        if params.prune_after == 0 or current_epoch <= params.prune_after:
            return
        prune_before_epoch = current_epoch - params.prune_after
        prune_height = prune_before_epoch * params.epoch_length

        for store in (self._attestation_bitmaps, self._stored_attestation_info):
            for height in [h for h in store if 0 <= h < prune_height]:
                del store[height]
        for epoch in [e for e in self._epoch_bitmaps if 0 <= e < prune_before_epoch]:
            del self._epoch_bitmaps[epoch]

        _logger.info(
            "pruned old bitmaps and attestation info before epoch %d (height %d)",
            prune_before_epoch,
            prune_height,
        )

    # signatures

    def set_signature(self, height: int, validator_addr: str, signature: bytes) -> None:
        self._signatures[(height, validator_addr)] = bytes(signature)

    def get_signature(self, height: int, validator_addr: str) -> bytes | None:
        return self._signatures.get((height, validator_addr))

    def has_signature(self, height: int, validator_addr: str) -> bool:
        return (height, validator_addr) in self._signatures

    def get_all_signatures_for_height(self, height: int) -> dict[str, bytes]:
        """Map each attester whose bit is set at ``height`` to its stored signature."""
        bitmap = self.get_attestation_bitmap(height)
        if bitmap is None:
            return {}
        limit = len(bitmap) * 8
        signatures: dict[str, bytes] = {}
        for i, addr in enumerate(self.get_all_attesters()):
            if i >= limit:
                break
            if is_set(bitmap, i):
                signature = self.get_signature(height, addr)
                if signature is not None:
                    signatures[addr] = signature
        return signatures

    # last attested height

    def get_last_attested_height(self) -> int:
        return self._last_attested_height or 0

    def set_last_attested_height(self, height: int) -> None:
        self._last_attested_height = height

    def update_last_attested_height(self, height: int) -> None:
        """Raise the last attested height to ``height`` if it is greater."""
        if height > self.get_last_attested_height():
            self.set_last_attested_height(height)

    # attester info

    def set_attester_info(self, addr: str, info: AttesterInfo) -> None:
        self._attester_info[addr] = replace(info)

    def get_attester_info(self, addr: str) -> AttesterInfo:
        try:
            return replace(self._attester_info[addr])
        except KeyError:
            raise NotFoundError(f"attester info for {addr}") from None

    # stored attestation info

    def set_stored_attestation_info(self, height: int, info: AttestationBitmap) -> None:
        self._stored_attestation_info[height] = replace(info, bitmap=bytes(info.bitmap))

    def get_stored_attestation_info(self, height: int) -> AttestationBitmap:
        try:
            return replace(self._stored_attestation_info[height])
        except KeyError:
            raise NotFoundError(f"attestation info at height {height}") from None

    def iter_stored_attestation_info(self) -> Iterator[tuple[int, AttestationBitmap]]:
        """Yield ``(height, info)`` pairs in height order."""
        for height in sorted(self._stored_attestation_info):
            yield height, replace(self._stored_attestation_info[height])