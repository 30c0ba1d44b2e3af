"""Read-only queries over the network module's state."""

from __future__ import annotations

from dataclasses import dataclass

from evabci.bitmap import pop_count
from evabci.common import Context, NotFoundError
from evabci.network_keeper import NetworkKeeper
from evabci.network_types import AttestationBitmap, AttesterInfo, Params, ValidatorIndex


@dataclass
class EpochInfo:
    epoch: int
    start_height: int
    end_height: int
    participation_bitmap: bytes = b""
    active_validators: int = 0
    participating_validators: int = 0


@dataclass
class SoftConfirmationStatus:
    is_soft_confirmed: bool
    voted_power: int
    total_power: int
    quorum_fraction: str


@dataclass
class AttesterSignature:
    validator_address: str
    signature: bytes


class NetworkQueryServer:
    """Answers queries about attestations, epochs and attesters."""

    def __init__(self, keeper: NetworkKeeper) -> None:
        self.keeper = keeper

    def params(self, ctx: Context) -> Params:
        return self.keeper.get_params()

    def attestation_bitmap(self, ctx: Context, height: int) -> AttestationBitmap:
        """Return the attestation bitmap at ``height`` with its derived powers."""
        k = self.keeper
        bitmap = k.get_attestation_bitmap(height)
        if bitmap is None:
            raise NotFoundError("attestation bitmap not found for height")
        voted_power = k.calculate_voted_power(bitmap)
        total_power = k.get_total_power()
        soft_confirmed = k.is_soft_confirmed(height)
        return AttestationBitmap(
            height=height,
            bitmap=bytes(bitmap),
            voted_power=voted_power,
            total_power=total_power,
            soft_confirmed=soft_confirmed,
        )

    def epoch_info(self, ctx: Context, epoch: int) -> EpochInfo:
        """Describe an epoch's height range and its participation."""
        k = self.keeper
        length = k.get_params().epoch_length
        start_height = epoch * length
        end_height = (epoch + 1) * length - 1

        epoch_bitmap = k.get_epoch_bitmap(epoch)
        if epoch_bitmap is None:
            return EpochInfo(epoch=epoch, start_height=start_height, end_height=end_height)

        validators = k.staking_keeper.get_last_validators()
        active = sum(1 for v in validators if v.is_bonded())
        return EpochInfo(
            epoch=epoch,
            start_height=start_height,
            end_height=end_height,
            participation_bitmap=bytes(epoch_bitmap),
            active_validators=active,
            participating_validators=pop_count(epoch_bitmap),
        )

    def validator_index(self, ctx: Context, address: str) -> ValidatorIndex:
        k = self.keeper
        index = k.get_validator_index(address)
        if index is None:
            raise NotFoundError("validator index not found")
        try:
            power = k.get_validator_power(index)
        except NotFoundError as err:
            raise NotFoundError(f"get validator power: {err.message}") from err
        return ValidatorIndex(address=address, index=index, power=power)

    def soft_confirmation_status(self, ctx: Context, height: int) -> SoftConfirmationStatus:
        k = self.keeper
        confirmed = k.is_soft_confirmed(height)
        bitmap = k.get_attestation_bitmap(height)
        total_power = k.get_total_power()
        voted_power = k.calculate_voted_power(bitmap) if bitmap is not None else 0
        return SoftConfirmationStatus(
            is_soft_confirmed=confirmed,
            voted_power=voted_power,
            total_power=total_power,
            quorum_fraction=k.get_params().quorum_fraction,
        )

    def attester_signatures(self, ctx: Context, height: int) -> list[AttesterSignature]:
        """Return the signatures of every attester that voted at ``height``."""
        signatures = self.keeper.get_all_signatures_for_height(height)
        return [
            AttesterSignature(validator_address=addr, signature=sig)
            for addr, sig in signatures.items()
        ]

    def last_attested_height(self, ctx: Context) -> int:
        return self.keeper.get_last_attested_height()

    def attester_info(self, ctx: Context, validator_address: str) -> AttesterInfo:
        try:
            return self.keeper.get_attester_info(validator_address)
        except NotFoundError:
            raise NotFoundError("attester info not found") from None