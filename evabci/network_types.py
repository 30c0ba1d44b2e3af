"""Parameters, genesis state, store keys and messages of the network module."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from decimal import Decimal

from evabci.common import PubKey

MODULE_NAME = "network"
STORE_KEY = MODULE_NAME
ROUTER_KEY = MODULE_NAME
QUERIER_ROUTE = MODULE_NAME

VALIDATOR_INDEX_PREFIX = b"validator_index"
VALIDATOR_POWER_PREFIX = b"validator_power"
ATTESTATION_BITMAP_PREFIX = b"attestation_bitmap"
EPOCH_BITMAP_PREFIX = b"epoch_bitmap"
ATTESTER_SET_PREFIX = b"attester_set"
ATTESTER_INFO_PREFIX = b"attester_info"
SIGNATURE_PREFIX = b"signature"
STORED_ATTESTATION_INFO_PREFIX = b"stored_attestation_info"
LAST_ATTESTED_HEIGHT_KEY = b"last_attested_height"
PARAMS_KEY = b"params"

TYPE_MSG_ATTEST = "attest"
TYPE_MSG_JOIN_ATTESTER_SET = "join_attester_set"
TYPE_MSG_LEAVE_ATTESTER_SET = "leave_attester_set"
TYPE_MSG_UPDATE_PARAMS = "update_params"

DECIMAL_PRECISION = 18
_MAX_DEC_BIT_LEN = 256 + 60
_MAX_UINT16 = 0xFFFF
_DEC_PATTERN = re.compile(r"(\d*)(?:\.(\d*))?")


class SignMode(enum.IntEnum):
    UNSPECIFIED = 0
    CHECKPOINT = 1
    IBC_ONLY = 2


def parse_dec(text: str) -> Decimal:
    """Parse a fixed-point decimal string with at most 18 fractional digits."""
    if not text:
        raise ValueError("decimal string cannot be empty")
    body = text[1:] if text.startswith("-") else text
    if not body:
        raise ValueError("decimal string cannot be empty")
    match = _DEC_PATTERN.fullmatch(body)
    if match is None or body.count(".") > 1:
        raise ValueError(f"invalid decimal string: {text}")
    whole, frac = match.group(1), match.group(2)
    if frac is not None and (not frac or not whole):
        raise ValueError("invalid decimal length")
    if not whole:
        raise ValueError(f"invalid decimal string: {text}")
    frac = frac or ""
    if len(frac) > DECIMAL_PRECISION:
        raise ValueError(f"value '{text}' has too many decimals places")
    scaled = int(whole + frac.ljust(DECIMAL_PRECISION, "0"))
    if scaled.bit_length() > _MAX_DEC_BIT_LEN:
        raise ValueError(f"decimal '{text}' out of range")
    value = Decimal(scaled).scaleb(-DECIMAL_PRECISION) if scaled else Decimal(0)
    return -value if text.startswith("-") else value


def format_dec(value: Decimal | int) -> str:
    """Render a decimal with exactly 18 fractional digits, truncating the rest."""
    numerator, denominator = Decimal(value).as_integer_ratio()
    scaled = abs(numerator) * 10**DECIMAL_PRECISION // denominator
    whole, frac = divmod(scaled, 10**DECIMAL_PRECISION)
    sign = "-" if numerator < 0 and scaled else ""
    return f"{sign}{whole}.{frac:0{DECIMAL_PRECISION}d}"


def _validate_positive(value: object, what: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"invalid parameter type: {type(value).__name__}")
    if value <= 0:
        raise ValueError(f"{what} must be positive: {value}")


def _validate_fraction(value: object, what: str) -> None:
    if not isinstance(value, str):
        raise ValueError(f"invalid parameter type: {type(value).__name__}")
    try:
        dec = parse_dec(value)
    except ValueError as err:
        raise ValueError(f"invalid decimal string: {err}") from err
    if dec <= 0 or dec > 1:
        raise ValueError(f"{what} must be between 0 and 1: {value}")


def _validate_sign_mode(value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"invalid parameter type: {type(value).__name__}")
    if value == SignMode.UNSPECIFIED:
        raise ValueError("sign mode cannot be unspecified")
    if value != SignMode.CHECKPOINT:
        raise ValueError(f"invalid sign mode: {int(value)}")


@dataclass
class Params:
    epoch_length: int = 0
    quorum_fraction: str = ""
    min_participation: str = ""
    prune_after: int = 0
    emergency_mode: bool = False
    sign_mode: SignMode = SignMode.UNSPECIFIED

    def validate(self) -> None:
        """Raise ValueError if any parameter is out of bounds."""
        _validate_positive(self.epoch_length, "epoch length")
        _validate_fraction(self.quorum_fraction, "quorum fraction")
        _validate_fraction(self.min_participation, "min participation")
        _validate_positive(self.prune_after, "prune after")
        _validate_sign_mode(self.sign_mode)


DEFAULT_EPOCH_LENGTH = 1
DEFAULT_QUORUM_FRACTION = Decimal("0.667")
DEFAULT_MIN_PARTICIPATION = Decimal("0.5")
DEFAULT_PRUNE_AFTER = 7
DEFAULT_SIGN_MODE = SignMode.CHECKPOINT


def new_params(
    epoch_length: int,
    quorum_fraction: Decimal,
    min_participation: Decimal,
    prune_after: int,
    sign_mode: SignMode,
) -> Params:
    return Params(
        epoch_length=epoch_length,
        quorum_fraction=format_dec(quorum_fraction),
        min_participation=format_dec(min_participation),
        prune_after=prune_after,
        sign_mode=sign_mode,
    )


def default_params() -> Params:
    return new_params(
        DEFAULT_EPOCH_LENGTH,
        DEFAULT_QUORUM_FRACTION,
        DEFAULT_MIN_PARTICIPATION,
        DEFAULT_PRUNE_AFTER,
        DEFAULT_SIGN_MODE,
    )


@dataclass
class ValidatorIndex:
    address: str
    index: int
    power: int = 0


@dataclass
class AttestationBitmap:
    height: int
    bitmap: bytes = b""
    voted_power: int = 0
    total_power: int = 0
    soft_confirmed: bool = False


@dataclass
class AttesterInfo:
    validator: str
    pubkey: PubKey | None = None
    joined_height: int = 0


@dataclass
class GenesisState:
    params: Params = field(default_factory=Params)
    validator_indices: list[ValidatorIndex] = field(default_factory=list)
    attestation_bitmaps: list[AttestationBitmap] = field(default_factory=list)

    def validate(self) -> None:
        """Raise ValueError if the genesis state is inconsistent."""
        try:
            self.params.validate()
        except ValueError as err:
            raise ValueError(f"invalid params: {err}") from err

        if len(self.validator_indices) > _MAX_UINT16:
            raise ValueError("too many validator indices")

        addresses: set[str] = set()
        indices: set[int] = set()
        for vi in self.validator_indices:
            if vi.address in addresses:
                raise ValueError(f"duplicate validator address: {vi.address}")
            if vi.index in indices:
                raise ValueError(f"duplicate index: {vi.index}")
            addresses.add(vi.address)
            indices.add(vi.index)

        for ab in self.attestation_bitmaps:
            if ab.height <= 0:
                raise ValueError(f"invalid attestation height: {ab.height}")
            if ab.voted_power > ab.total_power:
                raise ValueError(f"voted power exceeds total power at height {ab.height}")


def default_genesis_state() -> GenesisState:
    return GenesisState(params=default_params())


def _u64(value: int) -> bytes:
    return (value % 2**64).to_bytes(8, "big")


def get_validator_index_key(addr: str) -> bytes:
    return VALIDATOR_INDEX_PREFIX + addr.encode()


def get_validator_power_key(index: int) -> bytes:
    return VALIDATOR_POWER_PREFIX + (index % 2**16).to_bytes(2, "big")


def get_attestation_key(height: int) -> bytes:
    return ATTESTATION_BITMAP_PREFIX + _u64(height)


def get_signature_key(height: int, addr: str) -> bytes:
    return SIGNATURE_PREFIX + _u64(height) + addr.encode()


def get_epoch_bitmap_key(epoch: int) -> bytes:
    return EPOCH_BITMAP_PREFIX + _u64(epoch)


def get_attester_set_key(addr: str) -> bytes:
    return ATTESTER_SET_PREFIX + addr.encode()


def get_attester_info_key(addr: str) -> bytes:
    return ATTESTER_INFO_PREFIX + addr.encode()


@dataclass
class MsgAttest:
    authority: str
    consensus_address: str
    height: int
    vote: bytes = b""


@dataclass
class MsgJoinAttesterSet:
    authority: str
    consensus_address: str
    pubkey: PubKey | None = None


@dataclass
class MsgLeaveAttesterSet:
    authority: str
    consensus_address: str


@dataclass
class MsgUpdateParams:
    authority: str
    params: Params = field(default_factory=Params)


_AMINO_NAMES: dict[type, str] = {
    MsgAttest: "network/Attest",
    MsgJoinAttesterSet: "network/JoinAttesterSet",
    MsgLeaveAttesterSet: "network/LeaveAttesterSet",
    MsgUpdateParams: "network/UpdateParams",
}


def amino_name(msg: object) -> str:
    """Return the registered legacy name of a network message."""
    try:
        return _AMINO_NAMES[type(msg)]
    except KeyError:
        raise TypeError(f"unregistered message type: {type(msg).__name__}") from None