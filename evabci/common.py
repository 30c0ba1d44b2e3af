"""Shared chain primitives: errors, block context, addresses and staking records."""

from __future__ import annotations

import enum
import hashlib
from dataclasses import dataclass, field, replace
from decimal import Decimal

ACCOUNT_PREFIX = "cosmos"
VALIDATOR_PREFIX = "cosmosvaloper"
MAX_ADDRESS_LENGTH = 255
_BECH32_LIMIT = 1023
_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


class ModuleError(Exception):
    """Base class of errors reported by the chain modules."""

    description = "module error"

    def __init__(self, message: str = "") -> None:
        self.message = message
        text = f"{message}: {self.description}" if message else self.description
        super().__init__(text)


class InvalidRequestError(ModuleError):
    description = "invalid request"


class UnauthorizedError(ModuleError):
    description = "unauthorized"


class NotFoundError(ModuleError):
    description = "not found"


class InvalidAddressError(ModuleError):
    description = "invalid address"


class InvalidSignerError(ModuleError):
    description = "expected gov account as only signer for proposal message"


class InvalidTypeError(ModuleError):
    description = "invalid type"


class LogicError(ModuleError):
    description = "internal logic error"


@dataclass
class Event:
    """A typed event with string attributes, emitted while processing a block."""

    type: str
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass
class Context:
    """State of the block being processed.

    ``store_keys`` names the stores mounted on the chain; derived contexts
    share the same event list.
    """

    block_height: int = 0
    chain_id: str = ""
    events: list[Event] = field(default_factory=list)
    store_keys: frozenset[str] = frozenset()

    def with_block_height(self, height: int) -> Context:
        return replace(self, block_height=height)

    def emit_event(self, event: Event) -> None:
        self.events.append(event)


def _polymod(values: list[int]) -> int:
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = ((checksum & 0x1FFFFFF) << 5) ^ value
        for bit, generator in enumerate(_GENERATOR):
            if (top >> bit) & 1:
                checksum ^= generator
    return checksum


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _convert_bits(data: bytes | list[int], from_bits: int, to_bits: int, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    out: list[int] = []
    mask = (1 << to_bits) - 1
    for value in data:
        if value >> from_bits:
            raise ValueError(f"invalid data range: {value}")
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & mask)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & mask)
    elif bits >= from_bits or (acc << (to_bits - bits)) & mask:
        raise ValueError("invalid padding")
    return out


def bech32_encode(hrp: str, data: bytes) -> str:
    """Encode raw bytes under a human-readable part."""
    if not hrp or any(not 33 <= ord(c) <= 126 for c in hrp):
        raise ValueError(f"invalid human-readable part: {hrp!r}")
    hrp = hrp.lower()
    words = _convert_bits(bytes(data), 8, 5, True)
    polymod = _polymod(_hrp_expand(hrp) + words + [0] * 6) ^ 1
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(_CHARSET[w] for w in words + checksum)


def bech32_decode(address: str) -> tuple[str, bytes]:
    """Decode a bech32 string into its human-readable part and raw bytes."""
    if not 8 <= len(address) <= _BECH32_LIMIT:
        raise ValueError(f"invalid bech32 string length {len(address)}")
    if any(not 33 <= ord(c) <= 126 for c in address):
        raise ValueError("invalid character in bech32 string")
    if address.lower() != address and address.upper() != address:
        raise ValueError("string not all lowercase or all uppercase")
    address = address.lower()
    separator = address.rfind("1")
    if separator < 1 or separator + 7 > len(address):
        raise ValueError("invalid separator index")
    hrp, payload = address[:separator], address[separator + 1 :]
    try:
        words = [_CHARSET.index(c) for c in payload]
    except ValueError:
        raise ValueError("invalid character in bech32 data part") from None
    if _polymod(_hrp_expand(hrp) + words) != 1:
        raise ValueError("invalid checksum")
    return hrp, bytes(_convert_bits(words[:-6], 5, 8, False))


def _to_bech32(prefix: str, raw: bytes) -> str:
    return bech32_encode(prefix, raw) if raw else ""


def _from_bech32(address: str, prefix: str) -> bytes:
    if not address.strip():
        raise InvalidAddressError("empty address string is not allowed")
    try:
        hrp, raw = bech32_decode(address)
    except ValueError as err:
        raise InvalidAddressError(f"decoding bech32 failed: {err}") from err
    if hrp != prefix:
        raise InvalidAddressError(f"invalid Bech32 prefix; expected {prefix}, got {hrp}")
    if not raw:
        raise InvalidAddressError("addresses cannot be empty")
    if len(raw) > MAX_ADDRESS_LENGTH:
        raise InvalidAddressError(
            f"address max length is {MAX_ADDRESS_LENGTH}, got {len(raw)}"
        )
    return raw


def val_address_to_bech32(raw: bytes) -> str:
    return _to_bech32(VALIDATOR_PREFIX, raw)


def acc_address_to_bech32(raw: bytes) -> str:
    return _to_bech32(ACCOUNT_PREFIX, raw)


def val_address_from_bech32(address: str) -> bytes:
    return _from_bech32(address, VALIDATOR_PREFIX)


def acc_address_from_bech32(address: str) -> bytes:
    return _from_bech32(address, ACCOUNT_PREFIX)


def module_address(name: str) -> bytes:
    """Return the 20-byte account address owned by a module."""
    return hashlib.sha256(name.encode()).digest()[:20]


@dataclass(frozen=True)
class PubKey:
    """A consensus public key."""

    key: bytes
    key_type: str = "ed25519"


class BondStatus(enum.IntEnum):
    UNSPECIFIED = 0
    UNBONDED = 1
    UNBONDING = 2
    BONDED = 3


@dataclass(frozen=True)
class ValidatorUpdate:
    """A change of voting power handed to the consensus engine."""

    pub_key: PubKey
    power: int


@dataclass
class Validator:
    operator_address: str = ""
    consensus_pubkey: PubKey | None = None
    status: BondStatus = BondStatus.UNSPECIFIED
    moniker: str = ""
    tokens: int = 0

    def is_bonded(self) -> bool:
        return self.status == BondStatus.BONDED

    def abci_update_zero(self) -> ValidatorUpdate:
        """Return an update that removes this validator from the consensus set."""
        if self.consensus_pubkey is None:
            raise InvalidTypeError("validator has no consensus public key")
        return ValidatorUpdate(pub_key=self.consensus_pubkey, power=0)


@dataclass
class Delegation:
    delegator_address: str
    validator_address: str
    shares: Decimal = Decimal(0)