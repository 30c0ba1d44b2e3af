"""Genesis import, export and JSON encoding for the network module."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import replace
from typing import Any

from evabci.common import NotFoundError
from evabci.network_keeper import NetworkKeeper
from evabci.network_types import (
    AttestationBitmap,
    GenesisState,
    Params,
    SignMode,
    ValidatorIndex,
    default_genesis_state,
)

_U16 = 2**16


def init_genesis(keeper: NetworkKeeper, genesis: GenesisState) -> None:
    """Load a genesis state into the keeper."""
    keeper.set_params(genesis.params)

    for vi in genesis.validator_indices:
        keeper.set_validator_index(vi.address, vi.index % _U16, vi.power)
        keeper.set_attester_set_member(vi.address)

    for ab in genesis.attestation_bitmaps:
        keeper.set_attestation_bitmap(ab.height, ab.bitmap)
        keeper.set_stored_attestation_info(ab.height, ab)
        if ab.soft_confirmed:
            stored = keeper.get_stored_attestation_info(ab.height)
            keeper.set_stored_attestation_info(ab.height, replace(stored, soft_confirmed=True))


def export_genesis(keeper: NetworkKeeper) -> GenesisState:
    """Build a genesis state from the keeper's current contents."""
    genesis = default_genesis_state()
    genesis.params = keeper.get_params()

    indices: list[ValidatorIndex] = []
    for addr, index in keeper.iter_validator_indices():
        try:
            power = keeper.get_validator_power(index)
        except NotFoundError as err:
            raise NotFoundError(f"get validator power: {err.message}") from err
        indices.append(ValidatorIndex(address=addr, index=index, power=power))
    genesis.validator_indices = indices

    genesis.attestation_bitmaps = [ab for _, ab in keeper.iter_stored_attestation_info()]
    return genesis


def _sign_mode_name(mode: SignMode) -> str:
    return f"SIGN_MODE_{SignMode(mode).name}"


def _parse_sign_mode(value: Any) -> SignMode:
    if isinstance(value, str):
        name = value.removeprefix("SIGN_MODE_")
        try:
            return SignMode[name]
        except KeyError:
            raise ValueError(f"unknown sign mode: {value}") from None
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return SignMode(value)
        except ValueError:
            raise ValueError(f"unknown sign mode: {value}") from None
    raise ValueError(f"invalid sign mode: {value!r}")


def _parse_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"invalid integer for {name}: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 10)
        except ValueError:
            raise ValueError(f"invalid integer for {name}: {value!r}") from None
    raise ValueError(f"invalid integer for {name}: {value!r}")


def _parse_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"invalid boolean for {name}: {value!r}")
    return value


def _parse_bytes(value: Any, name: str) -> bytes:
    if value is None or value == "":
        return b""
    if not isinstance(value, str):
        raise ValueError(f"invalid bytes for {name}: {value!r}")
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as err:
        raise ValueError(f"invalid base64 for {name}: {err}") from err


def _params_to_dict(params: Params) -> dict[str, Any]:
    return {
        "epoch_length": str(params.epoch_length),
        "quorum_fraction": params.quorum_fraction,
        "min_participation": params.min_participation,
        "prune_after": str(params.prune_after),
        "emergency_mode": params.emergency_mode,
        "sign_mode": _sign_mode_name(params.sign_mode),
    }


def _params_from_dict(data: dict[str, Any]) -> Params:
    return Params(
        epoch_length=_parse_int(data.get("epoch_length", 0), "epoch_length"),
        quorum_fraction=str(data.get("quorum_fraction", "")),
        min_participation=str(data.get("min_participation", "")),
        prune_after=_parse_int(data.get("prune_after", 0), "prune_after"),
        emergency_mode=_parse_bool(data.get("emergency_mode", False), "emergency_mode"),
        sign_mode=_parse_sign_mode(data.get("sign_mode", 0)),
    )


def genesis_to_json(genesis: GenesisState) -> str:
    """Encode a genesis state as JSON, with 64-bit integers written as strings."""
    document = {
        "params": _params_to_dict(genesis.params),
        "validator_indices": [
            {"address": vi.address, "index": vi.index, "power": str(vi.power)}
            for vi in genesis.validator_indices
        ],
        "attestation_bitmaps": [
            {
                "height": str(ab.height),
                "bitmap": base64.b64encode(ab.bitmap).decode(),
                "voted_power": str(ab.voted_power),
                "total_power": str(ab.total_power),
                "soft_confirmed": ab.soft_confirmed,
            }
            for ab in genesis.attestation_bitmaps
        ],
    }
    return json.dumps(document)


def genesis_from_json(data: str | bytes) -> GenesisState:
    """Decode a genesis state; raise ValueError on malformed input."""
    try:
        document = json.loads(data)
    except json.JSONDecodeError as err:
        raise ValueError(str(err)) from err
    if not isinstance(document, dict):
        raise ValueError("genesis state must be a JSON object")

    params_doc = document.get("params") or {}
    if not isinstance(params_doc, dict):
        raise ValueError("params must be a JSON object")

    indices = [
        ValidatorIndex(
            address=str(item.get("address", "")),
            index=_parse_int(item.get("index", 0), "index"),
            power=_parse_int(item.get("power", 0), "power"),
        )
        for item in document.get("validator_indices") or []
    ]
    bitmaps = [
        AttestationBitmap(
            height=_parse_int(item.get("height", 0), "height"),
            bitmap=_parse_bytes(item.get("bitmap"), "bitmap"),
            voted_power=_parse_int(item.get("voted_power", 0), "voted_power"),
            total_power=_parse_int(item.get("total_power", 0), "total_power"),
            soft_confirmed=_parse_bool(item.get("soft_confirmed", False), "soft_confirmed"),
        )
        for item in document.get("attestation_bitmaps") or []
    ]
    return GenesisState(
        params=_params_from_dict(params_doc),
        validator_indices=indices,
        attestation_bitmaps=bitmaps,
    )


def default_genesis_json() -> str:
    return genesis_to_json(default_genesis_state())


def validate_genesis_json(data: str | bytes) -> None:
    """Decode and validate a genesis document, raising ValueError if it is bad."""
    try:
        genesis = genesis_from_json(data)
    except (ValueError, AttributeError, TypeError) as err:
        raise ValueError(f"unmarshal genesis state: {err}") from err
    genesis.validate()