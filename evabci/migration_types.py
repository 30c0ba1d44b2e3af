"""Records, store keys and messages of the migration manager."""

from __future__ import annotations

from dataclasses import dataclass, field

from evabci.common import InvalidTypeError, PubKey

MODULE_NAME = "migrationmngr"

MIGRATION_KEY = b"\x13"
SEQUENCER_KEY = b"\x14"
MIGRATION_STEP_KEY = b"\x15"

MSG_MIGRATE_TO_EVOLVE_AMINO_NAME = "migrationmngr/v1/MsgMigrateToEvolve"

_CONSENSUS_KEY_TYPES = frozenset({"ed25519", "secp256k1"})


def _consensus_key(pubkey: object) -> PubKey:
    if not isinstance(pubkey, PubKey):
        raise InvalidTypeError(f"expecting cryptotypes.PubKey, got {type(pubkey).__name__}")
    if pubkey.key_type not in _CONSENSUS_KEY_TYPES:
        raise InvalidTypeError(f"cryptotype to comet key: unsupported key type {pubkey.key_type}")
    return PubKey(key=bytes(pubkey.key), key_type=pubkey.key_type)


@dataclass
class Sequencer:
    name: str = ""
    consensus_pubkey: PubKey | None = None

    def tm_cons_public_key(self) -> PubKey:
        """Return the consensus key in the form the consensus engine accepts."""
        return _consensus_key(self.consensus_pubkey)


@dataclass
class Attester:
    name: str = ""
    consensus_pubkey: PubKey | None = None

    def tm_cons_public_key(self) -> PubKey:
        """Return the consensus key in the form the consensus engine accepts."""
        return _consensus_key(self.consensus_pubkey)


@dataclass
class EvolveMigration:
    block_height: int = 0
    sequencer: Sequencer = field(default_factory=Sequencer)
    attesters: list[Attester] = field(default_factory=list)
    stay_on_comet: bool = False


@dataclass
class MsgMigrateToEvolve:
    authority: str = ""
    block_height: int = 0
    sequencer: Sequencer = field(default_factory=Sequencer)
    attesters: list[Attester] = field(default_factory=list)
    stay_on_comet: bool = False