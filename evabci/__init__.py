"""In-memory attester network, migration manager and pseudo-staking state machines."""

__version__ = "0.1.0"