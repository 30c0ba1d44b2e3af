"""Staking wrapper that suppresses validator-set changes and penalties.

A single sequencer chain must not have its consensus set altered by staking,
so validator updates are only handed out at genesis and slashing and jailing
have no effect on the validators.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from evabci.common import Context, ValidatorUpdate


class StakingKeeper:
    """Wraps a staking keeper; anything not overridden here is taken from ``inner``.

    Penalties that are suppressed are recorded in ``suppressed_penalties`` as
    ``(action, height, cons_addr)`` tuples so they can be inspected.
    """

    def __init__(self, inner: Any) -> None:
        self.inner = inner
        self.hooks: list[Any] = []
        self.suppressed_penalties: list[tuple[str, int, bytes]] = []

    def __getattr__(self, name: str) -> Any:
        if name in ("inner", "hooks", "suppressed_penalties"):
            raise AttributeError(name)
        return getattr(self.inner, name)

    def apply_and_return_validator_set_updates(self, ctx: Context) -> list[ValidatorUpdate]:
        """Apply state changes; return the updates only at genesis."""
        updates = self.inner.apply_and_return_validator_set_updates(ctx)
        if ctx.block_height == 0:
            return updates
        return []

    def _suppress(self, action: str, ctx: Context, cons_addr: bytes) -> None:
        self.suppressed_penalties.append((action, ctx.block_height, bytes(cons_addr)))

    def slash(self, ctx: Context, cons_addr: bytes, infraction_height: int, power: int, slash_fraction: Any) -> int:
        """Slashing is disabled; the request is recorded and nothing is burned."""
        self._suppress("slash", ctx, cons_addr)
        return 0

    def slash_with_infraction_reason(
        self,
        ctx: Context,
        cons_addr: bytes,
        infraction_height: int,
        power: int,
        slash_fraction: Any,
        infraction: Any,
    ) -> int:
        """Slashing is disabled; the request is recorded and nothing is burned."""
        self._suppress("slash", ctx, cons_addr)
        return 0

    def jail(self, ctx: Context, cons_addr: bytes) -> None:
        """Jailing is disabled; the request is recorded only."""
        self._suppress("jail", ctx, cons_addr)

    def unjail(self, ctx: Context, cons_addr: bytes) -> None:
        """Unjailing is disabled; the request is recorded only."""
        self._suppress("unjail", ctx, cons_addr)

    def set_hooks(self, hooks: Sequence[Any]) -> None:
        self.hooks = list(hooks)
        forward = getattr(self.inner, "set_hooks", None)
        if callable(forward):
            forward(self.hooks)


def _go_list(items: Sequence[str]) -> str:
    return "[" + " ".join(items) + "]"


def invoke_set_staking_hooks(
    hooks_order: Sequence[str] | None,
    keeper: StakingKeeper | None,
    staking_hooks: Mapping[str, Any],
) -> None:
    """Install the modules' staking hooks on ``keeper`` in the configured order.

    With no configured order the hooks run in module-name order.
    """
    if keeper is None or hooks_order is None:
        return

    mod_names = list(staking_hooks)
    order = list(hooks_order) or sorted(mod_names)

    if len(order) != len(mod_names):
        raise ValueError(
            f"len(hooks_order: {_go_list(order)}) != len(hooks modules: {_go_list(mod_names)})"
        )
    if not mod_names:
        return

    multi_hooks = []
    for name in order:
        if name not in staking_hooks:
            raise ValueError(f"can't find staking hooks for module {name}")
        multi_hooks.append(staking_hooks[name])
    keeper.set_hooks(multi_hooks)


def end_block(keeper: StakingKeeper, ctx: Context) -> list[ValidatorUpdate]:
    """Run the staking end blocker but hand no validator updates to consensus."""
    keeper.end_blocker(ctx)
    return []