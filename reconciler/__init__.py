"""Incident projection: change-feed deltas plus periodic full resync."""

from reconciler.reconciler import Reconciler, carry_one_way_state

__all__ = ["Reconciler", "carry_one_way_state"]
