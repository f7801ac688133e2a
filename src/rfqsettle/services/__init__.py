"""Background services: relayer and reconciliation."""

from rfqsettle.services.reconcile import TokenReconciliation, reconcile_chain
from rfqsettle.services.relayer import RelayJob, RelayResult, Relayer

__all__ = ["RelayJob", "RelayResult", "Relayer", "TokenReconciliation", "reconcile_chain"]
