# ============================================================================
# reconciler/__init__.py
# LSP6 permission & LSP4 metadata reconciler
# ============================================================================
#
# Read current ERC725Y state, diff against desired state, emit WriteBatches.
# Submission is left to the caller.
#
# ============================================================================

from reconciler.config import LedgerConfig, ReconcilerConfig, setup_logging
from reconciler.data.batch import DataWrite, WriteBatch
from reconciler.data.ledger_store import InMemoryLedgerStore, LedgerStore
from reconciler.orchestrator import Reconciler
from reconciler.planner import ReconciliationPlanner, check_authority
from reconciler.registry.reader import ControllerArray, RegistryReader, RegistrySnapshot

__all__ = [
    "LedgerConfig",
    "ReconcilerConfig",
    "setup_logging",
    "DataWrite",
    "WriteBatch",
    "InMemoryLedgerStore",
    "LedgerStore",
    "Reconciler",
    "ReconciliationPlanner",
    "check_authority",
    "ControllerArray",
    "RegistryReader",
    "RegistrySnapshot",
]
