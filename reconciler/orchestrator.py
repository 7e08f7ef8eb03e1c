"""
reconciler/orchestrator.py
Wires store, reader and planner together from one explicit config.

Usage:
    config = ReconcilerConfig.from_env()
    async with Reconciler.connect(config) as rec:
        batch = await rec.planner.plan_grant(profile, controller, {"CALL": True})
        await rec.authorize(profile, executor, batch)
        ...submit encode_set_data_batch(batch) elsewhere...
        await rec.reader.await_convergence(batch)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from reconciler.config import ReconcilerConfig
from reconciler.data.batch import WriteBatch
from reconciler.data.ledger_store import LedgerStore
from reconciler.net.adapter import JsonRpcLedgerStore
from reconciler.planner.authority import check_authority
from reconciler.planner.planner import ReconciliationPlanner
from reconciler.registry.reader import RegistryReader

logger = logging.getLogger(__name__)


class Reconciler:
    def __init__(self, store: LedgerStore, config: Optional[ReconcilerConfig] = None):
        self.config = config or ReconcilerConfig()
        self.store = store
        self.reader = RegistryReader(store, self.config.ledger)
        self.planner = ReconciliationPlanner(self.reader)

    @classmethod
    def connect(cls, config: ReconcilerConfig) -> "Reconciler":
        return cls(JsonRpcLedgerStore(config.ledger), config)

    async def authorize(self, account: Any, executor: Any, batch: WriteBatch) -> list:
        block = batch.block if batch.block is not None else "latest"
        return await check_authority(self.reader, account, executor, batch, block)

    async def __aenter__(self) -> "Reconciler":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.store.aclose()
