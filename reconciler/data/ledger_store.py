"""
reconciler/data/ledger_store.py
Remote ledger key-value store interface and an in-memory implementation.

The store answers ERC725Y reads for an account at a block snapshot. An absent
key reads as empty bytes (NotFound is "absent", not an error); transport
failures raise TransportError.

InMemoryLedgerStore keeps one dict per account and a list of committed
versions so past snapshots stay readable. apply_batch() stands in for a
submitted setDataBatch transaction: one call, one new block.

Usage:
    store = InMemoryLedgerStore()
    store.apply_batch(batch)
    value = await store.get_data(account, key)
"""

from __future__ import annotations

import abc
import copy
import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Tuple

from reconciler.codec.values import to_address
from reconciler.config import BlockTag
from reconciler.errors import TransportError

if TYPE_CHECKING:
    from reconciler.data.batch import WriteBatch

logger = logging.getLogger(__name__)


class LedgerStore(abc.ABC):
    """Read side of the remote ERC725Y store."""

    @abc.abstractmethod
    async def get_data(self, account: str, key: bytes, block: BlockTag = "latest") -> bytes:
        ...

    async def get_data_batch(
        self, account: str, keys: Sequence[bytes], block: BlockTag = "latest"
    ) -> List[bytes]:
        return [await self.get_data(account, key, block) for key in keys]

    @abc.abstractmethod
    async def get_owner(self, account: str, block: BlockTag = "latest") -> str:
        ...

    @abc.abstractmethod
    async def get_code(self, address: str, block: BlockTag = "latest") -> bytes:
        ...

    async def aclose(self) -> None:
        return None


class InMemoryLedgerStore(LedgerStore):
    """Dict-backed store with numbered snapshots."""

    def __init__(self, owners: Optional[Dict[str, str]] = None, contracts: Iterable[str] = ()):
        # _versions[n] is the full state after block n
        self._versions: List[Dict[str, Dict[bytes, bytes]]] = [{}]
        self._owners = {to_address(k): to_address(v) for k, v in (owners or {}).items()}
        self._code = {to_address(a): b"\x60\x80" for a in contracts}

    @property
    def block_number(self) -> int:
        return len(self._versions) - 1

    def _state(self, block: BlockTag) -> Dict[str, Dict[bytes, bytes]]:
        if block in ("latest", "pending", "safe", "finalized"):
            return self._versions[-1]
        if block == "earliest":
            return self._versions[0]
        number = int(block, 16) if isinstance(block, str) and block.startswith("0x") else int(block)
        if number < 0 or number >= len(self._versions):
            raise TransportError(f"Unknown block {block}", details={"block": block})
        return self._versions[number]

    async def get_data(self, account: str, key: bytes, block: BlockTag = "latest") -> bytes:
        return self._state(block).get(to_address(account), {}).get(bytes(key), b"")

    async def get_owner(self, account: str, block: BlockTag = "latest") -> str:
        account = to_address(account)
        if account not in self._owners:
            raise TransportError("owner() reverted", details={"account": account})
        return self._owners[account]

    async def get_code(self, address: str, block: BlockTag = "latest") -> bytes:
        return self._code.get(to_address(address), b"")

    def set_data(self, account: str, writes: Iterable[Tuple[bytes, bytes]]) -> int:
        """Commit raw writes as one new block. Empty values delete the key. Returns the block number."""
        state = copy.deepcopy(self._versions[-1])
        slot = state.setdefault(to_address(account), {})
        for key, value in writes:
            if value:
                slot[bytes(key)] = bytes(value)
            else:
                slot.pop(bytes(key), None)
        self._versions.append(state)
        logger.debug(f"[MemoryLedger] Block {self.block_number} committed for {account}")
        return self.block_number

    def apply_batch(self, batch: "WriteBatch") -> int:
        return self.set_data(batch.account, ((w.key, w.value) for w in batch.writes))
