"""
reconciler/registry/reader.py
Registry Reader: fetches current LSP6 / metadata state for an account.

Every read goes against a caller-supplied block snapshot and is bounded by the
configured request timeout. Absent keys are not errors: they read as the zero
bitmask, an empty allowed-calls list, an empty controller array or None.

No read-after-write consistency is assumed. After submitting a batch, call
await_convergence() to poll until the ledger shows the written values.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from reconciler.codec.allowed_calls import AllowedCallEntry, decode_allowed_calls
from reconciler.codec.keys import (
    ADDRESS_PERMISSIONS_ARRAY,
    allowed_calls_key,
    array_key,
    array_element_key,
    permissions_key,
    resolve_key,
)
from reconciler.codec.permissions import ZERO_BITMASK, normalize_bitmask
from reconciler.codec.values import (
    MetadataPointer,
    decode_address_value,
    decode_array_length,
    decode_metadata_pointer,
    to_address,
)
from reconciler.config import BlockTag, LedgerConfig
from reconciler.data.batch import WriteBatch
from reconciler.data.ledger_store import LedgerStore
from reconciler.errors import ReconcilerError, RegistryInconsistencyError, RemoteTimeoutError
from reconciler.utils.async_helpers import gather_strict, run_with_timeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ControllerArray:
    """Controllers in stored order plus the length read from the ledger."""
    addresses: List[str]
    length: int
    raw_length: bytes = b""

    def __contains__(self, address: Any) -> bool:
        target = to_address(address)
        return any(a == target for a in self.addresses)

    def index(self, address: Any) -> int:
        target = to_address(address)
        for i, a in enumerate(self.addresses):
            if a == target:
                return i
        raise ValueError(f"{target} is not a controller")


@dataclass(frozen=True)
class RegistrySnapshot:
    account: str
    controller: str
    permissions: bytes
    allowed_calls: List[AllowedCallEntry]
    controllers: ControllerArray
    block: BlockTag


class RegistryReader:
    def __init__(self, store: LedgerStore, config: Optional[LedgerConfig] = None):
        self.store = store
        self.config = config or LedgerConfig()

    async def _read(self, account: str, key: bytes, block: BlockTag, **context: Any) -> bytes:
        details = {"account": account, "key": "0x" + key.hex(), "block": block, **context}
        try:
            return await run_with_timeout(
                self.store.get_data(account, key, block),
                self.config.request_timeout,
                name="getData",
                context=details,
            )
        except ReconcilerError as e:
            raise e.with_context(**details)

    async def _read_many(self, account: str, keys: Sequence[bytes], block: BlockTag, **context: Any) -> List[bytes]:
        details = {"account": account, "block": block, "key_count": len(keys), **context}
        try:
            values = await run_with_timeout(
                self.store.get_data_batch(account, list(keys), block),
                self.config.request_timeout,
                name="getDataBatch",
                context=details,
            )
        except ReconcilerError as e:
            raise e.with_context(**details)
        return list(values)

    async def get_values(self, account: Any, keys: Sequence[bytes], block: BlockTag = "latest") -> List[bytes]:
        """Raw values for several keys in one bounded batch read."""
        return await self._read_many(to_address(account), keys, block)

    async def get_raw(self, account: Any, name_or_key: Any, *dynamic_parts: Any, block: BlockTag = "latest") -> bytes:
        account = to_address(account)
        return await self._read(account, resolve_key(name_or_key, dynamic_parts), block)

    async def get_permissions(self, account: Any, controller: Any, block: BlockTag = "latest") -> bytes:
        """The controller's 32-byte bitmask; ZERO_BITMASK when the key is absent."""
        account, controller = to_address(account), to_address(controller)
        raw = await self._read(account, permissions_key(controller), block, controller=controller)
        if not raw:
            return ZERO_BITMASK
        try:
            return normalize_bitmask(raw)
        except ReconcilerError as e:
            raise e.with_context(account=account, controller=controller, block=block)

    async def get_allowed_calls(self, account: Any, controller: Any, block: BlockTag = "latest") -> List[AllowedCallEntry]:
        account, controller = to_address(account), to_address(controller)
        raw = await self._read(account, allowed_calls_key(controller), block, controller=controller)
        try:
            return decode_allowed_calls(raw)
        except ReconcilerError as e:
            raise e.with_context(account=account, controller=controller, block=block)

    async def get_controller_array(self, account: Any, block: BlockTag = "latest") -> ControllerArray:
        """
        Read `AddressPermissions[]` and cross-check the stored length.

        Elements 0..length-1 must all exist and index `length` must be empty.
        The last element and the slot after it are read first, then the rest in
        chunks of `max_batch_size`, each chunk under the request timeout.
        A stored length above `max_controllers`, or any disagreement, raises
        RegistryInconsistencyError; the array is never padded or truncated.
        """
        account = to_address(account)
        length_key = array_key(ADDRESS_PERMISSIONS_ARRAY)
        raw_length = await self._read(account, length_key, block)
        try:
            length = decode_array_length(raw_length)
        except ReconcilerError as e:
            raise e.with_context(account=account, key="0x" + length_key.hex(), block=block)

        if length > self.config.max_controllers:
            raise RegistryInconsistencyError(
                f"Controller array length {length} exceeds the limit of {self.config.max_controllers}",
                details={
                    "account": account,
                    "stored_length": length,
                    "max_controllers": self.config.max_controllers,
                    "block": block,
                },
            )

        boundary = [i for i in (length - 1, length) if i >= 0]
        edge = await self._read_many(account, [array_element_key(ADDRESS_PERMISSIONS_ARRAY, i) for i in boundary], block)
        if edge[-1]:
            raise RegistryInconsistencyError(
                f"Controller array has an element at index {length}, beyond its stored length",
                details={"account": account, "stored_length": length, "block": block},
            )
        if length and not edge[0]:
            raise RegistryInconsistencyError(
                f"Controller array length is {length} but its last element is empty",
                details={"account": account, "stored_length": length, "missing_indexes": [length - 1], "block": block},
            )

        keys = [array_element_key(ADDRESS_PERMISSIONS_ARRAY, i) for i in range(length)]
        values: List[bytes] = []
        size = self.config.max_batch_size
        for start in range(0, length, size):
            values.extend(await self._read_many(account, keys[start:start + size], block))

        missing = [i for i in range(length) if not values[i]]
        if missing:
            raise RegistryInconsistencyError(
                f"Controller array length is {length} but {len(missing)} element(s) are empty",
                details={"account": account, "stored_length": length, "missing_indexes": missing, "block": block},
            )

        addresses = []
        for i, value in enumerate(values[:length]):
            try:
                addresses.append(decode_address_value(value))
            except ReconcilerError as e:
                raise e.with_context(account=account, key="0x" + keys[i].hex(), index=i, block=block)

        if len(set(addresses)) != len(addresses):
            duplicates = sorted({a for a in addresses if addresses.count(a) > 1})
            raise RegistryInconsistencyError(
                "Controller array lists the same address more than once",
                details={"account": account, "duplicates": duplicates, "block": block},
            )

        logger.debug(f"[Reader] {account} has {length} controller(s) at {block}")
        return ControllerArray(addresses=addresses, length=length, raw_length=raw_length)

    async def get_metadata_pointer(
        self, account: Any, pointer_name: Any, block: BlockTag = "latest"
    ) -> Optional[MetadataPointer]:
        account = to_address(account)
        key = resolve_key(pointer_name)
        raw = await self._read(account, key, block, pointer=str(pointer_name))
        try:
            return decode_metadata_pointer(raw)
        except ReconcilerError as e:
            raise e.with_context(account=account, key="0x" + key.hex(), pointer=str(pointer_name), block=block)

    async def snapshot(self, account: Any, controller: Any, block: BlockTag = "latest") -> RegistrySnapshot:
        """Issue the three independent reads of a plan concurrently."""
        account, controller = to_address(account), to_address(controller)
        permissions, allowed_calls, controllers = await gather_strict(
            self.get_permissions(account, controller, block),
            self.get_allowed_calls(account, controller, block),
            self.get_controller_array(account, block),
        )
        return RegistrySnapshot(account, controller, permissions, allowed_calls, controllers, block)

    async def get_owner(self, account: Any, block: BlockTag = "latest") -> str:
        account = to_address(account)
        return await run_with_timeout(
            self.store.get_owner(account, block),
            self.config.request_timeout,
            name="owner",
            context={"account": account, "block": block},
        )

    async def owner_is_contract(self, account: Any, block: BlockTag = "latest") -> bool:
        """True when the account's owner has code, i.e. a Key Manager rather than an EOA."""
        owner = await self.get_owner(account, block)
        code = await run_with_timeout(
            self.store.get_code(owner, block),
            self.config.request_timeout,
            name="getCode",
            context={"account": to_address(account), "owner": owner, "block": block},
        )
        return bool(code)

    async def await_convergence(
        self,
        batch: WriteBatch,
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
    ) -> int:
        """
        Poll until every key in `batch` reads back its written value.

        Returns the number of polls it took. Raises RemoteTimeoutError, naming
        the keys still out of date, when `timeout` passes first.
        """
        timeout = self.config.convergence_timeout if timeout is None else timeout
        interval = self.config.poll_interval if interval is None else interval
        if batch.is_empty:
            return 0

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        polls = 0
        while True:
            polls += 1
            current = await self._read_many(batch.account, batch.keys, "latest")
            stale = [w for w, value in zip(batch.writes, current) if value != w.value]
            if not stale:
                logger.info(f"[Reader] {batch.account} converged after {polls} poll(s)")
                return polls
            if loop.time() + interval > deadline:
                raise RemoteTimeoutError(
                    f"{len(stale)} write(s) not visible after {timeout}s",
                    details={
                        "account": batch.account,
                        "stale_keys": ["0x" + w.key.hex() for w in stale],
                        "polls": polls,
                    },
                )
            logger.debug(f"[Reader] {len(stale)} key(s) still stale on {batch.account}, polling again")
            await asyncio.sleep(interval)
