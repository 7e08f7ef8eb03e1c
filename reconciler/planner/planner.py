"""
reconciler/planner/planner.py
Reconciliation Planner: diffs desired LSP6 / metadata state against what the
ledger holds and emits the minimal WriteBatch to get there.

The planner never submits anything. Each plan re-reads the ledger, so the
retry policy after a failed or raced submission is simply: plan again.

Controller array race:
    plan_grant() appends a new controller at the *read* length and writes
    length+1. If another writer commits between our read and the caller's
    submission, one of the two appends is lost. The batch records the length
    it read as a precondition; callers that need strong guarantees re-read
    after commit (RegistryReader.await_convergence / get_controller_array)
    and re-plan on mismatch.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from reconciler.codec.allowed_calls import (
    WILDCARD,
    AllowedCallEntry,
    CallType,
    encode_allowed_calls,
)
from reconciler.codec.keys import (
    ADDRESS_PERMISSIONS_ARRAY,
    ALLOWED_DATA_KEYS_KEY_NAME,
    allowed_calls_key,
    array_element_key,
    array_key,
    derive_key,
    permissions_key,
    resolve_key,
)
from reconciler.codec.permissions import (
    capabilities_to_bitmask,
    combine_permissions,
    granted_names,
    is_zero,
    remove_permissions,
)
from reconciler.codec.values import (
    MetadataPointer,
    encode_address_value,
    encode_array_length,
    encode_verifiable_uri,
    to_address,
    to_fixed_bytes,
)
from reconciler.config import BlockTag
from reconciler.data.batch import WriteBatch
from reconciler.errors import MalformedFieldError, RegistryInconsistencyError
from reconciler.registry.reader import RegistryReader
from reconciler.utils.async_helpers import gather_strict

logger = logging.getLogger(__name__)

Capabilities = Union[Mapping[str, bool], Iterable[str], bytes, int]


def _describe_bitmask(bitmask: bytes) -> str:
    names = granted_names(bitmask)
    return ", ".join(names) if names else "none"


def to_allowed_call(item: Any) -> AllowedCallEntry:
    """
    Normalize an allowed-call description.

    Accepts an AllowedCallEntry, a mapping with `target` (or `address`) and
    optional `selector`, `call_types`, `interface_id`, or a 4-tuple
    (call_types, address, interface_id, selector) as written in LSP6.
    """
    if isinstance(item, AllowedCallEntry):
        return item
    if isinstance(item, Mapping):
        target = item.get("target", item.get("address"))
        if target is None:
            raise MalformedFieldError("Allowed call needs a target address", details={"entry": dict(item)})
        return AllowedCallEntry.create(
            address=target,
            function_selector=item.get("selector", WILDCARD),
            call_types=item.get("call_types", CallType.CALL),
            interface_id=item.get("interface_id", WILDCARD),
        )
    if isinstance(item, (tuple, list)) and len(item) == 4:
        call_types, address, interface_id, selector = item
        return AllowedCallEntry.create(address, selector, call_types, interface_id)
    raise MalformedFieldError(f"Cannot interpret allowed call {item!r}")


def _call_identity(item: Any) -> Tuple[str, bytes]:
    if isinstance(item, (tuple, list)) and len(item) == 2:
        address, selector = item
        return (to_address(address).lower(), to_fixed_bytes(selector, 4, "function_selector"))
    return to_allowed_call(item).identity


class ReconciliationPlanner:
    def __init__(self, reader: RegistryReader):
        self.reader = reader

    async def plan_grant(
        self,
        account: Any,
        controller: Any,
        desired_capabilities: Capabilities,
        desired_allowed_calls: Optional[Sequence[Any]] = None,
        block: BlockTag = "latest",
    ) -> WriteBatch:
        """
        Additive grant: merged bitmask = current OR desired.

        New allowed calls are appended after the existing ones (dedup on
        target + selector). The controller is appended to
        `AddressPermissions[]` only if it is not already listed.
        """
        account, controller = to_address(account), to_address(controller)
        desired = capabilities_to_bitmask(desired_capabilities)
        wanted_calls = [to_allowed_call(c) for c in desired_allowed_calls or []]

        reads = [
            self.reader.get_permissions(account, controller, block),
            self.reader.get_controller_array(account, block),
        ]
        if wanted_calls:
            reads.append(self.reader.get_allowed_calls(account, controller, block))
        results = await gather_strict(*reads)
        current, controllers = results[0], results[1]
        existing_calls: List[AllowedCallEntry] = results[2] if wanted_calls else []

        batch = WriteBatch(account, block=block)

        merged = combine_permissions(current, desired)
        if merged != current:
            batch.add(
                permissions_key(controller),
                merged,
                f"Set permissions of {controller} to {_describe_bitmask(merged)}",
            )

        appended: List[AllowedCallEntry] = []
        if wanted_calls:
            seen = {e.identity for e in existing_calls}
            for entry in wanted_calls:
                if entry.identity in seen:
                    logger.debug(f"[Planner] Allowed call already present for {controller}: {entry.describe()}")
                    continue
                seen.add(entry.identity)
                appended.append(entry)
            if appended:
                batch.add(
                    allowed_calls_key(controller),
                    encode_allowed_calls(existing_calls + appended),
                    f"Append {len(appended)} allowed call(s) for {controller}: "
                    + "; ".join(e.describe() for e in appended),
                )

        has_entries = not is_zero(merged) or bool(existing_calls) or bool(appended)
        if controller not in controllers and has_entries:
            self._append_controller(batch, controllers.length, controllers.raw_length, controller)

        logger.info(f"[Planner] Grant for {controller} on {account}: {len(batch)} write(s)")
        return batch

    def _append_controller(self, batch: WriteBatch, length: int, raw_length: bytes, controller: str) -> None:
        length_key = array_key(ADDRESS_PERMISSIONS_ARRAY)
        batch.expect(length_key, raw_length, f"AddressPermissions[] length is {length}")
        batch.add(
            array_element_key(ADDRESS_PERMISSIONS_ARRAY, length),
            encode_address_value(controller),
            f"Add {controller} to AddressPermissions[] at index {length}",
        )
        batch.add(
            length_key,
            encode_array_length(length + 1),
            f"Set AddressPermissions[] length {length} -> {length + 1}",
        )

    async def plan_revoke(
        self,
        account: Any,
        controller: Any,
        revoked_capabilities: Capabilities,
        revoked_allowed_calls: Optional[Sequence[Any]] = None,
        block: BlockTag = "latest",
    ) -> WriteBatch:
        """
        bitmask = current AND NOT revoked.

        Allowed calls matching a revoked (target, selector) are dropped. The
        controller stays in `AddressPermissions[]` even if nothing is left;
        use plan_remove_controller() to take it out.
        """
        account, controller = to_address(account), to_address(controller)
        revoked = capabilities_to_bitmask(revoked_capabilities)
        revoked_ids = {_call_identity(c) for c in revoked_allowed_calls or []}

        reads = [self.reader.get_permissions(account, controller, block)]
        if revoked_ids:
            reads.append(self.reader.get_allowed_calls(account, controller, block))
        results = await gather_strict(*reads)
        current = results[0]

        batch = WriteBatch(account, block=block)

        reduced = remove_permissions(current, revoked)
        if reduced != current:
            batch.add(
                permissions_key(controller),
                reduced,
                f"Set permissions of {controller} to {_describe_bitmask(reduced)}",
            )

        if revoked_ids:
            existing: List[AllowedCallEntry] = results[1]
            kept = [e for e in existing if e.identity not in revoked_ids]
            if len(kept) != len(existing):
                batch.add(
                    allowed_calls_key(controller),
                    encode_allowed_calls(kept),
                    f"Remove {len(existing) - len(kept)} allowed call(s) for {controller}",
                )

        logger.info(f"[Planner] Revoke for {controller} on {account}: {len(batch)} write(s)")
        return batch

    async def plan_remove_controller(self, account: Any, controller: Any, block: BlockTag = "latest") -> WriteBatch:
        """
        Clear a controller's permissions, allowed calls and allowed data keys
        and take it out of `AddressPermissions[]`: the last element moves into
        its slot, the last slot is cleared and the length drops by one.
        """
        account, controller = to_address(account), to_address(controller)
        snapshot, data_keys = await gather_strict(
            self.reader.snapshot(account, controller, block),
            self.reader.get_raw(account, ALLOWED_DATA_KEYS_KEY_NAME, controller, block=block),
        )
        controllers = snapshot.controllers
        batch = WriteBatch(account, block=block)

        if controller not in controllers:
            if not is_zero(snapshot.permissions):
                raise RegistryInconsistencyError(
                    "Controller has permissions but is missing from AddressPermissions[]",
                    details={"account": account, "controller": controller, "block": block},
                )
            self._clear_restrictions(batch, controller, snapshot.allowed_calls, data_keys)
            return batch

        if not is_zero(snapshot.permissions):
            batch.add(permissions_key(controller), b"", f"Clear permissions of {controller}")
        self._clear_restrictions(batch, controller, snapshot.allowed_calls, data_keys)

        index = controllers.index(controller)
        last = controllers.length - 1
        length_key = array_key(ADDRESS_PERMISSIONS_ARRAY)
        batch.expect(length_key, controllers.raw_length, f"AddressPermissions[] length is {controllers.length}")
        if index != last:
            moved = controllers.addresses[last]
            batch.add(
                array_element_key(ADDRESS_PERMISSIONS_ARRAY, index),
                encode_address_value(moved),
                f"Move {moved} from index {last} to {index} in AddressPermissions[]",
            )
        batch.add(
            array_element_key(ADDRESS_PERMISSIONS_ARRAY, last),
            b"",
            f"Clear AddressPermissions[] index {last}",
        )
        batch.add(
            length_key,
            encode_array_length(last),
            f"Set AddressPermissions[] length {controllers.length} -> {last}",
        )

        logger.info(f"[Planner] Remove {controller} from {account}: {len(batch)} write(s)")
        return batch

    @staticmethod
    def _clear_restrictions(
        batch: WriteBatch, controller: str, allowed_calls: List[AllowedCallEntry], data_keys: bytes
    ) -> None:
        if allowed_calls:
            batch.add(allowed_calls_key(controller), b"", f"Clear allowed calls of {controller}")
        if data_keys:
            batch.add(
                derive_key(ALLOWED_DATA_KEYS_KEY_NAME, controller),
                b"",
                f"Clear allowed data keys of {controller}",
            )

    def plan_metadata_update(self, account: Any, pointer_name: Any, new_pointer: MetadataPointer) -> WriteBatch:
        """Full replace of a metadata pointer: always exactly one write, no read."""
        batch = WriteBatch(account)
        batch.add(
            resolve_key(pointer_name),
            encode_verifiable_uri(new_pointer),
            f"Replace {pointer_name} with {new_pointer.url}",
        )
        return batch
