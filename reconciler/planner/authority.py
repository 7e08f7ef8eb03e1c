"""
reconciler/planner/authority.py
Which LSP6 permissions does an executor need to apply a batch?

Mirrors the Key Manager's rules for setData:
  - AddressPermissions:* keys and AddressPermissions[] entries: ADDCONTROLLER
    when the key is currently empty (or the array grows), EDITPERMISSIONS
    when it already holds a value.
  - LSP1UniversalReceiverDelegate keys: ADDUNIVERSALRECEIVERDELEGATE /
    CHANGEUNIVERSALRECEIVERDELEGATE on the same empty/non-empty split.
  - Anything else: SETDATA (SUPER_SETDATA also satisfies it).

AllowedERC725YDataKeys restrictions on SETDATA are not evaluated.
"""

from __future__ import annotations

import logging
from typing import Any, List, Set

from eth_utils import keccak

from reconciler.codec.keys import (
    ADDRESS_PERMISSIONS_ARRAY,
    UNIVERSAL_RECEIVER_DELEGATE,
    UNIVERSAL_RECEIVER_DELEGATE_MAP,
    array_key,
    derive_key,
)
from reconciler.codec.permissions import Capability, decode_permissions
from reconciler.codec.values import decode_array_length, to_address
from reconciler.config import BlockTag
from reconciler.data.batch import WriteBatch
from reconciler.errors import InsufficientPermissionError
from reconciler.registry.reader import RegistryReader

logger = logging.getLogger(__name__)

_PERMISSIONS_GROUP = keccak(text="AddressPermissions")[:6]
_ARRAY_KEY = array_key(ADDRESS_PERMISSIONS_ARRAY)
_URD_SINGLETON = keccak(text=UNIVERSAL_RECEIVER_DELEGATE)
_URD_MAP_PREFIX = derive_key(UNIVERSAL_RECEIVER_DELEGATE_MAP, bytes(32))[:12]


def required_for_write(key: bytes, current: bytes, new: bytes) -> Capability:
    if key == _ARRAY_KEY:
        grows = decode_array_length(new) > decode_array_length(current)
        return Capability.ADDCONTROLLER if grows else Capability.EDITPERMISSIONS
    if key[:16] == _ARRAY_KEY[:16]:
        return Capability.EDITPERMISSIONS if current else Capability.ADDCONTROLLER
    if key[:6] == _PERMISSIONS_GROUP and key[10:12] == b"\x00\x00":
        return Capability.EDITPERMISSIONS if current else Capability.ADDCONTROLLER
    if key == _URD_SINGLETON or key[:12] == _URD_MAP_PREFIX:
        return (
            Capability.CHANGEUNIVERSALRECEIVERDELEGATE if current else Capability.ADDUNIVERSALRECEIVERDELEGATE
        )
    return Capability.SETDATA


async def check_authority(
    reader: RegistryReader, account: Any, executor: Any, batch: WriteBatch, block: BlockTag = "latest"
) -> List[str]:
    """
    Verify `executor` holds every permission `batch` needs on `account`.

    Returns the required capability names. Raises InsufficientPermissionError
    listing the missing ones.
    """
    account, executor = to_address(account), to_address(executor)
    if batch.is_empty:
        return []

    current_values = await reader.get_values(account, batch.keys, block)
    held = decode_permissions(await reader.get_permissions(account, executor, block))

    required: Set[Capability] = set()
    for write, current in zip(batch.writes, current_values):
        required.add(required_for_write(write.key, current, write.value))

    missing = []
    for cap in sorted(required, key=lambda c: c.value):
        if held.get(cap.name):
            continue
        if cap is Capability.SETDATA and held.get(Capability.SUPER_SETDATA.name):
            continue
        missing.append(cap.name)

    names = [c.name for c in sorted(required, key=lambda c: c.value)]
    if missing:
        logger.warning(f"[Authority] {executor} lacks {missing} on {account}")
        raise InsufficientPermissionError(
            f"{executor} is missing {', '.join(missing)} on {account}",
            details={"account": account, "executor": executor, "missing": missing, "required": names},
        )
    return names
