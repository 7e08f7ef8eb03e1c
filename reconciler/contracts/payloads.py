"""
reconciler/contracts/payloads.py
Calldata for handing a WriteBatch to a transaction submitter.

Nothing here signs or sends. Three routes are covered:
  - direct:        account.setDataBatch(keys, values)
  - via a profile: profile.execute(CALL, account, 0, setDataBatch(...))
  - via an LSP6 Key Manager: keyManager.execute(<payload for the account>)
"""

from __future__ import annotations

from typing import Any

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector

from reconciler.codec.values import to_address
from reconciler.data.batch import WriteBatch
from reconciler.errors import MalformedFieldError

SET_DATA = function_signature_to_4byte_selector("setData(bytes32,bytes)")
SET_DATA_BATCH = function_signature_to_4byte_selector("setDataBatch(bytes32[],bytes[])")
EXECUTE = function_signature_to_4byte_selector("execute(uint256,address,uint256,bytes)")
KEY_MANAGER_EXECUTE = function_signature_to_4byte_selector("execute(bytes)")

OPERATION_CALL = 0


def encode_set_data(key: bytes, value: bytes) -> bytes:
    return SET_DATA + encode(["bytes32", "bytes"], [key, value])


def encode_set_data_batch(batch: WriteBatch) -> bytes:
    if batch.is_empty:
        raise MalformedFieldError("Refusing to encode an empty batch", details={"account": batch.account})
    return SET_DATA_BATCH + encode(["bytes32[]", "bytes[]"], [batch.keys, batch.values])


def encode_execute_call(target: Any, calldata: bytes, value: int = 0) -> bytes:
    """ERC725X execute(CALL, target, value, calldata)."""
    return EXECUTE + encode(
        ["uint256", "address", "uint256", "bytes"],
        [OPERATION_CALL, to_address(target), value, calldata],
    )


def encode_key_manager_execute(calldata: bytes) -> bytes:
    return KEY_MANAGER_EXECUTE + encode(["bytes"], [calldata])


def encode_batch_via_profile(batch: WriteBatch) -> bytes:
    """Calldata for a controlling profile to apply `batch` to `batch.account`."""
    return encode_execute_call(batch.account, encode_set_data_batch(batch))
