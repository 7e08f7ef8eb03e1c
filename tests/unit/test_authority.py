"""
tests/unit/test_authority.py
Executor permission checks for planned batches.
"""
import pytest

from reconciler.codec.keys import (
    ADDRESS_PERMISSIONS_ARRAY,
    ALLOWED_DATA_KEYS_KEY_NAME,
    LSP4_METADATA,
    UNIVERSAL_RECEIVER_DELEGATE,
    UNIVERSAL_RECEIVER_DELEGATE_MAP,
    array_element_key,
    array_key,
    derive_key,
    permissions_key,
)
from reconciler.codec.permissions import Capability, encode_permissions
from reconciler.codec.values import MetadataPointer, encode_array_length, to_address
from reconciler.config import ReconcilerConfig
from reconciler.data.batch import WriteBatch
from reconciler.errors import InsufficientPermissionError
from reconciler.orchestrator import Reconciler
from reconciler.planner.authority import check_authority, required_for_write

PROFILE = "0x" + "a1" * 20
CONTROLLER = "0x" + "c0" * 20
EXECUTOR = "0x" + "e5" * 20


def give(store, address, caps):
    store.set_data(PROFILE, [(permissions_key(address), encode_permissions(caps))])


def test_required_for_write_rules():
    length_key = array_key(ADDRESS_PERMISSIONS_ARRAY)
    assert required_for_write(length_key, encode_array_length(1), encode_array_length(2)) is Capability.ADDCONTROLLER
    assert required_for_write(length_key, encode_array_length(2), encode_array_length(1)) is Capability.EDITPERMISSIONS

    element = array_element_key(ADDRESS_PERMISSIONS_ARRAY, 3)
    assert required_for_write(element, b"", b"\x01" * 20) is Capability.ADDCONTROLLER
    assert required_for_write(element, b"\x01" * 20, b"") is Capability.EDITPERMISSIONS

    perms = permissions_key(CONTROLLER)
    assert required_for_write(perms, b"", b"\x01") is Capability.ADDCONTROLLER
    assert required_for_write(perms, b"\x01", b"\x03") is Capability.EDITPERMISSIONS

    urd = derive_key(UNIVERSAL_RECEIVER_DELEGATE)
    assert required_for_write(urd, b"", b"\x01" * 20) is Capability.ADDUNIVERSALRECEIVERDELEGATE
    assert required_for_write(urd, b"\x01" * 20, b"\x02" * 20) is Capability.CHANGEUNIVERSALRECEIVERDELEGATE

    type_id = bytes.fromhex("7c" * 32)
    urd_for_type = derive_key(UNIVERSAL_RECEIVER_DELEGATE_MAP, type_id)
    assert urd_for_type[10:12] == b"\x00\x00"
    assert urd_for_type[12:] == type_id[:20]
    assert required_for_write(urd_for_type, b"", b"\x01" * 20) is Capability.ADDUNIVERSALRECEIVERDELEGATE
    assert required_for_write(urd_for_type, b"\x01" * 20, b"") is Capability.CHANGEUNIVERSALRECEIVERDELEGATE

    data_keys = derive_key(ALLOWED_DATA_KEYS_KEY_NAME, CONTROLLER)
    assert required_for_write(data_keys, b"\x01", b"") is Capability.EDITPERMISSIONS

    assert required_for_write(derive_key(LSP4_METADATA), b"", b"\x00") is Capability.SETDATA


@pytest.mark.asyncio
async def test_new_controller_needs_addcontroller(store, planner, reader):
    give(store, EXECUTOR, {"ADDCONTROLLER": True})
    batch = await planner.plan_grant(PROFILE, CONTROLLER, {"CALL": True})
    assert await check_authority(reader, PROFILE, EXECUTOR, batch) == ["ADDCONTROLLER"]


@pytest.mark.asyncio
async def test_editing_existing_controller_needs_editpermissions(store, planner, reader):
    give(store, EXECUTOR, {"ADDCONTROLLER": True})
    store.apply_batch(await planner.plan_grant(PROFILE, CONTROLLER, {"CALL": True}))

    batch = await planner.plan_grant(PROFILE, CONTROLLER, {"SETDATA": True})
    with pytest.raises(InsufficientPermissionError) as exc:
        await check_authority(reader, PROFILE, EXECUTOR, batch)
    assert exc.value.details["missing"] == ["EDITPERMISSIONS"]
    assert exc.value.details["executor"] == to_address(EXECUTOR)
    assert exc.value.to_dict()["code"] == "AUTH_001"


@pytest.mark.asyncio
async def test_super_setdata_satisfies_setdata(store, planner, reader):
    pointer = MetadataPointer.for_content(b"{}", "ipfs://QmDoc")
    batch = planner.plan_metadata_update(PROFILE, LSP4_METADATA, pointer)

    with pytest.raises(InsufficientPermissionError):
        await check_authority(reader, PROFILE, EXECUTOR, batch)

    give(store, EXECUTOR, {"SUPER_SETDATA": True})
    assert await check_authority(reader, PROFILE, EXECUTOR, batch) == ["SETDATA"]


@pytest.mark.asyncio
async def test_empty_batch_needs_nothing(reader):
    assert await check_authority(reader, PROFILE, EXECUTOR, WriteBatch(PROFILE)) == []


@pytest.mark.asyncio
async def test_reconciler_authorize_uses_batch_block(store, ledger_config):
    give(store, EXECUTOR, {"ADDCONTROLLER": True, "EDITPERMISSIONS": True})
    async with Reconciler(store, ReconcilerConfig(ledger=ledger_config)) as rec:
        batch = await rec.planner.plan_grant(PROFILE, CONTROLLER, {"CALL": True}, block=store.block_number)
        assert batch.block == store.block_number
        assert await rec.authorize(PROFILE, EXECUTOR, batch) == ["ADDCONTROLLER"]
