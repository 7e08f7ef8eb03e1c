"""
tests/unit/test_keys_and_values.py
LSP2 key derivation and value layouts against well-known LUKSO constants.
"""
import pytest

from reconciler.codec.keys import (
    ADDRESS_PERMISSIONS_ARRAY,
    LSP3_PROFILE,
    LSP4_METADATA,
    allowed_calls_key,
    array_element_key,
    derive_key,
    mapping_key,
    permissions_key,
    resolve_key,
)
from reconciler.codec.values import (
    HASH_METHODS,
    KECCAK256_UTF8,
    MetadataPointer,
    decode_address_value,
    decode_array_length,
    decode_metadata_pointer,
    encode_array_length,
    encode_verifiable_uri,
    to_address,
)
from reconciler.errors import MalformedFieldError

CONTROLLER = "0x" + "c0" * 20


def test_singleton_and_array_keys():
    assert derive_key(ADDRESS_PERMISSIONS_ARRAY).hex() == (
        "df30dba06db6a30e65354d9a64c609861f089545ca58c6b4dbe31a5f338cb0e3"
    )
    assert derive_key(LSP4_METADATA).hex() == (
        "9afb95cacc9f95858ec44aa8c3b685511002e30ae54415823f406128b85b238e"
    )
    assert derive_key(LSP3_PROFILE).hex() == (
        "5ef83ad9559033e6e941db7d7c495acdce616347d28e90c7ce47cbfcfcad3bc5"
    )


def test_array_element_key():
    key = array_element_key(ADDRESS_PERMISSIONS_ARRAY, 0)
    assert key.hex() == "df30dba06db6a30e65354d9a64c60986" + "00" * 16
    assert array_element_key(ADDRESS_PERMISSIONS_ARRAY, 5)[-1] == 5


def test_mapping_with_static_word():
    assert derive_key("SupportedStandards:LSP3Profile").hex() == (
        "eafec4d89fa9619884b60000" + "5ef83ad9559033e6e941db7d7c495acdce616347"
    )


def test_permission_keys():
    assert permissions_key(CONTROLLER).hex() == "4b80742de2bf82acb3630000" + "c0" * 20
    assert allowed_calls_key(CONTROLLER).hex() == "4b80742de2bf393a64c70000" + "c0" * 20


def test_derive_key_is_deterministic_and_distinct():
    a = permissions_key(CONTROLLER)
    b = permissions_key(CONTROLLER.upper().replace("0X", "0x"))
    c = permissions_key("0x" + "c1" * 20)
    assert a == b
    assert a != c
    assert mapping_key(a[:12], CONTROLLER) == a


def test_bytes32_dynamic_part_keeps_left_20_bytes():
    type_id = "0x" + "20804611b3e2ea21c480dc465142210acf4a2485947541770ec1fb87dee4a55c"
    key = derive_key("LSP1UniversalReceiverDelegate:<bytes32>", type_id)
    assert key[12:] == bytes.fromhex(type_id[2:])[:20]


def test_uint_dynamic_part_is_left_padded():
    key = derive_key("MyCounter:<uint32>", 7)
    assert key[12:] == (7).to_bytes(20, "big")


@pytest.mark.parametrize(
    "name,parts",
    [
        ("AddressPermissions:Permissions:<address>", ()),
        ("AddressPermissions:Permissions:<address>", (CONTROLLER, CONTROLLER)),
        ("<address>:Permissions", (CONTROLLER,)),
        ("A:B:C:D", ()),
        ("LSP4Metadata", (CONTROLLER,)),
        ("AddressPermissions:Permissions:<address>", ("0x1234",)),
    ],
)
def test_derive_key_rejects_bad_parts(name, parts):
    with pytest.raises(MalformedFieldError):
        derive_key(name, *parts)


def test_resolve_key_accepts_raw():
    raw = "0x9b0e98942544bc067f3b840ee04f2723790c73ddc65d21b7becbc68383f977d6"
    assert resolve_key(raw) == bytes.fromhex(raw[2:])
    assert resolve_key(bytes(32)) == bytes(32)
    with pytest.raises(MalformedFieldError):
        resolve_key(bytes(31))


def test_array_length_codec():
    assert encode_array_length(3) == (3).to_bytes(16, "big")
    assert decode_array_length(b"") == 0
    assert decode_array_length((3).to_bytes(32, "big")) == 3
    with pytest.raises(MalformedFieldError):
        decode_array_length(b"\x01\x02")


def test_address_values():
    assert decode_address_value(bytes.fromhex("c0" * 20)) == to_address(CONTROLLER)
    with pytest.raises(MalformedFieldError):
        decode_address_value(b"\x00" * 19)
    with pytest.raises(MalformedFieldError):
        to_address("not-an-address")


def test_hash_method_ids():
    assert HASH_METHODS["keccak256(utf8)"].hex() == "6f357c6a"
    assert HASH_METHODS["keccak256(bytes)"].hex() == "8019f9b1"


def test_verifiable_uri_round_trip():
    pointer = MetadataPointer.for_content(b'{"LSP4Metadata":{}}', "ipfs://QmHash")
    encoded = encode_verifiable_uri(pointer)
    assert encoded[:2] == b"\x00\x00"
    assert encoded[2:6] == HASH_METHODS[KECCAK256_UTF8]
    assert encoded[6:8] == b"\x00\x20"
    assert encoded.endswith(b"ipfs://QmHash")
    assert decode_metadata_pointer(encoded) == pointer


def test_legacy_jsonurl_decodes():
    digest = bytes(range(32))
    raw = HASH_METHODS[KECCAK256_UTF8] + digest + b"ipfs://QmOld"
    pointer = decode_metadata_pointer(raw)
    assert pointer.hash_function == KECCAK256_UTF8
    assert pointer.hash == digest
    assert pointer.url == "ipfs://QmOld"


def test_metadata_pointer_absent_and_truncated():
    assert decode_metadata_pointer(b"") is None
    with pytest.raises(MalformedFieldError):
        decode_metadata_pointer(b"\x00\x00" + HASH_METHODS[KECCAK256_UTF8] + b"\x00\x20" + b"\x01" * 4)


def test_pointer_verifies_content():
    content = b"hello"
    pointer = MetadataPointer.for_content(content, "ipfs://x")
    assert pointer.verifies(content)
    assert not pointer.verifies(b"other")
