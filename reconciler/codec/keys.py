"""
reconciler/codec/keys.py
LSP2 data key derivation.

One place turns a key name plus its dynamic parts into the 32-byte ERC725Y
data key:

  Singleton            Name                      keccak256(Name)
  Array                Name[]                    keccak256(Name[])
  Array element        Name[] @ i                bytes16(keccak256(Name[])) ++ uint128(i)
  Mapping              First:Second              bytes10(keccak256(First)) ++ 0000 ++ bytes20(Second)
  MappingWithGrouping  First:Second:Third        bytes6(keccak256(First)) ++ bytes4(keccak256(Second))
                                                 ++ 0000 ++ bytes20(Third)

A tail written as a static word uses bytes20(keccak256(word)); a tail written
as `<type>` is filled from the caller's dynamic parts:

  <address>            the 20 address bytes
  <bytesN>             left-aligned, cut or zero-padded to 20 bytes
  <uintN> / <boolean>  big-endian, left-padded to 20 bytes
  <string>             bytes20(keccak256(utf8))
"""

from __future__ import annotations

import re
from typing import Any, List, Sequence

from eth_utils import keccak

from reconciler.codec.values import to_address, to_fixed_bytes
from reconciler.errors import MalformedFieldError

KEY_LENGTH = 32

_DYNAMIC_RE = re.compile(r"^<([a-zA-Z]+)(\d*)>$")

# LSP6 KeyManager
ADDRESS_PERMISSIONS_ARRAY = "AddressPermissions[]"
PERMISSIONS_KEY_NAME = "AddressPermissions:Permissions:<address>"
ALLOWED_CALLS_KEY_NAME = "AddressPermissions:AllowedCalls:<address>"
ALLOWED_DATA_KEYS_KEY_NAME = "AddressPermissions:AllowedERC725YDataKeys:<address>"

# LSP4 / LSP3 / LSP1
LSP4_METADATA = "LSP4Metadata"
LSP3_PROFILE = "LSP3Profile"
UNIVERSAL_RECEIVER_DELEGATE = "LSP1UniversalReceiverDelegate"
UNIVERSAL_RECEIVER_DELEGATE_MAP = "LSP1UniversalReceiverDelegate:<bytes32>"


def _word(name: str) -> bytes:
    return keccak(text=name)


def _encode_dynamic(type_name: str, value: Any, key_name: str) -> bytes:
    match = _DYNAMIC_RE.match(type_name)
    if not match:
        raise MalformedFieldError(f"Invalid dynamic key part {type_name!r}", details={"key_name": key_name})
    kind, size = match.group(1), match.group(2)

    if kind == "address":
        return bytes.fromhex(to_address(value)[2:])

    if kind == "bytes":
        raw = to_fixed_bytes(value, int(size), field_name=type_name) if size else _as_bytes(value, type_name)
        return raw[:20].ljust(20, b"\x00")

    if kind in ("uint", "boolean", "bool"):
        if isinstance(value, bool):
            number = int(value)
        elif isinstance(value, int):
            number = value
        elif isinstance(value, str) and value.startswith("0x"):
            number = int(value, 16)
        else:
            raise MalformedFieldError(
                f"Expected integer for {type_name}, got {value!r}", details={"key_name": key_name}
            )
        bits = int(size) if size else 256
        if number < 0 or number >= 2 ** min(bits, 160):
            raise MalformedFieldError(
                f"Value {number} does not fit {type_name} in a 20-byte key part", details={"key_name": key_name}
            )
        return number.to_bytes(20, "big")

    if kind == "string":
        if not isinstance(value, str):
            raise MalformedFieldError(f"Expected str for <string>, got {value!r}", details={"key_name": key_name})
        return keccak(text=value)[:20]

    raise MalformedFieldError(f"Unsupported dynamic key part {type_name!r}", details={"key_name": key_name})


def _as_bytes(value: Any, field_name: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str) and value.startswith("0x"):
        try:
            return bytes.fromhex(value[2:])
        except ValueError:
            raise MalformedFieldError(f"{field_name} is not valid hex: {value!r}") from None
    raise MalformedFieldError(f"Expected hex bytes for {field_name}, got {value!r}")


def _split(name: str) -> List[str]:
    parts = name.split(":")
    if any(not p for p in parts):
        raise MalformedFieldError(f"Empty word in key name {name!r}", details={"key_name": name})
    return parts


def _tail(part: str, dynamic: List[Any], name: str) -> bytes:
    if part.startswith("<"):
        if not dynamic:
            raise MalformedFieldError(f"Missing dynamic part for {part}", details={"key_name": name})
        return _encode_dynamic(part, dynamic.pop(0), name)
    return _word(part)[:20]


def derive_key(name: str, *dynamic_parts: Any) -> bytes:
    """
    Derive the 32-byte data key for `name`.

    Dynamic parts fill `<type>` placeholders left to right. Placeholders are
    only allowed in the last word; a missing or surplus dynamic part is a
    MalformedFieldError.
    """
    if name.startswith("0x") and len(name) == 2 + KEY_LENGTH * 2:
        if dynamic_parts:
            raise MalformedFieldError("Raw keys take no dynamic parts", details={"key_name": name})
        return _as_bytes(name, "key")

    dynamic = list(dynamic_parts)
    parts = _split(name)
    for part in parts[:-1]:
        if part.startswith("<"):
            raise MalformedFieldError(
                f"Dynamic part only allowed in the last word of {name!r}", details={"key_name": name}
            )

    if len(parts) == 1:
        if parts[0].startswith("<"):
            raise MalformedFieldError(f"Singleton key cannot be dynamic: {name!r}", details={"key_name": name})
        key = _word(parts[0])
    elif len(parts) == 2:
        key = _word(parts[0])[:10] + b"\x00\x00" + _tail(parts[1], dynamic, name)
    elif len(parts) == 3:
        key = _word(parts[0])[:6] + _word(parts[1])[:4] + b"\x00\x00" + _tail(parts[2], dynamic, name)
    else:
        raise MalformedFieldError(f"Too many words in key name {name!r}", details={"key_name": name})

    if dynamic:
        raise MalformedFieldError(
            f"{len(dynamic)} unused dynamic part(s) for {name!r}", details={"key_name": name}
        )
    return key


def array_key(name: str) -> bytes:
    if not name.endswith("[]"):
        raise MalformedFieldError(f"Array key names end with '[]': {name!r}", details={"key_name": name})
    return _word(name)


def array_element_key(name: str, index: int) -> bytes:
    """bytes16(keccak256(name)) ++ uint128(index)."""
    if index < 0 or index >= 2 ** 128:
        raise MalformedFieldError(f"Array index out of range: {index}", details={"key_name": name})
    return array_key(name)[:16] + index.to_bytes(16, "big")


def mapping_key(prefix: bytes, address: Any) -> bytes:
    """Concatenate a 12-byte key prefix with an address (the LSP6 per-controller keys)."""
    if len(prefix) != 12:
        raise MalformedFieldError(f"Mapping prefix must be 12 bytes, got {len(prefix)}")
    return prefix + bytes.fromhex(to_address(address)[2:])


def permissions_key(controller: Any) -> bytes:
    return derive_key(PERMISSIONS_KEY_NAME, controller)


def allowed_calls_key(controller: Any) -> bytes:
    return derive_key(ALLOWED_CALLS_KEY_NAME, controller)


def resolve_key(name_or_key: Any, dynamic_parts: Sequence[Any] = ()) -> bytes:
    """Accept a key name, a 0x-prefixed 32-byte key or raw 32 bytes."""
    if isinstance(name_or_key, (bytes, bytearray)):
        if len(name_or_key) != KEY_LENGTH:
            raise MalformedFieldError(f"Data keys are {KEY_LENGTH} bytes, got {len(name_or_key)}")
        return bytes(name_or_key)
    return derive_key(str(name_or_key), *dynamic_parts)
