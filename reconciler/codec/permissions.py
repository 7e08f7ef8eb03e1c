"""
reconciler/codec/permissions.py
LSP6 permission bitmasks.

A bitmask is a 32-byte big-endian bit-vector. Named capabilities own the low
bits; everything else is reserved and surfaced under UNKNOWN_BITS on decode so
a decode/encode cycle never drops information.
"""

from __future__ import annotations

from enum import IntFlag
from typing import Dict, Iterable, Mapping, Union

from reconciler.errors import MalformedFieldError, UnknownCapabilityError

BITMASK_LENGTH = 32
UNKNOWN_BITS = "UNKNOWN_BITS"


class Capability(IntFlag):
    CHANGEOWNER = 0x1
    ADDCONTROLLER = 0x2
    EDITPERMISSIONS = 0x4
    ADDEXTENSIONS = 0x8
    CHANGEEXTENSIONS = 0x10
    ADDUNIVERSALRECEIVERDELEGATE = 0x20
    CHANGEUNIVERSALRECEIVERDELEGATE = 0x40
    REENTRANCY = 0x80
    SUPER_TRANSFERVALUE = 0x100
    TRANSFERVALUE = 0x200
    SUPER_CALL = 0x400
    CALL = 0x800
    SUPER_STATICCALL = 0x1000
    STATICCALL = 0x2000
    SUPER_DELEGATECALL = 0x4000
    DELEGATECALL = 0x8000
    DEPLOY = 0x10000
    SUPER_SETDATA = 0x20000
    SETDATA = 0x40000
    ENCRYPT = 0x80000
    DECRYPT = 0x100000
    SIGN = 0x200000
    EXECUTE_RELAY_CALL = 0x400000
    ERC4337_PERMISSION = 0x800000


CAPABILITY_NAMES = tuple(c.name for c in Capability)
KNOWN_MASK = sum(c.value for c in Capability)
ZERO_BITMASK = bytes(BITMASK_LENGTH)

BitmaskLike = Union[bytes, bytearray, str, int]


def _to_int(bitmask: BitmaskLike) -> int:
    if isinstance(bitmask, bool):
        raise MalformedFieldError(f"Invalid bitmask: {bitmask!r}")
    if isinstance(bitmask, int):
        value = bitmask
    elif isinstance(bitmask, (bytes, bytearray)):
        if len(bitmask) > BITMASK_LENGTH:
            raise MalformedFieldError(
                f"Bitmask longer than {BITMASK_LENGTH} bytes", details={"length": len(bitmask)}
            )
        value = int.from_bytes(bitmask, "big") if bitmask else 0
    elif isinstance(bitmask, str):
        text = bitmask[2:] if bitmask[:2].lower() == "0x" else bitmask
        if len(text) > BITMASK_LENGTH * 2:
            raise MalformedFieldError(f"Bitmask longer than {BITMASK_LENGTH} bytes: {bitmask!r}")
        try:
            value = int(text, 16) if text else 0
        except ValueError:
            raise MalformedFieldError(f"Bitmask is not valid hex: {bitmask!r}") from None
    else:
        raise MalformedFieldError(f"Unsupported bitmask type {type(bitmask).__name__}")
    if value < 0 or value >= 2 ** (8 * BITMASK_LENGTH):
        raise MalformedFieldError(f"Bitmask out of range: {value}")
    return value


def _to_bytes(value: int) -> bytes:
    return value.to_bytes(BITMASK_LENGTH, "big")


def encode_permissions(capabilities: Mapping[str, Union[bool, int]]) -> bytes:
    """
    Set exactly the bits named true. Absent names are false.

    An UNKNOWN_BITS integer (as produced by decode_permissions) is OR-ed back
    in so raw bitmasks survive a decode/encode cycle.
    """
    value = 0
    for name, enabled in capabilities.items():
        if name == UNKNOWN_BITS:
            extra = int(enabled)
            if extra & KNOWN_MASK:
                raise MalformedFieldError(
                    "UNKNOWN_BITS overlaps named capabilities", details={"unknown_bits": hex(extra)}
                )
            value |= extra
            continue
        try:
            flag = Capability[name]
        except KeyError:
            raise UnknownCapabilityError(
                f"Unknown capability {name!r}", details={"capability": name}
            ) from None
        if enabled:
            value |= flag.value
    return _to_bytes(value)


def decode_permissions(bitmask: BitmaskLike) -> Dict[str, Union[bool, int]]:
    """Total over any bit pattern; every named capability is explicit."""
    value = _to_int(bitmask)
    decoded: Dict[str, Union[bool, int]] = {c.name: bool(value & c.value) for c in Capability}
    unknown = value & ~KNOWN_MASK
    if unknown:
        decoded[UNKNOWN_BITS] = unknown
    return decoded


def normalize_bitmask(bitmask: BitmaskLike) -> bytes:
    return _to_bytes(_to_int(bitmask))


def capabilities_to_bitmask(capabilities: Union[Mapping[str, bool], Iterable[str], BitmaskLike]) -> bytes:
    """Accept a capability map, an iterable of names or a raw bitmask."""
    if isinstance(capabilities, Mapping):
        return encode_permissions(capabilities)
    if isinstance(capabilities, (bytes, bytearray, int)) or (
        isinstance(capabilities, str) and capabilities.startswith("0x")
    ):
        return normalize_bitmask(capabilities)
    if isinstance(capabilities, str):
        return encode_permissions({capabilities: True})
    return encode_permissions({name: True for name in capabilities})


def combine_permissions(*bitmasks: BitmaskLike) -> bytes:
    value = 0
    for bitmask in bitmasks:
        value |= _to_int(bitmask)
    return _to_bytes(value)


def remove_permissions(bitmask: BitmaskLike, revoked: BitmaskLike) -> bytes:
    return _to_bytes(_to_int(bitmask) & ~_to_int(revoked))


def has_permissions(bitmask: BitmaskLike, required: BitmaskLike) -> bool:
    needed = _to_int(required)
    return _to_int(bitmask) & needed == needed


def granted_names(bitmask: BitmaskLike) -> list:
    return [name for name, enabled in decode_permissions(bitmask).items() if enabled is True]


def is_zero(bitmask: BitmaskLike) -> bool:
    return _to_int(bitmask) == 0
