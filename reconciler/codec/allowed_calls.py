"""
reconciler/codec/allowed_calls.py
LSP6 AllowedCalls entries.

Each entry is 32 bytes: call types (bytes4) ++ address ++ interface id (bytes4)
++ function selector (bytes4). A controller's entries are stored as an LSP2
CompactBytesArray: each element prefixed by its uint16 length.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntFlag
from typing import Any, Iterable, List, Tuple

from eth_utils import function_signature_to_4byte_selector

from reconciler.codec.values import to_address, to_fixed_bytes
from reconciler.errors import MalformedFieldError

ENTRY_LENGTH = 32
WILDCARD = b"\xff\xff\xff\xff"


class CallType(IntFlag):
    VALUE = 0x1
    CALL = 0x2
    STATICCALL = 0x4
    DELEGATECALL = 0x8


def selector(signature: str) -> bytes:
    """bytes4(keccak256(signature)), e.g. selector("mintMoment(address,bytes,bytes,address)")."""
    return function_signature_to_4byte_selector(signature)


@dataclass(frozen=True)
class AllowedCallEntry:
    call_types: bytes
    address: str
    interface_id: bytes = WILDCARD
    function_selector: bytes = WILDCARD

    @classmethod
    def create(
        cls,
        address: Any,
        function_selector: Any = WILDCARD,
        call_types: Any = CallType.CALL,
        interface_id: Any = WILDCARD,
    ) -> "AllowedCallEntry":
        """Validate and normalize every field to its fixed width."""
        if isinstance(call_types, int) and not isinstance(call_types, bool):
            if call_types < 0 or call_types > 0xFFFFFFFF:
                raise MalformedFieldError(f"call_types out of range: {call_types}", details={"field": "call_types"})
            call_types = int(call_types).to_bytes(4, "big")
        return cls(
            call_types=to_fixed_bytes(call_types, 4, "call_types"),
            address=to_address(address),
            interface_id=to_fixed_bytes(interface_id, 4, "interface_id"),
            function_selector=to_fixed_bytes(function_selector, 4, "function_selector"),
        )

    @property
    def identity(self) -> Tuple[str, bytes]:
        """Dedup key: (target address, function selector)."""
        return (self.address.lower(), self.function_selector)

    def encode(self) -> bytes:
        return encode_allowed_call(self.call_types, self.address, self.interface_id, self.function_selector)

    def describe(self) -> str:
        sel = "any" if self.function_selector == WILDCARD else "0x" + self.function_selector.hex()
        iface = "any" if self.interface_id == WILDCARD else "0x" + self.interface_id.hex()
        return f"{self.address} selector={sel} interface={iface} callTypes=0x{self.call_types.hex()}"


def encode_allowed_call(call_types: Any, address: Any, interface_id: Any, function_selector: Any) -> bytes:
    return (
        to_fixed_bytes(call_types, 4, "call_types")
        + bytes.fromhex(to_address(address)[2:])
        + to_fixed_bytes(interface_id, 4, "interface_id")
        + to_fixed_bytes(function_selector, 4, "function_selector")
    )


def decode_allowed_call(raw: bytes) -> AllowedCallEntry:
    if len(raw) != ENTRY_LENGTH:
        raise MalformedFieldError(
            f"AllowedCalls entry must be {ENTRY_LENGTH} bytes, got {len(raw)}",
            details={"entry": "0x" + raw.hex()},
        )
    return AllowedCallEntry(
        call_types=raw[0:4],
        address=to_address(raw[4:24]),
        interface_id=raw[24:28],
        function_selector=raw[28:32],
    )


def encode_compact_bytes_array(items: Iterable[bytes]) -> bytes:
    out = b""
    for item in items:
        if len(item) > 0xFFFF:
            raise MalformedFieldError(f"CompactBytesArray element too long: {len(item)}")
        out += len(item).to_bytes(2, "big") + item
    return out


def decode_compact_bytes_array(value: bytes) -> List[bytes]:
    items: List[bytes] = []
    pos = 0
    while pos < len(value):
        if pos + 2 > len(value):
            raise MalformedFieldError(
                "CompactBytesArray length prefix is truncated", details={"offset": pos, "value": "0x" + value.hex()}
            )
        size = int.from_bytes(value[pos:pos + 2], "big")
        pos += 2
        if pos + size > len(value):
            raise MalformedFieldError(
                "CompactBytesArray element is truncated",
                details={"offset": pos, "declared": size, "value": "0x" + value.hex()},
            )
        items.append(value[pos:pos + size])
        pos += size
    return items


def encode_allowed_calls(entries: Iterable[AllowedCallEntry]) -> bytes:
    return encode_compact_bytes_array(entry.encode() for entry in entries)


def decode_allowed_calls(value: bytes) -> List[AllowedCallEntry]:
    """Empty value decodes to no entries."""
    return [decode_allowed_call(item) for item in decode_compact_bytes_array(value or b"")]
