"""
reconciler/codec/values.py
Value layouts stored under ERC725Y keys: addresses, array lengths and
metadata pointers (VerifiableURI / legacy JSONURL).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from eth_utils import is_address, keccak, to_checksum_address

from reconciler.errors import MalformedFieldError

ARRAY_LENGTH_BYTES = 16

# Verification method ids: bytes4(keccak256(<method name>))
KECCAK256_UTF8 = "keccak256(utf8)"
KECCAK256_BYTES = "keccak256(bytes)"
HASH_METHODS: Dict[str, bytes] = {
    KECCAK256_UTF8: keccak(text=KECCAK256_UTF8)[:4],
    KECCAK256_BYTES: keccak(text=KECCAK256_BYTES)[:4],
}
_METHOD_NAMES = {v: k for k, v in HASH_METHODS.items()}

VERIFIABLE_URI_PREFIX = b"\x00\x00"


def to_address(value: Any) -> str:
    """Normalize a 20-byte address (hex string or bytes) to its checksummed form."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise MalformedFieldError(f"Address must be 20 bytes, got {len(value)}", details={"address": value.hex()})
        value = "0x" + bytes(value).hex()
    if not isinstance(value, str) or not is_address(value):
        raise MalformedFieldError(f"Invalid address: {value!r}", details={"address": value})
    return to_checksum_address(value)


def to_fixed_bytes(value: Any, size: int, field_name: str = "field") -> bytes:
    """Parse `value` as exactly `size` bytes; anything else is a MalformedFieldError."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        text = value[2:] if value[:2].lower() == "0x" else value
        try:
            raw = bytes.fromhex(text)
        except ValueError:
            raise MalformedFieldError(
                f"{field_name} is not valid hex: {value!r}", details={"field": field_name}
            ) from None
    else:
        raise MalformedFieldError(
            f"{field_name} must be bytes or hex, got {type(value).__name__}", details={"field": field_name}
        )
    if len(raw) != size:
        raise MalformedFieldError(
            f"{field_name} must be {size} bytes, got {len(raw)}",
            details={"field": field_name, "expected": size, "actual": len(raw)},
        )
    return raw


def encode_array_length(length: int) -> bytes:
    if length < 0 or length >= 2 ** 128:
        raise MalformedFieldError(f"Array length out of range: {length}")
    return length.to_bytes(ARRAY_LENGTH_BYTES, "big")


def decode_array_length(value: bytes) -> int:
    """uint128 length; empty means 0. 32-byte values written by older tooling are accepted."""
    if not value:
        return 0
    if len(value) not in (ARRAY_LENGTH_BYTES, 32):
        raise MalformedFieldError(
            f"Array length must be 16 or 32 bytes, got {len(value)}", details={"value": "0x" + value.hex()}
        )
    return int.from_bytes(value, "big")


def encode_address_value(address: Any) -> bytes:
    return bytes.fromhex(to_address(address)[2:])


def decode_address_value(value: bytes) -> str:
    if len(value) != 20:
        raise MalformedFieldError(
            f"Address value must be 20 bytes, got {len(value)}", details={"value": "0x" + value.hex()}
        )
    return to_checksum_address("0x" + value.hex())


@dataclass(frozen=True)
class MetadataPointer:
    """Off-chain content reference: (hash function, hash, url). Replaced whole, never patched."""
    hash_function: str
    hash: bytes
    url: str

    def __post_init__(self):
        if isinstance(self.hash, bytearray):
            object.__setattr__(self, "hash", bytes(self.hash))
        elif not isinstance(self.hash, bytes):
            object.__setattr__(self, "hash", to_fixed_bytes(self.hash, 32, "hash"))
        if len(self.hash) > 0xFFFF:
            raise MalformedFieldError("Verification data too long")

    @property
    def method_id(self) -> bytes:
        if self.hash_function.startswith("0x"):
            return to_fixed_bytes(self.hash_function, 4, "hash_function")
        try:
            return HASH_METHODS[self.hash_function]
        except KeyError:
            raise MalformedFieldError(
                f"Unknown hash function {self.hash_function!r}", details={"hash_function": self.hash_function}
            ) from None

    @classmethod
    def for_content(cls, content: bytes, url: str, hash_function: str = KECCAK256_UTF8) -> "MetadataPointer":
        return cls(hash_function=hash_function, hash=keccak(content), url=url)

    def verifies(self, content: bytes) -> bool:
        return self.method_id in _METHOD_NAMES and keccak(content) == self.hash

    def to_dict(self) -> Dict[str, str]:
        return {"hashFunction": self.hash_function, "hash": "0x" + self.hash.hex(), "url": self.url}


def encode_verifiable_uri(pointer: MetadataPointer) -> bytes:
    """0x0000 ++ method bytes4 ++ uint16 length ++ hash ++ utf8(url)."""
    data = bytes(pointer.hash)
    return (
        VERIFIABLE_URI_PREFIX
        + pointer.method_id
        + len(data).to_bytes(2, "big")
        + data
        + pointer.url.encode("utf-8")
    )


def decode_metadata_pointer(value: bytes) -> Optional[MetadataPointer]:
    """Decode a VerifiableURI or a legacy JSONURL. Empty value means absent."""
    if not value:
        return None

    if value[:2] == VERIFIABLE_URI_PREFIX:
        if len(value) < 8:
            raise MalformedFieldError("Truncated VerifiableURI", details={"value": "0x" + value.hex()})
        method = value[2:6]
        size = int.from_bytes(value[6:8], "big")
        if len(value) < 8 + size:
            raise MalformedFieldError(
                "VerifiableURI verification data is truncated",
                details={"value": "0x" + value.hex(), "declared": size},
            )
        data = value[8:8 + size]
        url_bytes = value[8 + size:]
    else:
        # JSONURL: bytes4 method ++ bytes32 hash ++ url
        if len(value) < 36:
            raise MalformedFieldError("Truncated JSONURL", details={"value": "0x" + value.hex()})
        method = value[:4]
        data = value[4:36]
        url_bytes = value[36:]

    try:
        url = url_bytes.decode("utf-8")
    except UnicodeDecodeError:
        raise MalformedFieldError("Metadata URL is not valid UTF-8", details={"value": "0x" + value.hex()}) from None

    name = _METHOD_NAMES.get(method, "0x" + method.hex())
    return MetadataPointer(hash_function=name, hash=data, url=url)
