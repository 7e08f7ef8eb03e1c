"""Wire codecs for LSP6 permissions, allowed calls, LSP2 keys and metadata values."""

from reconciler.codec.allowed_calls import (
    WILDCARD,
    AllowedCallEntry,
    CallType,
    decode_allowed_calls,
    encode_allowed_call,
    encode_allowed_calls,
    selector,
)
from reconciler.codec.keys import (
    ADDRESS_PERMISSIONS_ARRAY,
    LSP3_PROFILE,
    LSP4_METADATA,
    allowed_calls_key,
    array_element_key,
    array_key,
    derive_key,
    permissions_key,
    resolve_key,
)
from reconciler.codec.permissions import (
    UNKNOWN_BITS,
    ZERO_BITMASK,
    Capability,
    combine_permissions,
    decode_permissions,
    encode_permissions,
    remove_permissions,
)
from reconciler.codec.values import (
    MetadataPointer,
    decode_metadata_pointer,
    encode_verifiable_uri,
    to_address,
)

__all__ = [
    "WILDCARD",
    "AllowedCallEntry",
    "CallType",
    "decode_allowed_calls",
    "encode_allowed_call",
    "encode_allowed_calls",
    "selector",
    "ADDRESS_PERMISSIONS_ARRAY",
    "LSP3_PROFILE",
    "LSP4_METADATA",
    "allowed_calls_key",
    "array_element_key",
    "array_key",
    "derive_key",
    "permissions_key",
    "resolve_key",
    "UNKNOWN_BITS",
    "ZERO_BITMASK",
    "Capability",
    "combine_permissions",
    "decode_permissions",
    "encode_permissions",
    "remove_permissions",
    "MetadataPointer",
    "decode_metadata_pointer",
    "encode_verifiable_uri",
    "to_address",
]
