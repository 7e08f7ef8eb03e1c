"""
reconciler/contracts
Outward-facing data contracts: calldata for submitters and LSP4 documents.
"""

from reconciler.contracts.payloads import (
    encode_batch_via_profile,
    encode_execute_call,
    encode_key_manager_execute,
    encode_set_data,
    encode_set_data_batch,
)
from reconciler.contracts.schemas import LSP4Document, LSP4Metadata, canonical_json, pointer_for_document

__all__ = [
    "encode_batch_via_profile",
    "encode_execute_call",
    "encode_key_manager_execute",
    "encode_set_data",
    "encode_set_data_batch",
    "LSP4Document",
    "LSP4Metadata",
    "canonical_json",
    "pointer_for_document",
]
