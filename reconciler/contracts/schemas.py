"""
reconciler/contracts/schemas.py
Pydantic schemas for LSP4 metadata documents.

These are the JSON documents a MetadataPointer points at. The pointer's hash
is keccak256 over the compact JSON serialization produced by canonical_json().
"""

from __future__ import annotations

import json
from typing import Any, List, Optional

from eth_utils import keccak
from pydantic import BaseModel, ConfigDict, Field, field_validator

from reconciler.codec.values import KECCAK256_BYTES, KECCAK256_UTF8, MetadataPointer


class Verification(BaseModel):
    method: str = KECCAK256_BYTES
    data: str

    @field_validator("data")
    @classmethod
    def check_hash(cls, v: str) -> str:
        if not v.startswith("0x") or len(v) != 66:
            raise ValueError("verification data must be a 0x-prefixed 32-byte hash")
        bytes.fromhex(v[2:])
        return v.lower()


class Link(BaseModel):
    title: str
    url: str


class ImageMetadata(BaseModel):
    width: int = Field(..., ge=0)
    height: int = Field(..., ge=0)
    url: str
    verification: Optional[Verification] = None


class AssetMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    file_type: str = Field(..., alias="fileType")
    verification: Optional[Verification] = None


class Attribute(BaseModel):
    key: str
    value: Any
    type: str = "string"


class LSP4Metadata(BaseModel):
    name: str
    description: str = ""
    links: List[Link] = Field(default_factory=list)
    icon: List[ImageMetadata] = Field(default_factory=list)
    images: List[List[ImageMetadata]] = Field(default_factory=list)
    assets: List[AssetMetadata] = Field(default_factory=list)
    attributes: List[Attribute] = Field(default_factory=list)


class LSP4Document(BaseModel):
    """Top-level document: {"LSP4Metadata": {...}}."""
    model_config = ConfigDict(populate_by_name=True)

    metadata: LSP4Metadata = Field(..., alias="LSP4Metadata")


def image_from_bytes(data: bytes, url: str, width: int, height: int) -> ImageMetadata:
    return ImageMetadata(
        width=width,
        height=height,
        url=url,
        verification=Verification(method=KECCAK256_BYTES, data="0x" + keccak(data).hex()),
    )


def canonical_json(document: LSP4Document) -> bytes:
    """Compact UTF-8 JSON, same shape as JSON.stringify of the document."""
    payload = document.model_dump(by_alias=True, exclude_none=True)
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def pointer_for_document(document: LSP4Document, url: str) -> MetadataPointer:
    return MetadataPointer.for_content(canonical_json(document), url, KECCAK256_UTF8)
