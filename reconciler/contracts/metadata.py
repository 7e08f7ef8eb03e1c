"""
reconciler/contracts/metadata.py
Publishing and fetching metadata documents.

Uploading is delegated to a caller-supplied ContentUploader (a pinning
service client); only the resulting MetadataPointer flows into the planner.
Uploader failures surface as UploadError.
"""

from __future__ import annotations

import json
import logging
from typing import Optional, Protocol

import httpx
from pydantic import ValidationError

from reconciler.codec.values import MetadataPointer
from reconciler.contracts.schemas import LSP4Document, canonical_json, pointer_for_document
from reconciler.errors import MalformedFieldError, ReconcilerError, UploadError
from reconciler.net.adapter import fetch_content

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY = "https://api.universalprofile.cloud/ipfs/"


class ContentUploader(Protocol):
    async def upload(self, content: bytes, filename: str) -> str:
        """Store `content` and return its content identifier (CID)."""
        ...


async def publish_metadata(
    uploader: ContentUploader,
    document: LSP4Document,
    filename: str = "metadata.json",
    scheme: str = "ipfs://",
) -> MetadataPointer:
    """Upload the canonical JSON of `document` and return the pointer to store on-chain."""
    content = canonical_json(document)
    try:
        cid = await uploader.upload(content, filename)
    except ReconcilerError:
        raise
    except Exception as e:
        logger.error(f"[Metadata] Upload of {filename} failed: {e}")
        raise UploadError(f"Upload of {filename} failed: {e}", details={"filename": filename}) from e

    if not cid or not isinstance(cid, str):
        raise UploadError("Uploader returned no content identifier", details={"filename": filename})

    url = cid if "://" in cid else f"{scheme}{cid}"
    logger.info(f"[Metadata] Published {filename} as {url}")
    return pointer_for_document(document, url)


def gateway_url(url: str, gateway: str = DEFAULT_GATEWAY) -> str:
    if url.startswith("ipfs://"):
        return gateway.rstrip("/") + "/" + url[len("ipfs://"):]
    return url


async def fetch_metadata(
    pointer: MetadataPointer,
    client: Optional[httpx.AsyncClient] = None,
    gateway: str = DEFAULT_GATEWAY,
) -> LSP4Document:
    """Download the document a pointer references, verify its hash and parse it."""
    url = gateway_url(pointer.url, gateway)
    content = await fetch_content(url, client)
    if not pointer.verifies(content):
        raise MalformedFieldError(
            "Fetched content does not match the pointer hash",
            details={"url": pointer.url, "hash": "0x" + pointer.hash.hex()},
        )
    try:
        return LSP4Document.model_validate(json.loads(content))
    except (ValueError, ValidationError) as e:
        raise MalformedFieldError(f"Metadata at {pointer.url} is not an LSP4 document", details={"url": pointer.url}) from e
