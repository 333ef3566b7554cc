"""
SOP REST routes served by the proxy.

Each request gets its own adapter; the router does not hold any state.
Only reads answer 404; a missing folder or file on a write is a store failure.
"""

import logging
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, Path
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..adapters.base import StorageAdapter
from ..adapters.proxy import unquote_etag
from ..exceptions import NotFound, StorageError
from ..models import Document

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[], StorageAdapter]


class SopListResponse(BaseModel):
    """Every stored SOP keyed by id."""
    sops: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class SaveSopResponse(BaseModel):
    """Result of a save."""
    ok: bool = True
    id: str
    version: Optional[str] = None


class DeleteSopResponse(BaseModel):
    ok: bool = True


def create_sop_router(adapter_factory: AdapterFactory) -> APIRouter:
    """
    Create the /sops router.

    Args:
        adapter_factory: Builds a fresh adapter per request; raises
            NotConfigured when the service lacks a folder or credentials

    Returns:
        Configured APIRouter
    """
    router = APIRouter()

    async def get_adapter() -> AsyncIterator[StorageAdapter]:
        adapter = adapter_factory()
        try:
            yield adapter
        finally:
            await adapter.aclose()

    @router.get("/sops", response_model=SopListResponse)
    async def list_sops(adapter: StorageAdapter = Depends(get_adapter)):
        """List all SOPs."""
        documents = await adapter.list_all()
        return SopListResponse(
            sops={doc_id: doc.to_dict() for doc_id, doc in documents.items()}
        )

    @router.post("/sops", response_model=SaveSopResponse)
    async def save_sop(
        payload: Dict[str, Any] = Body(...),
        if_match: Optional[str] = Header(None),
        adapter: StorageAdapter = Depends(get_adapter),
    ):
        """Create or update a SOP. Send the ETag of the last read as If-Match."""
        doc = Document.from_dict(payload).prepared_for_save()
        try:
            version = await adapter.put(doc, unquote_etag(if_match))
        except NotFound as e:
            raise StorageError(f"Failed to save SOP {doc.id}: {e.message}", e.details)
        logger.info(f"Saved SOP via proxy: {doc.id}")
        return SaveSopResponse(id=doc.id, version=version)

    @router.get("/sops/{sop_id}")
    async def get_sop(
        sop_id: str = Path(..., description="SOP ID"),
        adapter: StorageAdapter = Depends(get_adapter),
    ):
        """Get one SOP; its version is returned in the ETag header."""
        doc = await adapter.get(sop_id)
        headers = {"ETag": f'"{doc.version}"'} if doc.version else None
        return JSONResponse(content=doc.to_dict(), headers=headers)

    @router.delete("/sops/{sop_id}", response_model=DeleteSopResponse)
    async def delete_sop(
        sop_id: str = Path(..., description="SOP ID"),
        adapter: StorageAdapter = Depends(get_adapter),
    ):
        """Delete a SOP. Deleting a missing SOP succeeds."""
        try:
            await adapter.delete(sop_id)
        except NotFound as e:
            raise StorageError(f"Failed to delete SOP {sop_id}: {e.message}", e.details)
        return DeleteSopResponse()

    return router
