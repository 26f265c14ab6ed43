from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from ..auth import get_current_user_dependency
from ..documents import DocumentRepository, get_document_repository
from ..schemas import DocumentOut

router = APIRouter(
    prefix="/api/v1/documents",
    tags=["documents"],
)

current_user = get_current_user_dependency()


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=List[DocumentOut],
    summary="List Documents",
    description="Documents saved by the caller's editing sessions, most recently updated first.",
)
async def list_documents(
    repo: DocumentRepository = Depends(get_document_repository),
    user_id: str = Depends(current_user),
) -> List[DocumentOut]:
    return [DocumentOut(**d) for d in await run_in_threadpool(repo.list, user_id)]


# PUBLIC_INTERFACE
@router.get(
    "/{document_id}",
    response_model=DocumentOut,
    summary="Get Document",
    responses={404: {"description": "Document not found"}},
)
async def get_document(
    document_id: str,
    repo: DocumentRepository = Depends(get_document_repository),
    user_id: str = Depends(current_user),
) -> DocumentOut:
    item = await run_in_threadpool(repo.get, document_id)
    if item is None or item["created_by"] != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return DocumentOut(**item)
