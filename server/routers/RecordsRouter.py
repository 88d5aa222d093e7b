"""Records router: list, search, upload, preview, download and delete health records.

Every route acts on behalf of the owner in the X-Owner-Id header. Errors of
the health record core are turned into JSON responses by the exception
handler registered in api_server.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from server.dependencies.auth import get_current_owner, get_record_service, verify_api_key
from server.models.responses import DocumentResponse, PreviewResponse, RecordsResponse, StatusResponse
from services.health_records.HealthRecordService import HealthRecordService
from shared.models.document import DOCUMENT_CONTENT_TYPES, Document, PDF_CONTENT_TYPE

router = APIRouter(prefix="/records", tags=["records"], dependencies=[Depends(verify_api_key)])


def _records_response(owner_id: str, documents: tuple[Document, ...], query: str | None = None) -> RecordsResponse:
    return RecordsResponse(
        owner_id=owner_id,
        query=query,
        documents=[DocumentResponse.from_document(d) for d in documents],
        total=len(documents),
    )


def _document_content_type(header: str | None) -> str:
    # clients like curl send form encodings by default, those are not document types
    media_type = (header or "").split(";", 1)[0].strip().lower()
    return media_type if media_type in DOCUMENT_CONTENT_TYPES else PDF_CONTENT_TYPE


@router.get("")
async def list_records(
    query: str | None = None,
    refresh: bool = False,
    owner_id: str = Depends(get_current_owner),
    service: HealthRecordService = Depends(get_record_service),
) -> RecordsResponse:
    """List the owner's documents, optionally filtered by a name query.

    Args:
        query (str | None): Case-insensitive substring of the document name.
        refresh (bool): Relist the blob store before answering.
    """
    if refresh:
        await service.refresh(owner_id)
    return _records_response(owner_id, service.search(query), query)


@router.post("/refresh")
async def refresh_records(
    owner_id: str = Depends(get_current_owner),
    service: HealthRecordService = Depends(get_record_service),
) -> RecordsResponse:
    """Relist the owner's documents from the blob store."""
    documents = await service.refresh(owner_id)
    return _records_response(owner_id, documents)


@router.get("/status")
async def records_status(
    owner_id: str = Depends(get_current_owner),
    service: HealthRecordService = Depends(get_record_service),
) -> StatusResponse:
    return StatusResponse(owner_id=owner_id, busy=service.busy, documents=len(service.snapshot()))


@router.put("/{file_name}", status_code=201)
async def upload_record(
    file_name: str,
    request: Request,
    owner_id: str = Depends(get_current_owner),
    service: HealthRecordService = Depends(get_record_service),
) -> DocumentResponse:
    """Upload the raw request body as a document, overwriting one with the same name."""
    content = await request.body()
    content_type = _document_content_type(request.headers.get("content-type"))
    request.app.state.logging.info("Upload received: owner_id=%s file=%r (%d bytes)", owner_id, file_name, len(content))
    document = await service.upload(owner_id, content, file_name, content_type=content_type)
    return DocumentResponse.from_document(document)


@router.get("/{index}/preview")
async def preview_record(
    index: int,
    owner_id: str = Depends(get_current_owner),
    service: HealthRecordService = Depends(get_record_service),
) -> PreviewResponse:
    """Fetch and validate a document, answering with a summary of the artifact."""
    document = service.registry.get(index)
    artifact = await service.preview(owner_id, document)
    return PreviewResponse(
        document=DocumentResponse.from_document(document),
        content_type=artifact.content_type,
        page_count=artifact.page_count,
        size_bytes=len(artifact.data),
    )


@router.get("/{index}/download")
async def download_record(
    index: int,
    owner_id: str = Depends(get_current_owner),
    service: HealthRecordService = Depends(get_record_service),
) -> FileResponse:
    """Download a document into the local download directory and serve that file."""
    document = service.registry.get(index)
    path = await service.download(owner_id, document)
    # the local copy only exists to be served
    return FileResponse(
        path=str(path),
        filename=document.name,
        media_type=document.content_type,
        background=BackgroundTask(path.unlink, missing_ok=True),
    )


@router.delete("/by-id/{document_id:path}")
async def delete_record_by_id(
    document_id: str,
    owner_id: str = Depends(get_current_owner),
    service: HealthRecordService = Depends(get_record_service),
) -> RecordsResponse:
    """Delete a document by its id ("{owner_id}/{name}"), independent of list positions."""
    await service.delete_by_id(owner_id, document_id)
    return _records_response(owner_id, service.snapshot())


@router.delete("/{index}")
async def delete_record(
    index: int,
    owner_id: str = Depends(get_current_owner),
    service: HealthRecordService = Depends(get_record_service),
) -> RecordsResponse:
    """Delete the document at a position of the owner's current list."""
    document = service.registry.get(index)
    await service.delete(owner_id, document, index)
    return _records_response(owner_id, service.snapshot())
