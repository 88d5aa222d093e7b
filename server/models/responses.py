from datetime import datetime

from pydantic import BaseModel

from shared.models.document import Document


class DocumentResponse(BaseModel):
    id: str
    name: str
    size_bytes: int
    content_type: str
    updated: datetime | None = None

    @classmethod
    def from_document(cls, document: Document) -> "DocumentResponse":
        return cls(
            id=document.id,
            name=document.name,
            size_bytes=document.size_bytes,
            content_type=document.content_type,
            updated=document.updated,
        )


class RecordsResponse(BaseModel):
    owner_id: str
    query: str | None = None
    documents: list[DocumentResponse]
    total: int


class PreviewResponse(BaseModel):
    document: DocumentResponse
    content_type: str
    page_count: int
    size_bytes: int


class StatusResponse(BaseModel):
    owner_id: str
    busy: bool
    documents: int


class ErrorResponse(BaseModel):
    error: str
    detail: str
