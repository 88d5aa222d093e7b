"""Pydantic models for health record documents.

Hierarchy:
  Document: one stored health record of an owner, as held by the registry.
  ViewableArtifact: fetched and parsed document bytes, ready for rendering.
"""

from datetime import datetime

from pydantic import BaseModel

from shared.clients.blob.models.BlobLocator import BlobLocator

PDF_CONTENT_TYPE = "application/pdf"
DOCUMENT_CONTENT_TYPES = frozenset({PDF_CONTENT_TYPE})


class Document(BaseModel):
    """A health record stored for exactly one owner.

    The id equals the owner-scoped storage path ("{owner_id}/{name}"), so a
    second upload with the same name addresses the same document.
    """

    id: str
    owner_id: str
    name: str
    size_bytes: int = 0
    content_type: str = PDF_CONTENT_TYPE
    updated: datetime | None = None
    remote_locator: BlobLocator

    @classmethod
    def from_locator(cls, owner_id: str, locator: BlobLocator) -> "Document":
        """Build a Document from a locator returned by the blob client.

        Args:
            owner_id (str): The owner the locator was listed for.
            locator (BlobLocator): The handle returned by the blob store.

        Returns:
            Document: The document entry for the registry.
        """
        return cls(
            id=f"{owner_id}/{locator.name}",
            owner_id=owner_id,
            name=locator.name,
            size_bytes=locator.size_bytes,
            content_type=locator.content_type or PDF_CONTENT_TYPE,
            updated=locator.updated,
            remote_locator=locator,
        )


class ViewableArtifact(BaseModel):
    """In-memory, validated representation of a document's bytes."""

    document: Document
    content_type: str
    data: bytes
    page_count: int
    source_url: str
