"""Generic blob store object models, backend-independent."""

from datetime import datetime

from pydantic import BaseModel


class BlobLocatorBase(BaseModel):
    """
    Opaque handle for a stored object, as returned by a blob store listing.
    Only the blob client creates these; the rest of the application passes them back unchanged.
    """
    engine: str
    path: str

    @property
    def name(self) -> str:
        """
        Returns the leaf segment of the object path, i.e. the original file name.
        """
        return self.path.rstrip("/").rsplit("/", 1)[-1]


class BlobLocator(BlobLocatorBase):
    """
    Handle for a stored object with the metadata reported by the blob store.
    """
    bucket: str | None = None
    size_bytes: int = 0
    content_type: str | None = None
    updated: datetime | None = None
    generation: str | None = None
    download_token: str | None = None


class BlobListResponse(BaseModel):
    """
    Represents one page of a blob store listing.
    """
    engine: str
    locators: list[BlobLocatorBase] = []
    prefixes: list[str] = []
    nextPageToken: str | None = None
