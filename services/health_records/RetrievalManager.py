"""Retrieval manager.

Two ways of getting a document's bytes back from the blob store:

- ``preview``: resolve a download URL, fetch the bytes and validate them into
  an in-memory ``ViewableArtifact``. The ``busy`` flag is raised for the whole
  call and lowered on every exit path.
- ``download``: stream the bytes into a new, uniquely named file in the local
  download directory. Independent of ``busy``.

Nothing is retried; every failure is raised with its own error kind.
"""

import io
import uuid
from pathlib import Path
from typing import Callable

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from shared.clients.blob.BlobClientInterface import BlobClientInterface
from shared.errors import (
    CorruptArtifactError,
    InvalidInputError,
    LocatorResolutionError,
    NetworkError,
    RemoteStoreError,
)
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import Document, PDF_CONTENT_TYPE, ViewableArtifact
from services.health_records.owner import require_owner


def count_pdf_pages(data: bytes) -> int:
    """Parse PDF bytes and return the number of pages.

    Raises:
        CorruptArtifactError: If the bytes are not a readable PDF with at least one page.
    """
    if not data.lstrip()[:5] == b"%PDF-":
        raise CorruptArtifactError("Content is not a PDF document.")
    try:
        reader = PdfReader(io.BytesIO(data), strict=False)
        page_count = len(reader.pages)
    except (PyPdfError, ValueError, KeyError, IndexError) as exc:
        raise CorruptArtifactError(f"PDF document could not be parsed: {exc}") from exc
    if page_count < 1:
        raise CorruptArtifactError("PDF document has no pages.")
    return page_count


class RetrievalManager:
    """Previews and downloads stored documents."""

    def __init__(self, helper_config: HelperConfig, blob_client: BlobClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._blob_client = blob_client
        self._download_dir = helper_config.get_path_val("HEALTH_RECORDS_DOWNLOAD_DIR", default=Path.cwd() / "downloads")
        self._parsers: dict[str, Callable[[bytes], int]] = {PDF_CONTENT_TYPE: count_pdf_pages}
        self._busy = False
        self._current_artifact: ViewableArtifact | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    @property
    def busy(self) -> bool:
        """True while a preview is resolving or fetching."""
        return self._busy

    @property
    def current_artifact(self) -> ViewableArtifact | None:
        """The artifact of the preview that completed last."""
        return self._current_artifact

    @property
    def download_dir(self) -> Path:
        return self._download_dir

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def _check_access(self, owner_id: str | None, document: Document) -> None:
        owner_id = require_owner(owner_id)
        if document.owner_id != owner_id:
            raise InvalidInputError(f"Document '{document.id}' does not belong to owner '{owner_id}'.")

    ##########################################
    ################ PREVIEW #################
    ##########################################

    async def preview(self, owner_id: str | None, document: Document) -> ViewableArtifact:
        """Fetch a document and validate it into a viewable artifact.

        Args:
            owner_id (str | None): The owner requesting the preview.
            document (Document): The document to show.

        Returns:
            ViewableArtifact: The parsed document.

        Raises:
            MissingOwnerError: If no owner is given.
            InvalidInputError: If the document belongs to another owner.
            LocatorResolutionError: If no download URL could be resolved.
            NetworkError: If fetching the bytes failed.
            CorruptArtifactError: If the bytes do not parse.
        """
        self._check_access(owner_id, document)
        self._busy = True
        try:
            url = await self._resolve(document)
            try:
                data = await self._blob_client.do_download(url)
            except RemoteStoreError as exc:
                self.logging.error("Fetching '%s' failed: %s", document.name, exc)
                if isinstance(exc, NetworkError):
                    raise
                raise NetworkError(f"Fetching '{document.name}' failed: {exc}", status_code=exc.status_code) from exc
            artifact = self._build_artifact(document, data, url)
        finally:
            self._busy = False

        self._current_artifact = artifact
        self.logging.info("Preview of '%s' ready (%d pages).", document.name, artifact.page_count)
        return artifact

    def _build_artifact(self, document: Document, data: bytes, url: str) -> ViewableArtifact:
        parser = self._parsers.get(document.content_type, count_pdf_pages)
        try:
            page_count = parser(data)
        except CorruptArtifactError as exc:
            self.logging.warning("'%s' could not be parsed as %s: %s", document.name, document.content_type, exc)
            raise
        return ViewableArtifact(
            document=document,
            content_type=document.content_type,
            data=data,
            page_count=page_count,
            source_url=url,
        )

    async def _resolve(self, document: Document) -> str:
        try:
            return await self._blob_client.do_resolve_download_url(document.remote_locator)
        except LocatorResolutionError as exc:
            self.logging.error("Resolving a download URL for '%s' failed: %s", document.name, exc)
            raise
        except RemoteStoreError as exc:
            self.logging.error("Resolving a download URL for '%s' failed: %s", document.name, exc)
            raise LocatorResolutionError(f"Could not resolve download URL for '{document.name}': {exc}") from exc

    ##########################################
    ############### DOWNLOAD #################
    ##########################################

    def _unique_path(self, document: Document) -> Path:
        suffix = Path(document.name).suffix or ".pdf"
        while True:
            candidate = self._download_dir / f"{uuid.uuid4()}{suffix}"
            if not candidate.exists():
                return candidate

    async def download(self, owner_id: str | None, document: Document) -> Path:
        """Store a document's bytes in a new local file.

        The file name is freshly generated for every call, existing files are
        never overwritten.

        Args:
            owner_id (str | None): The owner requesting the download.
            document (Document): The document to download.

        Returns:
            Path: The written file.

        Raises:
            MissingOwnerError: If no owner is given.
            InvalidInputError: If the document belongs to another owner.
            LocatorResolutionError: If no download URL could be resolved.
            NetworkError: If the transfer failed.
        """
        self._check_access(owner_id, document)
        self._download_dir.mkdir(parents=True, exist_ok=True)
        dest_path = self._unique_path(document)
        try:
            await self._blob_client.do_write_to_local_file(document.remote_locator, dest_path)
        except LocatorResolutionError as exc:
            self.logging.error("Resolving a download URL for '%s' failed: %s", document.name, exc)
            raise
        except RemoteStoreError as exc:
            self.logging.error("Downloading '%s' failed: %s", document.name, exc)
            if isinstance(exc, NetworkError):
                raise
            raise NetworkError(f"Downloading '{document.name}' failed: {exc}", status_code=exc.status_code) from exc
        self.logging.info("Downloaded '%s' to '%s'.", document.name, dest_path)
        return dest_path
