"""Health record service.

Wires one document registry and the upload, retrieval and deletion managers
over a single blob store client. One instance serves one active owner at a
time, like the records screen of the mobile app it backs.
"""

from pathlib import Path

from shared.clients.blob.BlobClientInterface import BlobClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import Document, PDF_CONTENT_TYPE, ViewableArtifact
from services.health_records.DeletionManager import DeletionManager
from services.health_records.DocumentRegistry import DocumentRegistry
from services.health_records.RetrievalManager import RetrievalManager
from services.health_records.UploadManager import UploadManager, UploadTask
from services.health_records.document_filter import filter_documents


class HealthRecordService:
    """Entry point for the document lifecycle of one owner."""

    def __init__(self, helper_config: HelperConfig, blob_client: BlobClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self.registry = DocumentRegistry(helper_config=helper_config, blob_client=blob_client)
        self.uploads = UploadManager(helper_config=helper_config, blob_client=blob_client, registry=self.registry)
        self.retrieval = RetrievalManager(helper_config=helper_config, blob_client=blob_client)
        self.deletion = DeletionManager(helper_config=helper_config, blob_client=blob_client, registry=self.registry)

    ##########################################
    ################ LISTING #################
    ##########################################

    @property
    def busy(self) -> bool:
        return self.retrieval.busy

    def snapshot(self) -> tuple[Document, ...]:
        return self.registry.snapshot()

    def search(self, query: str | None) -> tuple[Document, ...]:
        return filter_documents(self.registry.snapshot(), query)

    async def refresh(self, owner_id: str | None) -> tuple[Document, ...]:
        return await self.registry.refresh(owner_id)

    ##########################################
    ############### MUTATIONS ################
    ##########################################

    def start_upload(self, owner_id: str | None, file_bytes: bytes, file_name: str, content_type: str = PDF_CONTENT_TYPE) -> UploadTask:
        return self.uploads.start_upload(owner_id, file_bytes, file_name, content_type)

    async def upload(self, owner_id: str | None, file_bytes: bytes, file_name: str, content_type: str = PDF_CONTENT_TYPE) -> Document:
        return await self.uploads.upload(owner_id, file_bytes, file_name, content_type)

    async def delete(self, owner_id: str | None, document: Document, index_hint: int) -> None:
        await self.deletion.delete(owner_id, document, index_hint)

    async def delete_by_id(self, owner_id: str | None, document_id: str) -> Document:
        return await self.deletion.delete_by_id(owner_id, document_id)

    ##########################################
    ############### RETRIEVAL ################
    ##########################################

    async def preview(self, owner_id: str | None, document: Document) -> ViewableArtifact:
        return await self.retrieval.preview(owner_id, document)

    async def download(self, owner_id: str | None, document: Document) -> Path:
        return await self.retrieval.download(owner_id, document)
