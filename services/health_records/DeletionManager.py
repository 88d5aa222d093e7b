"""Deletion manager.

Removes a document from the blob store and reconciles the registry with an
optimistic local removal instead of a full relist.
"""

from shared.clients.blob.BlobClientInterface import BlobClientInterface
from shared.errors import InvalidIndexError, InvalidInputError, RemoteStoreError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import Document
from services.health_records.DocumentRegistry import DocumentRegistry
from services.health_records.owner import require_owner


class DeletionManager:
    """Deletes documents of the registry's active owner."""

    def __init__(
        self,
        helper_config: HelperConfig,
        blob_client: BlobClientInterface,
        registry: DocumentRegistry,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._blob_client = blob_client
        self._registry = registry

    async def delete(self, owner_id: str | None, document: Document, index_hint: int) -> None:
        """Delete a document and remove it from the registry snapshot.

        Args:
            owner_id (str | None): The owner deleting the document.
            document (Document): The document to delete.
            index_hint (int): The document's position in the caller's view of the snapshot.

        Raises:
            MissingOwnerError: If no owner is given. No request is sent.
            InvalidIndexError: If index_hint is outside the current snapshot. No request is sent.
            InvalidInputError: If the document belongs to another owner. No request is sent.
            NetworkError: If the request could not be transmitted. The snapshot is unchanged.
            StoreUnavailableError: If the store rejected the delete. The snapshot is unchanged.
        """
        owner_id = require_owner(owner_id)
        if self._registry.owner_id != owner_id:
            raise InvalidIndexError(f"The cached document list does not belong to owner '{owner_id}'.", index=index_hint)
        snapshot_size = len(self._registry.snapshot())
        if index_hint < 0 or index_hint >= snapshot_size:
            raise InvalidIndexError(f"Index {index_hint} is out of range for {snapshot_size} documents.", index=index_hint)
        if document.owner_id != owner_id:
            raise InvalidInputError(f"Document '{document.id}' does not belong to owner '{owner_id}'.")

        try:
            await self._blob_client.do_delete(document.remote_locator)
        except RemoteStoreError as exc:
            self.logging.error("Deleting '%s' failed, it may still exist remotely: %s", document.name, exc)
            raise

        removed = self._registry.remove(index_hint, document)
        if removed is None:
            self.logging.warning("Deleted '%s', but it was no longer in the cached document list.", document.name)
        else:
            self.logging.info("Deleted '%s'.", document.name)

    async def delete_by_id(self, owner_id: str | None, document_id: str) -> Document:
        """Delete a document addressed by id instead of position.

        Returns:
            Document: The deleted document.

        Raises:
            MissingOwnerError: If no owner is given.
            InvalidIndexError: If the id is not in the current snapshot.
            NetworkError, StoreUnavailableError: As for delete().
        """
        require_owner(owner_id)
        position = self._registry.index_of(document_id)
        if position is None:
            raise InvalidIndexError(f"Document '{document_id}' is not in the current document list.")
        document = self._registry.snapshot()[position]
        await self.delete(owner_id, document, position)
        return document
