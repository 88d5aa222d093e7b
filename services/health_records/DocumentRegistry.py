"""Document registry.

In-memory cache of the documents known for the active owner. The snapshot is
an immutable tuple that is swapped as a whole, so readers never observe a
partially rebuilt list. ``refresh`` is the only way the contents change from
an external cause; the single exception is the optimistic removal performed
after a confirmed delete.
"""

from shared.clients.blob.BlobClientInterface import BlobClientInterface
from shared.errors import InvalidIndexError, RemoteStoreError, StoreUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import Document
from services.health_records.owner import RECORDS_ROOT, owner_prefix, require_owner


class DocumentRegistry:
    """Snapshot of one owner's documents, rebuilt wholesale from the blob store."""

    def __init__(self, helper_config: HelperConfig, blob_client: BlobClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._blob_client = blob_client
        self._root = helper_config.get_string_val("HEALTH_RECORDS_ROOT", default=RECORDS_ROOT)
        self._owner_id: str | None = None
        self._snapshot: tuple[Document, ...] = ()

    ##########################################
    ################ GETTER ##################
    ##########################################

    @property
    def owner_id(self) -> str | None:
        """The owner the current snapshot belongs to, None before the first refresh."""
        return self._owner_id

    @property
    def root(self) -> str:
        return self._root

    def snapshot(self) -> tuple[Document, ...]:
        """Return the cached documents. Never blocks and never performs I/O."""
        return self._snapshot

    def get(self, index: int) -> Document:
        """Return the document at a position of the current snapshot.

        Raises:
            InvalidIndexError: If index is outside the current snapshot.
        """
        snapshot = self._snapshot
        if index < 0 or index >= len(snapshot):
            raise InvalidIndexError(f"Index {index} is out of range for {len(snapshot)} documents.", index=index)
        return snapshot[index]

    def index_of(self, document_id: str) -> int | None:
        """Return the position of a document id in the current snapshot, or None."""
        for index, document in enumerate(self._snapshot):
            if document.id == document_id:
                return index
        return None

    ##########################################
    ################ REFRESH #################
    ##########################################

    async def refresh(self, owner_id: str | None) -> tuple[Document, ...]:
        """Relist the owner's namespace and replace the snapshot.

        Switching to another owner discards the previous owner's snapshot before
        the listing starts. On failure the snapshot of the same owner is kept.

        Args:
            owner_id (str | None): The owner to list documents for.

        Returns:
            tuple[Document, ...]: The new snapshot.

        Raises:
            MissingOwnerError: If no owner is given. No request is sent.
            StoreUnavailableError: If the blob store listing failed.
        """
        owner_id = require_owner(owner_id)
        if owner_id != self._owner_id:
            if self._snapshot:
                self.logging.info("Active owner changed, discarding %d cached documents.", len(self._snapshot))
            self._owner_id = owner_id
            self._snapshot = ()

        prefix = owner_prefix(owner_id, self._root)
        try:
            locators = await self._blob_client.do_list(prefix)
        except RemoteStoreError as exc:
            self.logging.error("Refreshing documents below '%s' failed, keeping %d cached documents: %s", prefix, len(self._snapshot), exc)
            raise StoreUnavailableError(f"Listing '{prefix}' failed: {exc}", status_code=exc.status_code) from exc

        documents = tuple(Document.from_locator(owner_id, locator) for locator in locators)
        if self._owner_id != owner_id:
            # another owner became active while this listing was in flight
            self.logging.warning("Discarding listing for '%s', active owner changed meanwhile.", owner_id)
            return documents

        self._snapshot = documents
        self.logging.info("Registry refreshed: %d documents for owner '%s'.", len(documents), owner_id)
        return documents

    ##########################################
    ########### OPTIMISTIC UPDATE ############
    ##########################################

    def remove(self, index: int, document: Document) -> Document | None:
        """Drop a document that was just deleted remotely, without relisting.

        The entry at ``index`` is removed when it is still the given document;
        if a refresh moved it meanwhile, it is removed by id instead.

        Returns:
            Document | None: The removed entry, or None if it is no longer cached.
        """
        if document.owner_id != self._owner_id:
            return None
        snapshot = self._snapshot
        if 0 <= index < len(snapshot) and snapshot[index].id == document.id:
            position = index
        else:
            position = self.index_of(document.id)
            if position is None:
                return None
        self._snapshot = snapshot[:position] + snapshot[position + 1:]
        return snapshot[position]
