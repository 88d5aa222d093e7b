"""Upload manager.

Stores a local file in the owner's namespace, reports transfer progress and
refreshes the registry before the upload resolves, so a caller awaiting the
upload sees the new document in ``DocumentRegistry.snapshot()``.

Uploads are last-write-wins: a second upload with the same file name
overwrites the object at that path. Concurrent uploads are not serialized;
the registry reflects whichever refresh completed last.
"""

import asyncio
from typing import AsyncIterator

from shared.clients.blob.BlobClientInterface import BlobClientInterface
from shared.errors import InvalidInputError, RegistrySyncError, RemoteStoreError, StoreUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import Document, PDF_CONTENT_TYPE
from services.health_records.DocumentRegistry import DocumentRegistry
from services.health_records.owner import record_path, require_owner

MAX_UPLOAD_BYTES = 20 * 1024 * 1024


def _retrieve_exception(task: asyncio.Task) -> None:
    # a caller may follow progress without ever awaiting the task
    if not task.cancelled():
        task.exception()


class UploadTask:
    """Handle of a running upload.

    ``await task`` resolves to the stored Document (or raises the upload error).
    ``async for fraction in task.progress()`` yields strictly increasing
    fractions in [0.0, 1.0]; consuming it is optional.
    """

    def __init__(self, owner_id: str, file_name: str) -> None:
        self.owner_id = owner_id
        self.file_name = file_name
        self._fraction: float | None = None
        self._queue: asyncio.Queue[float | None] = asyncio.Queue()
        self._task: asyncio.Task | None = None

    @property
    def fraction(self) -> float:
        """The last reported progress fraction."""
        return self._fraction or 0.0

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def _report(self, fraction: float) -> None:
        fraction = min(max(fraction, 0.0), 1.0)
        if self._fraction is not None and fraction <= self._fraction:
            return
        self._fraction = fraction
        self._queue.put_nowait(fraction)

    def _finish(self) -> None:
        self._queue.put_nowait(None)

    async def progress(self) -> AsyncIterator[float]:
        """Yield progress fractions until the upload has finished."""
        while True:
            fraction = await self._queue.get()
            if fraction is None:
                # keep the end marker for later iterations
                self._queue.put_nowait(None)
                return
            yield fraction

    def __await__(self):
        if self._task is None:
            raise RuntimeError("Upload task has not been started.")
        return self._task.__await__()


class UploadManager:
    """Uploads files into an owner's health record namespace."""

    def __init__(
        self,
        helper_config: HelperConfig,
        blob_client: BlobClientInterface,
        registry: DocumentRegistry,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._blob_client = blob_client
        self._registry = registry
        self._max_upload_bytes = int(helper_config.get_number_val("HEALTH_RECORDS_MAX_UPLOAD_BYTES", default=MAX_UPLOAD_BYTES))

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def _validate(self, file_bytes: bytes, file_name: str) -> None:
        """
        Raises:
            InvalidInputError: If the content is empty or too large, or the name is not a valid leaf path segment.
        """
        if not file_name or not file_name.strip():
            raise InvalidInputError("File name must not be empty.")
        if "/" in file_name or file_name in (".", ".."):
            raise InvalidInputError(f"File name '{file_name}' is not a valid object name.")
        if not file_bytes:
            raise InvalidInputError(f"File '{file_name}' is empty.")
        if len(file_bytes) > self._max_upload_bytes:
            raise InvalidInputError(f"File '{file_name}' is too large ({len(file_bytes)} bytes, max {self._max_upload_bytes}).")

    ##########################################
    ################ UPLOAD ##################
    ##########################################

    def start_upload(
        self,
        owner_id: str | None,
        file_bytes: bytes,
        file_name: str,
        content_type: str = PDF_CONTENT_TYPE,
    ) -> UploadTask:
        """Validate the input and start the upload in the background.

        Must be called from a running event loop. Validation errors are raised
        immediately, before any request is sent.

        Args:
            owner_id (str | None): The owner to upload for.
            file_bytes (bytes): The file content.
            file_name (str): The original file name, used as object name.
            content_type (str): The MIME type to store.

        Returns:
            UploadTask: Awaitable handle exposing the progress stream.

        Raises:
            MissingOwnerError: If no owner is given.
            InvalidInputError: If file_bytes or file_name are invalid.
        """
        owner_id = require_owner(owner_id)
        self._validate(file_bytes, file_name)

        task = UploadTask(owner_id=owner_id, file_name=file_name)
        task._task = asyncio.create_task(self._run(task, owner_id, file_bytes, file_name, content_type))
        task._task.add_done_callback(_retrieve_exception)
        return task

    async def upload(
        self,
        owner_id: str | None,
        file_bytes: bytes,
        file_name: str,
        content_type: str = PDF_CONTENT_TYPE,
    ) -> Document:
        """Upload a file and wait until the registry reflects it.

        Returns:
            Document: The stored document as listed by the registry.

        Raises:
            MissingOwnerError: If no owner is given.
            InvalidInputError: If file_bytes or file_name are invalid.
            NetworkError: If the transfer failed.
            StoreUnavailableError: If the store rejected the upload.
            RegistrySyncError: If the upload succeeded but the registry refresh failed.
        """
        return await self.start_upload(owner_id, file_bytes, file_name, content_type)

    async def _run(
        self,
        task: UploadTask,
        owner_id: str,
        file_bytes: bytes,
        file_name: str,
        content_type: str,
    ) -> Document:
        path = record_path(owner_id, file_name, self._registry.root)
        total = len(file_bytes)
        try:
            task._report(0.0)
            self.logging.info("Uploading '%s' (%d bytes) for owner '%s'...", file_name, total, owner_id)
            try:
                locator = await self._blob_client.do_put(
                    path,
                    file_bytes,
                    content_type,
                    on_progress=lambda sent, size: task._report(sent / size if size else 1.0),
                )
            except RemoteStoreError as exc:
                self.logging.error("Upload of '%s' failed: %s", file_name, exc)
                raise
            task._report(1.0)

            # the put already happened, a failed refresh must not look like a failed upload
            document = Document.from_locator(owner_id, locator)
            try:
                await self._registry.refresh(owner_id)
            except StoreUnavailableError as exc:
                raise RegistrySyncError(
                    f"'{file_name}' was stored but the document list could not be refreshed: {exc}",
                    document=document,
                    status_code=exc.status_code,
                ) from exc
        finally:
            task._finish()

        self.logging.info("Upload of '%s' complete.", file_name)
        position = self._registry.index_of(document.id)
        if position is not None and self._registry.owner_id == owner_id:
            return self._registry.snapshot()[position]
        return document
