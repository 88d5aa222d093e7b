import asyncio
from abc import abstractmethod
from pathlib import Path
from typing import AsyncIterator, Callable, TypeVar

import httpx
from pydantic import ValidationError

from shared.clients.ClientInterface import ClientInterface
from shared.clients.blob.models.BlobLocator import BlobLocatorBase, BlobLocator, BlobListResponse
from shared.errors import LocatorResolutionError, NetworkError, RemoteStoreError, StoreUnavailableError
from shared.helper.HelperConfig import HelperConfig

ProgressCallback = Callable[[int, int], None]
ParsedT = TypeVar("ParsedT")


class BlobClientInterface(ClientInterface):
    """
    Async client for a remote object store. Objects are addressed by slash-separated paths,
    e.g. "health_records/{owner_id}/{file_name}".
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._page_size = int(self.get_config_val("PAGE_SIZE", default=100, val_type="number"))
        self._upload_chunk_size = int(self.get_config_val("UPLOAD_CHUNK_SIZE", default=64 * 1024, val_type="number"))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "blob"
        """
        return "blob"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_list(self, prefix: str, page_token: str | None = None, page_size: int = 100) -> str:
        """
        Returns the endpoint path for listing the objects directly below a prefix.

        Args:
            prefix (str): The path prefix, ending with "/".
            page_token (str | None): Continuation token of the previous page, if any.
            page_size (int): The number of objects per page.

        Returns:
            str: The endpoint path for listing requests.
        """
        pass

    @abstractmethod
    def _get_endpoint_object(self, path: str) -> str:
        """
        Returns the endpoint path addressing a single object (metadata and delete requests).

        Args:
            path (str): The full object path.

        Returns:
            str: The endpoint path for the object.
        """
        pass

    @abstractmethod
    def _get_endpoint_upload(self, path: str) -> str:
        """
        Returns the endpoint path for uploading the raw bytes of an object.

        Args:
            path (str): The full object path to write to.

        Returns:
            str: The endpoint path for upload requests.
        """
        pass

    @abstractmethod
    def _get_download_url(self, locator: BlobLocator) -> str:
        """
        Builds the absolute download URL of an object from its freshly fetched metadata.

        Args:
            locator (BlobLocator): The object handle with current metadata.

        Returns:
            str: An absolute URL the object bytes can be fetched from.

        Raises:
            LocatorResolutionError: If the metadata does not allow building a download URL.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    ############# LISTING REQUESTS ##############
    async def do_fetch_locators(self, prefix: str) -> list[BlobLocatorBase]:
        """
        Fetches all objects directly below a prefix, following pagination.

        Args:
            prefix (str): The path prefix, ending with "/".

        Returns:
            list[BlobLocatorBase]: The listed objects in the order returned by the store.

        Raises:
            NetworkError: If a request could not be transmitted.
            StoreUnavailableError: If the store answered with an error status.
        """
        locators: list[BlobLocatorBase] = []
        page_token: str | None = None
        page = 1
        while True:
            resp = await self.do_request(
                method="GET",
                endpoint=self._get_endpoint_list(prefix, page_token=page_token, page_size=self._page_size),
                raise_on_error=True,
            )
            list_response = self._parse_response(resp, self._parse_endpoint_list)
            locators.extend(list_response.locators)
            self.logging.debug("Fetched listing page %d for prefix '%s' from %s, %d objects so far.", page, prefix, self._get_engine_name(), len(locators))
            page_token = list_response.nextPageToken
            if not page_token:
                break
            page += 1
        return locators

    async def do_list(self, prefix: str) -> list[BlobLocator]:
        """
        Lists all objects directly below a prefix, including their metadata.
        Objects deleted between the listing and their metadata request are skipped.

        Args:
            prefix (str): The path prefix, ending with "/".

        Returns:
            list[BlobLocator]: Detailed object handles in listing order.

        Raises:
            NetworkError: If a request could not be transmitted.
            StoreUnavailableError: If the store answered with an error status.
        """
        locators = await self.do_fetch_locators(prefix)

        # fetch metadata for each locator which is only a BlobLocatorBase object
        results = await asyncio.gather(
            *(self._fetch_listed_details(locator) for locator in locators),
            return_exceptions=True,
        )
        detailed_locators: list[BlobLocator] = []
        for result in results:
            if isinstance(result, BaseException):
                raise result
            if result is not None:
                detailed_locators.append(result)
        self.logging.info("Listed %d objects below '%s' from %s.", len(detailed_locators), prefix, self._get_engine_name())
        return detailed_locators

    async def _fetch_listed_details(self, locator: BlobLocatorBase) -> BlobLocator | None:
        if isinstance(locator, BlobLocator):
            return locator
        try:
            return await self.do_fetch_locator_details(locator.path)
        except StoreUnavailableError as exc:
            if exc.status_code != 404:
                raise
            self.logging.warning("Object '%s' disappeared while listing, skipping it.", locator.path)
            return None

    ############# GET REQUESTS ##############
    async def do_fetch_locator_details(self, path: str) -> BlobLocator:
        """
        Fetches the metadata of a single object.

        Args:
            path (str): The full object path.

        Returns:
            BlobLocator: The object handle with its current metadata.

        Raises:
            NetworkError: If the request could not be transmitted.
            StoreUnavailableError: If the store answered with an error status (e.g. object not found) or unreadable metadata.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_object(path), raise_on_error=True)
        return self._parse_response(resp, self._parse_endpoint_object)

    async def do_resolve_download_url(self, locator: BlobLocatorBase) -> str:
        """
        Resolves a download URL for an object. The metadata is always re-fetched so the
        URL carries the current access token.

        Args:
            locator (BlobLocatorBase): The object handle.

        Returns:
            str: An absolute download URL.

        Raises:
            LocatorResolutionError: If the metadata could not be fetched or carries no download access.
        """
        try:
            details = await self.do_fetch_locator_details(locator.path)
        except RemoteStoreError as exc:
            raise LocatorResolutionError(f"Could not resolve download URL for '{locator.path}': {exc}") from exc
        return self._get_download_url(details)

    ############# WRITE REQUESTS ##############
    async def do_put(
        self,
        path: str,
        data: bytes,
        content_type: str,
        on_progress: ProgressCallback | None = None,
    ) -> BlobLocator:
        """
        Uploads bytes to an object path, overwriting any existing object at that path.

        Args:
            path (str): The full object path.
            data (bytes): The object content.
            content_type (str): The MIME type to store with the object.
            on_progress (ProgressCallback | None): Called with (bytes_sent, total_bytes) as chunks are transmitted.

        Returns:
            BlobLocator: The handle of the stored object.

        Raises:
            NetworkError: If the transfer failed.
            StoreUnavailableError: If the store rejected the upload or answered with unreadable metadata.
        """
        total = len(data)
        chunk_size = max(1, self._upload_chunk_size)

        async def _body() -> AsyncIterator[bytes]:
            sent = 0
            for start in range(0, total, chunk_size):
                chunk = data[start:start + chunk_size]
                yield chunk
                sent += len(chunk)
                if on_progress is not None:
                    on_progress(sent, total)

        resp = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_upload(path),
            content=_body(),
            additional_headers={"Content-Type": content_type, "Content-Length": str(total)},
            raise_on_error=True,
        )
        locator = self._parse_response(resp, self._parse_endpoint_object)
        self.logging.info("Uploaded '%s' (%d bytes) to %s.", path, total, self._get_engine_name())
        return locator

    async def do_delete(self, locator: BlobLocatorBase) -> None:
        """
        Deletes an object.

        Args:
            locator (BlobLocatorBase): The object handle.

        Raises:
            NetworkError: If the request could not be transmitted.
            StoreUnavailableError: If the store answered with an error status.
        """
        await self.do_request(method="DELETE", endpoint=self._get_endpoint_object(locator.path), raise_on_error=True)
        self.logging.info("Deleted '%s' from %s.", locator.path, self._get_engine_name())

    ############# DOWNLOADS ##############
    async def do_download(self, url: str) -> bytes:
        """
        Fetches the bytes behind a resolved download URL.

        Args:
            url (str): An absolute download URL.

        Returns:
            bytes: The object content.

        Raises:
            NetworkError: If the transfer failed or the URL answered with an error status.
        """
        resp = await self.do_request(method="GET", url=url)
        if not resp.is_success:
            raise NetworkError(f"Download failed with status {resp.status_code}", status_code=resp.status_code)
        return resp.content

    async def do_download_to_file(self, url: str, dest_path: Path) -> int:
        """
        Streams the bytes behind a resolved download URL into a new local file.
        The file must not exist yet; a partially written file is removed on failure.

        Args:
            url (str): An absolute download URL.
            dest_path (Path): The file to create.

        Returns:
            int: The number of bytes written.

        Raises:
            FileExistsError: If dest_path already exists.
            NetworkError: If the transfer failed or the URL answered with an error status.
        """
        client = self._require_client()
        written = 0
        fh = open(dest_path, "xb")
        try:
            with fh:
                try:
                    async with client.stream("GET", url, headers=self._get_auth_header(), timeout=self.timeout) as resp:
                        if not resp.is_success:
                            raise NetworkError(f"Download failed with status {resp.status_code}", status_code=resp.status_code)
                        async for chunk in resp.aiter_bytes():
                            fh.write(chunk)
                            written += len(chunk)
                except httpx.HTTPError as exc:
                    raise NetworkError(f"Download to '{dest_path}' failed: {exc}") from exc
        except BaseException:
            # also covers cancellation
            dest_path.unlink(missing_ok=True)
            raise
        return written

    async def do_write_to_local_file(self, locator: BlobLocatorBase, dest_path: Path) -> Path:
        """
        Resolves the download URL of an object and streams its bytes into a new local file.

        Args:
            locator (BlobLocatorBase): The object handle.
            dest_path (Path): The file to create.

        Returns:
            Path: The written file.

        Raises:
            LocatorResolutionError: If the download URL could not be resolved.
            NetworkError: If the transfer failed.
        """
        url = await self.do_resolve_download_url(locator)
        written = await self.do_download_to_file(url, dest_path)
        self.logging.info("Wrote '%s' (%d bytes) to '%s'.", locator.path, written, dest_path)
        return dest_path

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def _parse_response(self, resp: httpx.Response, parser: Callable[[dict], ParsedT]) -> ParsedT:
        """
        Decodes a successful JSON response and hands it to an endpoint parser.

        Raises:
            StoreUnavailableError: If the body is not JSON or does not match the expected shape.
        """
        try:
            return parser(resp.json())
        except (ValueError, TypeError, AttributeError, ValidationError) as exc:
            self.logging.error("Unreadable answer from %s for %s %s: %s", self._get_engine_name(), resp.request.method, resp.request.url, exc)
            raise StoreUnavailableError(
                f"{resp.request.method} {resp.request.url} returned an unreadable body: {exc}",
                status_code=resp.status_code,
            ) from exc

    @abstractmethod
    def _parse_endpoint_list(self, response: dict) -> BlobListResponse:
        """
        Parses one page of a listing response.

        Args:
            response (dict): The raw response from the listing endpoint.

        Returns:
            BlobListResponse: The parsed page with its continuation token.
        """
        pass

    @abstractmethod
    def _parse_endpoint_object(self, response: dict) -> BlobLocator:
        """
        Parses the metadata of a single object.

        Args:
            response (dict): The raw object metadata as returned by the backend API.

        Returns:
            BlobLocator: The parsed object handle.
        """
        pass
