from abc import ABC, abstractmethod
from typing import Any, Callable

import httpx
from httpx._types import QueryParamTypes, RequestContent

from shared.errors import NetworkError, StoreUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class ClientInterface(ABC):
    """
    Base of every remote client. Owns one httpx.AsyncClient and resolves its settings
    from env keys named "{CLIENT_TYPE}_{ENGINE}_{KEY}", e.g. "BLOB_FIREBASE_BUCKET".
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self._config_readers: dict[str, Callable[..., Any]] = {
            "string": helper_config.get_string_val,
            "number": helper_config.get_number_val,
            "bool": helper_config.get_bool_val,
            "list": helper_config.get_list_val,
        }
        self.timeout = helper_config.get_number_val(f"{self.get_client_type().upper()}_TIMEOUT", default=30.0)
        self._client: httpx.AsyncClient | None = None

        # fail at startup, not on the first request
        for config in self._get_required_config():
            self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        """Lowercase client family, e.g. "blob"."""
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        pass

    def get_engine_name(self) -> str:
        """Lowercase backend name, e.g. "firebase"."""
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """
        Declares the engine settings checked when the client is constructed.

        Returns:
            list[EnvConfig]: One entry per setting; a None default marks it as mandatory.
        """
        pass

    def _get_config_key_name(self, raw_key: str) -> str:
        return f"{self.get_client_type().upper()}_{self.get_engine_name().upper()}_{raw_key.upper()}"

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """
        Reads an engine setting, e.g. raw_key "BUCKET" of the firebase blob client reads BLOB_FIREBASE_BUCKET.

        Args:
            raw_key (str): The setting name without client and engine prefix.
            default (Any): Returned when the variable is unset. None makes the setting mandatory.
            val_type (str): One of "string", "number", "bool", "list".

        Raises:
            ValueError: If the setting is mandatory and unset, cannot be parsed, or val_type is unknown.
        """
        reader = self._config_readers.get(val_type)
        if reader is None:
            raise ValueError(f"Unsupported config value type '{val_type}' for '{raw_key}' of {self.get_client_type()} client '{self.get_engine_name()}'.")
        return reader(self._get_config_key_name(raw_key), default=default)

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """
        Returns:
            dict: Headers authenticating against the backend, empty if no credentials are configured.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_base_url(self) -> str:
        """
        Returns:
            str: The URL every endpoint path is appended to, e.g. "https://firebasestorage.googleapis.com/v0/b/my-bucket".
        """
        pass

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        """
        Returns:
            str: A cheap read-only endpoint path used to check the backend, e.g. "/o?maxResults=1".
        """
        pass

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Open the HTTP client. Tests pass an httpx.MockTransport."""
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(f"{self.__class__.__name__} is not booted, call boot() first.")
        return self._client

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> httpx.Response:
        """Check that the backend answers. The response is returned whatever its status."""
        return await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck())

    async def do_request(
        self,
        method: str = "GET",
        content: RequestContent | None = None,
        json: dict | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        url: str | None = None,
        additional_headers: dict | None = None,
        raise_on_error: bool = False,
    ) -> httpx.Response:
        """Send one request to the backend with the auth header applied.

        Args:
            method: HTTP verb.
            content: Raw bytes or an async byte iterator. The caller sets Content-Type.
            json: JSON body, used only when content is None.
            params: Query parameters added to the URL.
            endpoint: Path below the base URL.
            url: Absolute URL used instead of base URL and endpoint, e.g. a resolved download URL.
            additional_headers: Headers applied on top of the auth header.
            raise_on_error: Turn a non-2xx answer into StoreUnavailableError.

        Returns:
            The httpx.Response.

        Raises:
            NetworkError: If the request could not be transmitted.
            StoreUnavailableError: If raise_on_error is set and the status is not 2xx.
        """
        client = self._require_client()
        if url is None:
            path = endpoint.strip().lstrip("/")
            url = self._get_base_url().rstrip("/") + (f"/{path}" if path else "")

        headers = {**self._get_auth_header(), **(additional_headers or {})}
        body: dict = {"content": content} if content is not None else ({"json": json} if json is not None else {})

        try:
            response = await client.request(method, url, headers=headers, params=params, timeout=self.timeout, **body)
        except httpx.TransportError as exc:
            self.logging.error("%s %s could not be sent: %s", method, url, exc)
            raise NetworkError(f"{method} {url} failed: {exc}") from exc

        if raise_on_error and not response.is_success:
            self.logging.error("%s %s answered with status %d: %s", method, url, response.status_code, response.text)
            raise StoreUnavailableError(f"{method} {url} failed with status {response.status_code}", status_code=response.status_code)
        return response
