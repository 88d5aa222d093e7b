from datetime import datetime
from urllib.parse import quote, urlencode

from shared.clients.blob.BlobClientInterface import BlobClientInterface
from shared.clients.blob.models.BlobLocator import BlobLocatorBase, BlobLocator, BlobListResponse
from shared.errors import LocatorResolutionError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class BlobClientFirebase(BlobClientInterface):
    """Client for the Firebase Storage REST API (v0)."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._bucket = self.get_config_val("BUCKET", default=None, val_type="string")
        self._api_url = self.get_config_val("BASE_URL", default="https://firebasestorage.googleapis.com", val_type="string")
        self._id_token = self.get_config_val("ID_TOKEN", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Firebase"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BUCKET", val_type="string", default=None),
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://firebasestorage.googleapis.com"),
            EnvConfig(env_key="ID_TOKEN", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._id_token:
            return {"Authorization": f"Firebase {self._id_token}"}
        else:
            return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return f"{self._api_url.rstrip('/')}/v0/b/{self._bucket}"

    def _get_endpoint_healthcheck(self) -> str:
        return "/o?maxResults=1"

    def _get_endpoint_list(self, prefix: str, page_token: str | None = None, page_size: int = 100) -> str:
        params = {"prefix": prefix, "delimiter": "/"}
        if page_size:
            params["maxResults"] = str(page_size)
        if page_token:
            params["pageToken"] = page_token
        return f"/o?{urlencode(params)}"

    def _get_endpoint_object(self, path: str) -> str:
        return f"/o/{quote(path, safe='')}"

    def _get_endpoint_upload(self, path: str) -> str:
        return f"/o?{urlencode({'name': path})}"

    def _get_download_url(self, locator: BlobLocator) -> str:
        if not locator.download_token:
            raise LocatorResolutionError(f"Object '{locator.path}' has no download token.")
        query = urlencode({"alt": "media", "token": locator.download_token})
        return f"{self._get_base_url()}{self._get_endpoint_object(locator.path)}?{query}"

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def _parse_endpoint_list(self, response: dict) -> BlobListResponse:
        # the listing only carries name and bucket, metadata is fetched per object
        locators = [
            BlobLocatorBase(engine=self._get_engine_name(), path=item.get("name"))
            for item in response.get("items", [])
            if item.get("name")
        ]
        return BlobListResponse(
            engine=self._get_engine_name(),
            locators=locators,
            prefixes=response.get("prefixes", []),
            nextPageToken=response.get("nextPageToken"),
        )

    def _parse_endpoint_object(self, response: dict) -> BlobLocator:
        tokens = response.get("downloadTokens") or ""
        updated = response.get("updated")
        return BlobLocator(
                #base
                engine=self._get_engine_name(),
                path=response.get("name"),

                #details
                bucket=response.get("bucket"),
                size_bytes=int(response.get("size") or 0),
                content_type=response.get("contentType"),
                updated=datetime.fromisoformat(updated.replace("Z", "+00:00")) if updated else None,
                generation=response.get("generation"),
                download_token=tokens.split(",")[0].strip() or None,
            )
