from collections import OrderedDict

from fastapi import Header, HTTPException, Request

from services.health_records.HealthRecordService import HealthRecordService
from services.health_records.owner import CurrentUserProvider, require_owner


class HeaderCurrentUser(CurrentUserProvider):
    """Reads the authenticated owner from the X-Owner-Id header set by the auth proxy."""

    def __init__(self, request: Request):
        self._request = request

    @property
    def owner_id(self) -> str | None:
        return self._request.headers.get("X-Owner-Id")


async def verify_api_key(request: Request, x_api_key: str = Header(...)) -> None:
    """Verify the X-Api-Key header against the configured API key.

    Args:
        request (Request): The FastAPI request object (provides app.state).
        x_api_key (str): The value of the X-Api-Key header.

    Raises:
        HTTPException: 401 if the key is missing or does not match.
    """
    helper_config = request.app.state.helper_config
    expected_key = helper_config.get_string_val("API_SERVER_API_KEY")
    if x_api_key != expected_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


async def get_current_owner(request: Request) -> str:
    """Resolve the owner of the request.

    Raises:
        MissingOwnerError: If the request carries no owner id.
    """
    return require_owner(HeaderCurrentUser(request).owner_id)


async def get_record_service(request: Request) -> HealthRecordService:
    """Return the record service of the request's owner.

    A service is created and listed on the owner's first request; it is only
    kept once that first listing succeeded. At most
    app.state.max_owner_sessions services are kept, the least recently used
    one is dropped first.

    Raises:
        MissingOwnerError: If the request carries no owner id.
        StoreUnavailableError: If the first listing failed.
    """
    owner_id = await get_current_owner(request)
    services: OrderedDict[str, HealthRecordService] = request.app.state.record_services
    service = services.get(owner_id)
    if service is not None:
        services.move_to_end(owner_id)
        return service

    service = HealthRecordService(
        helper_config=request.app.state.helper_config,
        blob_client=request.app.state.blob_client,
    )
    await service.refresh(owner_id)
    services[owner_id] = service
    while len(services) > max(1, request.app.state.max_owner_sessions):
        evicted, _ = services.popitem(last=False)
        request.app.state.logging.info("Dropped cached records session of owner '%s'.", evicted)
    return service
