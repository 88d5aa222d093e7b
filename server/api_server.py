"""FastAPI application entry point for the health record service."""

import os
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.errors import HealthRecordError, NetworkError, StoreUnavailableError
from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.blob.BlobClientInterface import BlobClientInterface
from shared.clients.blob.BlobClientManager import BlobClientManager
from server.models.responses import ErrorResponse
from server.routers.RecordsRouter import router as records_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")
MAX_OWNER_SESSIONS = 256

ERROR_STATUS_CODES: dict[str, int] = {
    "missing_owner": 401,
    "invalid_input": 400,
    "invalid_index": 409,
    "corrupt_artifact": 422,
    "locator_resolution_failed": 502,
    "network_error": 502,
    "remote_store_error": 502,
    "store_unavailable": 503,
    "registry_sync_failed": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)

    # a client put on app.state before startup is used as is and not closed here
    blob_client: BlobClientInterface | None = getattr(app.state, "blob_client", None)
    owns_client = blob_client is None
    if owns_client:
        blob_client = BlobClientManager(helper_config=app.state.helper_config).get_client()
        logging.info("Booting blob client...")
        await blob_client.boot()
        logging.info("Blob client booted successfully.")
        await check_connection(blob_client)

    app.state.blob_client = blob_client
    app.state.record_services = OrderedDict()
    app.state.max_owner_sessions = int(app.state.helper_config.get_number_val("API_SERVER_MAX_OWNER_SESSIONS", default=MAX_OWNER_SESSIONS))

    # while the app is running...
    yield

    # when the app shuts down, close the client connection
    if owns_client:
        logging.info("Shutting down, closing blob client...")
        await blob_client.close()
        logging.info("Blob client closed.")


app = FastAPI(
    title="health_records",
    description=(
        "Per-user repository of health record PDFs kept in a remote blob store. "
        "Documents are listed and searched via GET /records, uploaded via PUT /records/{file_name}, "
        "previewed, downloaded and deleted by their position in the owner's list."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(records_router)


@app.exception_handler(HealthRecordError)
async def health_record_error_handler(request: Request, exc: HealthRecordError) -> JSONResponse:
    """Answer a health record error with its kind and a matching status code."""
    status_code = ERROR_STATUS_CODES.get(exc.kind, 500)
    if status_code >= 500:
        logging.error("%s %s failed with %s: %s", request.method, request.url.path, exc.kind, exc.message)
    else:
        logging.warning("%s %s rejected with %s: %s", request.method, request.url.path, exc.kind, exc.message)
    body = ErrorResponse(error=exc.kind, detail=exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": app_version}


async def check_connection(blob_client: BlobClientInterface) -> None:
    """Check connectivity to the blob store on startup.

    Failures are non-fatal: the server stays up and every records request
    answers with store_unavailable until the store is reachable again.
    """
    try:
        result: httpx.Response = await blob_client.do_healthcheck()
    except (NetworkError, StoreUnavailableError) as exc:
        logging.warning("Blob client '%s' is not reachable: %s", blob_client.__class__.__name__, exc)
        return
    if not result.is_success:
        logging.warning(
            "Blob client '%s' is not reachable (status %d). Listing documents may fail.",
            blob_client.__class__.__name__,
            result.status_code,
        )


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting health_records API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
