"""
Shared fixtures for the health record tests.

Provides:
- an in-memory blob client that counts every store call and can be told to fail
- a HelperConfig wired to a plain test logger
- real PDF bytes generated with fpdf2
"""

import asyncio
import logging
import os
from collections import Counter
from pathlib import Path

import pytest
from fpdf import FPDF

# keep importing the API server from writing log files into the repository
os.environ.setdefault("LOG_TO_FILE", "false")

from shared.clients.blob.models.BlobLocator import BlobLocator, BlobLocatorBase
from shared.errors import LocatorResolutionError, NetworkError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import PDF_CONTENT_TYPE

FAKE_BASE_URL = "https://blob.test/"


def make_pdf(pages: int = 1, title: str = "Lab report") -> bytes:
    """Build a small but real PDF document with the given number of pages."""
    pdf = FPDF()
    pdf.set_font("helvetica", size=12)
    for number in range(1, pages + 1):
        pdf.add_page()
        pdf.cell(0, 10, f"{title} - page {number}")
    return bytes(pdf.output())


class FakeBlobClient:
    """In-memory stand-in for a BlobClientInterface implementation.

    Every store call is counted in ``calls``. An exception put into ``fail``
    under an operation name is raised by that operation. ``gates`` holds
    events an operation waits for before it answers.
    """

    def __init__(self, chunk_size: int = 1024):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.calls: Counter = Counter()
        self.fail: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.chunk_size = chunk_size

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def seed(self, path: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> None:
        self.objects[path] = (data, content_type)

    def _locator(self, path: str) -> BlobLocator:
        data, content_type = self.objects[path]
        return BlobLocator(
            engine="Fake",
            path=path,
            size_bytes=len(data),
            content_type=content_type,
            download_token=f"token-{len(data)}",
        )

    async def _enter(self, operation: str, key: str | None = None) -> None:
        self.calls[operation] += 1
        gate = self.gates.get(key or operation)
        if gate is not None:
            await gate.wait()
        exc = self.fail.get(operation)
        if exc is not None:
            raise exc

    async def do_list(self, prefix: str) -> list[BlobLocator]:
        await self._enter("list", key=f"list:{prefix}")
        return [
            self._locator(path)
            for path in sorted(self.objects)
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        ]

    async def do_put(self, path, data, content_type, on_progress=None) -> BlobLocator:
        self.calls["put"] += 1
        total = len(data)
        for start in range(0, total, self.chunk_size):
            await asyncio.sleep(0)
            if on_progress is not None:
                on_progress(min(start + self.chunk_size, total), total)
            if "put" in self.fail and start + self.chunk_size >= total // 2:
                raise self.fail["put"]
        self.objects[path] = (bytes(data), content_type)
        return self._locator(path)

    async def do_resolve_download_url(self, locator: BlobLocatorBase) -> str:
        await self._enter("resolve")
        if locator.path not in self.objects:
            raise LocatorResolutionError(f"Object '{locator.path}' does not exist.")
        return f"{FAKE_BASE_URL}{locator.path}?alt=media&token=secret"

    async def do_download(self, url: str) -> bytes:
        await self._enter("download")
        path = url[len(FAKE_BASE_URL):].split("?", 1)[0]
        if path not in self.objects:
            raise NetworkError("Download failed with status 404", status_code=404)
        return self.objects[path][0]

    async def do_write_to_local_file(self, locator: BlobLocatorBase, dest_path: Path) -> Path:
        url = await self.do_resolve_download_url(locator)
        data = await self.do_download(url)
        with open(dest_path, "xb") as fh:
            fh.write(data)
        return dest_path

    async def do_delete(self, locator: BlobLocatorBase) -> None:
        await self._enter("delete")
        self.objects.pop(locator.path, None)


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("health_records.tests")


@pytest.fixture
def helper_config(logger, monkeypatch, tmp_path) -> HelperConfig:
    monkeypatch.setenv("HEALTH_RECORDS_DOWNLOAD_DIR", str(tmp_path / "downloads"))
    monkeypatch.delenv("HEALTH_RECORDS_ROOT", raising=False)
    monkeypatch.delenv("HEALTH_RECORDS_MAX_UPLOAD_BYTES", raising=False)
    return HelperConfig(logger=logger)


@pytest.fixture
def blob_client() -> FakeBlobClient:
    return FakeBlobClient()


@pytest.fixture
def pdf_bytes() -> bytes:
    return make_pdf(pages=2)
