"""Pytest fixtures for Room Stager tests."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from room_stager.config import StagerSettings
from room_stager.errors import DownstreamError
from room_stager.main import app, get_fal_client, get_settings


class FakeFalClient:
    """Stands in for FalClient; records every call."""

    def __init__(self) -> None:
        self.uploads: list[tuple[bytes, str, str | None]] = []
        self.generations: list[tuple[str, dict[str, Any]]] = []
        self.result: dict[str, Any] = {"images": [{"url": "https://cdn.example/staged.jpg"}]}
        self.fail_uploads_for: set[str] = set()
        self.generate_error: Exception | None = None

    async def upload(self, data: bytes, content_type: str, file_name: str | None = None) -> str:
        if file_name in self.fail_uploads_for:
            raise DownstreamError("upload rejected", status=503, detail={"message": "storage down"})
        self.uploads.append((data, content_type, file_name))
        return f"https://cdn.example/uploads/{len(self.uploads)}-{file_name or 'blob'}"

    async def generate(self, model: str, arguments: dict[str, Any]) -> dict[str, Any]:
        self.generations.append((model, arguments))
        if self.generate_error is not None:
            raise self.generate_error
        return self.result


def make_image_bytes(size: tuple[int, int] = (64, 48), fmt: str = "JPEG", color: str = "teal") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A small valid JPEG."""
    return make_image_bytes()


@pytest.fixture
def example_rooms(tmp_path: Path) -> Path:
    """Example rooms directory with images plus a readme."""
    directory = tmp_path / "example-rooms"
    directory.mkdir()
    for name, fmt in [("a.jpg", "JPEG"), ("b.png", "PNG"), ("c.webp", "WEBP"), ("d.jpg", "JPEG")]:
        (directory / name).write_bytes(make_image_bytes(fmt=fmt))
    (directory / "readme.md").write_text("not an image")
    return directory


@pytest.fixture
def settings(example_rooms: Path) -> StagerSettings:
    return StagerSettings(fal_key="test-key", example_rooms_dir=example_rooms)


@pytest.fixture
def fake_fal() -> FakeFalClient:
    return FakeFalClient()


@pytest.fixture
def client(settings: StagerSettings, fake_fal: FakeFalClient) -> Generator[TestClient, None, None]:
    """Test client with settings and the fal client overridden."""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_fal_client] = lambda: fake_fal
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def local_client(client: TestClient) -> TestClient:
    """Same app, but requests arrive on a loopback origin."""
    return TestClient(app, base_url="http://localhost:3000")
