"""Resolution of the example "style" rooms sent alongside the user's photo.

The generation service has to fetch every URL it is given. When the app is
served from a public origin the example files can be linked directly; on a
developer machine they have to be pushed to storage first.
"""

import asyncio
import ipaddress
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Protocol
from urllib.parse import quote, urlparse

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
EXAMPLE_ROOMS_PATH = "/example-rooms"


class Uploader(Protocol):
    async def upload(self, data: bytes, content_type: str, file_name: str | None = None) -> str: ...


def list_reference_files(directory: Path, limit: int = 3) -> list[Path]:
    """Return up to ``limit`` image files from ``directory`` in a stable order.

    Raises ``OSError`` when the directory cannot be listed.
    """
    names = [
        entry.name
        for entry in directory.iterdir()
        if entry.is_file()
        and entry.suffix.lower() in IMAGE_EXTENSIONS
        and entry.name.lower() != "readme.md"
    ]
    names.sort()
    return [directory / name for name in names[: max(limit, 0)]]


def mime_type_for(path: Path) -> str:
    ext = path.suffix.lower()
    if ext == ".png":
        return "image/png"
    if ext == ".webp":
        return "image/webp"
    return "image/jpeg"


def is_loopback_origin(origin: str) -> bool:
    host = urlparse(origin).hostname or ""
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


class ReachabilityPolicy(ABC):
    """Turns local reference files into URLs the generation service can fetch."""

    @abstractmethod
    async def resolve(self, files: list[Path]) -> list[str]:
        raise NotImplementedError


class DirectUrlPolicy(ReachabilityPolicy):
    """Public deployment: the files are already served under ``origin``."""

    def __init__(self, origin: str, static_path: str = EXAMPLE_ROOMS_PATH) -> None:
        self.origin = origin.rstrip("/")
        self.static_path = "/" + static_path.strip("/")

    async def resolve(self, files: list[Path]) -> list[str]:
        return [f"{self.origin}{self.static_path}/{quote(path.name)}" for path in files]


class UploadAndUrlPolicy(ReachabilityPolicy):
    """Loopback deployment: push each file to storage, all uploads in flight at once."""

    def __init__(self, uploader: Uploader) -> None:
        self.uploader = uploader

    async def _upload_one(self, path: Path) -> str:
        data = await asyncio.to_thread(path.read_bytes)
        return await self.uploader.upload(data, mime_type_for(path), path.name)

    async def resolve(self, files: list[Path]) -> list[str]:
        return list(await asyncio.gather(*(self._upload_one(path) for path in files)))


def select_policy(origin: str, uploader: Uploader, static_path: str = EXAMPLE_ROOMS_PATH) -> ReachabilityPolicy:
    if is_loopback_origin(origin):
        return UploadAndUrlPolicy(uploader)
    return DirectUrlPolicy(origin, static_path)


async def resolve_reference_urls(directory: Path, policy: ReachabilityPolicy, limit: int = 3) -> list[str]:
    """Reference URLs for this request; an unreadable directory yields none.

    Upload failures from the policy propagate so the caller decides how to degrade.
    """
    try:
        files = list_reference_files(directory, limit)
    except OSError as e:
        logger.warning("Example rooms directory %s is not readable: %s", directory, e)
        return []

    try:
        return await policy.resolve(files)
    except OSError as e:
        logger.warning("Could not read example room files: %s", e)
        return []
