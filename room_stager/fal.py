import logging
import uuid
from typing import Any

import httpx

from .errors import DownstreamError, downstream_error_from_response

logger = logging.getLogger(__name__)

_EXTENSIONS_BY_MIME: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


class FalClient:
    """Thin client for the fal.ai storage and synchronous model endpoints.

    Built once per process with its credential and shared by every request.
    ``transport`` exists so tests can swap in an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        api_key: str,
        run_url: str = "https://fal.run",
        storage_url: str = "https://rest.alpha.fal.ai",
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.run_url = run_url.rstrip("/")
        self.storage_url = storage_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise DownstreamError("fal.ai credentials missing", status=401, detail="FAL_KEY is not configured")
        return {"Authorization": f"Key {self.api_key}"}

    def _client(self, timeout: float | None) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def upload(self, data: bytes, content_type: str, file_name: str | None = None) -> str:
        """Store ``data`` on the fal CDN and return its public URL."""
        headers = self._headers()
        name = file_name or f"{uuid.uuid4().hex}.{_EXTENSIONS_BY_MIME.get(content_type, 'bin')}"

        try:
            async with self._client(60.0) as client:
                response = await client.post(
                    f"{self.storage_url}/storage/upload/initiate",
                    headers={**headers, "Content-Type": "application/json"},
                    json={"content_type": content_type, "file_name": name},
                )
                if response.status_code >= 400:
                    raise downstream_error_from_response("fal storage", response)

                target = response.json()
                upload_url = target.get("upload_url")
                file_url = target.get("file_url")
                if not upload_url or not file_url:
                    raise DownstreamError("fal storage returned no upload target", status=502, detail=target)

                response = await client.put(
                    upload_url,
                    headers={"Content-Type": content_type},
                    content=data,
                )
                if response.status_code >= 400:
                    raise downstream_error_from_response("fal storage", response)
        except httpx.HTTPError as e:
            raise DownstreamError(f"fal storage request failed: {e}") from e

        logger.debug("Uploaded %d bytes (%s) to %s", len(data), content_type, file_url)
        return file_url

    async def generate(self, model: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Run ``model`` synchronously; blocks until the generation finishes."""
        headers = self._headers()

        try:
            async with self._client(self.timeout) as client:
                response = await client.post(
                    f"{self.run_url}/{model}",
                    headers={**headers, "Content-Type": "application/json"},
                    json=arguments,
                )
        except httpx.HTTPError as e:
            raise DownstreamError(f"fal request to {model} failed: {e}") from e

        if response.status_code >= 400:
            raise downstream_error_from_response(model, response)

        try:
            payload = response.json()
        except ValueError as e:
            raise DownstreamError(f"{model} returned a non-JSON response", status=502, detail=response.text) from e

        return payload if isinstance(payload, dict) else {"data": payload}
