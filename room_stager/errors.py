from typing import Any

import httpx


class DownstreamError(Exception):
    """Failure reported by an external capability (storage or generation).

    ``status`` is the upstream HTTP status when one was received and ``detail``
    is the structured error payload the upstream returned, if any.
    """

    def __init__(self, message: str, status: int | None = None, detail: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.detail = detail


class PreparationError(Exception):
    """The upload could not be decoded into an image."""


def downstream_error_from_response(provider_name: str, response: httpx.Response) -> DownstreamError:
    try:
        payload = response.json()
    except ValueError:
        payload = response.text or None

    return DownstreamError(
        f"{provider_name} returned an error ({response.status_code}).",
        status=response.status_code,
        detail=payload,
    )


def error_details(error: Exception) -> Any:
    if isinstance(error, DownstreamError) and error.detail:
        return error.detail
    return str(error) or "Unknown error"


def error_status(error: Exception) -> int:
    if isinstance(error, DownstreamError) and error.status:
        return error.status
    return 500
