"""HTTP client for callers of the commit service."""

from __future__ import annotations

from typing import Any

import httpx

from .protocol import PatchRequest, PatchResponse


class PatchCommitClientError(RuntimeError):
    """Raised when the service rejects or fails a request."""

    retryable = False

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class ClientRequestError(PatchCommitClientError):
    """4xx: the request must change before it can succeed."""


class ServerRequestError(PatchCommitClientError):
    """5xx: replay the whole request."""

    retryable = True


class PatchCommitClient:
    """Thin wrapper over ``httpx.Client`` speaking the service's wire format."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 120.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._owns_client = client is None

    def __enter__(self) -> "PatchCommitClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def create_commit_from_patch(self, request: PatchRequest) -> PatchResponse:
        payload = request.model_dump(mode="json", by_alias=True)
        response = self._client.post("/create-commit-from-patch", json=payload)
        if response.status_code >= 500:
            raise ServerRequestError(response.text.strip(), status_code=response.status_code)
        if response.status_code >= 400:
            raise ClientRequestError(response.text.strip(), status_code=response.status_code)
        return PatchResponse.model_validate(response.json())


__all__ = [
    "ClientRequestError",
    "PatchCommitClient",
    "PatchCommitClientError",
    "ServerRequestError",
]
