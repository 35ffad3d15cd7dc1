"""Synchronous Stash REST client built on httpx.

Every request carries the ``X-Auth-User`` / ``X-Auth-Token`` headers. Status
codes are classified into typed errors by :func:`classify_status`; network
failures (``httpx.TransportError``) propagate unchanged.

Resources live under ``<url>/rest``:

- ``api/1.0/<project>/repos/<repo>/pull-requests/<id>/...`` for pull requests
- ``inbox/latest/pull-requests`` for the reviewer inbox
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

_API_PREFIX = "api/1.0"

_HTTP_OK = 200
_HTTP_CREATED = 201
_HTTP_NO_CONTENT = 204
_HTTP_BAD_REQUEST = 400
_HTTP_UNAUTHORIZED = 401
_HTTP_NOT_FOUND = 404
_HTTP_CONFLICT = 409

_SUCCESS_CODES = frozenset({_HTTP_OK, _HTTP_CREATED, _HTTP_NO_CONTENT})
_STRUCTURED_ERROR_CODES = frozenset({_HTTP_BAD_REQUEST, _HTTP_UNAUTHORIZED, _HTTP_NOT_FOUND, _HTTP_CONFLICT})


# ---------------------------------------------------------------------------
# Error types
# ---------------------------------------------------------------------------


class StashError(Exception):
    """Raised when a Stash API call fails."""

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


class StashApiError(StashError):
    """Raised for a 4xx response that came with a non-empty body.

    A version conflict is a 409 of this type; there is no dedicated subclass.
    """

    def __init__(self, body: bytes, status_code: int) -> None:
        self.body = body
        self.messages = _parse_error_messages(body)
        super().__init__(body.decode("utf-8", errors="replace"), status_code=status_code)

    @property
    def is_conflict(self) -> bool:
        return self.status_code == _HTTP_CONFLICT


class UnexpectedStatusCode(StashError):
    """Raised for an empty-bodied error response or an unrecognized status."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"unexpected status code from Stash: {status_code}", status_code=status_code)


def _parse_error_messages(body: bytes) -> list[str]:
    """Extract ``errors[].message`` from Stash's error envelope, if present."""
    try:
        data = json.loads(body)
    except ValueError:
        return []
    if not isinstance(data, dict):
        return []
    return [e["message"] for e in data.get("errors") or [] if isinstance(e, dict) and e.get("message")]


# ---------------------------------------------------------------------------
# Status classification
# ---------------------------------------------------------------------------


def classify_status(status_code: int, body: bytes) -> StashError | None:
    """Map a response status (and body) to ``None`` on success or a typed error.

    - 200/201/204: success
    - 400/401/404/409: :class:`StashApiError` when the body is non-empty,
      otherwise :class:`UnexpectedStatusCode`
    - anything else: :class:`UnexpectedStatusCode`
    """
    if status_code in _SUCCESS_CODES:
        logger.debug("Stash returned status code: %d", status_code)
        return None

    logger.warning("Stash returned error code: %d", status_code)
    if status_code in _STRUCTURED_ERROR_CODES and body:
        return StashApiError(body, status_code)
    return UnexpectedStatusCode(status_code)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


@dataclass
class StashResponse:
    """Outcome of a single request, before any error is raised."""

    status_code: int
    body: bytes
    data: Any = None
    error: Exception | None = None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def repo_path(project: str, repo: str) -> str:
    """Return the resource path of a repository.

    *project* is either ``projects/<KEY>`` or ``users/<name>``. A bare key is
    treated as ``projects/<KEY>``, and a personal key ``~name`` as ``users/name``.
    """
    if project.startswith("~"):
        project = f"users/{project[1:]}"
    elif "/" not in project:
        project = f"projects/{project}"
    return f"{_API_PREFIX}/{project}/repos/{repo}"


def pull_request_path(project: str, repo: str, pr_id: int) -> str:
    """Return the resource path of a pull request."""
    return f"{repo_path(project, repo)}/pull-requests/{pr_id}"


class StashClient:
    """Thin transport over ``httpx.Client`` with Stash auth headers injected."""

    def __init__(
        self,
        url: str,
        user: str = "",
        token: str = "",
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.user = user
        self.token = token
        self._http = httpx.Client(
            base_url=f"{self.url}/rest/",
            headers=self._get_headers(),
            timeout=timeout,
            transport=transport,
        )

    def _get_headers(self) -> dict[str, str]:
        return {
            "X-Auth-User": self.user,
            "X-Auth-Token": self.token,
            "Accept": "application/json",
        }

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> StashClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def perform(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        payload: Any = None,
        target: Any = None,
    ) -> StashResponse:
        """Issue a request and return its outcome without raising for status.

        Args:
            method: HTTP method.
            path: Resource path relative to ``<url>/rest/``.
            params: Query parameters.
            payload: JSON request body.
            target: Optional type to decode a non-empty success body into
                (anything ``pydantic.TypeAdapter`` accepts).

        Raises:
            httpx.TransportError: On network failure.
        """
        logger.debug("performing %s %s %s", method, path, params or "")
        response = self._http.request(method, path, params=params, json=payload)

        result = StashResponse(status_code=response.status_code, body=response.content)
        result.error = classify_status(response.status_code, response.content)
        if result.error is None and target is not None and response.content:
            try:
                result.data = TypeAdapter(target).validate_json(response.content)
            except ValidationError as exc:
                logger.warning("Failed to decode %s response from %s: %s", method, path, exc)
                result.error = exc
        return result

    def call(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        payload: Any = None,
        target: Any = None,
    ) -> Any:
        """Like :meth:`perform`, but raise on any error and return the decoded data."""
        result = self.perform(method, path, params=params, payload=payload, target=target)
        result.raise_for_error()
        return result.data

    def get(self, path: str, params: dict[str, Any] | None = None, target: Any = None) -> Any:
        return self.call("GET", path, params=params, target=target)

    def post(self, path: str, params: dict[str, Any] | None = None, payload: Any = None, target: Any = None) -> Any:
        return self.call("POST", path, params=params, payload=payload, target=target)

    def put(self, path: str, params: dict[str, Any] | None = None, payload: Any = None, target: Any = None) -> Any:
        return self.call("PUT", path, params=params, payload=payload, target=target)
