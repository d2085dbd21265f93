"""
Remote Progress Store.

Async client for a Firestore-compatible REST document store. One document
per (owner, course):

    users/{ownerId}/progress/{courseId}

Documents use Firestore's typed value encoding. Dates travel as native
timestampValue fields (RFC 3339, microsecond precision) so they round-trip
exactly; unset optional fields are omitted from the document.

Unlike the local cache, every failure here propagates as RemoteStoreError.
Callers decide whether to degrade.

Usage:
    async with RemoteProgressStore(project_id="my-project") as remote:
        remote.set_auth_token(id_token)
        await remote.save_progress(user_id, progress)
        progress = await remote.load_progress(user_id, "my-course")
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger
from pydantic import ValidationError

from studysync.config import Settings
from studysync.core.models import CourseProgress
from studysync.exceptions import RemoteStoreError

DEFAULT_BASE_URL = "https://firestore.googleapis.com/v1"

# Firestore may return nanosecond fractions; datetime stops at microseconds
_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


# =============================================================================
# Typed value encoding
# =============================================================================


def format_timestamp(value: datetime) -> str:
    """Render an aware datetime as an RFC 3339 UTC timestamp."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(raw: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime."""
    normalized = _FRACTION_RE.sub(r".\1", raw)
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+00:00"
    return datetime.fromisoformat(normalized).astimezone(UTC)


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a Python value as a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, Enum):
        return encode_value(value.value)
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": format_timestamp(value)}
    if isinstance(value, (list, tuple)):
        values = [encode_value(item) for item in value]
        return {"arrayValue": {"values": values} if values else {}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Cannot encode value of type {type(value).__name__}")


def encode_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Encode a mapping, dropping unset (None) entries."""
    return {key: encode_value(value) for key, value in data.items() if value is not None}


def decode_value(typed: dict[str, Any]) -> Any:
    """Decode a Firestore typed value into a Python value."""
    if "nullValue" in typed:
        return None
    if "booleanValue" in typed:
        return bool(typed["booleanValue"])
    if "integerValue" in typed:
        return int(typed["integerValue"])
    if "doubleValue" in typed:
        return float(typed["doubleValue"])
    if "stringValue" in typed:
        return typed["stringValue"]
    if "timestampValue" in typed:
        return parse_timestamp(typed["timestampValue"])
    if "arrayValue" in typed:
        return [decode_value(item) for item in typed["arrayValue"].get("values", [])]
    if "mapValue" in typed:
        return decode_fields(typed["mapValue"].get("fields", {}))
    raise ValueError(f"Unsupported Firestore value: {sorted(typed)}")


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


def progress_to_document(progress: CourseProgress) -> dict[str, Any]:
    """Build the request body for a progress document."""
    data = progress.model_dump(mode="python", by_alias=True, exclude_none=True)
    return {"fields": encode_fields(data)}


def document_to_progress(document: dict[str, Any]) -> CourseProgress:
    """Validate a fetched document into a CourseProgress."""
    return CourseProgress.model_validate(decode_fields(document.get("fields", {})))


# =============================================================================
# Client
# =============================================================================


class RemoteProgressStore:
    """
    Per-user progress documents in a remote document store.

    Supports:
    - get / set / delete of one progress document per course
    - Bearer token authentication for the signed-in user
    - Custom transports (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        project_id: str | None,
        database: str = "(default)",
        base_url: str = DEFAULT_BASE_URL,
        auth_token: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.project_id = project_id
        self.database = database
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._auth_token = auth_token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> RemoteProgressStore:
        """Create a store from application settings."""
        return cls(
            project_id=settings.remote_project_id if settings.has_remote_configured() else None,
            database=settings.remote_database,
            base_url=settings.remote_base_url,
            auth_token=settings.remote_auth_token,
            timeout=settings.remote_timeout_seconds,
        )

    async def __aenter__(self) -> RemoteProgressStore:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    @property
    def is_available(self) -> bool:
        """True when a remote project is configured."""
        return bool(self.project_id)

    @property
    def documents_url(self) -> str:
        return f"{self.base_url}/projects/{self.project_id}/databases/{self.database}/documents"

    def set_auth_token(self, token: str | None) -> None:
        """Set (or clear) the bearer token sent with every request."""
        self._auth_token = token
        if self._client is not None:
            if token:
                self._client.headers["Authorization"] = f"Bearer {token}"
            else:
                self._client.headers.pop("Authorization", None)

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self._auth_token:
                headers["Authorization"] = f"Bearer {self._auth_token}"

            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _document_url(self, owner_id: str, course_id: str) -> str:
        return (
            f"{self.documents_url}/users/{quote(owner_id, safe='')}"
            f"/progress/{quote(course_id, safe='')}"
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if not self.is_available:
            raise RemoteStoreError("Remote store is not configured")

        client = self._ensure_client()
        try:
            return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"Remote store request failed: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        detail = response.text[:200] if response.text else response.reason_phrase
        raise RemoteStoreError(f"Failed to {action}: HTTP {response.status_code} {detail}")

    # =========================================================================
    # Progress Documents
    # =========================================================================

    async def save_progress(self, owner_id: str, progress: CourseProgress) -> None:
        """
        Write the full progress document, replacing any existing one.

        Raises:
            RemoteStoreError: On transport, permission or encoding failure
        """
        try:
            body = progress_to_document(progress)
        except TypeError as e:
            raise RemoteStoreError(f"Failed to encode progress: {e}") from e

        response = await self._request(
            "PATCH", self._document_url(owner_id, progress.course_id), json=body
        )
        self._raise_for_status(response, "save progress")
        logger.debug("Saved remote progress for {} ({})", progress.course_id, owner_id)

    async def load_progress(self, owner_id: str, course_id: str) -> CourseProgress | None:
        """
        Fetch the progress document for a course.

        Returns:
            CourseProgress, or None if no document exists

        Raises:
            RemoteStoreError: On transport, permission or decode failure
        """
        response = await self._request("GET", self._document_url(owner_id, course_id))
        if response.status_code == 404:
            return None
        self._raise_for_status(response, "load progress")

        try:
            return document_to_progress(response.json())
        except (ValueError, TypeError, KeyError, ValidationError) as e:
            raise RemoteStoreError(f"Invalid progress document for {course_id}: {e}") from e

    async def clear_progress(self, owner_id: str, course_id: str) -> None:
        """Delete the progress document (missing documents are fine)."""
        response = await self._request("DELETE", self._document_url(owner_id, course_id))
        if response.status_code == 404:
            return
        self._raise_for_status(response, "clear progress")
        logger.debug("Cleared remote progress for {} ({})", course_id, owner_id)
