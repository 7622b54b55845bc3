"""Remote PedidoList API client used by the sync engine."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from pedidolist.core.enums import EntityType, SyncStatus
from pedidolist.db.base import ensure_utc
from pedidolist.schemas import normalize_payload
from pedidolist.services.sync.exceptions import (
    RemoteApiError,
    RemoteAuthError,
    RemoteClientError,
    RemoteConflictError,
    RemoteNotFoundError,
    RemoteUnavailableError,
)
from pedidolist.services.sync.types import EntityRecord

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]

# Server busy or throttling: worth another try later
_RETRYABLE_STATUS = {408, 425, 429}


class RemoteRecord(BaseModel):
    """Sync metadata of a server response; business fields are validated separately."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    version: int = 0
    last_modified_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("last_modified_at", "lastModifiedAt", "updated_at", "updatedAt"),
    )
    is_deleted: bool = Field(default=False, validation_alias=AliasChoices("is_deleted", "isDeleted"))

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Union[str, int]) -> str:
        return str(v)


def _unwrap(body: Any) -> Dict[str, Any]:
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    if not isinstance(body, dict):
        raise RemoteApiError("Unexpected response body from remote API")
    return body


def parse_server_record(entity_type: EntityType, body: Any) -> EntityRecord:
    """Map a server response (optionally wrapped in ``data``) onto an EntityRecord."""
    data = _unwrap(body)
    try:
        meta = RemoteRecord.model_validate(data)
        payload = normalize_payload(entity_type, data)
    except ValidationError as e:
        raise RemoteApiError(f"Invalid {EntityType(entity_type).value} record from remote API: {e}") from e
    return EntityRecord(
        entity_type=EntityType(entity_type),
        payload=payload,
        server_id=meta.id,
        version=meta.version,
        last_modified_at=ensure_utc(meta.last_modified_at),
        sync_status=SyncStatus.SYNCED,
        is_deleted=meta.is_deleted,
    )


class RemoteApiClient:
    """Async REST client for the PedidoList server.

    Every call has a bounded timeout. Failures are raised as the
    ``RemoteApiError`` family so the engine can tell transient errors from
    ones that need a human.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = 15.0,
        probe_path: str = "/health",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._token_provider = token_provider
        self._timeout = timeout
        self._probe_path = probe_path
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        token = self._token_provider() if self._token_provider else self._token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _collection(entity_type: EntityType) -> str:
        return f"/api/{EntityType(entity_type).value}s"

    @staticmethod
    def _body(entity: EntityRecord) -> Dict[str, Any]:
        return {
            **entity.payload,
            "client_generated_id": entity.local_id,
            "version": entity.version,
            "last_modified_at": entity.last_modified_at.isoformat() if entity.last_modified_at else None,
        }

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = self._headers()
        headers.update(kwargs.pop("headers", {}) or {})
        try:
            resp = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteUnavailableError(f"{method} {url} timed out after {self._timeout}s") from e
        except httpx.TransportError as e:
            raise RemoteUnavailableError(f"{method} {url} failed: {e}") from e

        if resp.is_success:
            return resp
        self._raise_for_status(method, url, resp)
        return resp

    @staticmethod
    def _raise_for_status(method: str, url: str, resp: httpx.Response) -> None:
        status = resp.status_code
        message = f"{method} {url} returned {status}"
        if status == 409:
            current = None
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and isinstance(body.get("current"), dict):
                current = body["current"]
            raise RemoteConflictError(message, current=current)
        if status in (401, 403):
            raise RemoteAuthError(message, status_code=status)
        if status == 404:
            raise RemoteNotFoundError(message, status_code=status)
        if status >= 500 or status in _RETRYABLE_STATUS:
            raise RemoteUnavailableError(message, status_code=status)
        raise RemoteClientError(f"{message}: {resp.text[:200]}", status_code=status)

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteApiError("Remote API returned a non-JSON body", status_code=resp.status_code) from e

    # ------------------------------------------------------------------ records

    async def create(self, entity: EntityRecord) -> EntityRecord:
        """POST a new record. Retries are safe: the server dedupes on the client id."""
        resp = await self._request(
            "POST",
            self._collection(entity.entity_type),
            json=self._body(entity),
            headers={"Idempotency-Key": entity.local_id or ""},
        )
        return parse_server_record(entity.entity_type, self._json(resp))

    async def update(self, entity: EntityRecord) -> EntityRecord:
        resp = await self._request(
            "PUT",
            f"{self._collection(entity.entity_type)}/{entity.server_id}",
            json=self._body(entity),
        )
        return parse_server_record(entity.entity_type, self._json(resp))

    async def delete(self, entity: EntityRecord) -> None:
        await self._request(
            "DELETE",
            f"{self._collection(entity.entity_type)}/{entity.server_id}",
            params={"version": entity.version},
        )

    async def fetch(self, entity_type: EntityType, server_id: str) -> Optional[EntityRecord]:
        """Current server copy of a record, or None when the server does not have it."""
        try:
            resp = await self._request("GET", f"{self._collection(entity_type)}/{server_id}")
        except RemoteNotFoundError:
            return None
        return parse_server_record(entity_type, self._json(resp))

    async def ping(self) -> bool:
        """Heartbeat: any non-5xx answer means the server is reachable."""
        try:
            resp = await self.client.get(self._probe_path, headers=self._headers())
        except httpx.HTTPError as e:
            logger.debug(f"Heartbeat to {self.base_url}{self._probe_path} failed: {e}")
            return False
        return resp.status_code < 500
