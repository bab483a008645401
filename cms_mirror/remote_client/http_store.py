"""HTTP implementation of the remote store protocol.

Wraps a requests.Session and translates HTTP failures into the typed
RemoteError hierarchy. Rate-limited calls (HTTP 429) are retried with
exponential backoff through retry_on_rate_limit.

Endpoints, relative to {endpoint}/containers/{container}/{kind}s:

    GET    /snapshot           -> [{"id", "revision"}, ...]
    POST   /batch  {"ids"}     -> [object, ...]
    GET    /by-handle/{handle} -> object
    GET    /{id}               -> object
    POST   /       object      -> object (id and revision assigned)
    PUT    /{id}   object      -> object (new revision)
    DELETE /{id}
"""

import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests
from requests.exceptions import ConnectionError, HTTPError, Timeout

from cms_mirror.mirror.codec import decode_object, encode_object
from cms_mirror.mirror.models import ContentObject, ObjectKind, RemoteSnapshot

from .auth import Credentials
from .errors import (
    APIAccessError,
    InvalidCredentialsError,
    RemoteObjectNotFoundError,
    RemoteUnreachableError,
)
from .retry_logic import retry_on_rate_limit

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class HTTPKindClient:
    """Remote operations for one kind of one container over HTTP."""

    def __init__(self, store: "HTTPRemoteStore", kind: ObjectKind):
        self._store = store
        self.kind = kind
        self.base_url = (
            f"{store.credentials.endpoint}/containers/"
            f"{quote(store.container, safe='')}/{kind.value}s"
        )

    def list_snapshot(self) -> List[RemoteSnapshot]:
        items = self._store.request("GET", f"{self.base_url}/snapshot", self.kind, "snapshot")
        snapshot = []
        for item in items or []:
            revision = item.get("revision")
            snapshot.append(RemoteSnapshot(
                id=str(item["id"]),
                revision=str(revision) if revision is not None else "",
            ))
        return snapshot

    def get_batch(self, ids: Sequence[str]) -> List[ContentObject]:
        if not ids:
            return []
        items = self._store.request(
            "POST", f"{self.base_url}/batch", self.kind, "batch", json={"ids": list(ids)}
        )
        return [decode_object(item, self.kind) for item in items or []]

    def get_by_handle(self, handle: str) -> ContentObject:
        data = self._store.request(
            "GET", f"{self.base_url}/by-handle/{quote(handle, safe='')}", self.kind, handle
        )
        return decode_object(data, self.kind)

    def get(self, object_id: str) -> ContentObject:
        data = self._store.request("GET", self._object_url(object_id), self.kind, object_id)
        return decode_object(data, self.kind)

    def create(self, obj: ContentObject) -> ContentObject:
        payload = encode_object(obj)
        data = self._store.request("POST", self.base_url, self.kind, obj.handle, json=payload)
        return decode_object({**payload, **(data or {})}, self.kind)

    def update(self, obj: ContentObject) -> ContentObject:
        if obj.id is None:
            raise ValueError(f"Cannot update {self.kind.value} '{obj.handle}' without an id")
        payload = encode_object(obj)
        data = self._store.request(
            "PUT", self._object_url(obj.id), self.kind, obj.id, json=payload
        )
        return decode_object({**payload, **(data or {})}, self.kind)

    def delete(self, object_id: str) -> None:
        self._store.request("DELETE", self._object_url(object_id), self.kind, object_id)

    def _object_url(self, object_id: str) -> str:
        return f"{self.base_url}/{quote(str(object_id), safe='')}"


class HTTPRemoteStore:
    """Remote store for one container, reached over HTTP with a bearer token.

    Example:
        >>> creds = Authenticator().get_credentials("https://cms.example.com/api")
        >>> remote = HTTPRemoteStore(creds, "main")
        >>> snapshot = remote.client(ObjectKind.STYLE).list_snapshot()
    """

    def __init__(
        self,
        credentials: Credentials,
        container: str,
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.credentials = credentials
        self.container = container
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {credentials.token}",
            "Accept": "application/json",
        })
        self._clients: Dict[ObjectKind, HTTPKindClient] = {}

    def client(self, kind: ObjectKind) -> HTTPKindClient:
        if kind not in self._clients:
            self._clients[kind] = HTTPKindClient(self, kind)
        return self._clients[kind]

    def close(self) -> None:
        self._session.close()

    def request(self, method: str, url: str, kind: ObjectKind, key: str, **kwargs) -> Any:
        """Send one request and return its decoded JSON body (None if empty).

        Raises:
            InvalidCredentialsError: On 401/403
            RemoteObjectNotFoundError: On 404
            RemoteUnreachableError: On connection errors and timeouts
            APIAccessError: On any other failure, or a rate limit that persists
        """
        def _send() -> requests.Response:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response

        logger.debug(f"{method} {url}")
        try:
            response = retry_on_rate_limit(_send)
        except (Timeout, ConnectionError) as e:
            logger.error(f"{method} {url} failed: {type(e).__name__}")
            raise RemoteUnreachableError(self.credentials.endpoint) from e
        except HTTPError as e:
            raise self._translate_error(e, kind, key) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise APIAccessError(f"Invalid JSON in response to {method} {url}") from e

    def _translate_error(self, error: HTTPError, kind: ObjectKind, key: str) -> Exception:
        status_code = error.response.status_code if error.response is not None else None
        if status_code in (401, 403):
            return InvalidCredentialsError(self.credentials.endpoint, f"HTTP {status_code}")
        if status_code == 404:
            return RemoteObjectNotFoundError(kind.value, key)
        logger.error(f"Remote {kind.value} '{key}' request failed with HTTP {status_code}")
        return APIAccessError(
            f"Remote store rejected {kind.value} '{key}' (HTTP {status_code})",
            status_code=status_code,
        )
