"""
REST boundary

``RestClient`` speaks HTTP through a ``requests.Session`` (cookies persist on
the session, the bearer token is attached per request). ``ResourceApi`` adds
the per-resource endpoints and runs the blocking calls in a worker thread so
the event loop keeps serving the UI while a mutation awaits the server.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from xpensemate.adapters import unwrap_record
from xpensemate.domain import Page, Record
from xpensemate.errors import ApiError, ResponseShapeError, TransportError
from xpensemate.resources import Resource

logger = logging.getLogger(__name__)


def _body(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return {"message": response.text}


class RestClient:

    def __init__(
        self,
        base_url: str,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.timeout = timeout
        self.on_unauthorized = on_unauthorized

    def headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def request(self, method: str, path: str, json: Any = None, params: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                json=json,
                params=params,
                headers=self.headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("%s %s failed without a response: %s", method, url, e)
            raise TransportError() from e

        if response.status_code == 401 and self.on_unauthorized:
            self.on_unauthorized()

        if not 200 <= response.status_code < 300:
            body = _body(response)
            logger.warning("%s %s -> %s", method, url, response.status_code)
            raise ApiError(response.status_code, body)

        logger.debug("%s %s -> %s", method, url, response.status_code)
        return _body(response)

    def get(self, path: str, params: Optional[dict] = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, data: Any = None) -> Any:
        return self.request("POST", path, json=data)

    def put(self, path: str, data: Any = None) -> Any:
        return self.request("PUT", path, json=data)

    def delete(self, path: str, params: Optional[dict] = None) -> Any:
        return self.request("DELETE", path, params=params)


class ResourceApi:
    """Endpoints of one resource, awaitable."""

    def __init__(self, client: RestClient, resource: Resource):
        self.client = client
        self.resource = resource

    async def list_page(self, page: int, limit: int) -> Page:
        body = await asyncio.to_thread(
            self.client.get, self.resource.list_path, {"page": page, "limit": limit}
        )
        return self.resource.pages.parse_page(body, page)

    async def list_all(self, limit: int = 100) -> Tuple[Record, ...]:
        """Every record of the resource, page by page, for views that aggregate."""
        records: List[Record] = []
        page = 1
        while True:
            chunk = await self.list_page(page, limit)
            records.extend(chunk.records)
            if not chunk.records or len(records) >= chunk.total:
                return tuple(records)
            page += 1

    async def create(self, payload: dict) -> Record:
        body = await asyncio.to_thread(self.client.post, self.resource.create_path, payload)
        raw = unwrap_record(body)
        if raw is None:
            raise ResponseShapeError(f"Create {self.resource.singular} returned no record")
        return self.resource.parse_record(raw)

    async def update(self, key: str, payload: dict) -> Optional[Record]:
        """Updated record as the server sees it, or None when the body carries none."""
        body = await asyncio.to_thread(self.client.put, self.resource.item_path(key), payload)
        raw = unwrap_record(body)
        return self.resource.parse_record(raw) if raw is not None else None

    async def delete(self, key: str, params: Optional[dict] = None) -> None:
        # query flags travel as lowercase strings
        query = {k: str(v).lower() if isinstance(v, bool) else v for k, v in (params or {}).items()}
        await asyncio.to_thread(self.client.delete, self.resource.item_path(key), query or None)
