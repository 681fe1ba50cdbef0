"""
Data store client
Row-oriented access to the hosted REST database using httpx

The backup engine only needs four capabilities from the live database:
paged select with an exact total count, delete-all, batch insert and a
row count. Nothing here knows about the business meaning of any table.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from config import DataStoreConfig

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class DataStoreError(Exception):
    """A data store request failed (network, server or decoding error)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass
class Page:
    """One page of rows plus the server-reported total (None when unknown)."""
    rows: list[Row]
    total: Optional[int]


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """
    Extract the total from a Content-Range header.

    Examples: "0-999/2500" -> 2500, "*/0" -> 0, "0-9/*" -> None
    """
    if not header or '/' not in header:
        return None
    total = header.rsplit('/', 1)[1].strip()
    if total == '*':
        return None
    try:
        return int(total)
    except ValueError:
        return None


class DataStoreClient:
    """
    Thin client over the REST interface of the hosted database.

    Constructed once by the process entry point and passed to the extractor,
    restorer and scheduler.

    Usage:
        with DataStoreClient(DataStoreConfig.from_environment()) as store:
            page = store.select_page("patients", offset=0, limit=1000)
    """

    def __init__(self, config: DataStoreConfig, transport: Optional[httpx.BaseTransport] = None):
        self.config = config
        self._client = httpx.Client(
            base_url=config.rest_url,
            headers={
                "apikey": config.api_key,
                "Authorization": f"Bearer {config.api_key}",
                "Accept": "application/json",
            },
            timeout=config.timeout,
            transport=transport,
        )

    def __enter__(self) -> 'DataStoreClient':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, table: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, f"/{table}", **kwargs)
        except httpx.HTTPError as e:
            raise DataStoreError(f"{method} {table} failed: {e}") from e

        if response.status_code >= 400:
            raise DataStoreError(
                f"{method} {table} returned {response.status_code}: {self._error_detail(response)}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text.strip() or response.reason_phrase
        if isinstance(body, dict):
            return body.get("message") or body.get("error") or str(body)
        return str(body)

    def select_page(self, table: str, offset: int, limit: int) -> Page:
        """Fetch rows [offset, offset + limit) together with the exact table count."""
        response = self._request(
            "GET",
            table,
            params={"select": "*", "offset": offset, "limit": limit},
            headers={"Prefer": "count=exact"},
        )
        try:
            rows = response.json()
        except ValueError as e:
            raise DataStoreError(f"GET {table} returned a body that is not JSON") from e
        if not isinstance(rows, list):
            raise DataStoreError(f"GET {table} returned {type(rows).__name__}, expected a list of rows")

        return Page(rows=rows, total=parse_content_range(response.headers.get("content-range")))

    def delete_all(self, table: str) -> None:
        """Delete every row of a table."""
        column = self.config.delete_filter_column
        self._request(
            "DELETE",
            table,
            params={column: "not.is.null"},
            headers={"Prefer": "return=minimal"},
        )

    def insert(self, table: str, rows: list[Row]) -> None:
        """Insert a batch of rows in a single request."""
        self._request(
            "POST",
            table,
            json=rows,
            headers={"Prefer": "return=minimal"},
        )

    def count(self, table: str) -> int:
        """Exact number of rows in a table."""
        response = self._request(
            "HEAD",
            table,
            params={"select": "*"},
            headers={"Prefer": "count=exact"},
        )
        total = parse_content_range(response.headers.get("content-range"))
        if total is None:
            raise DataStoreError(f"HEAD {table} did not report a row count")
        return total
