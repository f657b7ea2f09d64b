"""
Smartsheet API Client
Bearer-token REST calls against the fixed Smartsheet base URL
"""
import asyncio
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import settings


log = structlog.get_logger()


class SmartsheetError(Exception):
    pass


class SmartsheetClient:
    """Client for the Smartsheet REST API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.smartsheet_api_key
        self.base_url = (base_url or settings.smartsheet_base_url).rstrip("/")
        self.timeout = timeout or settings.smartsheet_timeout_seconds
        self._transport = transport

        if not self.api_key:
            raise SmartsheetError("SMARTSHEET_API_KEY is not configured")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _get(self, client: httpx.AsyncClient, endpoint: str) -> Any:
        response = await client.get(f"/{endpoint.lstrip('/')}")
        if response.status_code >= 400:
            log.error("smartsheet_api_error", endpoint=endpoint, status=response.status_code, body=response.text[:500])
            raise SmartsheetError(f"Smartsheet API error: {response.status_code}")
        return response.json()

    async def list_sheets(self) -> Dict[str, Any]:
        """All sheets visible to the token; the payload keeps Smartsheet's `data` list"""
        async with self._client() as client:
            data = await self._get(client, "/sheets")
        log.info("smartsheet_sheets_listed", count=len(data.get("data") or []))
        return data

    async def get_sheet(self, sheet_id: str) -> Dict[str, Any]:
        async with self._client() as client:
            return await self._get(client, f"/sheets/{sheet_id}")

    async def fetch_sheets(self, sheet_ids: List[str]) -> List[Dict[str, Any]]:
        """
        Fetch several sheets concurrently.

        Returns one entry per requested id, in request order:
        {"sheet_id", "data", "error"} with exactly one of data/error set.
        """
        async with self._client() as client:

            async def _one(sheet_id: str) -> Dict[str, Any]:
                try:
                    data = await self._get(client, f"/sheets/{sheet_id}")
                except SmartsheetError as e:
                    log.warning("smartsheet_sheet_fetch_failed", sheet_id=sheet_id, error=str(e))
                    return {"sheet_id": sheet_id, "data": None, "error": f"Failed to fetch sheet: {e}"}
                except httpx.HTTPError as e:
                    log.warning("smartsheet_sheet_fetch_failed", sheet_id=sheet_id, error=str(e))
                    return {"sheet_id": sheet_id, "data": None, "error": str(e) or e.__class__.__name__}
                log.info("smartsheet_sheet_fetched", sheet_id=sheet_id, name=data.get("name"))
                return {"sheet_id": sheet_id, "data": data, "error": None}

            return list(await asyncio.gather(*[_one(str(sid)) for sid in sheet_ids]))


def sheet_rows(sheet: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten a sheet into [{"row_id", "data": {column title: value}}]."""
    titles = {str(c.get("id")): c.get("title") or str(c.get("id")) for c in sheet.get("columns") or []}
    ordered = [c.get("title") or str(c.get("id")) for c in sheet.get("columns") or []]
    rows = []
    for row in sheet.get("rows") or []:
        values: Dict[str, Any] = {}
        for idx, cell in enumerate(row.get("cells") or []):
            column_id = cell.get("columnId")
            if column_id is not None and str(column_id) in titles:
                title = titles[str(column_id)]
            elif idx < len(ordered):
                title = ordered[idx]
            else:
                continue
            value = cell.get("displayValue")
            if value is None:
                value = cell.get("value")
            values[title] = value
        rows.append({"row_id": str(row.get("id")), "data": values})
    return rows
