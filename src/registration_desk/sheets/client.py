from typing import Any, Dict, List, Optional

import httpx

from ..config import SHEET_URL_PLACEHOLDER
from ..domain.models import RegistrationData
from ..logging import get_logger


class SheetReadError(Exception):
    """Reading the remote table failed; callers fall back to local data."""


class SheetSyncClient:
    """Thin client for a spreadsheet web-app endpoint (e.g. Apps Script).

    Writes are fire-and-forget: the endpoint answers through a cross-origin
    redirect whose body is never read, so ``push`` only reports whether the
    request left without a transport error, not whether the row was written.
    """

    def __init__(self, endpoint_url: Optional[str], *, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self.endpoint = (endpoint_url or "").strip()
        self.log = get_logger("sheet-client")
        self._http = http_client

    @property
    def configured(self) -> bool:
        return bool(self.endpoint) and self.endpoint != SHEET_URL_PLACEHOLDER

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(None))
        return self._http

    # ---------- write ----------
    async def push(self, data: RegistrationData) -> bool:
        if not self.configured:
            self.log.error("Sheet endpoint is not configured; set SHEET_WEBAPP_URL")
            return False
        try:
            await self._client().post(
                self.endpoint,
                json=data.to_dict(),
                headers={"Content-Type": "application/json"},
                follow_redirects=False,
            )
        except httpx.HTTPError as e:
            self.log.error(f"Sheet push failed to dispatch: {e}")
            return False
        # Response deliberately not inspected; dispatch is the only signal.
        self.log.info(f"Sheet push dispatched for admission_id={data.admission_id!r}")
        return True

    # ---------- read ----------
    async def pull_all(self) -> List[Dict[str, Any]]:
        if not self.configured:
            self.log.info("Sheet endpoint is not configured; remote table is empty")
            return []
        try:
            r = await self._client().get(self.endpoint, follow_redirects=True)
            r.raise_for_status()
        except httpx.HTTPError as e:
            self.log.warning(f"Sheet pull failed: {e}")
            raise SheetReadError(f"Could not reach the sheet: {e}") from e
        try:
            body = r.json()
        except ValueError as e:
            preview = r.text[:200] if r.text else ""
            self.log.warning(f"Sheet pull returned non-JSON body: {preview!r}")
            raise SheetReadError("Sheet returned an unreadable response") from e

        if isinstance(body, dict) and body.get("error"):
            self.log.warning(f"Sheet pull returned error payload: {body.get('error')!r}")
            raise SheetReadError(f"Sheet reported an error: {body.get('error')}")
        if not isinstance(body, list):
            self.log.warning(f"Sheet pull returned {type(body).__name__}, expected a list; treating as empty")
            return []
        rows = [row for row in body if isinstance(row, dict)]
        if len(rows) != len(body):
            self.log.debug(f"Dropped {len(body) - len(rows)} non-object row(s) from sheet pull")
        self.log.info(f"Pulled {len(rows)} row(s) from sheet")
        return rows

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
