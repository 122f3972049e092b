"""
StageClient — HTTP client for the four cheque analysis stage services.

Each stage is a single POST to ``{base_url}/{stage}`` returning JSON.
Any non-2xx response and any transport error (timeout, connection
refused, invalid JSON) is raised as StageError; the runner treats both
identically.
"""

from __future__ import annotations

from typing import Any

import httpx

from chequebatch.core.config import settings
from chequebatch.core.constants import StageName
from chequebatch.core.logging import get_logger
from chequebatch.pipeline.errors import StageError

logger = get_logger(__name__)

EXPECTED_STATUS_CODES = (200, 201, 202)


class StageClient:
    """
    Authenticated calls to the stage services.

    Usage::

        async with StageClient() as client:
            output = await client.invoke(
                StageName.ANALYZE_CHEQUE,
                {"imageBase64": item.payload_ref},
                batch_id="batch-1",
                item_id="item_abc",
            )
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.STAGE_SERVICE_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.STAGE_SERVICE_API_KEY
        self._timeout = timeout or settings.STAGE_TIMEOUT_SECONDS
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self._timeout)

    async def __aenter__(self) -> StageClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, batch_id: str | None, item_id: str | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if batch_id:
            headers["X-Batch-ID"] = batch_id
        if item_id:
            headers["X-Item-ID"] = item_id
        return headers

    async def invoke(
        self,
        stage: StageName,
        payload: dict[str, Any],
        *,
        batch_id: str | None = None,
        item_id: str | None = None,
    ) -> dict[str, Any]:
        """POST `payload` to the stage route and return the decoded JSON body."""
        url = f"{self.base_url}/{stage}"

        try:
            response = await self._client.post(
                url,
                json=payload,
                headers=self._headers(batch_id, item_id),
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise StageError(
                f"{stage} request failed: {exc.__class__.__name__}: {exc}",
                batch_id=batch_id,
                item_id=item_id,
                stage=stage,
            ) from exc

        if response.status_code not in EXPECTED_STATUS_CODES:
            raise StageError(
                f"{stage} failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
                response_body=response.text,
                batch_id=batch_id,
                item_id=item_id,
                stage=stage,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise StageError(
                f"{stage} returned a non-JSON body",
                status_code=response.status_code,
                response_body=response.text,
                batch_id=batch_id,
                item_id=item_id,
                stage=stage,
            ) from exc

        if not isinstance(data, dict):
            raise StageError(
                f"{stage} returned {type(data).__name__}, expected an object",
                status_code=response.status_code,
                batch_id=batch_id,
                item_id=item_id,
                stage=stage,
            )

        logger.debug(
            "Stage call succeeded",
            stage=str(stage),
            batch_id=batch_id,
            item_id=item_id,
            status_code=response.status_code,
        )
        return data
