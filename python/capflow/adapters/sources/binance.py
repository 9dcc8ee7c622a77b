from typing import Any, Mapping, Optional

import httpx
from loguru import logger

from capflow.config.constants import (
    BINANCE_CAPITAL_FLOW_URL,
    BINANCE_SUCCESS_CODE,
    DEFAULT_CAPITAL_FLOW_PERIOD,
    DEFAULT_REQUEST_TIMEOUT,
    SAMPLE_TIMESTAMP_FIELD,
)
from capflow.core.errors import MalformedPayload, TransportFailure
from capflow.core.types import Sample

from .interfaces import BaseDataSource


class BinanceCapitalFlowSource(BaseDataSource):
    """Reads capital-flow figures from Binance's public indicator endpoint.

    Response handling:
    - transport errors, timeouts and non-2xx statuses -> TransportFailure
    - non-JSON body -> MalformedPayload
    - envelope ``{code, message, data, success}`` with ``success`` false or a
      non-success ``code`` -> TransportFailure (API-level rejection on HTTP 200)
    - missing/non-object ``data`` or an invalid sample -> MalformedPayload

    An ``httpx.AsyncClient`` may be injected; otherwise one is created lazily
    and owned (and closed) by this source.
    """

    def __init__(
        self,
        base_url: str = BINANCE_CAPITAL_FLOW_URL,
        period: str = DEFAULT_CAPITAL_FLOW_PERIOD,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url
        self._period = period
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def period(self) -> str:
        return self._period

    async def open(self) -> None:
        self._get_client()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._client

    async def fetch_sample(self, instrument_id: str) -> Sample:
        client = self._get_client()
        params = {"period": self._period, "symbol": instrument_id}
        logger.debug("Capital-flow request for {} ({})", instrument_id, self._period)

        try:
            resp = await client.get(self._base_url, params=params)
            resp.raise_for_status()
        except httpx.TimeoutException as exc:
            raise TransportFailure(
                f"Request timed out for {instrument_id}", instrument_id=instrument_id
            ) from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            raise TransportFailure(
                f"HTTP {status_code} for {instrument_id}",
                instrument_id=instrument_id,
                status_code=status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportFailure(
                f"Transport error for {instrument_id}: {exc}",
                instrument_id=instrument_id,
            ) from exc

        try:
            body = resp.json()
        except ValueError as exc:
            raise MalformedPayload(
                f"Response for {instrument_id} is not valid JSON",
                instrument_id=instrument_id,
            ) from exc

        data = self._unwrap(body, instrument_id, resp.status_code)
        return Sample.from_payload(data, instrument_id=instrument_id)

    @staticmethod
    def _unwrap(body: Any, instrument_id: str, status_code: int) -> Any:
        """Return the sample object from a Binance envelope (or a bare sample)."""
        if not isinstance(body, Mapping):
            raise MalformedPayload(
                f"Expected a JSON object for {instrument_id}, got {type(body).__name__}",
                instrument_id=instrument_id,
            )

        # Bare sample without the envelope
        if "data" not in body and SAMPLE_TIMESTAMP_FIELD in body:
            return body

        # Binance answers 200 OK even for rejected calls, check the envelope
        if body.get("success") is False or (
            "code" in body and str(body.get("code")) != BINANCE_SUCCESS_CODE
        ):
            message = body.get("message") or "request rejected"
            raise TransportFailure(
                f"Capital-flow API rejected {instrument_id}: "
                f"code={body.get('code')} message={message}",
                instrument_id=instrument_id,
                status_code=status_code,
            )

        data = body.get("data")
        if not isinstance(data, Mapping):
            raise MalformedPayload(
                f"Envelope for {instrument_id} carries no data object",
                instrument_id=instrument_id,
            )
        return data
