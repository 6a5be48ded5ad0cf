"""
Business Domain API client
REST access to portfolios, holdings, market data, transactions and the
portfolio optimizer.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Type

import httpx
from pydantic import BaseModel, ValidationError

from portfolio_dashboard.domain.models import ActionResult, Holding, Portfolio, PricePoint, Transaction
from portfolio_dashboard.domain.schemas.portfolio import HoldingSchema, MarketDataSchema, PortfolioSchema
from portfolio_dashboard.domain.schemas.transaction import TransactionSchema
from portfolio_dashboard.infrastructure.api.errors import (
    DEFAULT_ERROR_MESSAGE,
    ApiError,
    AuthenticationError,
    ConflictError,
    NetworkFailure,
    NotFoundError,
)

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    if isinstance(data, str) and data:
        return data
    text = response.text.strip()
    return text or DEFAULT_ERROR_MESSAGE


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class BusinessDomainClient:
    """
    Async client for the business domain service.

    Non-2xx responses and transport failures are raised as `ApiError`
    subclasses; nothing is retried.
    """

    HEADERS = {
        "Content-Type": "application/json",
        "Accept": "application/json",
    }

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth_token = (auth_token or "").strip() or None
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = dict(self.HEADERS)
            if self.auth_token:
                headers["Authorization"] = f"Bearer {self.auth_token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BusinessDomainClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, params: Optional[dict] = None) -> Any:
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            response = await self._get_client().request(method, path, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("Request timed out: %s %s", method, path)
            raise NetworkFailure("Request timed out. Please check your network connection.") from exc
        except httpx.TransportError as exc:
            logger.warning("No response from server for %s %s: %s", method, path, exc)
            raise NetworkFailure("No response received from server. Please check your network connection.") from exc

        if response.is_success:
            if not response.content:
                return None
            return _response_body(response)

        status = response.status_code
        message = _error_message(response)
        logger.error("Response error %s for %s %s: %s", status, method, path, message)
        body = _response_body(response)

        if status == 401:
            raise AuthenticationError(message, status_code=status, body=body)
        if status == 404:
            raise NotFoundError(message, status_code=status, body=body)
        if status == 409:
            raise ConflictError(message, status_code=status, body=body)
        if status >= 500:
            raise NetworkFailure(message, status_code=status, body=body)
        raise ApiError(message, status_code=status, body=body)

    def _parse_list(self, payload: Any, schema: Type[BaseModel], label: str) -> list:
        if not isinstance(payload, list):
            return []
        items = []
        for raw in payload:
            try:
                items.append(schema.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping malformed %s entry: %s", label, exc.errors()[0]["msg"])
        return items

    # ------------------------------------------------------------------
    # PORTFOLIOS & HOLDINGS
    # ------------------------------------------------------------------

    async def get_portfolio(self, portfolio_id: str) -> Portfolio:
        payload = await self._request("GET", f"/api/Portfolio/{portfolio_id}")
        try:
            return PortfolioSchema.model_validate(payload).to_domain()
        except ValidationError as exc:
            raise ApiError(f"Malformed portfolio payload for {portfolio_id}", body=payload) from exc

    async def get_holdings(self, portfolio_id: str) -> List[Holding]:
        payload = await self._request("GET", f"/api/PortfolioStock/portfolio/{portfolio_id}")
        return [h.to_domain() for h in self._parse_list(payload, HoldingSchema, "holding")]

    # ------------------------------------------------------------------
    # MARKET DATA
    # ------------------------------------------------------------------

    async def get_historical_prices(self, symbol: str, start: date, end: date) -> List[PricePoint]:
        payload = await self._request(
            "GET",
            "/api/MarketData/GetHistoricalMarketData",
            params={"symbol": symbol, "start": start.isoformat(), "end": end.isoformat()},
        )
        if isinstance(payload, list):
            payload = [{"symbol": symbol, **p} if isinstance(p, dict) else p for p in payload]
        return [p.to_domain() for p in self._parse_list(payload, MarketDataSchema, "market data")]

    async def get_latest_prices(self, symbol: str, count: int = 2) -> List[PricePoint]:
        """Most recent `count` daily bars, most-recent-first."""
        payload = await self._request(
            "GET",
            "/api/MarketData/GetLatestHistoricalMarketDataWithCount",
            params={"symbol": symbol, "count": count},
        )
        if isinstance(payload, list):
            payload = [{"symbol": symbol, **p} if isinstance(p, dict) else p for p in payload]
        return [p.to_domain() for p in self._parse_list(payload, MarketDataSchema, "market data")]

    # ------------------------------------------------------------------
    # OPTIMIZATION
    # ------------------------------------------------------------------

    async def request_fresh_signal(self, portfolio_id: str) -> ActionResult:
        payload = await self._request("POST", f"/api/ModelPrediction/Portfolio/{portfolio_id}/refresh")
        message = payload.get("message") if isinstance(payload, dict) else None
        return ActionResult(successful=True, message=message or "New prediction generated")

    async def request_optimization(self, portfolio_id: str) -> Any:
        # Raw payload: normalization belongs to parse_optimization_result
        return await self._request(
            "GET",
            "/api/PortfolioOptimization/optimize",
            params={"portfolioId": portfolio_id},
        )

    async def get_optimization_history(
        self,
        portfolio_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        payload = await self._request(
            "GET",
            "/api/PortfolioOptimization/history",
            params={
                "portfolioId": portfolio_id,
                "startDate": start_date.isoformat() if start_date else None,
                "endDate": end_date.isoformat() if end_date else None,
            },
        )
        if not isinstance(payload, list):
            return []
        return [entry for entry in payload if isinstance(entry, dict)]

    async def apply_optimization(self, optimization_id: str) -> Dict[str, Any]:
        payload = await self._request("POST", f"/api/PortfolioOptimization/apply/{optimization_id}")
        return payload if isinstance(payload, dict) else {}

    async def cancel_optimization(self, optimization_id: str) -> Dict[str, Any]:
        payload = await self._request("POST", f"/api/PortfolioOptimization/cancel/{optimization_id}")
        return payload if isinstance(payload, dict) else {}

    # ------------------------------------------------------------------
    # TRANSACTIONS
    # ------------------------------------------------------------------

    async def get_user_transactions(self) -> List[Transaction]:
        payload = await self._request("GET", "/api/Transaction")
        return [t.to_domain() for t in self._parse_list(payload, TransactionSchema, "transaction")]

    async def get_portfolio_transactions(self, portfolio_id: str) -> List[Transaction]:
        payload = await self._request("GET", f"/api/Transaction/portfolio/{portfolio_id}")
        return [t.to_domain() for t in self._parse_list(payload, TransactionSchema, "transaction")]
