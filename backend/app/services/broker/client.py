"""
Broker HTTP Client

Order placement and contract search against the broker REST API.
Authentication is handled upstream; the API key is sent as a bearer token.
"""

import logging
from typing import Any, Optional

import aiohttp

from app.schemas.broker import BrokerContract, OrderRequest, OrderResult
from app.services.base import ExternalAPIError
from app.services.broker.interface import BrokerClient
from app.services.iv_scoring.instruments import normalize_symbol

logger = logging.getLogger(__name__)


class HttpBrokerClient(BrokerClient):
    """
    REST broker client.

    POST {base}/api/Contract/search  {"searchText": "ES", "live": false}
    POST {base}/api/Order/place      {"accountId", "contractId", "type", "side", ...}
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def name(self) -> str:
        return "http"

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure we have an active HTTP session."""
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/json", "Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=headers,
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _post(self, path: str, body: dict) -> Any:
        session = await self._ensure_session()

        async with session.post(f"{self.base_url}{path}", json=body) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise ExternalAPIError(self.name, f"POST {path} returned {resp.status}", {"body": text[:500]})
            data = await resp.json()

        if not data.get("success", False):
            raise ExternalAPIError(
                self.name,
                data.get("errorMessage") or f"POST {path} failed (code {data.get('errorCode')})",
                {"error_code": data.get("errorCode")},
            )
        return data

    async def search_contracts(self, symbol: str) -> list[BrokerContract]:
        search_text = normalize_symbol(symbol).lstrip("/")
        data = await self._post("/api/Contract/search", {"searchText": search_text, "live": False})

        return [
            BrokerContract(
                contract_id=str(c["id"]),
                name=c.get("name", search_text),
                description=c.get("description"),
                tick_size=c.get("tickSize"),
                tick_value=c.get("tickValue"),
            )
            for c in data.get("contracts", [])
        ]

    async def place_order(self, order: OrderRequest) -> OrderResult:
        body = {
            "accountId": order.account_id,
            "contractId": order.contract_id,
            "type": int(order.type),
            "side": int(order.side),
            "size": order.size,
            "limitPrice": order.limit_price,
            "stopPrice": order.stop_price,
            "customTag": order.custom_tag,
            "stopLossBracket": (
                {"ticks": order.stop_loss_bracket.ticks, "type": int(order.stop_loss_bracket.type)}
                if order.stop_loss_bracket else None
            ),
            "takeProfitBracket": (
                {"ticks": order.take_profit_bracket.ticks, "type": int(order.take_profit_bracket.type)}
                if order.take_profit_bracket else None
            ),
        }
        data = await self._post("/api/Order/place", body)
        logger.info(f"Broker accepted order {data.get('orderId')} for account {order.account_id}")
        return OrderResult(order_id=str(data["orderId"]))
