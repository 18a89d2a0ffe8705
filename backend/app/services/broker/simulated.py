"""
Simulated Broker

Paper-trading stand-in for the broker API. Resolves contracts for known
instruments and fills every order unless told to reject.
"""

import itertools
import logging
from typing import Optional

from app.schemas.broker import BrokerContract, OrderRequest, OrderResult
from app.services.base import ExternalAPIError
from app.services.broker.interface import BrokerClient
from app.services.iv_scoring.instruments import INSTRUMENT_PROFILES, normalize_symbol

logger = logging.getLogger(__name__)


class SimulatedBroker(BrokerClient):
    """In-process broker. Keeps every accepted order in `orders`."""

    def __init__(self, reject_reason: Optional[str] = None):
        self.reject_reason = reject_reason
        self.orders: list[OrderRequest] = []
        self._order_ids = itertools.count(1000)

    @property
    def name(self) -> str:
        return "simulated"

    async def search_contracts(self, symbol: str) -> list[BrokerContract]:
        symbol = normalize_symbol(symbol)
        profile = INSTRUMENT_PROFILES.get(symbol)
        if profile is None:
            return []
        return [
            BrokerContract(
                contract_id=f"SIM.F.US.{symbol.lstrip('/')}",
                name=symbol.lstrip("/"),
                description=profile.description,
                tick_size=profile.tick_size,
                tick_value=profile.tick_value,
            )
        ]

    async def place_order(self, order: OrderRequest) -> OrderResult:
        if self.reject_reason:
            raise ExternalAPIError(self.name, self.reject_reason)

        self.orders.append(order)
        order_id = str(next(self._order_ids))
        logger.info(
            f"Simulated fill {order_id}: {order.side.name} {order.size} {order.contract_id} "
            f"({order.type.name})"
        )
        return OrderResult(order_id=order_id)
