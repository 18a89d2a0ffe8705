"""
Broker Client Interface

Defines the contract for the order-execution collaborator.
"""

from abc import ABC, abstractmethod

from app.schemas.broker import BrokerContract, OrderRequest, OrderResult


class BrokerClient(ABC):
    """
    Broker Client Contract.

    search_contracts(symbol)  -> [BrokerContract]
    place_order(order)        -> OrderResult

    place_order raises ExternalAPIError when the broker rejects the order.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def search_contracts(self, symbol: str) -> list[BrokerContract]:
        pass

    @abstractmethod
    async def place_order(self, order: OrderRequest) -> OrderResult:
        pass

    async def close(self) -> None:
        pass
