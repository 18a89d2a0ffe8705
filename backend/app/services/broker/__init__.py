"""
Broker Client

CONTRACT:
    Input:  OrderRequest
    Output: OrderResult

RESPONSIBILITIES:
    - Resolve a contract id for a futures symbol
    - Place an order with optional stop-loss / take-profit brackets

Order protocol details and broker authentication live outside this
package. The implementation (simulated / live HTTP) is chosen from settings.
"""

import logging

from app.core.config import Settings
from app.services.broker.interface import BrokerClient
from app.services.broker.simulated import SimulatedBroker
from app.services.broker.client import HttpBrokerClient

logger = logging.getLogger(__name__)


def build_broker_client(config: Settings) -> BrokerClient:
    """Pick the broker implementation from configuration."""
    if config.broker_mode == "live":
        client: BrokerClient = HttpBrokerClient(
            config.broker_base_url,
            config.broker_api_key,
            timeout=config.broker_timeout,
        )
    else:
        client = SimulatedBroker()
    logger.info(f"Broker client: {client.name}")
    return client


__all__ = [
    "BrokerClient",
    "SimulatedBroker",
    "HttpBrokerClient",
    "build_broker_client",
]
