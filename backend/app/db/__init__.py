"""
Database module for the autopilot backend.

Provides SQLite database connection, models and the trading stores.
"""

from app.db.database import init_db, close_db, session_scope, AsyncSessionLocal
from app.db.models import (
    Base,
    BrokerAccount,
    AutopilotSettings,
    Trade,
    AutopilotProposal,
    AutopilotExecution,
    SystemEvent,
)
from app.db.store import TradingDataSource, ProposalStore, TradingStore

__all__ = [
    "init_db",
    "close_db",
    "session_scope",
    "AsyncSessionLocal",
    "Base",
    "BrokerAccount",
    "AutopilotSettings",
    "Trade",
    "AutopilotProposal",
    "AutopilotExecution",
    "SystemEvent",
    "TradingDataSource",
    "ProposalStore",
    "TradingStore",
]
